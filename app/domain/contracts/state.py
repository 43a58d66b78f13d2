"""Contract state machine: statuses, roles, and which actions each status allows"""

from enum import Enum

from .exceptions import InvalidStateError


class ContractStatus(str, Enum):
    PENDING_BUYER = "pending_buyer"
    PENDING_SELLER = "pending_seller"
    EXECUTED = "executed"
    REJECTED = "rejected"


class PartyRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"

    @property
    def counterparty(self) -> "PartyRole":
        return PartyRole.SELLER if self is PartyRole.BUYER else PartyRole.BUYER

    @property
    def signed_at_field(self) -> str:
        return f"signed_at_{self.value}"

    @property
    def id_field(self) -> str:
        return f"{self.value}_id"


class ContractAction(str, Enum):
    SIGN = "sign"
    WITHDRAW = "withdraw"
    REJECT = "reject"
    EDIT_TERMS = "edit_terms"


class EngagementType(str, Enum):
    BOOKING = "booking"
    QUOTE = "quote"


PENDING_STATUSES = frozenset({ContractStatus.PENDING_BUYER, ContractStatus.PENDING_SELLER})
# Enum members hash by name, so raw column values are checked against this set
PENDING_STATUS_VALUES = frozenset(s.value for s in PENDING_STATUSES)

ALLOWED_FROM: dict[ContractAction, frozenset] = {
    ContractAction.SIGN: PENDING_STATUSES,
    ContractAction.WITHDRAW: PENDING_STATUSES,
    ContractAction.REJECT: PENDING_STATUSES,
    ContractAction.EDIT_TERMS: PENDING_STATUSES,
}

# Engagement statuses in which the buyer is acting on a seller's offer
BOOKING_OFFER_STATUSES = frozenset({"seller_responded"})
QUOTE_OFFER_STATUSES = frozenset({"pending", "negotiating"})

# Where the negotiation goes back to when a contract is withdrawn
BOOKING_REVERT_STATUS = "seller_responded"
QUOTE_REVERT_STATUS = "pending"

# Projections applied once a contract is executed
BOOKING_EXECUTED_STATUS = "accepted"
QUOTE_EXECUTED_STATUS = "accepted"
REQUEST_EXECUTED_STATUS = "assigned"

ENGAGEMENT_REJECTED_STATUS = "rejected"


def parse_status(value: str) -> ContractStatus:
    try:
        return ContractStatus(value)
    except ValueError:
        raise InvalidStateError(
            f"Unknown contract status: {value}", f"حالة عقد غير معروفة: {value}"
        ) from None


def is_allowed(action: ContractAction, status) -> bool:
    try:
        current = ContractStatus(getattr(status, "value", status))
    except ValueError:
        return False
    return current in ALLOWED_FROM[action]


def ensure_allowed(action: ContractAction, status) -> ContractStatus:
    """Raise InvalidStateError unless ``action`` may run from ``status``"""
    current = status if isinstance(status, ContractStatus) else parse_status(status)
    if current not in ALLOWED_FROM[action]:
        raise InvalidStateError(
            f"Cannot {action.value.replace('_', ' ')} a contract that is {current.value}",
        )
    return current


def pending_status_for(unsigned_role: PartyRole) -> ContractStatus:
    """Pending statuses name the party that still has to sign"""
    if unsigned_role is PartyRole.BUYER:
        return ContractStatus.PENDING_BUYER
    return ContractStatus.PENDING_SELLER


def status_after_signature(contract, role: PartyRole) -> ContractStatus:
    """Status label once ``role`` has signed, before the execution check"""
    other = role.counterparty
    if getattr(contract, other.signed_at_field) is None:
        return pending_status_for(other)
    # Counterparty already signed; the contract stays on its current label until executed
    return pending_status_for(role)
