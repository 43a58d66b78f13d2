"""Contract service - Business logic for the contract lifecycle.

Every public operation follows the same shape: read current state, validate
it against the transition table in ``state``, write, re-read, notify. Writes
are separate round trips; the guarding writes are compare-and-swap updates so
a lost race shows up as ``AlreadyResolvedError`` instead of corrupt state.
"""

import logging
import re
from datetime import date, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...config import DEFAULT_DURATION_DAYS, DEFAULT_WARRANTY_DAYS
from ...models import BookingRequest, Contract, QuoteSubmission, generate_uuid, utcnow
from ...services.notification_service import send_notification
from .exceptions import (
    AlreadyResolvedError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StorageError,
)
from .hashing import (
    binding_terms_snapshot,
    canonicalize,
    compute_content_hash,
    compute_signature_hash,
)
from .repository import ContractRepository
from .state import (
    BOOKING_EXECUTED_STATUS,
    BOOKING_OFFER_STATUSES,
    BOOKING_REVERT_STATUS,
    ENGAGEMENT_REJECTED_STATUS,
    PENDING_STATUS_VALUES,
    PENDING_STATUSES,
    QUOTE_EXECUTED_STATUS,
    QUOTE_OFFER_STATUSES,
    QUOTE_REVERT_STATUS,
    REQUEST_EXECUTED_STATUS,
    ContractAction,
    ContractStatus,
    EngagementType,
    PartyRole,
    ensure_allowed,
    is_allowed,
    pending_status_for,
    status_after_signature,
)

logger = logging.getLogger(__name__)

# Legacy statuses that still count as a live agreement
ACTIVE_STATUSES = frozenset({ContractStatus.EXECUTED.value, "active", "completed"})

EDITABLE_TERMS_FIELDS = frozenset(
    {
        "start_date",
        "completion_date",
        "warranty_days",
        "access_hours",
        "materials_by",
        "payment_method",
        "payment_schedule",
        "penalty_rate_per_day",
        "cleanup_disposal",
        "use_deposit_escrow",
    }
)

Engagement = Union[BookingRequest, QuoteSubmission]


def _as_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _duration_days(estimated_duration: Optional[str]) -> int:
    match = re.search(r"(\d+)", estimated_duration or "")
    return int(match.group(1)) if match else DEFAULT_DURATION_DAYS


class ContractService:
    """Service layer for contract business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ContractRepository()

    # ========================================================================
    # Lookups
    # ========================================================================

    @staticmethod
    def party_role(contract: Contract, user_id: str) -> Optional[PartyRole]:
        if contract.buyer_id == user_id:
            return PartyRole.BUYER
        if contract.seller_id == user_id:
            return PartyRole.SELLER
        return None

    def get_contract_for_party(self, contract_id: str, user_id: str) -> tuple[Contract, PartyRole]:
        """Load a contract the user is a party to; anything else is a 404"""
        contract = self.repo.get_contract(self.db, contract_id)
        if not contract:
            raise NotFoundError()
        role = self.party_role(contract, user_id)
        if role is None:
            raise NotFoundError()
        return contract, role

    def list_contracts(self, user_id: str, status: Optional[str] = None) -> list[Contract]:
        return self.repo.get_contracts_for_user(self.db, user_id, status)

    def get_contract_detail(self, contract_id: str, user_id: str) -> dict:
        contract, role = self.get_contract_for_party(contract_id, user_id)
        terms = self.repo.get_binding_terms(self.db, contract.id)
        return {
            "contract": contract,
            "role": role,
            "binding_terms": terms,
            "signatures": self.repo.get_signatures(self.db, contract.id),
            "versions": self.repo.get_contract_versions(self.db, contract.id),
        }

    def find_orphaned_signatures(self, contract_id: Optional[str] = None, user_id: Optional[str] = None):
        """Signatures recorded without the matching signed_at flag on the contract"""
        if contract_id and user_id:
            self.get_contract_for_party(contract_id, user_id)
        return self.repo.find_orphaned_signatures(self.db, contract_id)

    # ========================================================================
    # Contract creation
    # ========================================================================

    def _load_engagement(
        self, engagement_type: EngagementType, engagement_id: str
    ) -> tuple[Engagement, str, str]:
        """Return (engagement, buyer_id, seller_id)"""
        if engagement_type is EngagementType.BOOKING:
            booking = self.repo.get_booking(self.db, engagement_id)
            if not booking:
                raise NotFoundError("Booking not found", "الحجز غير موجود")
            return booking, booking.buyer_id, booking.seller_id

        quote = self.repo.get_quote(self.db, engagement_id)
        if not quote:
            raise NotFoundError("Quote not found", "العرض غير موجود")
        request = self.repo.get_request(self.db, quote.request_id)
        if not request:
            raise NotFoundError("Maintenance request not found", "طلب الصيانة غير موجود")
        return quote, request.buyer_id, quote.seller_id

    def _resolve_existing(self, existing: list[Contract]) -> Optional[Contract]:
        """Apply the conflict and reuse rules to prior contracts"""
        for contract in existing:
            if contract.status in ACTIVE_STATUSES:
                logger.warning(f"⚠️ Active contract {contract.id} already exists")
                raise ConflictError()

        for contract in existing:
            if contract.status in PENDING_STATUS_VALUES:
                logger.info(f"♻️ Reusing pending contract {contract.id}")
                return contract
        return None

    def _clear_leftovers(self, leftovers: list[tuple[str, str]]) -> None:
        """Delete rejected or unrecognised contracts so a fresh one can be made"""
        for contract_id, status in leftovers:
            deleted = self.repo.delete_contract_tree(
                self.db, contract_id, expected_statuses=[status]
            )
            if not deleted:
                logger.warning(f"⚠️ Contract {contract_id} changed while being cleaned up")
                raise AlreadyResolvedError()
            logger.info(f"🧹 Cleaned up {status} contract {contract_id}")

    def _clear_sibling_quote_drafts(self, quote: QuoteSubmission) -> None:
        """Switching quotes: drop an unsigned draft made for another quote on the same request"""
        drafts = []
        for contract in self.repo.get_contracts_for_request(self.db, quote.request_id):
            if contract.quote_id == quote.id or contract.status == ContractStatus.REJECTED.value:
                continue
            unsigned_draft = (
                contract.status == ContractStatus.PENDING_BUYER.value
                and contract.signed_at_buyer is None
                and contract.signed_at_seller is None
            )
            if not unsigned_draft:
                raise ConflictError(
                    "An active contract already exists for this request",
                    "يوجد عقد قائم بالفعل لهذا الطلب",
                )
            drafts.append((contract.id, contract.quote_id))

        for contract_id, other_quote_id in drafts:
            deleted = self.repo.delete_contract_tree(
                self.db,
                contract_id,
                expected_statuses=[ContractStatus.PENDING_BUYER],
                require_null=["signed_at_buyer", "signed_at_seller"],
            )
            if not deleted:
                raise AlreadyResolvedError()
            logger.info(f"🔀 Removed draft contract {contract_id} for quote {other_quote_id}")

    def _booking_snapshot(self, booking: BookingRequest) -> tuple[dict, dict]:
        proposal = booking.seller_counter_proposal or {}
        start_date = _as_date(proposal.get("proposed_start_date")) or booking.proposed_start_date
        completion_date = _as_date(proposal.get("proposed_end_date")) or booking.proposed_end_date
        final_price = proposal.get("price_estimate") or booking.final_amount

        metadata = {
            "final_price": final_price,
            "scheduled_date": start_date.isoformat() if start_date else None,
            "time_preference": proposal.get("time_slot") or booking.preferred_time_slot,
            "service_category": booking.service_category,
            "location": booking.location_address or booking.location_city,
            "location_city": booking.location_city,
            "job_description": booking.job_description,
        }
        terms = {
            "start_date": start_date,
            "completion_date": completion_date,
            "warranty_days": DEFAULT_WARRANTY_DAYS,
            "materials_by": "seller",
        }
        return metadata, terms

    def _quote_snapshot(self, quote: QuoteSubmission) -> tuple[dict, dict]:
        request = self.repo.get_request(self.db, quote.request_id)
        start_date = quote.start_date or date.today()
        completion_date = start_date + timedelta(days=_duration_days(quote.estimated_duration))

        metadata = {
            "final_price": quote.price,
            "scheduled_date": start_date.isoformat(),
            "time_preference": request.preferred_time_slot,
            "service_category": request.category,
            "location": request.location or request.city,
            "location_city": request.city,
            "job_description": request.description or request.title,
        }
        terms = {
            "start_date": start_date,
            "completion_date": completion_date,
            "warranty_days": DEFAULT_WARRANTY_DAYS,
        }
        return metadata, terms

    def create_contract(
        self,
        engagement_type: Union[EngagementType, str],
        engagement_id: str,
        user_id: str,
        initiator_role: PartyRole = PartyRole.BUYER,
        language_mode: str = "dual",
    ) -> tuple[Contract, bool]:
        """Turn an accepted offer into a contract.

        Returns (contract, created). Calling again while a pending contract
        exists for the engagement returns that same contract with
        ``created=False``.
        """
        engagement_type = EngagementType(engagement_type)
        engagement, buyer_id, seller_id = self._load_engagement(engagement_type, engagement_id)
        if user_id != buyer_id:
            if engagement_type is EngagementType.BOOKING:
                raise NotFoundError("Booking not found", "الحجز غير موجود")
            raise NotFoundError("Quote not found", "العرض غير موجود")
        if initiator_role is not PartyRole.BUYER:
            raise InvalidStateError(
                "Only the buyer can accept an offer", "يمكن للمشتري فقط قبول العرض"
            )

        logger.info(f"📝 Accepting {engagement_type.value} {engagement_id} for buyer {user_id}")

        if engagement_type is EngagementType.BOOKING:
            existing = self.repo.get_contracts_for_engagement(self.db, booking_id=engagement.id)
        else:
            existing = self.repo.get_contracts_for_engagement(self.db, quote_id=engagement.id)

        reused = self._resolve_existing(existing)
        if reused is not None:
            return reused, False
        leftovers = [(contract.id, contract.status) for contract in existing]

        # Leftovers stay untouched unless the engagement can actually be accepted
        if engagement_type is EngagementType.BOOKING:
            if engagement.status not in BOOKING_OFFER_STATUSES:
                raise InvalidStateError(
                    "The provider has not responded to this booking yet",
                    "لم يرد مقدم الخدمة على هذا الحجز بعد",
                )
            self._clear_leftovers(leftovers)
            metadata, terms_data = self._booking_snapshot(engagement)
            source = {"booking_id": engagement.id}
        else:
            if engagement.status not in QUOTE_OFFER_STATUSES:
                raise InvalidStateError(
                    "This quote can no longer be accepted", "لم يعد بالإمكان قبول هذا العرض"
                )
            self._clear_leftovers(leftovers)
            self._clear_sibling_quote_drafts(engagement)
            metadata, terms_data = self._quote_snapshot(engagement)
            source = {"quote_id": engagement.id, "request_id": engagement.request_id}

        contract = self.repo.create_contract(
            self.db,
            id=generate_uuid(),
            buyer_id=buyer_id,
            seller_id=seller_id,
            status=ContractStatus.PENDING_BUYER.value,
            version=1,
            language_mode=language_mode,
            contract_metadata=canonicalize(metadata),
            **source,
        )
        terms = self.repo.create_binding_terms(self.db, contract.id, **terms_data)

        snapshot = binding_terms_snapshot(terms)
        content_hash = compute_content_hash(contract.id, 1, contract.contract_metadata, snapshot)
        self.repo.update_contract_if(
            self.db, contract.id, [ContractStatus.PENDING_BUYER], content_hash=content_hash
        )
        self.repo.create_contract_version(
            self.db,
            contract_id=contract.id,
            version=1,
            binding_terms_snapshot=snapshot,
            content_hash=content_hash,
            changed_by=user_id,
        )

        logger.info(f"✅ Created contract {contract.id} from {engagement_type.value} {engagement_id}")
        return self.repo.get_contract(self.db, contract.id), True

    # ========================================================================
    # Signing
    # ========================================================================

    def sign_contract(
        self,
        contract_id: str,
        user_id: str,
        signature_data: Optional[str] = None,
        signature_method: str = "digital",
    ) -> Contract:
        """Record the caller's signature; execute the contract once both parties signed"""
        contract, role = self.get_contract_for_party(contract_id, user_id)
        ensure_allowed(ContractAction.SIGN, contract.status)

        if getattr(contract, role.signed_at_field) is not None:
            raise InvalidStateError(
                "You have already signed this contract", "لقد قمت بتوقيع هذا العقد بالفعل"
            )

        artifact = signature_data
        if not artifact:
            profile = self.repo.get_profile(self.db, user_id)
            artifact = profile.signature_data if profile else None
        if not artifact:
            raise InvalidStateError(
                "No signature provided. Please draw or upload a signature first.",
                "لم يتم تقديم توقيع. يرجى رسم التوقيع أو رفعه أولاً.",
            )

        contract_id = contract.id
        version = contract.version
        next_status = status_after_signature(contract, role)
        signed_at = utcnow()
        signature_hash = compute_signature_hash(
            artifact, contract_id, version, contract.content_hash, signed_at
        )
        self.repo.create_signature(
            self.db,
            contract_id=contract_id,
            user_id=user_id,
            version=version,
            signature_hash=signature_hash,
            signature_method=signature_method,
            signed_at=signed_at,
        )

        flagged = self.repo.update_contract_if(
            self.db,
            contract_id,
            PENDING_STATUSES,
            require_null=[role.signed_at_field],
            expected_version=version,
            **{role.signed_at_field: signed_at, "status": next_status.value},
        )
        if not flagged:
            # The signature row stays behind; find_orphaned_signatures reports it
            logger.warning(
                f"⚠️ Contract {contract_id} changed while {role.value} was signing; "
                f"signature recorded without flag"
            )
            raise AlreadyResolvedError()

        logger.info(f"✍️ {role.value} signed contract {contract_id} (v{version})")

        contract = self.repo.get_contract(self.db, contract_id)
        if contract is None:
            raise AlreadyResolvedError()
        if contract.signed_at_buyer is not None and contract.signed_at_seller is not None:
            executed = self.repo.update_contract_if(
                self.db,
                contract.id,
                PENDING_STATUSES,
                require_not_null=["signed_at_buyer", "signed_at_seller"],
                status=ContractStatus.EXECUTED.value,
                executed_at=utcnow(),
            )
            if not executed:
                logger.warning(
                    f"⚠️ Contract {contract_id} changed before it could be executed"
                )
                raise AlreadyResolvedError()
            contract = self.repo.get_contract(self.db, contract_id)
            self._on_executed(contract, role)

        return contract

    # ========================================================================
    # Withdrawal and rejection
    # ========================================================================

    def withdraw_signature(self, contract_id: str, user_id: str) -> None:
        """Sole signer retracts: delete the contract and reopen the negotiation"""
        contract = self.repo.get_contract(self.db, contract_id)
        if not contract:
            raise AlreadyResolvedError(
                "This contract was already withdrawn", "تم سحب هذا العقد بالفعل"
            )
        role = self.party_role(contract, user_id)
        if role is None:
            raise NotFoundError()
        if getattr(contract, role.signed_at_field) is None:
            raise InvalidStateError(
                "You have not signed this contract", "لم تقم بتوقيع هذا العقد"
            )

        counterparty = role.counterparty
        expected = pending_status_for(counterparty)
        if (
            not is_allowed(ContractAction.WITHDRAW, contract.status)
            or contract.status != expected.value
            or getattr(contract, counterparty.signed_at_field) is not None
        ):
            raise AlreadyResolvedError(
                "Cannot withdraw - contract status changed",
                "لا يمكن سحب التوقيع - حالة العقد تغيرت",
            )

        # The row is about to disappear; keep what the follow-up steps need
        contract_id = contract.id
        quote_id, booking_id = contract.quote_id, contract.booking_id
        counterparty_id = getattr(contract, counterparty.id_field)

        deleted = self.repo.delete_contract_tree(
            self.db,
            contract_id,
            expected_statuses=[expected],
            require_null=[counterparty.signed_at_field],
        )
        if not deleted:
            raise AlreadyResolvedError(
                "Cannot withdraw - contract status changed",
                "لا يمكن سحب التوقيع - حالة العقد تغيرت",
            )

        if self.repo.contract_exists(self.db, contract_id):
            raise StorageError("Failed to delete contract", "فشل حذف العقد")

        if quote_id:
            self.repo.update_quote_status(self.db, quote_id, QUOTE_REVERT_STATUS)
        elif booking_id:
            self.repo.update_booking_status(self.db, booking_id, BOOKING_REVERT_STATUS)

        logger.info(f"↩️ {role.value} withdrew from contract {contract_id}")

        send_notification(
            self.db,
            user_id=counterparty_id,
            notification_type="contract_withdrawn",
            content_id=quote_id or booking_id or contract_id,
        )

    def reject_contract(self, contract_id: str, user_id: str) -> Contract:
        """Terminal decline; the contract row is kept"""
        contract, role = self.get_contract_for_party(contract_id, user_id)
        ensure_allowed(ContractAction.REJECT, contract.status)

        rejected = self.repo.update_contract_if(
            self.db, contract.id, PENDING_STATUSES, status=ContractStatus.REJECTED.value
        )
        if not rejected:
            raise AlreadyResolvedError()

        if contract.quote_id:
            self.repo.update_quote_status(self.db, contract.quote_id, ENGAGEMENT_REJECTED_STATUS)
        elif contract.booking_id:
            self.repo.update_booking_status(
                self.db, contract.booking_id, ENGAGEMENT_REJECTED_STATUS
            )

        logger.info(f"🚫 {role.value} rejected contract {contract.id}")

        send_notification(
            self.db,
            user_id=getattr(contract, role.counterparty.id_field),
            notification_type="contract_rejected",
            content_id=contract.id,
        )
        return self.repo.get_contract(self.db, contract.id)

    # ========================================================================
    # Binding terms
    # ========================================================================

    def update_binding_terms(self, contract_id: str, user_id: str, changes: dict) -> Contract:
        """Buyer edits terms: new version, previous signatures no longer count"""
        contract, role = self.get_contract_for_party(contract_id, user_id)
        if role is not PartyRole.BUYER:
            raise InvalidStateError(
                "Only the buyer can edit binding terms", "يمكن للمشتري فقط تعديل الشروط"
            )
        ensure_allowed(ContractAction.EDIT_TERMS, contract.status)

        updates = {k: v for k, v in changes.items() if k in EDITABLE_TERMS_FIELDS}
        if not updates:
            return contract

        terms = self.repo.get_binding_terms(self.db, contract.id)
        if terms is None:
            terms = self.repo.create_binding_terms(
                self.db, contract.id, warranty_days=DEFAULT_WARRANTY_DAYS
            )
        snapshot = {**binding_terms_snapshot(terms), **canonicalize(updates)}
        new_version = contract.version + 1
        content_hash = compute_content_hash(
            contract.id, new_version, contract.contract_metadata, snapshot
        )

        bumped = self.repo.update_contract_if(
            self.db,
            contract.id,
            PENDING_STATUSES,
            expected_version=contract.version,
            version=new_version,
            content_hash=content_hash,
            signed_at_buyer=None,
            signed_at_seller=None,
            status=ContractStatus.PENDING_BUYER.value,
        )
        if not bumped:
            raise AlreadyResolvedError()

        self.repo.update_binding_terms(self.db, terms, **updates)
        self.repo.create_contract_version(
            self.db,
            contract_id=contract.id,
            version=new_version,
            binding_terms_snapshot=snapshot,
            content_hash=content_hash,
            changed_by=user_id,
        )
        logger.info(f"📝 Binding terms of contract {contract.id} updated to v{new_version}")

        send_notification(
            self.db,
            user_id=contract.seller_id,
            notification_type="contract_updated",
            content_id=contract.id,
        )
        return self.repo.get_contract(self.db, contract.id)

    # ========================================================================
    # Status propagation
    # ========================================================================

    def _on_executed(self, contract: Contract, final_signer: PartyRole) -> None:
        """Project execution back onto the negotiation records and tell the other party"""
        if contract.booking_id:
            self.repo.update_booking_status(self.db, contract.booking_id, BOOKING_EXECUTED_STATUS)
        elif contract.quote_id:
            self.repo.update_quote_status(self.db, contract.quote_id, QUOTE_EXECUTED_STATUS)
            request_id = contract.request_id
            if not request_id:
                quote = self.repo.get_quote(self.db, contract.quote_id)
                request_id = quote.request_id if quote else None
            if request_id:
                self.repo.update_request_status(self.db, request_id, REQUEST_EXECUTED_STATUS)

        logger.info(f"🎉 Contract {contract.id} fully executed")

        send_notification(
            self.db,
            user_id=getattr(contract, final_signer.counterparty.id_field),
            notification_type="contract_executed",
            content_id=contract.booking_id or contract.quote_id or contract.id,
        )
