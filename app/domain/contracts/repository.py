"""Contract repository - Database operations for contracts and their source records"""

import logging
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import (
    BindingTerms,
    BookingRequest,
    Contract,
    ContractSignature,
    ContractVersion,
    MaintenanceRequest,
    Profile,
    QuoteSubmission,
)
from .exceptions import InvalidStateError, StorageError

logger = logging.getLogger(__name__)


@contextmanager
def store_step(db: Session, action: str, commit: bool = True):
    """One round trip to the store; failures roll back and surface as StorageError"""
    try:
        yield
        if commit:
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Store failure while trying to {action}: {e}")
        raise StorageError(f"Failed to {action}") from e


def _values(statuses: Iterable) -> list[str]:
    return [getattr(s, "value", s) for s in statuses]


class ContractRepository:
    """Repository for contract database operations"""

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    @staticmethod
    def get_contract(db: Session, contract_id: str) -> Optional[Contract]:
        """Fresh read of a contract, overwriting any stale identity-map copy"""
        with store_step(db, "load contract", commit=False):
            return (
                db.query(Contract)
                .populate_existing()
                .filter(Contract.id == contract_id)
                .first()
            )

    @staticmethod
    def get_contracts_for_user(
        db: Session, user_id: str, status: Optional[str] = None
    ) -> list[Contract]:
        """Contracts where the user is either party, newest first"""
        with store_step(db, "list contracts", commit=False):
            query = db.query(Contract).filter(
                or_(Contract.buyer_id == user_id, Contract.seller_id == user_id)
            )
            if status:
                query = query.filter(Contract.status == status)
            return query.order_by(Contract.created_at.desc()).all()

    @staticmethod
    def get_contracts_for_engagement(
        db: Session,
        booking_id: Optional[str] = None,
        quote_id: Optional[str] = None,
    ) -> list[Contract]:
        with store_step(db, "look up existing contracts", commit=False):
            query = db.query(Contract).populate_existing()
            if booking_id:
                query = query.filter(Contract.booking_id == booking_id)
            else:
                query = query.filter(Contract.quote_id == quote_id)
            return query.order_by(Contract.created_at.asc()).all()

    @staticmethod
    def get_contracts_for_request(db: Session, request_id: str) -> list[Contract]:
        with store_step(db, "look up request contracts", commit=False):
            return (
                db.query(Contract)
                .populate_existing()
                .filter(Contract.request_id == request_id)
                .all()
            )

    @staticmethod
    def create_contract(db: Session, **contract_data) -> Contract:
        contract = Contract(**contract_data)
        with store_step(db, "create contract"):
            db.add(contract)
        db.refresh(contract)
        return contract

    @staticmethod
    def update_contract_if(
        db: Session,
        contract_id: str,
        expected_statuses: Iterable,
        require_null: Iterable[str] = (),
        require_not_null: Iterable[str] = (),
        expected_version: Optional[int] = None,
        **values,
    ) -> bool:
        """Compare-and-swap update.

        Applies ``values`` only while the row is still in one of
        ``expected_statuses`` (and ``expected_version``) and the named columns are
        still null/non-null.
        Returns False when the precondition no longer held at write time.
        """
        conditions = [Contract.id == contract_id, Contract.status.in_(_values(expected_statuses))]
        conditions += [getattr(Contract, name).is_(None) for name in require_null]
        conditions += [getattr(Contract, name).isnot(None) for name in require_not_null]
        if expected_version is not None:
            conditions.append(Contract.version == expected_version)

        with store_step(db, "update contract"):
            matched = (
                db.query(Contract)
                .filter(and_(*conditions))
                .update(values, synchronize_session=False)
            )
        return matched == 1

    @staticmethod
    def delete_contract_tree(
        db: Session,
        contract_id: str,
        expected_statuses: Optional[Iterable] = None,
        require_null: Iterable[str] = (),
    ) -> bool:
        """Delete binding terms, signatures, versions, then the contract row.

        Runs as one transaction. The contract delete is conditional on
        ``expected_statuses``/``require_null``; when it matches nothing the
        child deletes are rolled back too and False is returned.
        """
        with store_step(db, "delete contract", commit=False):
            db.query(BindingTerms).filter(BindingTerms.contract_id == contract_id).delete(
                synchronize_session=False
            )
            db.query(ContractSignature).filter(
                ContractSignature.contract_id == contract_id
            ).delete(synchronize_session=False)
            db.query(ContractVersion).filter(ContractVersion.contract_id == contract_id).delete(
                synchronize_session=False
            )

            conditions = [Contract.id == contract_id]
            if expected_statuses is not None:
                conditions.append(Contract.status.in_(_values(expected_statuses)))
            conditions += [getattr(Contract, name).is_(None) for name in require_null]
            deleted = (
                db.query(Contract).filter(and_(*conditions)).delete(synchronize_session=False)
            )

            if deleted != 1:
                db.rollback()
                return False
            db.commit()
        db.expire_all()
        return True

    @staticmethod
    def contract_exists(db: Session, contract_id: str) -> bool:
        with store_step(db, "verify contract", commit=False):
            return (
                db.query(Contract.id).filter(Contract.id == contract_id).first() is not None
            )

    # ------------------------------------------------------------------
    # Binding terms and versions
    # ------------------------------------------------------------------

    @staticmethod
    def get_binding_terms(db: Session, contract_id: str) -> Optional[BindingTerms]:
        with store_step(db, "load binding terms", commit=False):
            return (
                db.query(BindingTerms)
                .populate_existing()
                .filter(BindingTerms.contract_id == contract_id)
                .first()
            )

    @staticmethod
    def create_binding_terms(db: Session, contract_id: str, **terms_data) -> BindingTerms:
        terms = BindingTerms(contract_id=contract_id, **terms_data)
        with store_step(db, "create binding terms"):
            db.add(terms)
        db.refresh(terms)
        return terms

    @staticmethod
    def update_binding_terms(db: Session, terms: BindingTerms, **updates) -> BindingTerms:
        with store_step(db, "update binding terms"):
            for key, value in updates.items():
                if hasattr(terms, key):
                    setattr(terms, key, value)
        db.refresh(terms)
        return terms

    @staticmethod
    def create_contract_version(db: Session, **version_data) -> ContractVersion:
        version = ContractVersion(**version_data)
        with store_step(db, "save contract version"):
            db.add(version)
        return version

    @staticmethod
    def get_contract_versions(db: Session, contract_id: str) -> list[ContractVersion]:
        with store_step(db, "list contract versions", commit=False):
            return (
                db.query(ContractVersion)
                .filter(ContractVersion.contract_id == contract_id)
                .order_by(ContractVersion.version.asc())
                .all()
            )

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    @staticmethod
    def get_signatures(
        db: Session, contract_id: str, version: Optional[int] = None
    ) -> list[ContractSignature]:
        with store_step(db, "load signatures", commit=False):
            query = db.query(ContractSignature).filter(
                ContractSignature.contract_id == contract_id
            )
            if version is not None:
                query = query.filter(ContractSignature.version == version)
            return query.order_by(ContractSignature.signed_at.asc()).all()

    @staticmethod
    def create_signature(db: Session, **signature_data) -> ContractSignature:
        signature = ContractSignature(**signature_data)
        try:
            db.add(signature)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"⚠️ Duplicate signature rejected: {e.orig}")
            raise InvalidStateError(
                "You have already signed this version of the contract",
                "لقد قمت بتوقيع هذه النسخة من العقد بالفعل",
            ) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to record signature: {e}")
            raise StorageError("Failed to record signature", "فشل حفظ التوقيع") from e
        return signature

    @staticmethod
    def find_orphaned_signatures(
        db: Session, contract_id: Optional[str] = None
    ) -> list[ContractSignature]:
        """Signatures on the current version whose signer's signed_at flag is still null"""
        with store_step(db, "scan for orphaned signatures", commit=False):
            query = (
                db.query(ContractSignature)
                .join(Contract, Contract.id == ContractSignature.contract_id)
                .filter(ContractSignature.version == Contract.version)
                .filter(
                    or_(
                        and_(
                            ContractSignature.user_id == Contract.buyer_id,
                            Contract.signed_at_buyer.is_(None),
                        ),
                        and_(
                            ContractSignature.user_id == Contract.seller_id,
                            Contract.signed_at_seller.is_(None),
                        ),
                    )
                )
            )
            if contract_id:
                query = query.filter(ContractSignature.contract_id == contract_id)
            return query.order_by(ContractSignature.signed_at.asc()).all()

    # ------------------------------------------------------------------
    # Engagements and profiles
    # ------------------------------------------------------------------

    @staticmethod
    def get_booking(db: Session, booking_id: str) -> Optional[BookingRequest]:
        with store_step(db, "load booking", commit=False):
            return (
                db.query(BookingRequest)
                .populate_existing()
                .filter(BookingRequest.id == booking_id)
                .first()
            )

    @staticmethod
    def get_quote(db: Session, quote_id: str) -> Optional[QuoteSubmission]:
        with store_step(db, "load quote", commit=False):
            return (
                db.query(QuoteSubmission)
                .populate_existing()
                .filter(QuoteSubmission.id == quote_id)
                .first()
            )

    @staticmethod
    def get_request(db: Session, request_id: str) -> Optional[MaintenanceRequest]:
        with store_step(db, "load maintenance request", commit=False):
            return (
                db.query(MaintenanceRequest)
                .populate_existing()
                .filter(MaintenanceRequest.id == request_id)
                .first()
            )

    @staticmethod
    def update_booking_status(db: Session, booking_id: str, status: str) -> None:
        with store_step(db, "update booking status"):
            db.query(BookingRequest).filter(BookingRequest.id == booking_id).update(
                {"status": status}, synchronize_session=False
            )

    @staticmethod
    def update_quote_status(db: Session, quote_id: str, status: str) -> None:
        with store_step(db, "update quote status"):
            db.query(QuoteSubmission).filter(QuoteSubmission.id == quote_id).update(
                {"status": status}, synchronize_session=False
            )

    @staticmethod
    def update_request_status(db: Session, request_id: str, status: str) -> None:
        with store_step(db, "update maintenance request status"):
            db.query(MaintenanceRequest).filter(MaintenanceRequest.id == request_id).update(
                {"status": status}, synchronize_session=False
            )

    @staticmethod
    def get_profile(db: Session, profile_id: str) -> Optional[Profile]:
        with store_step(db, "load profile", commit=False):
            return db.query(Profile).filter(Profile.id == profile_id).first()
