import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a row id in the same shape the auth service uses for users"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def default_payment_schedule():
    return {"deposit": 30, "progress": 40, "completion": 30}


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)
    user_type = Column(String(20), nullable=False, default="buyer")  # buyer, seller
    preferred_language = Column(String(2), nullable=True)  # en, ar
    # Stored signature artifact (data URL of the drawn signature)
    signature_data = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class MaintenanceRequest(Base):
    __tablename__ = "maintenance_requests"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    buyer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    location = Column(String(500), nullable=True)
    preferred_time_slot = Column(String(20), nullable=True)  # morning, afternoon, night
    status = Column(String(30), nullable=False, default="open")  # open, in_review, assigned, completed
    created_at = Column(DateTime, server_default=func.now())

    quotes = relationship("QuoteSubmission", back_populates="request")


class QuoteSubmission(Base):
    __tablename__ = "quote_submissions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    request_id = Column(
        String(36), ForeignKey("maintenance_requests.id"), nullable=False, index=True
    )
    seller_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    price = Column(Float, nullable=False)
    estimated_duration = Column(String(100), nullable=True)  # free text, e.g. "5 days"
    start_date = Column(Date, nullable=True)
    proposal = Column(Text, nullable=True)
    status = Column(String(30), nullable=False, default="pending")  # pending, negotiating, accepted, rejected
    created_at = Column(DateTime, server_default=func.now())

    request = relationship("MaintenanceRequest", back_populates="quotes")


class BookingRequest(Base):
    __tablename__ = "booking_requests"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    buyer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    seller_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    service_category = Column(String(100), nullable=True)
    job_description = Column(Text, nullable=True)
    location_city = Column(String(100), nullable=True)
    location_address = Column(String(500), nullable=True)
    preferred_time_slot = Column(String(20), nullable=True)
    proposed_start_date = Column(Date, nullable=True)
    proposed_end_date = Column(Date, nullable=True)
    final_amount = Column(Float, nullable=True)
    # {"price_estimate": 500, "proposed_start_date": "2024-06-01", "time_slot": "morning", "notes": "..."}
    seller_counter_proposal = Column(JSON, nullable=True)
    # pending, seller_responded, buyer_countered, accepted, declined, cancelled, rejected, completed
    status = Column(String(30), nullable=False, default="pending")
    created_at = Column(DateTime, server_default=func.now())


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    buyer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    seller_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    # Exactly one of quote_id / booking_id is set
    quote_id = Column(String(36), ForeignKey("quote_submissions.id"), nullable=True, index=True)
    booking_id = Column(String(36), ForeignKey("booking_requests.id"), nullable=True, index=True)
    request_id = Column(
        String(36), ForeignKey("maintenance_requests.id"), nullable=True, index=True
    )
    status = Column(String(20), nullable=False, default="pending_buyer")
    version = Column(Integer, nullable=False, default=1)
    language_mode = Column(String(20), nullable=False, default="dual")  # dual, english_only, arabic_only
    signed_at_buyer = Column(DateTime, nullable=True)
    signed_at_seller = Column(DateTime, nullable=True)
    executed_at = Column(DateTime, nullable=True)
    content_hash = Column(String(64), nullable=True)
    # Price/schedule/location snapshot frozen at creation
    contract_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    binding_terms = relationship("BindingTerms", uselist=False, viewonly=True)
    signatures = relationship(
        "ContractSignature", viewonly=True, order_by="ContractSignature.signed_at"
    )


class BindingTerms(Base):
    __tablename__ = "binding_terms"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    contract_id = Column(String(36), ForeignKey("contracts.id"), unique=True, nullable=False)
    start_date = Column(Date, nullable=True)
    completion_date = Column(Date, nullable=True)
    warranty_days = Column(Integer, nullable=False, default=90)
    access_hours = Column(String(100), nullable=True, default="8 AM - 5 PM")
    materials_by = Column(String(20), nullable=True, default="contractor")  # contractor, seller, buyer
    payment_method = Column(String(20), nullable=True, default="cash")
    payment_schedule = Column(JSON, nullable=True, default=default_payment_schedule)
    penalty_rate_per_day = Column(Float, nullable=True)
    cleanup_disposal = Column(Boolean, nullable=False, default=True)
    use_deposit_escrow = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ContractSignature(Base):
    __tablename__ = "contract_signatures"
    __table_args__ = (
        UniqueConstraint("contract_id", "user_id", "version", name="uq_signature_per_version"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    contract_id = Column(String(36), ForeignKey("contracts.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    version = Column(Integer, nullable=False)
    signature_hash = Column(String(64), nullable=False)
    signature_method = Column(String(20), nullable=False, default="digital")
    signed_at = Column(DateTime, nullable=False, default=utcnow)


class ContractVersion(Base):
    __tablename__ = "contract_versions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    contract_id = Column(String(36), ForeignKey("contracts.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    binding_terms_snapshot = Column(JSON, nullable=True)
    content_hash = Column(String(64), nullable=False)
    changed_by = Column(String(36), ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    notification_type = Column(String(50), nullable=False)
    content_id = Column(String(36), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
