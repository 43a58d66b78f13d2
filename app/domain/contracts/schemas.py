"""Contract domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .state import EngagementType


class ContractCreate(BaseModel):
    """Schema for accepting an offer (booking counter-proposal or quote)"""

    engagementType: EngagementType
    engagementId: str
    languageMode: str = Field("dual", pattern="^(dual|english_only|arabic_only)$")


class ContractCreateResponse(BaseModel):
    contractId: str
    status: str
    created: bool


class SignatureRequest(BaseModel):
    """Schema for signature submission"""

    signatureData: Optional[str] = None  # Base64 signature image; falls back to stored signature
    signatureMethod: str = "digital"


class BindingTermsUpdate(BaseModel):
    """Schema for buyer edits to binding terms"""

    start_date: Optional[date] = None
    completion_date: Optional[date] = None
    warranty_days: Optional[int] = Field(None, ge=0)
    access_hours: Optional[str] = None
    materials_by: Optional[str] = None
    payment_method: Optional[str] = None
    payment_schedule: Optional[dict[str, int]] = None
    penalty_rate_per_day: Optional[float] = Field(None, ge=0)
    cleanup_disposal: Optional[bool] = None
    use_deposit_escrow: Optional[bool] = None


class BindingTermsResponse(BaseModel):
    start_date: Optional[date] = None
    completion_date: Optional[date] = None
    warranty_days: int
    access_hours: Optional[str] = None
    materials_by: Optional[str] = None
    payment_method: Optional[str] = None
    payment_schedule: Optional[dict[str, Any]] = None
    penalty_rate_per_day: Optional[float] = None
    cleanup_disposal: bool
    use_deposit_escrow: bool

    class Config:
        from_attributes = True


class SignatureResponse(BaseModel):
    id: str
    user_id: str
    version: int
    signature_hash: str
    signature_method: str
    signed_at: datetime

    class Config:
        from_attributes = True


class ContractResponse(BaseModel):
    """Schema for contract response"""

    id: str
    buyerId: str
    sellerId: str
    quoteId: Optional[str] = None
    bookingId: Optional[str] = None
    requestId: Optional[str] = None
    status: str
    version: int
    languageMode: str
    signedAtBuyer: Optional[datetime] = None
    signedAtSeller: Optional[datetime] = None
    executedAt: Optional[datetime] = None
    contentHash: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_contract(cls, contract) -> "ContractResponse":
        return cls(
            id=contract.id,
            buyerId=contract.buyer_id,
            sellerId=contract.seller_id,
            quoteId=contract.quote_id,
            bookingId=contract.booking_id,
            requestId=contract.request_id,
            status=contract.status,
            version=contract.version,
            languageMode=contract.language_mode,
            signedAtBuyer=contract.signed_at_buyer,
            signedAtSeller=contract.signed_at_seller,
            executedAt=contract.executed_at,
            contentHash=contract.content_hash,
            metadata=contract.contract_metadata,
            createdAt=contract.created_at,
        )


class ContractDetailResponse(ContractResponse):
    role: str
    bindingTerms: Optional[BindingTermsResponse] = None
    signatures: list[SignatureResponse] = []
    versionCount: int = 0
