"""Contract lifecycle errors.

Each error is an ``HTTPException`` so routers can let it propagate and FastAPI
renders it. ``detail`` carries a stable ``code`` plus English and Arabic
messages; the router picks ``message`` according to the caller's language.
"""

from typing import Optional

from fastapi import HTTPException


class ContractError(HTTPException):
    status_code = 400
    code = "contract_error"
    default_en = "Contract operation failed"
    default_ar = "فشلت عملية العقد"

    def __init__(self, message_en: Optional[str] = None, message_ar: Optional[str] = None):
        self.message_en = message_en or self.default_en
        self.message_ar = message_ar or self.default_ar
        super().__init__(
            status_code=self.status_code,
            detail={"code": self.code, "message": self.message_en, "message_ar": self.message_ar},
        )

    def message(self, language: str = "en") -> str:
        return self.message_ar if language == "ar" else self.message_en


class NotFoundError(ContractError):
    status_code = 404
    code = "not_found"
    default_en = "Contract not found"
    default_ar = "العقد غير موجود"


class InvalidStateError(ContractError):
    status_code = 409
    code = "invalid_state"
    default_en = "This action is not allowed in the contract's current status"
    default_ar = "لا يمكن تنفيذ هذا الإجراء في حالة العقد الحالية"


class ConflictError(ContractError):
    status_code = 409
    code = "conflict"
    default_en = "An active contract already exists"
    default_ar = "يوجد عقد قائم بالفعل"


class AlreadyResolvedError(ContractError):
    """The contract changed underneath the caller; refresh instead of retrying"""

    status_code = 409
    code = "already_resolved"
    default_en = "Contract status changed, please refresh"
    default_ar = "تغيرت حالة العقد، يرجى التحديث"


class StorageError(ContractError):
    status_code = 500
    code = "storage_error"
    default_en = "Failed to save contract changes"
    default_ar = "فشل حفظ تغييرات العقد"
