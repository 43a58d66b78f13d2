"""Contract router - FastAPI endpoints for contract operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Profile
from .schemas import (
    BindingTermsResponse,
    BindingTermsUpdate,
    ContractCreate,
    ContractCreateResponse,
    ContractDetailResponse,
    ContractResponse,
    SignatureRequest,
    SignatureResponse,
)
from .service import ContractService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts", tags=["Contracts"])


def get_contract_service(db: Session = Depends(get_db)) -> ContractService:
    """Dependency injection for ContractService"""
    return ContractService(db)


# ============================================================================
# QUERIES
# ============================================================================


@router.get("", response_model=list[ContractResponse])
async def get_contracts(
    current_user: Profile = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
    status: Optional[str] = Query(None, description="Filter contracts by status"),
):
    """Get all contracts where the current user is buyer or seller"""
    contracts = service.list_contracts(current_user.id, status)
    return [ContractResponse.from_contract(contract) for contract in contracts]


@router.get("/{contract_id}", response_model=ContractDetailResponse)
async def get_contract(
    contract_id: str,
    current_user: Profile = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Get a contract with its binding terms and signatures"""
    detail = service.get_contract_detail(contract_id, current_user.id)
    base = ContractResponse.from_contract(detail["contract"])
    terms = detail["binding_terms"]

    return ContractDetailResponse(
        **base.model_dump(),
        role=detail["role"].value,
        bindingTerms=BindingTermsResponse.model_validate(terms) if terms else None,
        signatures=[SignatureResponse.model_validate(s) for s in detail["signatures"]],
        versionCount=len(detail["versions"]),
    )


@router.get("/{contract_id}/orphaned-signatures", response_model=list[SignatureResponse])
async def get_orphaned_signatures(
    contract_id: str,
    current_user: Profile = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Signatures stored for this contract whose signed flag never landed"""
    orphans = service.find_orphaned_signatures(contract_id, current_user.id)
    return [SignatureResponse.model_validate(s) for s in orphans]


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("", response_model=ContractCreateResponse)
async def create_contract(
    data: ContractCreate,
    current_user: Profile = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Accept a seller's offer; reuses the pending contract if one exists"""
    contract, created = service.create_contract(
        data.engagementType,
        data.engagementId,
        current_user.id,
        language_mode=data.languageMode,
    )
    return ContractCreateResponse(contractId=contract.id, status=contract.status, created=created)


@router.post("/{contract_id}/sign", response_model=ContractResponse)
async def sign_contract(
    contract_id: str,
    data: SignatureRequest,
    current_user: Profile = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Sign the current version of a contract"""
    contract = service.sign_contract(
        contract_id,
        current_user.id,
        signature_data=data.signatureData,
        signature_method=data.signatureMethod,
    )
    return ContractResponse.from_contract(contract)


@router.post("/{contract_id}/withdraw")
async def withdraw_signature(
    contract_id: str,
    current_user: Profile = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Withdraw a signature before the other party signs"""
    service.withdraw_signature(contract_id, current_user.id)
    return {"message": "Signature withdrawn", "contractId": contract_id}


@router.post("/{contract_id}/reject", response_model=ContractResponse)
async def reject_contract(
    contract_id: str,
    current_user: Profile = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Reject a pending contract"""
    contract = service.reject_contract(contract_id, current_user.id)
    return ContractResponse.from_contract(contract)


@router.patch("/{contract_id}/binding-terms", response_model=ContractResponse)
async def update_binding_terms(
    contract_id: str,
    data: BindingTermsUpdate,
    current_user: Profile = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Edit binding terms; both parties must sign the new version"""
    contract = service.update_binding_terms(
        contract_id, current_user.id, data.model_dump(exclude_unset=True)
    )
    return ContractResponse.from_contract(contract)
