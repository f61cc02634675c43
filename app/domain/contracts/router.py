"""Contract router - dashboard contract management and the public review/signing pages"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter, get_client_ip
from .schemas import ContractCreate, ContractDetailResponse, ContractResponse, SignContractRequest
from .service import ContractService

router = APIRouter(prefix="/contracts", tags=["Contracts"])

view_rate_limiter = create_rate_limiter(limit=10, window_seconds=60, key_prefix="contract_view")
sign_rate_limiter = create_rate_limiter(limit=3, window_seconds=60, key_prefix="contract_sign")
review_rate_limiter = create_rate_limiter(
    limit=3, window_seconds=60, key_prefix="contract_review_approve"
)


def get_contract_service(db: Session = Depends(get_db)) -> ContractService:
    """Dependency injection for ContractService"""
    return ContractService(db)


def client_info(request: Request) -> tuple[str, str]:
    return get_client_ip(request), request.headers.get("user-agent", "unknown")


# ============================================================================
# PUBLIC SIGNING AND REVIEW (token based, no session)
# ============================================================================


@router.get("/sign/{token}", dependencies=[Depends(view_rate_limiter)])
async def get_contract_for_signing(
    token: str,
    request: Request,
    service: ContractService = Depends(get_contract_service),
):
    ip, user_agent = client_info(request)
    return service.view_for_signing(token, ip, user_agent)


@router.post("/sign/{token}", dependencies=[Depends(sign_rate_limiter)])
async def sign_contract(
    token: str,
    data: SignContractRequest,
    request: Request,
    service: ContractService = Depends(get_contract_service),
):
    ip, user_agent = client_info(request)
    return await service.sign_contract(token, data, ip, user_agent)


@router.get("/review/{token}", dependencies=[Depends(view_rate_limiter)])
async def get_contract_for_review(
    token: str,
    request: Request,
    service: ContractService = Depends(get_contract_service),
):
    ip, user_agent = client_info(request)
    return service.view_for_review(token, ip, user_agent)


@router.post("/review/{token}", dependencies=[Depends(review_rate_limiter)])
async def approve_contract_review(
    token: str,
    request: Request,
    service: ContractService = Depends(get_contract_service),
):
    """Reviewer approves the agreement and it is forwarded to the signer"""
    ip, user_agent = client_info(request)
    return await service.approve_review(token, ip, user_agent)


# ============================================================================
# DASHBOARD
# ============================================================================


@router.get("", response_model=list[ContractResponse])
async def get_contracts(
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return service.get_contracts(current_user, status)


@router.post("", response_model=ContractResponse, status_code=201)
async def create_contract(
    data: ContractCreate,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return service.create_contract(data, current_user)


@router.get("/{contract_id}", response_model=ContractDetailResponse)
async def get_contract(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return service.get_contract(contract_id, current_user)


@router.post("/{contract_id}/send", response_model=ContractResponse)
async def send_contract(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Email a signing link to the signer (again, if already sent)"""
    return await service.send_contract(contract_id, current_user)


@router.post("/{contract_id}/send-review", response_model=ContractResponse)
async def send_contract_for_review(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return await service.send_for_review(contract_id, current_user)


@router.post("/{contract_id}/cancel", response_model=ContractResponse)
async def cancel_contract(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return service.cancel_contract(contract_id, current_user)


@router.get("/{contract_id}/download")
async def download_contract(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    """Presigned URL for the signed PDF, or the unsigned one before signing"""
    return service.get_download_url(contract_id, current_user)


__all__ = ["router"]
