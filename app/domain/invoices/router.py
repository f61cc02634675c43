"""Invoice router - dashboard endpoints for invoices"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import InvoiceCreate, InvoiceDetailResponse, InvoiceEmailRequest, InvoiceResponse
from .service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])

send_email_rate_limiter = create_rate_limiter(limit=10, window_seconds=60, key_prefix="send_email")


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db)


@router.get("", response_model=list[InvoiceResponse])
async def get_invoices(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices, _ = service.list_invoices(current_user, status=status, client_id=client_id)
    return invoices


@router.get("/{invoice_id}", response_model=InvoiceDetailResponse)
async def get_invoice(
    invoice_id: int,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_invoice(invoice_id, current_user)


@router.post("", response_model=InvoiceDetailResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Create a draft invoice; free plans are limited per month"""
    return service.create_invoice(data, current_user)


@router.get("/{invoice_id}/pdf")
async def get_invoice_pdf(
    invoice_id: int,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    filename, pdf_bytes = service.render_pdf(invoice_id, current_user)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.post("/{invoice_id}/send", dependencies=[Depends(send_email_rate_limiter)])
async def send_invoice(
    invoice_id: int,
    data: InvoiceEmailRequest = Body(default_factory=InvoiceEmailRequest),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Email the invoice PDF to the client (paid plans)"""
    return await service.send_invoice(invoice_id, data, current_user)


@router.post("/{invoice_id}/reminder", dependencies=[Depends(send_email_rate_limiter)])
async def send_reminder(
    invoice_id: int,
    data: InvoiceEmailRequest = Body(default_factory=InvoiceEmailRequest),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.send_reminder(invoice_id, data, current_user)


__all__ = ["router"]
