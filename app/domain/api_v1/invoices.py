"""Public API: invoices"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ..invoices.schemas import InvoiceCreate, InvoiceDetailResponse, InvoiceResponse
from ..invoices.service import InvoiceService
from .auth import ApiKeyContext, require_scope
from .responses import Page, api_success, page_params, pagination, serialize

router = APIRouter(prefix="/invoices", tags=["API v1"])


@router.get("")
async def list_invoices(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    page: Page = Depends(page_params),
    ctx: ApiKeyContext = Depends(require_scope("read:invoices")),
    db: Session = Depends(get_db),
):
    invoices, total = InvoiceService(db).list_invoices(
        ctx.user, status=status, client_id=client_id, limit=page.limit, offset=page.offset
    )
    return api_success(
        {"invoices": serialize(InvoiceResponse, invoices), "pagination": pagination(total, page)}
    )


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: int,
    ctx: ApiKeyContext = Depends(require_scope("read:invoices")),
    db: Session = Depends(get_db),
):
    invoice = InvoiceService(db).get_invoice(invoice_id, ctx.user)
    return api_success(InvoiceDetailResponse.model_validate(invoice))


@router.post("")
async def create_invoice(
    data: InvoiceCreate,
    ctx: ApiKeyContext = Depends(require_scope("write:invoices")),
    db: Session = Depends(get_db),
):
    invoice = InvoiceService(db).create_invoice(data, ctx.user)
    return api_success(InvoiceDetailResponse.model_validate(invoice), status_code=201)
