"""Public API: expenses"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from ...database import get_db
from ...shared.validators import read_validated_upload
from ..expenses.schemas import ExpenseCreate, ExpenseResponse, ExpenseUpdate
from ..expenses.service import ExpenseService
from .auth import ApiKeyContext, require_scope
from .responses import Page, api_success, page_params, pagination, serialize

router = APIRouter(prefix="/expenses", tags=["API v1"])


@router.get("")
async def list_expenses(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: Page = Depends(page_params),
    ctx: ApiKeyContext = Depends(require_scope("read:expenses")),
    db: Session = Depends(get_db),
):
    expenses, total = ExpenseService(db).list_expenses(
        ctx.user,
        date_from=date_from,
        date_to=date_to,
        category=category,
        search=search,
        limit=page.limit,
        offset=page.offset,
    )
    return api_success(
        {"expenses": serialize(ExpenseResponse, expenses), "pagination": pagination(total, page)}
    )


@router.post("/scan")
async def scan_receipt(
    file: Optional[UploadFile] = File(None),
    ctx: ApiKeyContext = Depends(require_scope("write:expenses")),
    db: Session = Depends(get_db),
):
    """Extract receipt data without saving an expense"""
    content = await read_validated_upload(file)
    result = await ExpenseService(db).scan_receipt(content, file.content_type, ctx.user)
    return api_success(result["data"])


@router.get("/{expense_id}")
async def get_expense(
    expense_id: int,
    ctx: ApiKeyContext = Depends(require_scope("read:expenses")),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db).get_expense(expense_id, ctx.user)
    return api_success(ExpenseResponse.model_validate(expense))


@router.post("")
async def create_expense(
    data: ExpenseCreate,
    ctx: ApiKeyContext = Depends(require_scope("write:expenses")),
    db: Session = Depends(get_db),
):
    expense = await ExpenseService(db).create_expense(data, ctx.user)
    return api_success(ExpenseResponse.model_validate(expense), status_code=201)


@router.patch("/{expense_id}")
async def update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    ctx: ApiKeyContext = Depends(require_scope("write:expenses")),
    db: Session = Depends(get_db),
):
    expense = await ExpenseService(db).update_expense(expense_id, data, ctx.user)
    return api_success(ExpenseResponse.model_validate(expense))


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    ctx: ApiKeyContext = Depends(require_scope("write:expenses")),
    db: Session = Depends(get_db),
):
    return api_success(ExpenseService(db).delete_expense(expense_id, ctx.user))
