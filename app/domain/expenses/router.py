"""Expense router - dashboard endpoints for expenses, duplicate checks and receipt scanning"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ...shared.validators import read_validated_upload
from .schemas import ExpenseCreate, ExpenseResponse, ExpenseUpdate
from .service import ExpenseService

router = APIRouter(prefix="/expenses", tags=["Expenses"])

scan_rate_limiter = create_rate_limiter(limit=10, window_seconds=60, key_prefix="receipt_scan")


def get_expense_service(db: Session = Depends(get_db)) -> ExpenseService:
    """Dependency injection for ExpenseService"""
    return ExpenseService(db)


# ============================================================================
# DUPLICATE CHECKS
# ============================================================================


@router.post("/check-duplicate")
async def check_duplicate(
    payload: dict = Body(default_factory=dict),
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    """Check a single expense candidate against the user's expenses on the same date"""
    return service.check_duplicate(payload, current_user)


@router.put("/check-duplicate")
async def check_duplicates(
    payload: dict = Body(default_factory=dict),
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    """Batch duplicate check: {"expenses": [{date, supplier, amount}, ...]}"""
    return service.check_duplicates(payload, current_user)


# ============================================================================
# RECEIPT SCANNING
# ============================================================================


@router.post("/scan", dependencies=[Depends(scan_rate_limiter)])
async def scan_receipt(
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    content = await read_validated_upload(file)
    return await service.scan_receipt(content, file.content_type, current_user)


# ============================================================================
# EXPORT
# ============================================================================


@router.get("/export")
async def export_expenses(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    """CSV of one month's expenses (defaults to the current month)"""
    today = date.today()
    return service.export_csv(current_user, year or today.year, month or today.month)


# ============================================================================
# EXPENSES
# ============================================================================


@router.get("", response_model=list[ExpenseResponse])
async def get_expenses(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    expenses, _ = service.list_expenses(
        current_user, date_from=date_from, date_to=date_to, category=category, search=search
    )
    return expenses


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return service.get_expense(expense_id, current_user)


@router.post("", response_model=ExpenseResponse, status_code=201)
async def create_expense(
    data: ExpenseCreate,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return await service.create_expense(data, current_user)


@router.patch("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return await service.update_expense(expense_id, data, current_user)


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return service.delete_expense(expense_id, current_user)


__all__ = ["router"]
