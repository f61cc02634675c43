"""Expense service - Business logic for expenses, duplicate checks, receipt scans and exports"""

import calendar
import csv
import logging
from datetime import date
from io import StringIO
from typing import Optional

import httpx
from fastapi import HTTPException
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...activity import log_activity
from ...models import Expense, User
from ...plan_limits import can_scan_receipt, increment_usage
from ...services.anthropic_client import DOCUMENT_ERRORS, document_http_error
from ...services.duplicate_checker import find_duplicate_expense, find_duplicate_expenses
from ...services.exchange_rates import ExchangeRateError, convert
from ...services.receipt_parser import parse_receipt
from .repository import ExpenseRepository
from .schemas import (
    BatchDuplicateCheck,
    DuplicateCheckItem,
    ExpenseCreate,
    ExpenseSummary,
    ExpenseUpdate,
)

logger = logging.getLogger(__name__)

BASE_CURRENCY = "SEK"

EXPORT_COLUMNS = [
    "Datum",
    "Leverantör",
    "Belopp",
    "Valuta",
    "Belopp SEK",
    "Kategori",
    "Anteckningar",
    "Uppdrag",
]


def duplicate_result_json(result: dict) -> dict:
    existing = result["existing_expense"]
    payload = {
        "isDuplicate": result["is_duplicate"],
        "existingExpense": (
            ExpenseSummary.model_validate(existing).model_dump(mode="json") if existing else None
        ),
        "matchType": result["match_type"],
    }
    if "index" in result:
        payload["index"] = result["index"]
    return payload


class ExpenseService:
    """Service layer for expense business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ExpenseRepository()

    def list_expenses(self, user: User, **filters) -> tuple[list[Expense], int]:
        return self.repo.list_expenses(self.db, user.id, **filters)

    def get_expense(self, expense_id: int, user: User) -> Expense:
        expense = self.repo.get_expense_by_id(self.db, expense_id, user.id)
        if not expense:
            raise HTTPException(status_code=404, detail="Expense not found")
        return expense

    async def amount_in_base(self, amount: float, currency: str, on) -> Optional[float]:
        """Amount converted to SEK, or None when no rate is available"""
        if currency == BASE_CURRENCY:
            return amount
        try:
            result = await convert(amount, currency, BASE_CURRENCY, on)
            return result["converted"]
        except (ExchangeRateError, httpx.HTTPError) as e:
            logger.warning(f"⚠️ Could not convert {amount} {currency} to {BASE_CURRENCY}: {e}")
            return None

    async def create_expense(self, data: ExpenseCreate, user: User) -> Expense:
        expense_data = data.model_dump()
        expense_data["amount_base"] = await self.amount_in_base(data.amount, data.currency, data.date)

        expense = self.repo.create_expense(self.db, user.id, **expense_data)
        log_activity(
            self.db,
            user.id,
            "expense_created",
            "expense",
            expense.id,
            {"supplier": expense.supplier, "amount": expense.amount},
        )
        return expense

    async def update_expense(self, expense_id: int, data: ExpenseUpdate, user: User) -> Expense:
        expense = self.get_expense(expense_id, user)
        updates = data.model_dump(exclude_unset=True)
        if updates.get("currency"):
            updates["currency"] = updates["currency"].upper()

        money_changed = any(k in updates for k in ("amount", "currency", "date"))
        if money_changed and "amount_base" not in updates:
            updates["amount_base"] = await self.amount_in_base(
                updates.get("amount", expense.amount),
                updates.get("currency", expense.currency),
                updates.get("date", expense.date),
            )

        expense = self.repo.update_expense(self.db, expense, **updates)
        log_activity(self.db, user.id, "expense_updated", "expense", expense.id)
        return expense

    def delete_expense(self, expense_id: int, user: User) -> dict:
        expense = self.get_expense(expense_id, user)
        self.repo.delete_expense(self.db, expense)
        log_activity(self.db, user.id, "expense_deleted", "expense", expense_id)
        return {"deleted": True}

    # ============================================================================
    # DUPLICATE DETECTION
    # ============================================================================

    def check_duplicate(self, payload: dict, user: User) -> dict:
        try:
            item = DuplicateCheckItem.model_validate(payload or {})
        except ValidationError as e:
            raise HTTPException(
                status_code=400, detail="Date, supplier, and amount are required"
            ) from e

        existing = self.repo.get_expenses_on_dates(self.db, user.id, [item.date])
        result = find_duplicate_expense(item.model_dump(), existing)
        if result["is_duplicate"]:
            logger.info(
                f"🔍 Duplicate expense for user {user.id}: {item.supplier} ({result['match_type']})"
            )
        return duplicate_result_json(result)

    def check_duplicates(self, payload: dict, user: User) -> dict:
        try:
            batch = BatchDuplicateCheck.model_validate(payload or {})
        except ValidationError as e:
            raise HTTPException(status_code=400, detail="List of expenses is required") from e

        dates = sorted({item.date for item in batch.expenses})
        existing = self.repo.get_expenses_on_dates(self.db, user.id, dates)
        results = find_duplicate_expenses([item.model_dump() for item in batch.expenses], existing)
        return {
            "results": [duplicate_result_json(r) for r in results],
            "duplicateCount": sum(1 for r in results if r["is_duplicate"]),
        }

    # ============================================================================
    # RECEIPT SCANNING
    # ============================================================================

    async def scan_receipt(self, content: bytes, mime_type: str, user: User) -> dict:
        allowed, error_message = can_scan_receipt(user, self.db)
        if not allowed:
            logger.warning(f"⚠️ User {user.id} reached receipt scan limit")
            raise HTTPException(status_code=403, detail=error_message)

        try:
            receipt = await parse_receipt(content, mime_type, db=self.db, user_id=user.id)
        except DOCUMENT_ERRORS as e:
            logger.error(f"❌ Receipt scan failed for user {user.id}: {e}")
            raise document_http_error(e) from e

        increment_usage(user, self.db, "receipt_scan")
        log_activity(
            self.db,
            user.id,
            "receipt_scanned",
            "expense",
            metadata={"supplier": receipt.supplier, "amount": receipt.amount},
        )
        return {"success": True, "data": receipt.model_dump()}

    # ============================================================================
    # EXPORT
    # ============================================================================

    def export_csv(self, user: User, year: int, month: int) -> StreamingResponse:
        """One month of expenses as semicolon-separated CSV for the accountant"""
        start = date(year, month, 1)
        end = date(year, month, calendar.monthrange(year, month)[1])
        expenses = self.repo.get_expenses_between(self.db, user.id, start, end)
        if not expenses:
            raise HTTPException(status_code=404, detail="No expenses found for the selected month")

        output = StringIO()
        writer = csv.writer(output, delimiter=";")
        writer.writerow(EXPORT_COLUMNS)
        for expense in expenses:
            gig = expense.gig
            writer.writerow(
                [
                    expense.date.isoformat(),
                    expense.supplier,
                    f"{expense.amount:g}",
                    expense.currency,
                    f"{expense.amount_base if expense.amount_base is not None else expense.amount:g}",
                    expense.category or "",
                    expense.notes or "",
                    (gig.project_name or gig.venue or "") if gig else "",
                ]
            )

        filename = f"{year}-{month:02d}-Utgifter.csv"
        logger.info(f"📊 Exported {len(expenses)} expenses for user {user.id}: {filename}")
        log_activity(
            self.db,
            user.id,
            "expenses_exported",
            "expense",
            metadata={"year": year, "month": month, "count": len(expenses)},
        )
        return StreamingResponse(
            iter([output.getvalue()]),
            media_type="text/csv",
            headers={
                "Content-Disposition": f"attachment; filename={filename}",
                "Cache-Control": "no-cache",
            },
        )
