"""Public API: dashboard summary"""

from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ..expenses.repository import ExpenseRepository
from ..expenses.schemas import ExpenseResponse
from ..gigs.repository import GigRepository
from ..gigs.schemas import GigResponse
from ..invoices.repository import InvoiceRepository
from ..invoices.schemas import InvoiceResponse
from .auth import ApiKeyContext, validate_api_key
from .responses import api_success, serialize

router = APIRouter(prefix="/summary", tags=["API v1"])

SUMMARY_WINDOW_DAYS = 30
SUMMARY_LIST_LIMIT = 10


def build_summary(db: Session, user_id: int, today: date) -> dict:
    window_end = today + timedelta(days=SUMMARY_WINDOW_DAYS)
    window_start = today - timedelta(days=SUMMARY_WINDOW_DAYS)
    year_start = date(today.year, 1, 1)

    upcoming = GigRepository.get_upcoming_gigs(db, user_id, today, window_end, SUMMARY_LIST_LIMIT)

    unpaid = InvoiceRepository.get_unpaid_invoices(db, user_id)
    recent_expenses, _ = ExpenseRepository.list_expenses(db, user_id, date_from=window_start)

    year_invoices = InvoiceRepository.get_invoices_between(db, user_id, year_start, today)
    year_gigs = GigRepository.get_gigs_since(db, user_id, year_start)

    return {
        "upcoming_gigs": serialize(GigResponse, upcoming),
        "unpaid_invoices": {
            "invoices": serialize(InvoiceResponse, unpaid[:SUMMARY_LIST_LIMIT]),
            "count": len(unpaid),
            "total": round(sum(inv.total for inv in unpaid), 2),
        },
        "recent_expenses": {
            "expenses": serialize(ExpenseResponse, recent_expenses[:SUMMARY_LIST_LIMIT]),
            "count": len(recent_expenses),
            "total": round(
                sum(
                    e.amount_base if e.amount_base is not None else e.amount
                    for e in recent_expenses
                ),
                2,
            ),
        },
        "stats": {
            "year": today.year,
            "total_gigs": len(year_gigs),
            "total_fees": round(sum(g.fee or 0 for g in year_gigs), 2),
            "total_invoiced": round(sum(inv.total for inv in year_invoices), 2),
            "total_paid": round(
                sum(inv.total for inv in year_invoices if inv.status == "paid"), 2
            ),
        },
    }


@router.get("")
async def get_summary(
    ctx: ApiKeyContext = Depends(validate_api_key),
    db: Session = Depends(get_db),
):
    """Any valid key can read the summary"""
    summary = build_summary(db, ctx.user.id, date.today())
    summary["generated_at"] = datetime.utcnow().isoformat()
    return api_success(summary)
