"""Public API v1 - API key authenticated, JSON envelope responses"""

from fastapi import APIRouter

from .clients import router as clients_router
from .expenses import router as expenses_router
from .gigs import router as gigs_router
from .invoices import router as invoices_router
from .summary import router as summary_router

API_V1_PREFIX = "/api/v1"

router = APIRouter(prefix=API_V1_PREFIX)

router.include_router(gigs_router)
router.include_router(clients_router)
router.include_router(expenses_router)
router.include_router(invoices_router)
router.include_router(summary_router)

__all__ = ["router", "API_V1_PREFIX"]
