"""Gig router - dashboard endpoints for gigs and gig types"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import GigCreate, GigResponse, GigTypeCreate, GigTypeResponse, GigUpdate
from .service import GigService

router = APIRouter(prefix="/gigs", tags=["Gigs"])


def get_gig_service(db: Session = Depends(get_db)) -> GigService:
    """Dependency injection for GigService"""
    return GigService(db)


# ============================================================================
# GIG TYPES
# ============================================================================


@router.get("/types", response_model=list[GigTypeResponse])
async def get_gig_types(
    current_user: User = Depends(get_current_user),
    service: GigService = Depends(get_gig_service),
):
    return service.list_gig_types(current_user)


@router.post("/types", response_model=GigTypeResponse, status_code=201)
async def create_gig_type(
    data: GigTypeCreate,
    current_user: User = Depends(get_current_user),
    service: GigService = Depends(get_gig_service),
):
    return service.create_gig_type(data, current_user)


# ============================================================================
# GIGS
# ============================================================================


@router.get("", response_model=list[GigResponse])
async def get_gigs(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    current_user: User = Depends(get_current_user),
    service: GigService = Depends(get_gig_service),
):
    gigs, _ = service.list_gigs(
        current_user, status=status, client_id=client_id, date_from=date_from, date_to=date_to
    )
    return gigs


@router.get("/{gig_id}", response_model=GigResponse)
async def get_gig(
    gig_id: int,
    current_user: User = Depends(get_current_user),
    service: GigService = Depends(get_gig_service),
):
    return service.get_gig(gig_id, current_user)


@router.post("", response_model=GigResponse, status_code=201)
async def create_gig(
    data: GigCreate,
    current_user: User = Depends(get_current_user),
    service: GigService = Depends(get_gig_service),
):
    return service.create_gig(data, current_user)


@router.patch("/{gig_id}", response_model=GigResponse)
async def update_gig(
    gig_id: int,
    data: GigUpdate,
    current_user: User = Depends(get_current_user),
    service: GigService = Depends(get_gig_service),
):
    return service.update_gig(gig_id, data, current_user)


@router.delete("/{gig_id}")
async def delete_gig(
    gig_id: int,
    current_user: User = Depends(get_current_user),
    service: GigService = Depends(get_gig_service),
):
    return service.delete_gig(gig_id, current_user)


__all__ = ["router"]
