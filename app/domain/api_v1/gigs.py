"""Public API: gigs"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ..gigs.schemas import GigCreate, GigResponse, GigUpdate
from ..gigs.service import GigService
from .auth import ApiKeyContext, require_scope
from .responses import Page, api_success, page_params, pagination, serialize

router = APIRouter(prefix="/gigs", tags=["API v1"])


@router.get("")
async def list_gigs(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: Page = Depends(page_params),
    ctx: ApiKeyContext = Depends(require_scope("read:gigs")),
    db: Session = Depends(get_db),
):
    gigs, total = GigService(db).list_gigs(
        ctx.user,
        status=status,
        client_id=client_id,
        date_from=date_from,
        date_to=date_to,
        limit=page.limit,
        offset=page.offset,
    )
    return api_success({"gigs": serialize(GigResponse, gigs), "pagination": pagination(total, page)})


@router.get("/{gig_id}")
async def get_gig(
    gig_id: int,
    ctx: ApiKeyContext = Depends(require_scope("read:gigs")),
    db: Session = Depends(get_db),
):
    gig = GigService(db).get_gig(gig_id, ctx.user)
    return api_success(GigResponse.model_validate(gig))


@router.post("")
async def create_gig(
    data: GigCreate,
    ctx: ApiKeyContext = Depends(require_scope("write:gigs")),
    db: Session = Depends(get_db),
):
    gig = GigService(db).create_gig(data, ctx.user)
    return api_success(GigResponse.model_validate(gig), status_code=201)


@router.patch("/{gig_id}")
async def update_gig(
    gig_id: int,
    data: GigUpdate,
    ctx: ApiKeyContext = Depends(require_scope("write:gigs")),
    db: Session = Depends(get_db),
):
    gig = GigService(db).update_gig(gig_id, data, ctx.user)
    return api_success(GigResponse.model_validate(gig))


@router.delete("/{gig_id}")
async def delete_gig(
    gig_id: int,
    ctx: ApiKeyContext = Depends(require_scope("write:gigs")),
    db: Session = Depends(get_db),
):
    return api_success(GigService(db).delete_gig(gig_id, ctx.user))
