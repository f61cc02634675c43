"""Public API: clients"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ..clients.schemas import ClientCreate, ClientResponse, ClientUpdate
from ..clients.service import ClientService
from .auth import ApiKeyContext, require_scope
from .responses import Page, api_success, page_params, pagination, serialize

router = APIRouter(prefix="/clients", tags=["API v1"])


@router.get("")
async def list_clients(
    search: Optional[str] = Query(None),
    page: Page = Depends(page_params),
    ctx: ApiKeyContext = Depends(require_scope("read:clients")),
    db: Session = Depends(get_db),
):
    clients, total = ClientService(db).list_clients(ctx.user, search, page.limit, page.offset)
    return api_success(
        {"clients": serialize(ClientResponse, clients), "pagination": pagination(total, page)}
    )


@router.get("/{client_id}")
async def get_client(
    client_id: int,
    ctx: ApiKeyContext = Depends(require_scope("read:clients")),
    db: Session = Depends(get_db),
):
    client = ClientService(db).get_client(client_id, ctx.user)
    return api_success(ClientResponse.model_validate(client))


@router.post("")
async def create_client(
    data: ClientCreate,
    ctx: ApiKeyContext = Depends(require_scope("write:clients")),
    db: Session = Depends(get_db),
):
    client = ClientService(db).create_client(data, ctx.user)
    return api_success(ClientResponse.model_validate(client), status_code=201)


@router.patch("/{client_id}")
async def update_client(
    client_id: int,
    data: ClientUpdate,
    ctx: ApiKeyContext = Depends(require_scope("write:clients")),
    db: Session = Depends(get_db),
):
    client = ClientService(db).update_client(client_id, data, ctx.user)
    return api_success(ClientResponse.model_validate(client))


@router.delete("/{client_id}")
async def delete_client(
    client_id: int,
    ctx: ApiKeyContext = Depends(require_scope("write:clients")),
    db: Session = Depends(get_db),
):
    return api_success(ClientService(db).delete_client(client_id, ctx.user))
