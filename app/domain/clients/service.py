"""Client service - Business logic for client operations"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...activity import log_activity
from ...models import Client, User
from .repository import ClientRepository
from .schemas import ClientCreate, ClientUpdate

logger = logging.getLogger(__name__)


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClientRepository()

    def list_clients(
        self,
        user: User,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[Client], int]:
        return self.repo.list_clients(self.db, user.id, search, limit, offset)

    def get_client(self, client_id: int, user: User) -> Client:
        """Get a specific client"""
        client = self.repo.get_client_by_id(self.db, client_id, user.id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        return client

    def create_client(self, data: ClientCreate, user: User) -> Client:
        logger.info(f"📥 Creating client for user_id: {user.id}")
        client = self.repo.create_client(self.db, user.id, **data.model_dump())
        log_activity(self.db, user.id, "client_created", "client", client.id, {"name": client.name})
        return client

    def update_client(self, client_id: int, data: ClientUpdate, user: User) -> Client:
        client = self.get_client(client_id, user)
        updates = data.model_dump(exclude_unset=True)
        if "name" in updates and not updates["name"]:
            raise HTTPException(status_code=400, detail="Client name cannot be empty")

        client = self.repo.update_client(self.db, client, **updates)
        log_activity(self.db, user.id, "client_updated", "client", client.id)
        return client

    def delete_client(self, client_id: int, user: User) -> dict:
        """Delete a client. Clients with invoices are kept for bookkeeping."""
        client = self.get_client(client_id, user)

        if self.repo.count_invoices(self.db, client.id):
            raise HTTPException(
                status_code=409, detail="Client has invoices and cannot be deleted"
            )

        self.repo.delete_client(self.db, client)
        log_activity(self.db, user.id, "client_deleted", "client", client_id)
        return {"deleted": True}
