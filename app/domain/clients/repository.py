"""Client repository - Database operations for clients"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Client, Invoice


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def list_clients(
        db: Session,
        user_id: int,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[Client], int]:
        """Clients for a user ordered by name, with the unpaginated total"""
        query = db.query(Client).filter(Client.user_id == user_id)

        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Client.name.ilike(pattern),
                    Client.org_number.ilike(pattern),
                    Client.email.ilike(pattern),
                )
            )

        total = query.count()
        query = query.order_by(Client.name.asc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all(), total

    @staticmethod
    def get_all_clients(db: Session, user_id: int) -> list[Client]:
        return db.query(Client).filter(Client.user_id == user_id).all()

    @staticmethod
    def get_client_by_id(db: Session, client_id: int, user_id: int) -> Optional[Client]:
        """Get a specific client by ID"""
        return (
            db.query(Client)
            .filter(Client.id == client_id, Client.user_id == user_id)
            .first()
        )

    @staticmethod
    def create_client(db: Session, user_id: int, **client_data) -> Client:
        """Create a new client"""
        client = Client(user_id=user_id, **client_data)
        db.add(client)
        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def update_client(db: Session, client: Client, **updates) -> Client:
        """Update a client with provided fields"""
        for key, value in updates.items():
            if hasattr(client, key):
                setattr(client, key, value)

        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def count_invoices(db: Session, client_id: int) -> int:
        return db.query(Invoice).filter(Invoice.client_id == client_id).count()

    @staticmethod
    def delete_client(db: Session, client: Client) -> None:
        """Delete a client, detaching its gigs"""
        for gig in client.gigs:
            gig.client_id = None
        db.delete(client)
        db.commit()
