"""Gig service - Business logic for gigs"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...activity import log_activity
from ...models import Gig, GigType, User
from ..clients.repository import ClientRepository
from .repository import GigRepository
from .schemas import GigCreate, GigTypeCreate, GigUpdate

logger = logging.getLogger(__name__)


def date_fields(dates: list[date]) -> dict:
    """Denormalized date columns for a gig spanning `dates`"""
    ordered = sorted(set(dates))
    return {
        "date": ordered[0],
        "start_date": ordered[0],
        "end_date": ordered[-1],
        "total_days": len(ordered),
    }


def sessions_as_json(sessions: Optional[dict]) -> dict:
    if not sessions:
        return {}
    return {
        day: [s.model_dump(exclude_none=True) for s in day_sessions]
        for day, day_sessions in sessions.items()
    }


class GigService:
    """Service layer for gig business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = GigRepository()

    def list_gigs(self, user: User, **filters) -> tuple[list[Gig], int]:
        return self.repo.list_gigs(self.db, user.id, **filters)

    def get_gig(self, gig_id: int, user: User) -> Gig:
        gig = self.repo.get_gig_by_id(self.db, gig_id, user.id)
        if not gig:
            raise HTTPException(status_code=404, detail="Gig not found")
        return gig

    def _check_references(self, user: User, client_id: Optional[int], gig_type_id: Optional[int]):
        if client_id is not None and not ClientRepository.get_client_by_id(self.db, client_id, user.id):
            raise HTTPException(status_code=400, detail="Client not found")
        if gig_type_id is not None and not self.repo.get_gig_type(self.db, gig_type_id, user.id):
            raise HTTPException(status_code=400, detail="Gig type not found")

    def create_gig(self, data: GigCreate, user: User) -> Gig:
        self._check_references(user, data.client_id, data.gig_type_id)

        gig_data = data.model_dump(exclude={"dates", "sessions"})
        gig_data.update(date_fields(data.dates))

        gig = self.repo.create_gig(self.db, user.id, **gig_data)
        self.repo.replace_dates(self.db, gig, sorted(set(data.dates)), sessions_as_json(data.sessions))
        gig = self.repo.save(self.db, gig)

        logger.info(f"✅ Gig {gig.id} created for user {user.id} ({gig.total_days} day(s))")
        log_activity(self.db, user.id, "gig_created", "gig", gig.id, {"status": gig.status})
        return gig

    def update_gig(self, gig_id: int, data: GigUpdate, user: User) -> Gig:
        gig = self.get_gig(gig_id, user)
        updates = data.model_dump(exclude_unset=True, exclude={"dates", "sessions"})
        if "gig_type_id" in updates and updates["gig_type_id"] is None:
            raise HTTPException(status_code=400, detail="Gig type is required")
        self._check_references(user, updates.get("client_id"), updates.get("gig_type_id"))
        if updates.get("currency"):
            updates["currency"] = updates["currency"].upper()

        self.repo.update_gig(self.db, gig, **updates)

        if data.dates is not None:
            self.repo.update_gig(self.db, gig, **date_fields(data.dates))
            self.repo.replace_dates(
                self.db, gig, sorted(set(data.dates)), sessions_as_json(data.sessions)
            )
        elif data.sessions is not None:
            sessions = sessions_as_json(data.sessions)
            for gig_date in gig.gig_dates:
                if gig_date.date in sessions:
                    gig_date.sessions = sessions[gig_date.date] or None

        gig = self.repo.save(self.db, gig)
        log_activity(self.db, user.id, "gig_updated", "gig", gig.id, {"status": gig.status})
        return gig

    def delete_gig(self, gig_id: int, user: User) -> dict:
        gig = self.get_gig(gig_id, user)
        self.repo.delete_gig(self.db, gig)
        log_activity(self.db, user.id, "gig_deleted", "gig", gig_id)
        return {"deleted": True}

    # Gig types
    def list_gig_types(self, user: User) -> list[GigType]:
        return self.repo.get_gig_types(self.db, user.id)

    def create_gig_type(self, data: GigTypeCreate, user: User) -> GigType:
        return self.repo.create_gig_type(self.db, user.id, **data.model_dump())
