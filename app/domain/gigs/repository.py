"""Gig repository - Database operations for gigs and gig dates"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from ...models import Gig, GigDate, GigType


class GigRepository:
    """Repository for gig database operations"""

    @staticmethod
    def _with_relations(query):
        return query.options(
            joinedload(Gig.client), joinedload(Gig.gig_type), selectinload(Gig.gig_dates)
        )

    @staticmethod
    def list_gigs(
        db: Session,
        user_id: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[Gig], int]:
        """Gigs newest first, with the unpaginated total"""
        query = db.query(Gig).filter(Gig.user_id == user_id)
        if status:
            query = query.filter(Gig.status == status)
        if client_id:
            query = query.filter(Gig.client_id == client_id)
        if date_from:
            query = query.filter(Gig.date >= date_from)
        if date_to:
            query = query.filter(Gig.date <= date_to)

        total = query.count()
        query = GigRepository._with_relations(query).order_by(Gig.date.desc(), Gig.id.desc())
        query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all(), total

    @staticmethod
    def get_gig_by_id(db: Session, gig_id: int, user_id: int) -> Optional[Gig]:
        return (
            GigRepository._with_relations(db.query(Gig))
            .filter(Gig.id == gig_id, Gig.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_calendar_gigs(db: Session, user_id: int) -> list[Gig]:
        """Every gig that belongs in the calendar feed, oldest first"""
        return (
            GigRepository._with_relations(db.query(Gig))
            .filter(Gig.user_id == user_id, Gig.status != "declined")
            .order_by(Gig.date.asc())
            .all()
        )

    @staticmethod
    def get_upcoming_gigs(db: Session, user_id: int, start: date, end: date, limit: int) -> list[Gig]:
        return (
            GigRepository._with_relations(db.query(Gig))
            .filter(
                Gig.user_id == user_id,
                Gig.status.notin_(["declined", "draft"]),
                Gig.date >= start,
                Gig.date <= end,
            )
            .order_by(Gig.date.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_gigs_since(db: Session, user_id: int, since: date) -> list[Gig]:
        return (
            db.query(Gig)
            .filter(
                Gig.user_id == user_id,
                Gig.date >= since,
                Gig.status.notin_(["declined", "draft"]),
            )
            .all()
        )

    @staticmethod
    def create_gig(db: Session, user_id: int, **gig_data) -> Gig:
        gig = Gig(user_id=user_id, **gig_data)
        db.add(gig)
        db.flush()
        return gig

    @staticmethod
    def replace_dates(
        db: Session, gig: Gig, dates: list[date], sessions: Optional[dict] = None
    ) -> None:
        """Rewrite the gig's GigDate rows"""
        sessions = sessions or {}
        gig.gig_dates.clear()
        db.flush()
        for gig_date in dates:
            day_sessions = sessions.get(gig_date)
            gig.gig_dates.append(
                GigDate(user_id=gig.user_id, date=gig_date, sessions=day_sessions or None)
            )

    @staticmethod
    def update_gig(db: Session, gig: Gig, **updates) -> Gig:
        for key, value in updates.items():
            if hasattr(gig, key):
                setattr(gig, key, value)
        return gig

    @staticmethod
    def save(db: Session, gig: Gig) -> Gig:
        db.commit()
        db.refresh(gig)
        return gig

    @staticmethod
    def delete_gig(db: Session, gig: Gig) -> None:
        db.delete(gig)
        db.commit()

    # Gig types
    @staticmethod
    def get_gig_types(db: Session, user_id: int) -> list[GigType]:
        return db.query(GigType).filter(GigType.user_id == user_id).order_by(GigType.name).all()

    @staticmethod
    def get_gig_type(db: Session, gig_type_id: int, user_id: int) -> Optional[GigType]:
        return (
            db.query(GigType)
            .filter(GigType.id == gig_type_id, GigType.user_id == user_id)
            .first()
        )

    @staticmethod
    def create_gig_type(db: Session, user_id: int, **data) -> GigType:
        gig_type = GigType(user_id=user_id, **data)
        db.add(gig_type)
        db.commit()
        db.refresh(gig_type)
        return gig_type
