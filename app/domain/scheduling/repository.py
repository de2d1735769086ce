"""Scheduling repositories - Database operations for availability, meeting types and bookings"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from ...models import (
    AvailabilityWindow,
    Booking,
    BookingStatus,
    Contact,
    MeetingType,
    User,
)
from .exceptions import ConfirmationCodeCollision, SlotUnavailable

logger = logging.getLogger(__name__)

# Created by migrations/add_booking_overlap_constraint.py (PostgreSQL only)
OVERLAP_CONSTRAINT = "ex_bookings_confirmed_no_overlap"


def live(query: Query, model) -> Query:
    """Exclude soft-deleted rows; every read of a tombstoned table goes through here"""
    return query.filter(model.is_deleted.is_(False))


class AvailabilityRepository:
    """Repository for host availability windows"""

    def __init__(self, db: Session):
        self.db = db

    def find_active_windows(self, host_id: int, day_of_week: int) -> list[AvailabilityWindow]:
        query = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.host_id == host_id,
            AvailabilityWindow.day_of_week == day_of_week,
            AvailabilityWindow.is_active.is_(True),
        )
        return live(query, AvailabilityWindow).order_by(AvailabilityWindow.start_time).all()

    def list_for_host(self, workspace_id: int, host_id: int) -> list[AvailabilityWindow]:
        query = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.workspace_id == workspace_id,
            AvailabilityWindow.host_id == host_id,
        )
        return (
            live(query, AvailabilityWindow)
            .order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time)
            .all()
        )

    def get(self, workspace_id: int, window_id: int) -> Optional[AvailabilityWindow]:
        query = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.id == window_id,
            AvailabilityWindow.workspace_id == workspace_id,
        )
        return live(query, AvailabilityWindow).first()

    def create(self, **data) -> AvailabilityWindow:
        window = AvailabilityWindow(**data)
        self.db.add(window)
        self.db.commit()
        self.db.refresh(window)
        return window

    def update(self, window: AvailabilityWindow, **updates) -> AvailabilityWindow:
        for key, value in updates.items():
            if value is not None and hasattr(window, key):
                setattr(window, key, value)
        self.db.commit()
        self.db.refresh(window)
        return window

    def soft_delete(self, window: AvailabilityWindow) -> None:
        window.soft_delete()
        self.db.commit()


class MeetingTypeRepository:
    """Repository for bookable meeting types"""

    def __init__(self, db: Session):
        self.db = db

    def find_active_by_id(self, meeting_type_id: int) -> Optional[MeetingType]:
        query = self.db.query(MeetingType).filter(
            MeetingType.id == meeting_type_id,
            MeetingType.is_active.is_(True),
        )
        return live(query, MeetingType).first()

    def find_public_by_slug(self, slug: str) -> Optional[MeetingType]:
        query = self.db.query(MeetingType).filter(
            MeetingType.slug == slug,
            MeetingType.is_active.is_(True),
            MeetingType.is_public.is_(True),
        )
        return live(query, MeetingType).first()

    def list(self, workspace_id: int, host_id: Optional[int] = None) -> list[MeetingType]:
        query = self.db.query(MeetingType).filter(MeetingType.workspace_id == workspace_id)
        if host_id is not None:
            query = query.filter(MeetingType.host_id == host_id)
        return live(query, MeetingType).order_by(MeetingType.created_at.desc()).all()

    def get(self, workspace_id: int, meeting_type_id: int) -> Optional[MeetingType]:
        query = self.db.query(MeetingType).filter(
            MeetingType.id == meeting_type_id,
            MeetingType.workspace_id == workspace_id,
        )
        return live(query, MeetingType).first()

    def slug_exists(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        # Deleted rows still hold their slug (unique column)
        query = self.db.query(MeetingType.id).filter(MeetingType.slug == slug)
        if exclude_id is not None:
            query = query.filter(MeetingType.id != exclude_id)
        return query.first() is not None

    def create(self, **data) -> MeetingType:
        meeting_type = MeetingType(**data)
        self.db.add(meeting_type)
        self.db.commit()
        self.db.refresh(meeting_type)
        return meeting_type

    def update(self, meeting_type: MeetingType, **updates) -> MeetingType:
        for key, value in updates.items():
            if value is not None and hasattr(meeting_type, key):
                setattr(meeting_type, key, value)
        self.db.commit()
        self.db.refresh(meeting_type)
        return meeting_type

    def soft_delete(self, meeting_type: MeetingType) -> None:
        meeting_type.soft_delete()
        self.db.commit()


class BookingRepository:
    """Repository for bookings; every write commits or rolls back as a whole"""

    def __init__(self, db: Session):
        self.db = db

    def lock_host(self, host_id: int) -> None:
        """Row-lock the host for the rest of the transaction (no-op on SQLite)"""
        self.db.query(User.id).filter(User.id == host_id).with_for_update().first()

    def find_confirmed_overlapping(
        self, host_id: int, range_start: datetime, range_end: datetime
    ) -> list[Booking]:
        return (
            self.db.query(Booking)
            .filter(
                Booking.host_id == host_id,
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.start_time < range_end,
                Booking.end_time > range_start,
            )
            .order_by(Booking.start_time)
            .all()
        )

    def find_by_confirmation_code(self, code: str) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.confirmation_code == code).first()

    def code_exists(self, code: str) -> bool:
        return self.db.query(Booking.id).filter(Booking.confirmation_code == code).first() is not None

    def list(
        self,
        workspace_id: int,
        host_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        query = self.db.query(Booking).filter(Booking.workspace_id == workspace_id)
        if host_id is not None:
            query = query.filter(Booking.host_id == host_id)
        if start is not None:
            query = query.filter(Booking.start_time >= start)
        if end is not None:
            query = query.filter(Booking.start_time <= end)
        return query.order_by(Booking.start_time).all()

    def insert(self, booking: Booking) -> Booking:
        """Persist a new booking.

        Raises ConfirmationCodeCollision when the code is taken, and
        SlotUnavailable when the database overlap constraint rejects the row.
        """
        self.db.add(booking)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if OVERLAP_CONSTRAINT in str(e.orig):
                raise SlotUnavailable("This time slot is no longer available") from e
            if self.code_exists(booking.confirmation_code):
                raise ConfirmationCodeCollision(booking.confirmation_code) from e
            raise
        self.db.refresh(booking)
        return booking

    def update(self, booking: Booking) -> Booking:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if OVERLAP_CONSTRAINT in str(e.orig):
                raise SlotUnavailable("This time slot is not available") from e
            raise
        self.db.refresh(booking)
        return booking

    def cancel_if_confirmed(
        self, booking: Booking, reason: Optional[str], cancelled_at: datetime
    ) -> bool:
        """Conditional cancel; False when the row was no longer confirmed.

        The booking is refreshed either way so callers see the stored status.
        """
        try:
            updated = (
                self.db.query(Booking)
                .filter(
                    Booking.id == booking.id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                )
                .update(
                    {
                        Booking.status: BookingStatus.CANCELLED.value,
                        Booking.cancellation_reason: reason,
                        Booking.cancelled_at: cancelled_at,
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(booking)
        return updated == 1

    def rollback(self) -> None:
        self.db.rollback()


class ContactLookup:
    """Optional CRM enrichment: match a guest email to an existing contact"""

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str, workspace_id: int) -> Optional[Contact]:
        if not email:
            return None
        query = self.db.query(Contact).filter(
            Contact.email == email.strip().lower(),
            Contact.workspace_id == workspace_id,
        )
        return live(query, Contact).first()
