import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_confirmation_code() -> str:
    """Generate an 8-char uppercase hex code for guest-facing booking lookup"""
    return uuid.uuid4().hex[:8].upper()


class BookingStatus(str, enum.Enum):
    PENDING = "pending"  # Unused: bookings are created confirmed
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class SoftDeleteMixin:
    """Tombstone flag checked by the repository layer instead of a nullable deleted_at"""

    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # Audit only

    def soft_delete(self):
        self.is_deleted = True
        self.deleted_at = datetime.now(timezone.utc)


class User(Base):
    """A workspace member who hosts meetings"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, nullable=False, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    timezone = Column(String(100), default="UTC", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    availability_windows = relationship("AvailabilityWindow", back_populates="host")
    meeting_types = relationship("MeetingType", back_populates="host")


class Contact(SoftDeleteMixin, Base):
    """CRM contact, weakly referenced by bookings (matched on guest email)"""

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)  # Stored lowercase
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AvailabilityWindow(SoftDeleteMixin, Base):
    """Recurring weekly working hours during which a host accepts bookings"""

    __tablename__ = "availabilities"
    __table_args__ = (Index("ix_availabilities_host_day", "host_id", "day_of_week"),)

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, nullable=False, index=True)
    host_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = Column(String(5), nullable=False)  # HH:MM, local to timezone
    end_time = Column(String(5), nullable=False)  # HH:MM, local to timezone
    timezone = Column(String(100), default="UTC", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    host = relationship("User", back_populates="availability_windows")


class MeetingType(SoftDeleteMixin, Base):
    """Bookable meeting definition (duration, buffers, notice and horizon rules)"""

    __tablename__ = "meeting_types"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, nullable=False, index=True)
    host_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)  # Public booking page
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, default=30, nullable=False)
    buffer_before_minutes = Column(Integer, default=0, nullable=False)
    buffer_after_minutes = Column(Integer, default=0, nullable=False)
    location_type = Column(String(50), default="zoom", nullable=False)  # zoom, meet, phone, in-person
    location = Column(String(500), nullable=True)
    color = Column(String(7), default="#3B82F6", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_public = Column(Boolean, default=False, nullable=False)
    max_booking_days = Column(Integer, default=60, nullable=False)
    min_notice_hours = Column(Integer, default=0, nullable=False)
    custom_questions = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    host = relationship("User", back_populates="meeting_types")


class Booking(Base):
    """A reserved meeting on a host's calendar"""

    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_host_status_start", "host_id", "status", "start_time"),)

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, nullable=False, index=True)
    host_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    meeting_type_id = Column(
        Integer, ForeignKey("meeting_types.id", ondelete="SET NULL"), nullable=True
    )
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)
    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(20), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)  # UTC
    end_time = Column(DateTime(timezone=True), nullable=False)  # UTC, start + duration
    # Snapshots taken at booking time so later meeting type edits don't move existing bookings
    duration_minutes = Column(Integer, nullable=False)
    buffer_before_minutes = Column(Integer, default=0, nullable=False)
    buffer_after_minutes = Column(Integer, default=0, nullable=False)
    timezone = Column(String(100), default="UTC", nullable=False)  # Guest's zone
    location_type = Column(String(50), default="zoom", nullable=False)
    location = Column(String(500), nullable=True)
    status = Column(String(20), default=BookingStatus.CONFIRMED.value, nullable=False)
    confirmation_code = Column(String(20), unique=True, index=True, nullable=False)
    notes = Column(Text, nullable=True)
    custom_answers = Column(JSON, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    calendar_event_id = Column(String(500), nullable=True)  # External calendar sync
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    meeting_type = relationship("MeetingType")
    host = relationship("User")
