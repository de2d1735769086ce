"""Scheduling service - slot listing and the booking transaction manager"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

from sqlalchemy.orm import Session

from ...config import CONFIRMATION_CODE_MAX_ATTEMPTS, DEFAULT_TIMEZONE
from ...models import (
    AvailabilityWindow,
    Booking,
    BookingStatus,
    MeetingType,
    generate_confirmation_code,
)
from .availability import AvailabilityIndex
from .conflicts import find_conflicts
from .exceptions import (
    AlreadyCancelled,
    ConfirmationCodeCollision,
    ConfirmationCodeExhausted,
    InvalidRequest,
    NotFound,
    SlotUnavailable,
)
from .locks import HostLockManager, get_host_lock_manager
from .repository import (
    AvailabilityRepository,
    BookingRepository,
    ContactLookup,
    MeetingTypeRepository,
)
from .schemas import (
    AvailabilityCreate,
    AvailabilityUpdate,
    BookingCreate,
    MeetingTypeCreate,
    MeetingTypeUpdate,
)
from .slots import Slot, generate_slots, max_bookable_instant, min_bookable_instant
from .time_utils import ensure_utc, get_zone, parse_hhmm, to_utc, window_bounds

logger = logging.getLogger(__name__)

# Largest buffer a meeting type may declare; bounds the booking prefetch range
MAX_BUFFER_MINUTES = 120

MeetingTypeRef = Union[int, str]  # id, or public slug


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class GuestInfo:
    name: str
    email: str
    phone: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE
    notes: Optional[str] = None
    custom_answers: Optional[dict[str, Any]] = field(default=None)


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def prefetch_range(
    start: datetime, end: datetime, buffer_before: int = 0, buffer_after: int = 0
) -> tuple[datetime, datetime]:
    """Superset range that catches every booking whose buffered block could touch [start, end)"""
    return (
        start - timedelta(minutes=buffer_before + MAX_BUFFER_MINUTES),
        end + timedelta(minutes=buffer_after + MAX_BUFFER_MINUTES),
    )


class BookingTransactionManager:
    """The only writer of bookings.

    Create and reschedule re-read the host's confirmed bookings and write the
    result while holding the host's lock, so two overlapping attempts on the
    same host can never both land.
    """

    def __init__(
        self,
        booking_repo,
        meeting_type_repo,
        availability_index: AvailabilityIndex,
        lock_manager: HostLockManager,
        clock=None,
        contact_lookup=None,
        code_generator: Callable[[], str] = generate_confirmation_code,
        max_code_attempts: int = CONFIRMATION_CODE_MAX_ATTEMPTS,
    ):
        self.booking_repo = booking_repo
        self.meeting_type_repo = meeting_type_repo
        self.availability_index = availability_index
        self.lock_manager = lock_manager
        self.clock = clock or SystemClock()
        self.contact_lookup = contact_lookup
        self.code_generator = code_generator
        self.max_code_attempts = max_code_attempts

    # ------------------------------------------------------------------
    # Validation shared by create and reschedule
    # ------------------------------------------------------------------

    def validate_request_window(
        self, meeting_type: MeetingType, host_id: int, start: datetime, end: datetime
    ) -> None:
        """Notice, horizon and working-hours checks; time passes between listing and booking"""
        now = ensure_utc(self.clock.now())

        if start < min_bookable_instant(meeting_type, now):
            raise InvalidRequest(
                f"Bookings require at least {meeting_type.min_notice_hours} hours notice"
            )
        if start > max_bookable_instant(meeting_type, now):
            raise InvalidRequest(
                f"Bookings can be made at most {meeting_type.max_booking_days} days in advance"
            )
        if self.availability_index.covering_window(host_id, start, end) is None:
            raise InvalidRequest("Requested time is outside the host's availability")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_booking(
        self, meeting_type_id: int, guest: GuestInfo, requested_start: datetime
    ) -> Booking:
        meeting_type = self.meeting_type_repo.find_active_by_id(meeting_type_id)
        if not meeting_type:
            raise NotFound("Meeting type not found or not available")

        start = to_utc(requested_start, guest.timezone)
        end = start + timedelta(minutes=meeting_type.duration_minutes)
        host_id = meeting_type.host_id

        try:
            self.validate_request_window(meeting_type, host_id, start, end)
        except InvalidRequest as e:
            logger.warning(f"⚠️ Rejected booking for meeting type {meeting_type.id}: {e.message}")
            raise

        contact_id = None
        if self.contact_lookup is not None:
            contact = self.contact_lookup.find_by_email(guest.email, meeting_type.workspace_id)
            if contact:
                contact_id = contact.id

        for attempt in range(1, self.max_code_attempts + 1):
            booking = Booking(
                workspace_id=meeting_type.workspace_id,
                host_id=host_id,
                meeting_type_id=meeting_type.id,
                contact_id=contact_id,
                guest_name=guest.name,
                guest_email=guest.email.strip().lower(),
                guest_phone=guest.phone,
                start_time=start,
                end_time=end,
                duration_minutes=meeting_type.duration_minutes,
                buffer_before_minutes=meeting_type.buffer_before_minutes or 0,
                buffer_after_minutes=meeting_type.buffer_after_minutes or 0,
                timezone=guest.timezone or DEFAULT_TIMEZONE,
                location_type=meeting_type.location_type,
                location=meeting_type.location,
                status=BookingStatus.CONFIRMED.value,
                confirmation_code=self.code_generator(),
                notes=guest.notes,
                custom_answers=guest.custom_answers,
            )
            try:
                saved = self._write_guarded(booking, start, end, insert=True)
            except ConfirmationCodeCollision as e:
                logger.warning(
                    f"⚠️ Confirmation code collision on {e.code} "
                    f"(attempt {attempt}/{self.max_code_attempts}), regenerating"
                )
                continue

            logger.info(
                f"✅ Booking {saved.confirmation_code} created for host {host_id} "
                f"at {start.isoformat()}"
            )
            return saved

        logger.error(
            f"❌ Could not generate a unique confirmation code after {self.max_code_attempts} attempts"
        )
        raise ConfirmationCodeExhausted("Could not allocate a confirmation code")

    def cancel_booking(self, confirmation_code: str, reason: Optional[str] = None) -> Booking:
        booking = self.get_booking(confirmation_code)

        if booking.status == BookingStatus.CANCELLED.value:
            logger.warning(f"⚠️ Booking {confirmation_code} is already cancelled")
            raise AlreadyCancelled("Booking is already cancelled")
        if booking.status != BookingStatus.CONFIRMED.value:
            raise InvalidRequest(f"Cannot cancel a booking with status {booking.status}")

        # Another caller may have cancelled since the read above
        cancelled_at = ensure_utc(self.clock.now())
        if not self.booking_repo.cancel_if_confirmed(booking, reason, cancelled_at):
            if booking.status == BookingStatus.CANCELLED.value:
                logger.warning(f"⚠️ Booking {confirmation_code} was cancelled concurrently")
                raise AlreadyCancelled("Booking is already cancelled")
            raise InvalidRequest(f"Cannot cancel a booking with status {booking.status}")

        logger.info(f"✅ Booking {confirmation_code} cancelled")
        return booking

    def reschedule_booking(
        self, confirmation_code: str, new_start: datetime, tz_name: Optional[str] = None
    ) -> Booking:
        booking = self.get_booking(confirmation_code)

        if booking.status == BookingStatus.CANCELLED.value:
            logger.warning(f"⚠️ Reschedule rejected, booking {confirmation_code} is cancelled")
            raise AlreadyCancelled("Cannot reschedule a cancelled booking")
        if booking.status != BookingStatus.CONFIRMED.value:
            raise InvalidRequest(f"Cannot reschedule a booking with status {booking.status}")

        start = to_utc(new_start, tz_name or booking.timezone)
        # Duration comes from the booking, not the (possibly edited) meeting type
        end = start + timedelta(minutes=booking.duration_minutes)

        meeting_type = None
        if booking.meeting_type_id is not None:
            meeting_type = self.meeting_type_repo.find_active_by_id(booking.meeting_type_id)
        if meeting_type is not None:
            try:
                self.validate_request_window(meeting_type, booking.host_id, start, end)
            except InvalidRequest as e:
                logger.warning(f"⚠️ Rejected reschedule of {confirmation_code}: {e.message}")
                raise

        previous_start = ensure_utc(booking.start_time)
        saved = self._write_guarded(booking, start, end, insert=False)

        logger.info(
            f"✅ Booking {confirmation_code} rescheduled from {previous_start.isoformat()} "
            f"to {start.isoformat()}"
        )
        return saved

    def _write_guarded(
        self, booking: Booking, start: datetime, end: datetime, insert: bool
    ) -> Booking:
        """Check-then-write under the host lock; nothing is written on any failure.

        For a reschedule the booking only takes its new interval once the
        conflict check has passed.
        """
        host_id = booking.host_id
        before = booking.buffer_before_minutes or 0
        after = booking.buffer_after_minutes or 0

        with self.lock_manager.hold(host_id):
            try:
                self.booking_repo.lock_host(host_id)
                range_start, range_end = prefetch_range(start, end, before, after)
                existing = self.booking_repo.find_confirmed_overlapping(
                    host_id, range_start, range_end
                )
                conflicts = find_conflicts(
                    host_id,
                    start,
                    end,
                    existing,
                    exclude_booking_id=None if insert else booking.id,
                    buffer_before_minutes=before,
                    buffer_after_minutes=after,
                )
                if conflicts:
                    logger.warning(
                        f"⚠️ Slot {start.isoformat()} for host {host_id} conflicts with "
                        f"{[c.confirmation_code for c in conflicts]}"
                    )
                    raise SlotUnavailable(
                        "This time slot is no longer available"
                        if insert
                        else "This time slot is not available"
                    )

                if insert:
                    return self.booking_repo.insert(booking)
                booking.start_time = start
                booking.end_time = end
                return self.booking_repo.update(booking)
            except Exception:
                self.booking_repo.rollback()
                raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking(self, confirmation_code: str) -> Booking:
        booking = self.booking_repo.find_by_confirmation_code(confirmation_code)
        if not booking:
            raise NotFound("Booking not found")
        return booking


class SchedulingService:
    """Service layer for scheduling: public booking flow and host configuration"""

    def __init__(
        self,
        db: Session,
        clock=None,
        lock_manager: Optional[HostLockManager] = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.availability_repo = AvailabilityRepository(db)
        self.meeting_type_repo = MeetingTypeRepository(db)
        self.booking_repo = BookingRepository(db)
        self.contacts = ContactLookup(db)
        self.availability_index = AvailabilityIndex(self.availability_repo)
        self.bookings = BookingTransactionManager(
            booking_repo=self.booking_repo,
            meeting_type_repo=self.meeting_type_repo,
            availability_index=self.availability_index,
            lock_manager=lock_manager or get_host_lock_manager(),
            clock=self.clock,
            contact_lookup=self.contacts,
        )

    # ========== Available Slots ==========

    def resolve_meeting_type(self, ref: MeetingTypeRef) -> MeetingType:
        if isinstance(ref, int):
            meeting_type = self.meeting_type_repo.find_active_by_id(ref)
        else:
            meeting_type = self.meeting_type_repo.find_public_by_slug(ref)
        if not meeting_type:
            raise NotFound("Meeting type not found")
        return meeting_type

    def list_available_slots(
        self, meeting_type_ref: MeetingTypeRef, target_date: date, tz_name: Optional[str] = None
    ) -> list[Slot]:
        meeting_type = self.resolve_meeting_type(meeting_type_ref)
        tz_name = tz_name or DEFAULT_TIMEZONE
        zone = get_zone(tz_name)

        now = ensure_utc(self.clock.now())
        last_bookable_day = (now + timedelta(days=meeting_type.max_booking_days)).astimezone(zone).date()
        if target_date > last_bookable_day:
            raise InvalidRequest(
                f"Bookings can be made at most {meeting_type.max_booking_days} days in advance"
            )

        windows = self.availability_index.windows_for(meeting_type.host_id, target_date)
        if not windows:
            return []

        bounds = [
            window_bounds(target_date, w.start_time, w.end_time, w.timezone) for w in windows
        ]
        range_start, range_end = prefetch_range(
            min(b[0] for b in bounds),
            max(b[1] for b in bounds),
            meeting_type.buffer_before_minutes or 0,
            meeting_type.buffer_after_minutes or 0,
        )
        confirmed = self.booking_repo.find_confirmed_overlapping(
            meeting_type.host_id, range_start, range_end
        )

        return generate_slots(meeting_type, windows, confirmed, target_date, now, tz_name)

    # ========== Bookings ==========

    def create_booking(self, data: BookingCreate) -> Booking:
        guest = GuestInfo(
            name=data.guestName,
            email=data.guestEmail,
            phone=data.guestPhone,
            timezone=data.timezone,
            notes=data.notes,
            custom_answers=data.customAnswers,
        )
        return self.bookings.create_booking(data.meetingTypeId, guest, data.startTime)

    def cancel_booking(self, confirmation_code: str, reason: Optional[str] = None) -> Booking:
        return self.bookings.cancel_booking(confirmation_code, reason)

    def reschedule_booking(
        self, confirmation_code: str, new_start: datetime, tz_name: Optional[str] = None
    ) -> Booking:
        return self.bookings.reschedule_booking(confirmation_code, new_start, tz_name)

    def get_booking_by_confirmation(self, confirmation_code: str) -> Booking:
        return self.bookings.get_booking(confirmation_code)

    def list_bookings(
        self,
        workspace_id: int,
        host_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        return self.booking_repo.list(
            workspace_id,
            host_id,
            ensure_utc(start) if start else None,
            ensure_utc(end) if end else None,
        )

    # ========== Availability Management ==========

    def _validate_window(self, start_time: str, end_time: str, tz_name: str) -> None:
        if parse_hhmm(start_time) >= parse_hhmm(end_time):
            raise InvalidRequest("startTime must be before endTime")
        get_zone(tz_name)

    def create_availability(
        self, workspace_id: int, host_id: int, data: AvailabilityCreate
    ) -> AvailabilityWindow:
        tz_name = data.timezone or DEFAULT_TIMEZONE
        self._validate_window(data.startTime, data.endTime, tz_name)

        window = self.availability_repo.create(
            workspace_id=workspace_id,
            host_id=host_id,
            day_of_week=data.dayOfWeek,
            start_time=data.startTime,
            end_time=data.endTime,
            timezone=tz_name,
            is_active=data.isActive if data.isActive is not None else True,
        )
        logger.info(f"✅ Availability window {window.id} created for host {host_id}")
        return window

    def list_availability(self, workspace_id: int, host_id: int) -> list[AvailabilityWindow]:
        return self.availability_repo.list_for_host(workspace_id, host_id)

    def get_availability(self, workspace_id: int, window_id: int) -> AvailabilityWindow:
        window = self.availability_repo.get(workspace_id, window_id)
        if not window:
            raise NotFound("Availability not found")
        return window

    def update_availability(
        self, workspace_id: int, window_id: int, data: AvailabilityUpdate
    ) -> AvailabilityWindow:
        window = self.get_availability(workspace_id, window_id)

        start_time = data.startTime or window.start_time
        end_time = data.endTime or window.end_time
        tz_name = data.timezone or window.timezone
        self._validate_window(start_time, end_time, tz_name)

        return self.availability_repo.update(
            window,
            day_of_week=data.dayOfWeek,
            start_time=data.startTime,
            end_time=data.endTime,
            timezone=data.timezone,
            is_active=data.isActive,
        )

    def delete_availability(self, workspace_id: int, window_id: int) -> None:
        window = self.get_availability(workspace_id, window_id)
        self.availability_repo.soft_delete(window)
        logger.info(f"🗑️ Availability window {window_id} deleted")

    # ========== Meeting Types Management ==========

    def _unique_slug(self, wanted: str, exclude_id: Optional[int] = None) -> str:
        slug = slugify(wanted)
        if not slug:
            raise InvalidRequest("Slug must contain letters or digits")
        if self.meeting_type_repo.slug_exists(slug, exclude_id):
            raise InvalidRequest(f"Slug '{slug}' is already in use")
        return slug

    def create_meeting_type(
        self, workspace_id: int, host_id: int, data: MeetingTypeCreate
    ) -> MeetingType:
        slug = self._unique_slug(data.slug or data.name)

        meeting_type = self.meeting_type_repo.create(
            workspace_id=workspace_id,
            host_id=host_id,
            name=data.name,
            slug=slug,
            description=data.description,
            duration_minutes=data.duration,
            buffer_before_minutes=data.bufferBefore,
            buffer_after_minutes=data.bufferAfter,
            location_type=data.locationType,
            location=data.location,
            color=data.color,
            is_active=data.isActive,
            is_public=data.isPublic,
            max_booking_days=data.maxBookingDays,
            min_notice_hours=data.minNoticeHours,
            custom_questions=[q.model_dump() for q in data.customQuestions]
            if data.customQuestions
            else None,
        )
        logger.info(f"✅ Meeting type '{slug}' created for host {host_id}")
        return meeting_type

    def list_meeting_types(self, workspace_id: int, host_id: Optional[int] = None) -> list[MeetingType]:
        return self.meeting_type_repo.list(workspace_id, host_id)

    def get_meeting_type(self, workspace_id: int, meeting_type_id: int) -> MeetingType:
        meeting_type = self.meeting_type_repo.get(workspace_id, meeting_type_id)
        if not meeting_type:
            raise NotFound("Meeting type not found")
        return meeting_type

    def get_public_meeting_type(self, slug: str) -> MeetingType:
        meeting_type = self.meeting_type_repo.find_public_by_slug(slug)
        if not meeting_type:
            raise NotFound("Meeting type not found")
        return meeting_type

    def update_meeting_type(
        self, workspace_id: int, meeting_type_id: int, data: MeetingTypeUpdate
    ) -> MeetingType:
        meeting_type = self.get_meeting_type(workspace_id, meeting_type_id)

        slug = None
        if data.slug is not None:
            slug = self._unique_slug(data.slug, exclude_id=meeting_type.id)

        updates = {
            "name": data.name,
            "slug": slug,
            "description": data.description,
            "duration_minutes": data.duration,
            "buffer_before_minutes": data.bufferBefore,
            "buffer_after_minutes": data.bufferAfter,
            "location_type": data.locationType,
            "location": data.location,
            "color": data.color,
            "is_active": data.isActive,
            "is_public": data.isPublic,
            "max_booking_days": data.maxBookingDays,
            "min_notice_hours": data.minNoticeHours,
        }
        if data.customQuestions is not None:
            updates["custom_questions"] = [q.model_dump() for q in data.customQuestions]

        return self.meeting_type_repo.update(meeting_type, **updates)

    def delete_meeting_type(self, workspace_id: int, meeting_type_id: int) -> None:
        meeting_type = self.get_meeting_type(workspace_id, meeting_type_id)
        self.meeting_type_repo.soft_delete(meeting_type)
        logger.info(f"🗑️ Meeting type {meeting_type_id} deleted")
