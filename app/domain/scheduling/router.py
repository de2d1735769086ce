"""Scheduling router - FastAPI endpoints for availability, meeting types and bookings"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_host
from ...config import PUBLIC_BOOKING_RATE_LIMIT, PUBLIC_BOOKING_RATE_WINDOW
from ...database import get_db
from ...models import AvailabilityWindow, Booking, MeetingType, User
from ...rate_limiter import create_rate_limiter
from .schemas import (
    AvailabilityCreate,
    AvailabilityResponse,
    AvailabilityUpdate,
    BookingCreate,
    BookingResponse,
    CancelBookingRequest,
    MeetingTypeCreate,
    MeetingTypeResponse,
    MeetingTypeUpdate,
    RescheduleBookingRequest,
    SlotResponse,
)
from .service import SchedulingService
from .slots import Slot
from .time_utils import ensure_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])

public_booking_limit = create_rate_limiter(
    limit=PUBLIC_BOOKING_RATE_LIMIT,
    window_seconds=PUBLIC_BOOKING_RATE_WINDOW,
    key_prefix="public_booking",
)


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


def availability_response(window: AvailabilityWindow) -> AvailabilityResponse:
    return AvailabilityResponse(
        id=window.id,
        hostId=window.host_id,
        dayOfWeek=window.day_of_week,
        startTime=window.start_time,
        endTime=window.end_time,
        timezone=window.timezone,
        isActive=window.is_active,
    )


def meeting_type_response(meeting_type: MeetingType) -> MeetingTypeResponse:
    return MeetingTypeResponse(
        id=meeting_type.id,
        hostId=meeting_type.host_id,
        name=meeting_type.name,
        slug=meeting_type.slug,
        description=meeting_type.description,
        duration=meeting_type.duration_minutes,
        bufferBefore=meeting_type.buffer_before_minutes,
        bufferAfter=meeting_type.buffer_after_minutes,
        locationType=meeting_type.location_type,
        location=meeting_type.location,
        color=meeting_type.color,
        isActive=meeting_type.is_active,
        isPublic=meeting_type.is_public,
        maxBookingDays=meeting_type.max_booking_days,
        minNoticeHours=meeting_type.min_notice_hours,
        customQuestions=meeting_type.custom_questions,
    )


def slot_response(slot: Slot) -> SlotResponse:
    return SlotResponse(
        startTime=slot.start_time,
        endTime=slot.end_time,
        localStartTime=slot.local_start,
        localEndTime=slot.local_end,
        duration=slot.duration_minutes,
    )


def booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        confirmationCode=booking.confirmation_code,
        hostId=booking.host_id,
        meetingTypeId=booking.meeting_type_id,
        contactId=booking.contact_id,
        guestName=booking.guest_name,
        guestEmail=booking.guest_email,
        guestPhone=booking.guest_phone,
        startTime=ensure_utc(booking.start_time),
        endTime=ensure_utc(booking.end_time),
        duration=booking.duration_minutes,
        timezone=booking.timezone,
        locationType=booking.location_type,
        location=booking.location,
        status=booking.status,
        notes=booking.notes,
        customAnswers=booking.custom_answers,
        cancellationReason=booking.cancellation_reason,
        cancelledAt=ensure_utc(booking.cancelled_at) if booking.cancelled_at else None,
    )


# ============================================================================
# AVAILABILITY (host)
# ============================================================================


@router.post("/availability", response_model=AvailabilityResponse, status_code=201)
def create_availability(
    data: AvailabilityCreate,
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Add a weekly working-hours window for the current host"""
    window = service.create_availability(current_host.workspace_id, current_host.id, data)
    return availability_response(window)


@router.get("/availability", response_model=list[AvailabilityResponse])
def list_availability(
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
):
    windows = service.list_availability(current_host.workspace_id, current_host.id)
    return [availability_response(w) for w in windows]


@router.put("/availability/{window_id}", response_model=AvailabilityResponse)
def update_availability(
    window_id: int,
    data: AvailabilityUpdate,
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
):
    window = service.update_availability(current_host.workspace_id, window_id, data)
    return availability_response(window)


@router.delete("/availability/{window_id}", status_code=204)
def delete_availability(
    window_id: int,
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
):
    service.delete_availability(current_host.workspace_id, window_id)
    return Response(status_code=204)


# ============================================================================
# MEETING TYPES (host)
# ============================================================================


@router.post("/meeting-types", response_model=MeetingTypeResponse, status_code=201)
def create_meeting_type(
    data: MeetingTypeCreate,
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
):
    meeting_type = service.create_meeting_type(current_host.workspace_id, current_host.id, data)
    return meeting_type_response(meeting_type)


@router.get("/meeting-types", response_model=list[MeetingTypeResponse])
def list_meeting_types(
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
):
    meeting_types = service.list_meeting_types(current_host.workspace_id, current_host.id)
    return [meeting_type_response(m) for m in meeting_types]


@router.put("/meeting-types/{meeting_type_id}", response_model=MeetingTypeResponse)
def update_meeting_type(
    meeting_type_id: int,
    data: MeetingTypeUpdate,
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
):
    meeting_type = service.update_meeting_type(current_host.workspace_id, meeting_type_id, data)
    return meeting_type_response(meeting_type)


@router.delete("/meeting-types/{meeting_type_id}", status_code=204)
def delete_meeting_type(
    meeting_type_id: int,
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
):
    service.delete_meeting_type(current_host.workspace_id, meeting_type_id)
    return Response(status_code=204)


# ============================================================================
# BOOKINGS (host)
# ============================================================================


@router.get("/bookings", response_model=list[BookingResponse])
def list_bookings(
    current_host: User = Depends(get_current_host),
    service: SchedulingService = Depends(get_scheduling_service),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
):
    """Bookings on the current host's calendar, optionally within a date range"""
    bookings = service.list_bookings(
        current_host.workspace_id, current_host.id, start_date, end_date
    )
    return [booking_response(b) for b in bookings]


# ============================================================================
# PUBLIC BOOKING FLOW (no auth)
# ============================================================================


@router.get("/public/{slug}", response_model=MeetingTypeResponse)
def get_public_meeting_type(
    slug: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return meeting_type_response(service.get_public_meeting_type(slug))


@router.get("/public/{slug}/slots", response_model=list[SlotResponse])
def get_available_slots(
    slug: str,
    target_date: date = Query(..., alias="date", description="Date in YYYY-MM-DD format"),
    timezone: Optional[str] = Query(None),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Free start times for a public meeting type on one day"""
    slots = service.list_available_slots(slug, target_date, timezone)
    return [slot_response(s) for s in slots]


@router.post("/public/bookings", response_model=BookingResponse, status_code=201)
def create_public_booking(
    data: BookingCreate,
    service: SchedulingService = Depends(get_scheduling_service),
    _: None = Depends(public_booking_limit),
):
    booking = service.create_booking(data)
    return booking_response(booking)


@router.get("/public/bookings/{confirmation_code}", response_model=BookingResponse)
def get_booking_by_confirmation(
    confirmation_code: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return booking_response(service.get_booking_by_confirmation(confirmation_code.upper()))


@router.post("/public/bookings/{confirmation_code}/cancel", response_model=BookingResponse)
def cancel_booking(
    confirmation_code: str,
    data: Optional[CancelBookingRequest] = None,
    service: SchedulingService = Depends(get_scheduling_service),
    _: None = Depends(public_booking_limit),
):
    reason = data.reason if data else None
    booking = service.cancel_booking(confirmation_code.upper(), reason)
    return booking_response(booking)


@router.post("/public/bookings/{confirmation_code}/reschedule", response_model=BookingResponse)
def reschedule_booking(
    confirmation_code: str,
    data: RescheduleBookingRequest,
    service: SchedulingService = Depends(get_scheduling_service),
    _: None = Depends(public_booking_limit),
):
    booking = service.reschedule_booking(
        confirmation_code.upper(), data.newStartTime, data.timezone
    )
    return booking_response(booking)
