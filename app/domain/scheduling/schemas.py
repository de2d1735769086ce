"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import (
    validate_email,
    validate_hex_color,
    validate_phone,
    validate_time_of_day,
    validate_timezone,
)
from ...utils.sanitization import (
    sanitize_answers,
    sanitize_string,
    validate_and_sanitize_input,
)

# ============================================================================
# AVAILABILITY
# ============================================================================


class AvailabilityCreate(BaseModel):
    """Schema for a recurring weekly working-hours window"""

    dayOfWeek: int = Field(ge=0, le=6)  # 0=Sunday
    startTime: str
    endTime: str
    isActive: Optional[bool] = True
    timezone: Optional[str] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return validate_time_of_day(v)

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v) if v else v

    @model_validator(mode="after")
    def check_order(self):
        if self.startTime >= self.endTime:
            raise ValueError("startTime must be before endTime")
        return self


class AvailabilityUpdate(BaseModel):
    dayOfWeek: Optional[int] = Field(default=None, ge=0, le=6)
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    isActive: Optional[bool] = None
    timezone: Optional[str] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return validate_time_of_day(v) if v else v

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v) if v else v


class AvailabilityResponse(BaseModel):
    id: int
    hostId: int
    dayOfWeek: int
    startTime: str
    endTime: str
    timezone: str
    isActive: bool


# ============================================================================
# MEETING TYPES
# ============================================================================


class CustomQuestion(BaseModel):
    id: str
    question: str
    type: Literal["text", "textarea", "select", "checkbox"]
    required: bool = False
    options: Optional[list[str]] = None


class MeetingTypeCreate(BaseModel):
    """Schema for creating a bookable meeting type"""

    name: str = Field(min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    duration: int = Field(ge=5, le=480)
    bufferBefore: int = Field(default=0, ge=0, le=120)
    bufferAfter: int = Field(default=0, ge=0, le=120)
    locationType: str = "zoom"
    location: Optional[str] = None
    color: str = "#3B82F6"
    isActive: bool = True
    isPublic: bool = False
    maxBookingDays: int = Field(default=60, ge=1, le=365)
    minNoticeHours: int = Field(default=0, ge=0, le=168)
    customQuestions: Optional[list[CustomQuestion]] = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return validate_hex_color(v)


class MeetingTypeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=5, le=480)
    bufferBefore: Optional[int] = Field(default=None, ge=0, le=120)
    bufferAfter: Optional[int] = Field(default=None, ge=0, le=120)
    locationType: Optional[str] = None
    location: Optional[str] = None
    color: Optional[str] = None
    isActive: Optional[bool] = None
    isPublic: Optional[bool] = None
    maxBookingDays: Optional[int] = Field(default=None, ge=1, le=365)
    minNoticeHours: Optional[int] = Field(default=None, ge=0, le=168)
    customQuestions: Optional[list[CustomQuestion]] = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return validate_hex_color(v) if v else v


class MeetingTypeResponse(BaseModel):
    id: int
    hostId: int
    name: str
    slug: str
    description: Optional[str] = None
    duration: int
    bufferBefore: int
    bufferAfter: int
    locationType: str
    location: Optional[str] = None
    color: str
    isActive: bool
    isPublic: bool
    maxBookingDays: int
    minNoticeHours: int
    customQuestions: Optional[list[dict]] = None


# ============================================================================
# SLOTS & BOOKINGS
# ============================================================================


class SlotResponse(BaseModel):
    startTime: datetime  # UTC
    endTime: datetime  # UTC
    localStartTime: datetime  # In the requested timezone
    localEndTime: datetime
    duration: int


class BookingCreate(BaseModel):
    """Schema for a public booking request"""

    meetingTypeId: int
    guestName: str = Field(min_length=1, max_length=255)
    guestEmail: str
    guestPhone: Optional[str] = None
    startTime: datetime  # Naive values are read in `timezone`
    timezone: str = "UTC"
    notes: Optional[str] = None
    customAnswers: Optional[dict[str, Any]] = None

    @field_validator("guestName")
    @classmethod
    def sanitize_name(cls, v):
        return sanitize_string(v.strip())

    @field_validator("notes")
    @classmethod
    def sanitize_notes(cls, v):
        return validate_and_sanitize_input(v, max_length=2000)

    @field_validator("customAnswers")
    @classmethod
    def sanitize_custom_answers(cls, v):
        return sanitize_answers(v)

    @field_validator("guestEmail")
    @classmethod
    def validate_guest_email(cls, v):
        return validate_email(v)

    @field_validator("guestPhone")
    @classmethod
    def validate_guest_phone(cls, v):
        return validate_phone(v) if v else v

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v):
        return validate_and_sanitize_input(v, max_length=2000) or None


class RescheduleBookingRequest(BaseModel):
    newStartTime: datetime
    timezone: Optional[str] = None  # Defaults to the booking's timezone for naive values

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v) if v else v


class BookingResponse(BaseModel):
    id: int
    confirmationCode: str
    hostId: int
    meetingTypeId: Optional[int] = None
    contactId: Optional[int] = None
    guestName: str
    guestEmail: str
    guestPhone: Optional[str] = None
    startTime: datetime
    endTime: datetime
    duration: int
    timezone: str
    locationType: str
    location: Optional[str] = None
    status: str
    notes: Optional[str] = None
    customAnswers: Optional[dict[str, Any]] = None
    cancellationReason: Optional[str] = None
    cancelledAt: Optional[datetime] = None
