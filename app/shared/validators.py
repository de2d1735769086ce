"""Shared validation utilities"""

import re
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TIME_OF_DAY_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")
PHONE_PATTERN = re.compile(r"^[+]?[\d\s\-\(\)]+$")
HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate a guest phone number (international formats allowed).

    Returns:
        Stripped phone number

    Raises:
        ValueError: If phone number contains anything but digits, spaces, dashes, parens and a leading +
    """
    if not phone:
        return phone

    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)

    if not PHONE_PATTERN.match(phone) or not 7 <= len(digits) <= 15:
        raise ValueError("Invalid phone number")

    return phone


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_time_of_day(value: str) -> str:
    """
    Validate an HH:MM wall-clock time and zero-pad it ("9:05" -> "09:05").

    Raises:
        ValueError: If not a valid 24h time
    """
    match = TIME_OF_DAY_PATTERN.match(value.strip()) if value else None
    if not match:
        raise ValueError("Time must be in HH:MM format")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def validate_timezone(value: str) -> str:
    """
    Validate an IANA timezone name (e.g. America/New_York).

    Raises:
        ValueError: If the zone is unknown
    """
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {value}") from None
    return value


def validate_hex_color(value: str) -> str:
    if not HEX_COLOR_PATTERN.match(value):
        raise ValueError("Color must be in #RRGGBB format")
    return value.upper()
