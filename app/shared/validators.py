"""Shared validation and HubSpot value parsing utilities"""

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

STUDENT_ID_PATTERN = re.compile(r"^[A-Z0-9]+$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def validate_student_id(student_id: Optional[str]) -> str:
    """
    Validate a student identifier.

    Raises:
        ValueError: If the id is empty or not uppercase letters and digits
    """
    if not student_id:
        raise ValueError("Student ID is required")

    student_id = student_id.strip()
    if not STUDENT_ID_PATTERN.match(student_id):
        raise ValueError("Student ID must contain only uppercase letters and numbers")
    return student_id


def validate_email(email: Optional[str]) -> str:
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
        raise ValueError("Email is required")

    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Please enter a valid email address")
    return email


def parse_int(value: Any, default: int = 0) -> int:
    """Parse a HubSpot numeric property (always delivered as a string)"""
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def parse_exam_date(value: Any) -> Optional[date]:
    """
    Parse a HubSpot date property.

    HubSpot returns dates either as ``YYYY-MM-DD`` or as an ISO datetime at
    midnight UTC; epoch milliseconds show up on older portals.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc).date()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
