"""Booking domain schemas - Pydantic models for validation"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.mock_types import AttendingLocation, MockType, requires_dominant_hand
from ...shared.validators import validate_email, validate_student_id


class StudentCredentials(BaseModel):
    """Student id + email pair used to authenticate every booking call"""

    student_id: str
    email: str

    @field_validator("student_id")
    @classmethod
    def check_student_id(cls, v):
        return validate_student_id(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class BookingCreate(StudentCredentials):
    """Schema for creating a booking"""

    mock_exam_id: str = Field(min_length=1)
    contact_id: str = Field(min_length=1)
    enrollment_id: Optional[str] = None
    name: str = Field(min_length=2, max_length=100)
    mock_type: MockType
    exam_date: str = Field(min_length=1)
    dominant_hand: Optional[bool] = None
    attending_location: Optional[AttendingLocation] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters long")
        return v

    @model_validator(mode="after")
    def check_type_attributes(self):
        # Handedness and attending location are mutually exclusive per mock type
        if requires_dominant_hand(self.mock_type):
            if self.dominant_hand is None:
                raise ValueError("Dominant hand selection is required for Clinical Skills exams")
            self.attending_location = None
        else:
            if self.attending_location is None:
                raise ValueError(
                    "Attending location is required for Situational Judgment and Mini-mock exams"
                )
            self.dominant_hand = None
        return self


class BookingCancel(StudentCredentials):
    """Schema for cancelling a booking"""

    reason: Optional[str] = Field(None, max_length=500)


class BookingListQuery(StudentCredentials):
    """Query for a student's bookings"""

    filter: Literal["all", "upcoming", "past"] = "all"
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


def format_validation_errors(errors: list[dict]) -> str:
    """Join pydantic error messages into one readable line"""
    messages = []
    for error in errors:
        message = str(error.get("msg", "Invalid value"))
        message = message.removeprefix("Value error, ")
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        if field and error.get("type") != "value_error":
            message = f"{field}: {message}"
        messages.append(message)
    return ", ".join(messages)
