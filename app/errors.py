"""
Booking error taxonomy
Every failure surfaced to API callers carries a stable code and HTTP status
"""

from typing import Optional


class BookingError(Exception):
    """Raised when a booking operation must stop and report a classified failure"""

    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}

    # Named constructors keep codes and statuses in one place

    @classmethod
    def exam_not_found(cls) -> "BookingError":
        return cls("Mock exam not found", "EXAM_NOT_FOUND", 404)

    @classmethod
    def exam_not_active(cls) -> "BookingError":
        return cls("Mock exam is not available for booking", "EXAM_NOT_ACTIVE", 400)

    @classmethod
    def exam_full(cls) -> "BookingError":
        return cls("This mock exam session is now full", "EXAM_FULL", 400)

    @classmethod
    def duplicate_booking(cls) -> "BookingError":
        return cls(
            "Duplicate booking detected: You already have a booking for this exam date",
            "DUPLICATE_BOOKING",
            400,
        )

    @classmethod
    def insufficient_credits(cls) -> "BookingError":
        return cls("Insufficient credits for booking", "INSUFFICIENT_CREDITS", 400)

    @classmethod
    def contact_not_found(cls) -> "BookingError":
        return cls("Contact not found", "CONTACT_NOT_FOUND", 404)

    @classmethod
    def booking_not_found(cls) -> "BookingError":
        return cls("Booking not found", "BOOKING_NOT_FOUND", 404)

    @classmethod
    def already_canceled(cls) -> "BookingError":
        return cls("Booking is already cancelled", "ALREADY_CANCELED", 409)

    @classmethod
    def exam_in_past(cls) -> "BookingError":
        return cls("Cannot cancel a booking for an exam that has already taken place", "EXAM_IN_PAST", 409)

    @classmethod
    def auth_failed(cls) -> "BookingError":
        return cls(
            "Authentication failed. Please check your Student ID and email.", "AUTH_FAILED", 401
        )

    @classmethod
    def access_denied(cls) -> "BookingError":
        return cls("Access denied. This booking does not belong to you.", "ACCESS_DENIED", 403)

    @classmethod
    def validation_error(cls, message: str) -> "BookingError":
        return cls(f"Invalid input: {message}", "VALIDATION_ERROR", 400)

    @classmethod
    def internal(cls, message: Optional[str] = None) -> "BookingError":
        return cls(message or "Internal server error", "INTERNAL_ERROR", 500)
