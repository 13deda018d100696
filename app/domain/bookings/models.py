"""Booking record as stored in HubSpot"""

from typing import Any, Optional

from pydantic import BaseModel

# is_active values written by this service
ACTIVE = "Active"
CANCELLED = "Cancelled"

# Values that mark a booking as soft-deleted, including legacy spellings
_CANCELLED_STATUSES = {"canceled", "cancelled"}
_CANCELLED_FLAGS = {"cancelled", "canceled", "false"}

BOOKING_PROPERTIES = [
    "booking_id",
    "name",
    "email",
    "dominant_hand",
    "attending_location",
    "token_used",
    "is_active",
    "status",
    "createdate",
    "hs_createdate",
    "hs_lastmodifieddate",
]


def is_cancelled(properties: dict[str, Any]) -> bool:
    """True when either the status or the is_active flag marks a soft delete"""
    status = str(properties.get("status") or "").lower()
    flag = properties.get("is_active")
    if flag is False:
        return True
    return status in _CANCELLED_STATUSES or str(flag or "").lower() in _CANCELLED_FLAGS


class Booking(BaseModel):
    id: str
    booking_id: str = ""
    name: str = ""
    email: str = ""
    dominant_hand: Optional[bool] = None
    attending_location: Optional[str] = None
    token_used: Optional[str] = None
    is_active: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    contact_ids: list[str] = []
    mock_exam_ids: list[str] = []
    enrollment_ids: list[str] = []
    deal_ids: list[str] = []

    @property
    def cancelled(self) -> bool:
        return is_cancelled({"status": self.status, "is_active": self.is_active})

    @classmethod
    def from_hubspot(cls, obj: dict[str, Any], types=None) -> "Booking":
        """Build from a v3 object payload, reading expanded associations when present"""
        props = obj.get("properties") or {}
        hand = props.get("dominant_hand")

        booking = cls(
            id=str(obj["id"]),
            booking_id=props.get("booking_id") or "",
            name=props.get("name") or "",
            email=props.get("email") or "",
            dominant_hand=None if hand in (None, "") else str(hand).lower() == "true",
            attending_location=props.get("attending_location") or None,
            token_used=props.get("token_used") or None,
            is_active=props.get("is_active"),
            status=props.get("status"),
            created_at=props.get("createdate") or props.get("hs_createdate"),
            updated_at=props.get("hs_lastmodifieddate"),
        )

        if types is not None:
            associations = obj.get("associations") or {}
            booking.contact_ids = _association_ids(associations, types.contacts, "contacts")
            booking.mock_exam_ids = _association_ids(associations, types.mock_exams)
            booking.enrollment_ids = _association_ids(associations, types.enrollments)
            booking.deal_ids = _association_ids(associations, types.deals, "deals")
        return booking


def _association_ids(associations: dict, *keys: str) -> list[str]:
    """
    Read ids from an expanded association block.

    HubSpot keys the block by object type id or by plural name depending on
    the object, and uses ``id`` or ``toObjectId`` depending on API version.
    """
    for key in keys:
        block = associations.get(key)
        if block:
            return [str(r.get("toObjectId") or r.get("id")) for r in block.get("results", [])]
    return []
