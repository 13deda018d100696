"""Booking repository - HubSpot reads and writes for booking records"""

import logging
from typing import Any, Optional

from ...services.hubspot_service import HubSpotService
from .models import ACTIVE, BOOKING_PROPERTIES, CANCELLED, Booking, is_cancelled

logger = logging.getLogger(__name__)

ENROLLMENT_PROPERTIES = ["enrollment_id", "course_id", "enrollment_status"]

# Search page size for the duplicate check; one key rarely has more records
DUPLICATE_SEARCH_LIMIT = 100


def booking_key(name: str, exam_date: str) -> str:
    """Composite key that identifies one student's booking for one exam date"""
    return f"{name} - {exam_date}"


class BookingRepository:
    """Repository for booking records in HubSpot"""

    def __init__(self, hubspot: HubSpotService):
        self.hubspot = hubspot
        self.types = hubspot.types
        self.object_type = hubspot.types.bookings

    async def find_live_by_key(self, key: str) -> Optional[Booking]:
        """
        Existing booking with this key that has not been cancelled.

        Search drops the common Cancelled flag; legacy soft-delete spellings
        and cancelled statuses are filtered with ``is_cancelled``.
        """
        result = await self.hubspot.search_objects(
            self.object_type,
            filters=[
                {"propertyName": "booking_id", "operator": "EQ", "value": key},
                {"propertyName": "is_active", "operator": "NEQ", "value": CANCELLED},
            ],
            properties=BOOKING_PROPERTIES,
            limit=DUPLICATE_SEARCH_LIMIT,
        )
        for obj in result["results"]:
            if not is_cancelled(obj.get("properties") or {}):
                return Booking.from_hubspot(obj)
        return None

    async def create_booking(
        self,
        key: str,
        name: str,
        email: str,
        token_used: str,
        dominant_hand: Optional[bool] = None,
        attending_location: Optional[str] = None,
    ) -> Booking:
        properties: dict[str, Any] = {
            "booking_id": key,
            "name": name,
            "email": email,
            "token_used": token_used,
            "is_active": ACTIVE,
        }
        if dominant_hand is not None:
            properties["dominant_hand"] = dominant_hand
        if attending_location:
            properties["attending_location"] = attending_location

        created = await self.hubspot.create_object(self.object_type, properties)
        logger.info(f"✅ Booking created: {created['id']} ({key})")
        return Booking.from_hubspot(created)

    async def get_booking(self, booking_id: str, with_associations: bool = False) -> Optional[Booking]:
        associations = None
        if with_associations:
            associations = [
                self.types.contacts,
                self.types.mock_exams,
                self.types.enrollments,
                self.types.deals,
            ]
        obj = await self.hubspot.get_object(
            self.object_type, booking_id, properties=BOOKING_PROPERTIES, associations=associations
        )
        return Booking.from_hubspot(obj, self.types if with_associations else None) if obj else None

    async def get_bookings(self, booking_ids: list[str]) -> list[Booking]:
        objs = await self.hubspot.batch_read_objects(
            self.object_type, booking_ids, properties=BOOKING_PROPERTIES
        )
        return [Booking.from_hubspot(obj) for obj in objs]

    async def soft_delete(self, booking_id: str) -> None:
        await self.hubspot.update_object(self.object_type, booking_id, {"is_active": CANCELLED})

    async def archive(self, booking_id: str) -> None:
        await self.hubspot.archive_object(self.object_type, booking_id)

    async def associate(self, booking_id: str, to_type: str, to_id: str) -> Any:
        return await self.hubspot.create_association(self.object_type, booking_id, to_type, to_id)

    async def mock_exam_ids(self, booking_id: str) -> list[str]:
        return await self.hubspot.list_associations(self.object_type, booking_id, self.types.mock_exams)

    async def booking_ids_for_contact(self, contact_id: str) -> list[str]:
        return await self.hubspot.list_associations(self.types.contacts, contact_id, self.object_type)

    async def get_enrollment(self, enrollment_id: str) -> Optional[dict]:
        obj = await self.hubspot.get_object(
            self.types.enrollments, enrollment_id, properties=ENROLLMENT_PROPERTIES
        )
        if not obj:
            return None
        props = obj.get("properties") or {}
        return {
            "id": str(obj["id"]),
            "enrollment_id": props.get("enrollment_id") or "",
            "course_id": props.get("course_id") or "",
            "enrollment_status": props.get("enrollment_status") or "",
        }
