"""Mock exam repository - HubSpot reads and writes for exam sessions"""

import logging
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel

from ...services.hubspot_service import HubSpotService
from ...shared.validators import parse_exam_date, parse_int

logger = logging.getLogger(__name__)

MOCK_EXAM_PROPERTIES = [
    "exam_date",
    "start_time",
    "end_time",
    "capacity",
    "total_bookings",
    "mock_type",
    "location",
    "is_active",
]

# HubSpot search caps one page of active sessions
ACTIVE_SESSION_LIMIT = 20


class MockExam(BaseModel):
    """A bookable mock exam session"""

    id: str
    exam_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    mock_type: Optional[str] = None
    location: Optional[str] = None
    capacity: int = 0
    total_bookings: int = 0
    is_active: bool = False

    @property
    def available_slots(self) -> int:
        return max(0, self.capacity - self.total_bookings)

    @property
    def is_full(self) -> bool:
        return self.total_bookings >= self.capacity

    @property
    def exam_day(self) -> Optional[date]:
        return parse_exam_date(self.exam_date)

    @classmethod
    def from_hubspot(cls, obj: dict[str, Any]) -> "MockExam":
        props = obj.get("properties") or {}
        return cls(
            id=str(obj["id"]),
            exam_date=props.get("exam_date"),
            start_time=props.get("start_time"),
            end_time=props.get("end_time"),
            mock_type=props.get("mock_type"),
            location=props.get("location") or None,
            capacity=max(0, parse_int(props.get("capacity"))),
            total_bookings=max(0, parse_int(props.get("total_bookings"))),
            is_active=str(props.get("is_active", "")).lower() == "true",
        )


class MockExamRepository:
    """Repository for mock exam session records in HubSpot"""

    def __init__(self, hubspot: HubSpotService):
        self.hubspot = hubspot
        self.object_type = hubspot.types.mock_exams

    async def get_mock_exam(self, mock_exam_id: str) -> Optional[MockExam]:
        obj = await self.hubspot.get_object(
            self.object_type, mock_exam_id, properties=MOCK_EXAM_PROPERTIES
        )
        return MockExam.from_hubspot(obj) if obj else None

    async def get_mock_exams(self, mock_exam_ids: list[str]) -> dict[str, MockExam]:
        """Batch read sessions keyed by id; ids that no longer resolve are absent"""
        objs = await self.hubspot.batch_read_objects(
            self.object_type, list(dict.fromkeys(mock_exam_ids)), properties=MOCK_EXAM_PROPERTIES
        )
        exams = [MockExam.from_hubspot(obj) for obj in objs]
        return {exam.id: exam for exam in exams}

    async def search_active(
        self, mock_type: Optional[str] = None, limit: int = ACTIVE_SESSION_LIMIT
    ) -> list[MockExam]:
        """Active sessions, optionally of one type, soonest first"""
        filters = [{"propertyName": "is_active", "operator": "EQ", "value": "true"}]
        if mock_type:
            filters.append({"propertyName": "mock_type", "operator": "EQ", "value": mock_type})

        result = await self.hubspot.search_objects(
            self.object_type,
            filters=filters,
            properties=MOCK_EXAM_PROPERTIES,
            sorts=[{"propertyName": "exam_date", "direction": "ASCENDING"}],
            limit=limit,
        )
        return [MockExam.from_hubspot(obj) for obj in result["results"]]

    async def set_total_bookings(self, mock_exam_id: str, total: int) -> None:
        await self.hubspot.update_object(self.object_type, mock_exam_id, {"total_bookings": total})

    async def list_booking_ids(self, mock_exam_id: str) -> list[str]:
        """Ids of every booking associated to the session, including cancelled ones"""
        return await self.hubspot.list_associations(
            self.object_type, mock_exam_id, self.hubspot.types.bookings
        )
