"""Mock exam domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel

from ...shared.mock_types import MockType


class AvailableExamsQuery(BaseModel):
    """Query for the available exam listing"""

    mock_type: MockType
    include_capacity: bool = True
    realtime: bool = False


class MockExamSummary(BaseModel):
    """One session as shown in the listing"""

    mock_exam_id: str
    exam_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    mock_type: Optional[str] = None
    capacity: int
    total_bookings: int
    available_slots: int
    location: str = "TBD"
    is_active: bool = True
    status: str
