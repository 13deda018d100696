"""Mock exam service - available session listing"""

import logging
from datetime import date
from typing import Optional

from ...cache import Cache, build_exam_list_key, cache
from ...config import EXAM_LIST_CACHE_TTL
from ...shared.validators import parse_exam_date
from .reconciliation import ReconciliationService
from .repository import MockExam, MockExamRepository
from .schemas import AvailableExamsQuery, MockExamSummary

logger = logging.getLogger(__name__)

# At or below this many seats a session is shown as limited
LIMITED_THRESHOLD = 3


def availability_status(available_slots: int) -> str:
    if available_slots == 0:
        return "full"
    if available_slots <= LIMITED_THRESHOLD:
        return "limited"
    return "available"


def summarize(exam: MockExam) -> MockExamSummary:
    slots = exam.available_slots
    return MockExamSummary(
        mock_exam_id=exam.id,
        exam_date=exam.exam_date,
        start_time=exam.start_time,
        end_time=exam.end_time,
        mock_type=exam.mock_type,
        capacity=exam.capacity,
        total_bookings=exam.total_bookings,
        available_slots=slots,
        location=exam.location or "TBD",
        is_active=True,
        status=availability_status(slots),
    )


def _sort_key(summary: MockExamSummary) -> date:
    return parse_exam_date(summary.exam_date) or date.max


class MockExamService:
    """Service layer for the available exam listing"""

    def __init__(
        self,
        mock_exams: MockExamRepository,
        reconciliation: ReconciliationService,
        cache_instance: Optional[Cache] = None,
    ):
        self.mock_exams = mock_exams
        self.reconciliation = reconciliation
        self.cache = cache_instance or cache

    async def list_available_exams(self, query: AvailableExamsQuery) -> list[dict]:
        """
        Active sessions of one type with their capacity.

        ``realtime`` skips the cache read and recounts every session before
        building the list. Full sessions are dropped unless
        ``include_capacity`` is set.
        """
        mock_type = query.mock_type.value
        cache_key = build_exam_list_key(mock_type, query.include_capacity, query.realtime)

        if not query.realtime:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"🎯 Cache HIT for {cache_key}")
                return cached

        logger.info(f"📋 Fetching {mock_type} sessions from HubSpot (key: {cache_key})")
        exams = await self.mock_exams.search_active(mock_type)

        if query.realtime and exams:
            exams = await self.reconciliation.refresh_sessions(exams)

        summaries = [summarize(exam) for exam in exams]
        if not query.include_capacity:
            summaries = [s for s in summaries if s.available_slots > 0]
        summaries.sort(key=_sort_key)

        result = [s.model_dump() for s in summaries]
        self.cache.set(cache_key, result, EXAM_LIST_CACHE_TTL)
        logger.info(f"💾 Cached {len(result)} exams with key: {cache_key}")
        return result
