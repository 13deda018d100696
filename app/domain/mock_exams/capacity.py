"""
Capacity ledger

Two views of how many seats a session has taken:
- the cached ``total_bookings`` counter on the session (fast, can drift)
- a live recount of associated bookings that still resolve and are not
  soft-deleted (slow, authoritative)
"""

import logging

from ..bookings.models import is_cancelled
from .repository import MockExam, MockExamRepository

logger = logging.getLogger(__name__)


class CapacityLedger:
    def __init__(self, mock_exams: MockExamRepository):
        self.mock_exams = mock_exams
        self.hubspot = mock_exams.hubspot

    @staticmethod
    def available_slots(exam: MockExam) -> int:
        """Fast path: seats left according to the cached counter"""
        return exam.available_slots

    async def count_live_bookings(self, mock_exam_id: str) -> int:
        """Slow path: count associated bookings that are neither archived nor cancelled"""
        booking_ids = await self.mock_exams.list_booking_ids(mock_exam_id)
        if not booking_ids:
            return 0

        # Archived bookings are dropped from batch read results
        bookings = await self.hubspot.batch_read_objects(
            self.hubspot.types.bookings, booking_ids, properties=["is_active", "status"]
        )
        live = sum(1 for b in bookings if not is_cancelled(b.get("properties") or {}))

        if live != len(booking_ids):
            logger.debug(
                f"📋 Session {mock_exam_id}: {len(booking_ids)} associated, "
                f"{len(bookings)} resolved, {live} live"
            )
        return live

    async def count_live_bookings_many(self, mock_exam_ids: list[str]) -> dict[str, int]:
        """
        Slow path for many sessions with batch calls only: one association
        read, one booking read and no per-session requests.
        """
        types = self.hubspot.types
        associated = await self.hubspot.batch_read_associations(types.mock_exams, mock_exam_ids, types.bookings)

        booking_ids = list(dict.fromkeys(b for ids in associated.values() for b in ids))
        bookings = await self.hubspot.batch_read_objects(
            types.bookings, booking_ids, properties=["is_active", "status"]
        )
        live_ids = {str(b["id"]) for b in bookings if not is_cancelled(b.get("properties") or {})}

        return {
            str(mock_exam_id): sum(1 for b in associated.get(str(mock_exam_id), []) if b in live_ids)
            for mock_exam_id in mock_exam_ids
        }

    async def recalculate_and_persist(self, mock_exam_id: str) -> int:
        """Recount live bookings and overwrite the cached counter; idempotent"""
        count = await self.count_live_bookings(mock_exam_id)
        await self.mock_exams.set_total_bookings(mock_exam_id, count)
        logger.info(f"✅ Session {mock_exam_id} total_bookings set to {count}")
        return count
