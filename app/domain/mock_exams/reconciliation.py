"""
Reconciliation service

Re-derives session capacity from live bookings, either for the sessions
touched by a batch of HubSpot webhook events or for a list of sessions about
to be shown to a student.
"""

import asyncio
import logging
from typing import Any, Iterable

from ...services.hubspot_service import HubSpotAPIError
from .capacity import CapacityLedger
from .repository import MockExam

logger = logging.getLogger(__name__)

# Event kinds that can change how many live bookings a session has
RECONCILE_EVENT_KINDS = ("associationChange", "deletion", "propertyChange", "creation")


def is_reconcile_event(event: Any) -> bool:
    if not isinstance(event, dict):
        return False
    subscription_type = str(event.get("subscriptionType") or "")
    return subscription_type.rsplit(".", 1)[-1] in RECONCILE_EVENT_KINDS and bool(event.get("objectId"))


class ReconciliationService:
    def __init__(self, capacity: CapacityLedger):
        self.capacity = capacity
        self.hubspot = capacity.hubspot

    async def affected_session_ids(self, events: Iterable[dict]) -> list[str]:
        """
        Follow each event's booking to its sessions.

        A booking that can no longer be read (e.g. already archived) is logged
        and skipped. Ids are deduplicated, first-seen order kept.
        """
        types = self.hubspot.types
        session_ids: dict[str, None] = {}

        for event in events:
            if not is_reconcile_event(event):
                continue
            booking_id = str(event["objectId"])
            try:
                ids = await self.hubspot.list_associations(types.bookings, booking_id, types.mock_exams)
            except HubSpotAPIError as e:
                if e.status == 429:
                    raise
                logger.warning(f"⚠️ Could not get sessions for booking {booking_id}: {e.message}")
                continue
            for session_id in ids:
                session_ids[session_id] = None

        return list(session_ids)

    async def reconcile_sessions(self, session_ids: list[str]) -> tuple[int, int]:
        """Recount each session independently; returns (updated, failed)"""
        results = await asyncio.gather(
            *[self.capacity.recalculate_and_persist(sid) for sid in session_ids],
            return_exceptions=True,
        )

        failed = 0
        for session_id, result in zip(session_ids, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.error(f"❌ Failed to recalculate session {session_id}: {result}")
        return len(session_ids) - failed, failed

    async def reconcile_from_events(self, events: Any) -> dict[str, Any]:
        """Handle one webhook delivery"""
        if not isinstance(events, list) or not events:
            logger.info("📋 No webhook events to process")
            return {"processed": 0, "updatedExams": 0, "failedUpdates": 0, "message": "No events to process"}

        logger.info(f"🔄 Processing {len(events)} webhook events")
        session_ids = await self.affected_session_ids(events)

        if not session_ids:
            return {
                "processed": len(events),
                "updatedExams": 0,
                "failedUpdates": 0,
                "message": "No mock exams needed updates",
            }

        updated, failed = await self.reconcile_sessions(session_ids)
        result = {
            "processed": len(events),
            "updatedExams": updated,
            "failedUpdates": failed,
            "message": f"Processed {len(events)} events, updated {updated} mock exams",
        }
        logger.info(f"✅ Webhook processing complete: {result}")
        return result

    async def refresh_sessions(self, exams: list[MockExam]) -> list[MockExam]:
        """
        Replace each session's cached counter with a live recount.

        Counts come from batch reads and drifted counters are written back in
        one batch update. When the recount fails every session keeps its
        cached value; a failed write-back is only logged.
        """
        if not exams:
            return []

        try:
            live_counts = await self.capacity.count_live_bookings_many([exam.id for exam in exams])
        except Exception as e:
            logger.error(f"❌ Realtime recount failed, using cached values: {e}")
            return exams

        refreshed = []
        updates = []
        for exam in exams:
            live = live_counts.get(exam.id, 0)
            if live != exam.total_bookings:
                logger.info(f"🔄 Session {exam.id} drifted: cached {exam.total_bookings}, live {live}")
                updates.append({"id": exam.id, "properties": {"total_bookings": live}})
            refreshed.append(exam.model_copy(update={"total_bookings": live}))

        if updates:
            try:
                await self.hubspot.batch_update_objects(self.hubspot.types.mock_exams, updates)
            except Exception as e:
                logger.error(f"❌ Failed to write back {len(updates)} corrected counters: {e}")

        return refreshed
