"""
Audit notes on HubSpot timelines

Booking confirmations go on the contact timeline, cancellations on the
student's deal. Notes are best effort: they run after the response is built
and a failure only ends up in the dead-letter log.
"""

import asyncio
import logging
from datetime import datetime, timezone
from html import escape
from typing import Any, Awaitable, Callable, Optional

from ..config import DEFAULT_EXAM_LOCATION
from ..shared.validators import parse_exam_date
from .hubspot_service import HubSpotService

logger = logging.getLogger(__name__)
dead_letter_logger = logging.getLogger(f"{__name__}.dead_letter")

Scheduler = Callable[..., Any]


def _format_exam_date(exam_date: Optional[str]) -> str:
    parsed = parse_exam_date(exam_date)
    if not parsed:
        return escape(exam_date or "Unknown")
    return f"{parsed.strftime('%A, %B')} {parsed.day}, {parsed.year}"


def booking_note_body(
    booking_id: str,
    name: str,
    email: str,
    mock_type: str,
    exam_date: Optional[str],
    location: Optional[str] = None,
    dominant_hand: Optional[bool] = None,
    attending_location: Optional[str] = None,
) -> str:
    """HTML body for the booking confirmation note"""
    booked_on = datetime.now(timezone.utc).isoformat()

    if dominant_hand is not None:
        attribute_row = f"<li><strong>Dominant Hand:</strong> {'Right' if dominant_hand else 'Left'}</li>"
    elif attending_location:
        label = attending_location.replace("_", " ").title()
        attribute_row = f"<li><strong>Attending Location:</strong> {escape(label)}</li>"
    else:
        attribute_row = ""

    return f"""
        <h3>📅 Mock Exam Booking Confirmed</h3>

        <p><strong>Booking Details:</strong></p>
        <ul>
          <li><strong>Booking ID:</strong> {escape(booking_id)}</li>
          <li><strong>Exam Type:</strong> {escape(mock_type)}</li>
          <li><strong>Exam Date:</strong> {_format_exam_date(exam_date)}</li>
          <li><strong>Location:</strong> {escape(location or DEFAULT_EXAM_LOCATION)}</li>
          {attribute_row}
          <li><strong>Booked On:</strong> {booked_on}</li>
        </ul>

        <p><strong>Student Information:</strong></p>
        <ul>
          <li><strong>Name:</strong> {escape(name)}</li>
          <li><strong>Email:</strong> {escape(email)}</li>
        </ul>

        <hr style="margin: 15px 0; border: 0; border-top: 1px solid #e0e0e0;">
        <p style="font-size: 12px; color: #666;">
          <em>This booking was automatically confirmed through the Mock Exam Booking System.</em>
        </p>
    """


def cancellation_note_body(
    booking_id: str,
    mock_type: str,
    exam_date: Optional[str],
    credit_field: str,
    amount: int = 1,
    reason: Optional[str] = None,
) -> str:
    """HTML body for the cancellation note"""
    canceled_at = datetime.now(timezone.utc).isoformat()
    reason_row = f"<strong>Reason:</strong> {escape(reason)}\n" if reason else ""

    return (
        "❌ <strong>Booking Canceled</strong>\n"
        "━━━━━━━━━━━━━━━━━━━━━━\n"
        f"<strong>Booking ID:</strong> {escape(booking_id)}\n"
        f"<strong>Mock Type:</strong> {escape(mock_type)}\n"
        f"<strong>Exam Date:</strong> {escape(exam_date or 'Unknown')}\n"
        f"<strong>Canceled At:</strong> {canceled_at}\n"
        f"{reason_row}"
        f"<strong>Credits Restored:</strong> {amount} {escape(credit_field)}\n"
        "━━━━━━━━━━━━━━━━━━━━━━\n"
        "<em>Automated cancellation via booking system</em>"
    )


class NoteDispatcher:
    """
    Writes audit notes off the request path.

    ``scheduler`` is anything with the ``BackgroundTasks.add_task`` signature.
    Without one, notes run as tracked asyncio tasks; ``drain`` waits for them.
    """

    def __init__(self, hubspot: HubSpotService, scheduler: Optional[Scheduler] = None):
        self.hubspot = hubspot
        self.scheduler = scheduler
        self._pending: set[asyncio.Task] = set()

    def _schedule(self, label: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        if self.scheduler is not None:
            self.scheduler(self._run, label, func, *args)
            return
        task = asyncio.create_task(self._run(label, func, *args))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run(self, label: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        try:
            note = await func(*args)
            logger.info(f"✅ {label} note created: {(note or {}).get('id')}")
        except Exception as e:
            dead_letter_logger.error(f"❌ {label} note failed: {e}", extra={"note_args": args})

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def booking_confirmed(self, contact_id: str, **details: Any) -> None:
        body = booking_note_body(**details)
        self._schedule(
            f"Booking {details.get('booking_id')}",
            self.hubspot.create_note,
            body,
            contact_id,
            self.hubspot.types.note_contact_association,
        )

    def booking_cancelled(self, deal_id: str, **details: Any) -> None:
        body = cancellation_note_body(**details)
        self._schedule(
            f"Cancellation {details.get('booking_id')}",
            self.hubspot.create_note,
            body,
            deal_id,
            self.hubspot.types.note_deal_association,
        )
