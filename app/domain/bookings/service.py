"""
Booking service - create, cancel and read bookings

HubSpot offers no multi-object transactions, so create and cancel are ordered
writes with compensations run through a Saga.
"""

import asyncio
import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from ...cache import Cache, invalidate_exam_listing_cache
from ...config import DEFAULT_EXAM_LOCATION
from ...errors import BookingError
from ...services.audit_notes import NoteDispatcher
from ...services.hubspot_service import HubSpotAPIError, HubSpotService
from ...services.saga import Saga
from ..contacts.repository import Contact, ContactRepository
from ..contacts.service import IdentityResolver
from ..credits.ledger import credit_breakdown, plan_debit, plan_restore
from ..mock_exams.repository import MockExam, MockExamRepository
from .models import Booking
from .repository import BookingRepository, booking_key
from .schemas import BookingCancel, BookingCreate, BookingListQuery, StudentCredentials

logger = logging.getLogger(__name__)


def _exam_details(exam: MockExam) -> dict[str, Any]:
    return {
        "id": exam.id,
        "exam_date": exam.exam_date,
        "mock_type": exam.mock_type,
        "location": exam.location or DEFAULT_EXAM_LOCATION,
        "capacity": exam.capacity,
        "total_bookings": exam.total_bookings,
        "start_time": exam.start_time or "",
        "end_time": exam.end_time or "",
    }


def _booking_summary(booking: Booking, exam: Optional[MockExam] = None) -> dict[str, Any]:
    return {
        "id": booking.id,
        "booking_id": booking.booking_id,
        "name": booking.name,
        "email": booking.email,
        "dominant_hand": booking.dominant_hand,
        "attending_location": booking.attending_location,
        "token_used": booking.token_used,
        "status": "cancelled" if booking.cancelled else "active",
        "created_at": booking.created_at or "",
        "updated_at": booking.updated_at or "",
        "mock_exam": _exam_details(exam) if exam else None,
    }


class BookingService:
    """Service layer for the booking lifecycle"""

    def __init__(
        self,
        hubspot: HubSpotService,
        notes: Optional[NoteDispatcher] = None,
        cache_instance: Optional[Cache] = None,
        today: Callable[[], date] = date.today,
    ):
        self.hubspot = hubspot
        self.bookings = BookingRepository(hubspot)
        self.contacts = ContactRepository(hubspot)
        self.identity = IdentityResolver(self.contacts)
        self.mock_exams = MockExamRepository(hubspot)
        self.notes = notes or NoteDispatcher(hubspot)
        self.cache = cache_instance
        self.today = today

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_booking(self, data: BookingCreate) -> dict[str, Any]:
        """Book one seat on a mock exam session and debit one credit"""
        mock_type = data.mock_type.value
        logger.info(
            f"📝 Processing booking request: contact {data.contact_id}, "
            f"exam {data.mock_exam_id}, {mock_type} on {data.exam_date}"
        )

        exam = await self.mock_exams.get_mock_exam(data.mock_exam_id)
        if not exam:
            raise BookingError.exam_not_found()
        if not exam.is_active:
            raise BookingError.exam_not_active()
        if exam.is_full:
            logger.warning(
                f"⚠️ Session {exam.id} is full ({exam.total_bookings}/{exam.capacity})"
            )
            raise BookingError.exam_full()

        key = booking_key(data.name, data.exam_date)
        if await self.bookings.find_live_by_key(key):
            logger.warning(f"⚠️ Duplicate booking attempt: {key}")
            raise BookingError.duplicate_booking()

        contact = await self.contacts.get_contact(data.contact_id)
        if not contact:
            raise BookingError.contact_not_found()

        breakdown = credit_breakdown(mock_type, contact.credits)
        if breakdown.total <= 0:
            raise BookingError.insufficient_credits()
        debit = plan_debit(mock_type, contact.credits)
        logger.info(
            f"💳 Credit to be deducted: {debit.credit_field} "
            f"({debit.previous_balance} -> {debit.new_balance})"
        )

        booking = await self.bookings.create_booking(
            key=key,
            name=data.name,
            email=data.email,
            token_used=debit.token_used,
            dominant_hand=data.dominant_hand,
            attending_location=data.attending_location.value if data.attending_location else None,
        )

        try:
            associations = await self._associate(booking.id, contact.id, exam.id, data.enrollment_id)

            saga = Saga(f"create booking {booking.id}")
            saga.step(
                "increment_total_bookings",
                lambda: self.mock_exams.set_total_bookings(exam.id, exam.total_bookings + 1),
                lambda _: self.mock_exams.set_total_bookings(exam.id, exam.total_bookings),
            )
            saga.step(
                "debit_credit",
                lambda: self.contacts.set_credit_balance(contact.id, debit.credit_field, debit.new_balance),
            )
            await saga.run()
        except Exception as e:
            logger.error(f"❌ Booking {booking.id} failed after creation, archiving it: {e}")
            try:
                await self.bookings.archive(booking.id)
                logger.info(f"🔄 Archived booking {booking.id}")
            except Exception as cleanup_error:
                logger.error(f"❌ Failed to archive booking {booking.id}: {cleanup_error}")
            raise

        self._invalidate_listing(mock_type)
        self.notes.booking_confirmed(
            contact.id,
            booking_id=key,
            name=data.name,
            email=data.email,
            mock_type=mock_type,
            exam_date=data.exam_date,
            location=exam.location,
            dominant_hand=data.dominant_hand,
            attending_location=data.attending_location.value if data.attending_location else None,
        )

        if associations["warnings"]:
            logger.warning(f"⚠️ Booking successful with association warnings: {associations['warnings']}")
        else:
            logger.info(f"✅ Booking {key} and all associations successful")

        return {
            "booking_id": key,
            "booking_record_id": booking.id,
            "confirmation_message": f"Your booking for {mock_type} on {data.exam_date} has been confirmed",
            "exam_details": {
                "mock_exam_id": exam.id,
                "exam_date": data.exam_date,
                "mock_type": mock_type,
                "location": exam.location or DEFAULT_EXAM_LOCATION,
            },
            "remaining_credits": debit.new_balance,
            "credit_deducted_from": debit.credit_field,
            "credit_details": {
                "credit_field_deducted": debit.credit_field,
                "token_used": debit.token_used,
                "remaining_credits": debit.new_balance,
                "credit_breakdown": {
                    "specific_credits_before_deduction": breakdown.specific_credits,
                    "shared_credits_before_deduction": breakdown.shared_credits,
                    "used_field": debit.credit_field,
                },
            },
            "associations": associations,
        }

    async def _associate(
        self, booking_id: str, contact_id: str, mock_exam_id: str, enrollment_id: Optional[str]
    ) -> dict[str, Any]:
        """Create each association independently; failures become warnings"""
        types = self.hubspot.types
        targets = [("contact", types.contacts, contact_id), ("mock_exam", types.mock_exams, mock_exam_id)]
        if enrollment_id:
            targets.append(("enrollment", types.enrollments, enrollment_id))

        results = []
        warnings = []
        for label, to_type, to_id in targets:
            try:
                await self.bookings.associate(booking_id, to_type, to_id)
                results.append({"type": label, "success": True})
            except HubSpotAPIError as e:
                logger.error(f"❌ Failed to associate booking {booking_id} with {label} {to_id}: {e.message}")
                results.append({"type": label, "success": False, "error": e.message})
                warnings.append(f"{label.replace('_', ' ').capitalize()} association failed")

        succeeded = {r["type"] for r in results if r["success"]}
        return {
            "results": results,
            "warnings": warnings,
            "critical_success": {"contact", "mock_exam"} <= succeeded,
        }

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_booking(self, booking_id: str, data: BookingCancel) -> dict[str, Any]:
        """Soft-delete a booking, restore its credit and free its seat"""
        contact = await self.identity.authenticate(data.student_id, data.email)
        booking = await self._owned_booking(booking_id, contact)

        if booking.cancelled:
            logger.warning(f"⚠️ Booking {booking_id} already cancelled")
            raise BookingError.already_canceled()

        exam = await self._booking_exam(booking)
        if not exam:
            raise BookingError.exam_not_found()
        exam_day = exam.exam_day
        if exam_day and exam_day < self.today():
            raise BookingError.exam_in_past()

        restore = plan_restore(exam.mock_type, contact.credits, booking.token_used)
        new_total = max(0, exam.total_bookings - 1)

        saga = Saga(f"cancel booking {booking.id}")
        saga.step(
            "restore_credit",
            lambda: self.contacts.set_credit_balance(contact.id, restore.credit_field, restore.new_balance),
            lambda _: self.contacts.set_credit_balance(
                contact.id, restore.credit_field, restore.previous_balance
            ),
        )
        saga.step(
            "decrement_total_bookings",
            lambda: self.mock_exams.set_total_bookings(exam.id, new_total),
            lambda _: self.mock_exams.set_total_bookings(exam.id, exam.total_bookings),
        )
        saga.step("soft_delete", lambda: self.bookings.soft_delete(booking.id))

        try:
            await saga.run()
        except HubSpotAPIError as e:
            raise BookingError.internal(f"Failed to cancel booking: {e.message}") from e

        canceled_at = datetime.now(timezone.utc).isoformat()
        logger.info(f"✅ Booking {booking.id} cancelled, restored 1 {restore.credit_field}")

        if exam.mock_type:
            self._invalidate_listing(exam.mock_type)
        if booking.deal_ids:
            self.notes.booking_cancelled(
                booking.deal_ids[0],
                booking_id=booking.booking_id or booking.id,
                mock_type=exam.mock_type or "Unknown",
                exam_date=exam.exam_date,
                credit_field=restore.credit_field,
                amount=restore.amount,
                reason=data.reason,
            )

        return {
            "canceled_booking": {
                "id": booking.id,
                "booking_id": booking.booking_id,
                "mock_type": exam.mock_type,
                "exam_date": exam.exam_date,
                "canceled_at": canceled_at,
                "reason": data.reason,
            },
            "credits_restored": {
                "credit_field": restore.credit_field,
                "token_used": restore.token_used,
                "amount": restore.amount,
                "new_balance": restore.new_balance,
            },
            "mock_exam_updated": {
                "mock_exam_id": exam.id,
                "previous_total_bookings": exam.total_bookings,
                "new_total_bookings": new_total,
                "available_slots": max(0, exam.capacity - new_total),
            },
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: str, credentials: StudentCredentials) -> dict[str, Any]:
        """Booking detail with its session and enrollment"""
        contact = await self.identity.authenticate(credentials.student_id, credentials.email)
        booking = await self._owned_booking(booking_id, contact)

        exam = None
        try:
            exam = await self._booking_exam(booking)
        except HubSpotAPIError as e:
            logger.warning(f"⚠️ Failed to fetch mock exam details: {e.message}")

        enrollment = None
        if booking.enrollment_ids:
            try:
                enrollment = await self.bookings.get_enrollment(booking.enrollment_ids[0])
            except HubSpotAPIError as e:
                logger.warning(f"⚠️ Failed to fetch enrollment details: {e.message}")

        summary = _booking_summary(booking)
        summary.pop("mock_exam")
        return {
            "booking": summary,
            "mock_exam": _exam_details(exam) if exam else None,
            "contact": {
                "id": contact.id,
                "firstname": contact.firstname,
                "lastname": contact.lastname,
                "student_id": contact.student_id or "",
            },
            "enrollment": enrollment,
        }

    async def list_bookings(self, query: BookingListQuery) -> dict[str, Any]:
        """A student's bookings filtered by exam date, one page at a time"""
        contact = await self.identity.authenticate(query.student_id, query.email)

        booking_ids = await self.bookings.booking_ids_for_contact(contact.id)
        bookings = await self.bookings.get_bookings(booking_ids)

        exam_ids_per_booking = await asyncio.gather(
            *[self.bookings.mock_exam_ids(b.id) for b in bookings]
        )
        all_exam_ids = [ids[0] for ids in exam_ids_per_booking if ids]
        exams = await self.mock_exams.get_mock_exams(all_exam_ids) if all_exam_ids else {}

        today = self.today()
        rows: list[tuple[Booking, Optional[MockExam]]] = []
        for booking, exam_ids in zip(bookings, exam_ids_per_booking):
            exam = exams.get(exam_ids[0]) if exam_ids else None
            exam_day = exam.exam_day if exam else None

            if query.filter == "upcoming" and (booking.cancelled or not exam_day or exam_day < today):
                continue
            if query.filter == "past" and (not exam_day or exam_day >= today):
                continue
            rows.append((booking, exam))

        def sort_key(row):
            exam = row[1]
            return (exam.exam_day if exam else None) or date.max

        rows.sort(key=sort_key, reverse=query.filter == "past")

        total = len(rows)
        total_pages = math.ceil(total / query.limit) if total else 0
        start = (query.page - 1) * query.limit
        page_rows = rows[start : start + query.limit]

        logger.info(f"📋 Listed {len(page_rows)} of {total} bookings for contact {contact.id}")
        return {
            "bookings": [_booking_summary(b, e) for b, e in page_rows],
            "pagination": {
                "current_page": query.page,
                "total_pages": total_pages,
                "total_bookings": total,
                "has_next": query.page < total_pages,
                "has_previous": query.page > 1,
            },
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _owned_booking(self, booking_id: str, contact: Contact) -> Booking:
        booking = await self.bookings.get_booking(booking_id, with_associations=True)
        if not booking:
            raise BookingError.booking_not_found()
        if str(contact.id) not in booking.contact_ids:
            logger.warning(f"⚠️ Contact {contact.id} does not own booking {booking_id}")
            raise BookingError.access_denied()
        return booking

    async def _booking_exam(self, booking: Booking) -> Optional[MockExam]:
        exam_ids = booking.mock_exam_ids or await self.bookings.mock_exam_ids(booking.id)
        if not exam_ids:
            return None
        return await self.mock_exams.get_mock_exam(exam_ids[0])

    def _invalidate_listing(self, mock_type: str) -> None:
        invalidate_exam_listing_cache(mock_type, self.cache)
