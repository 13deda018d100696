"""Booking router - FastAPI endpoints for booking operations"""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from ...cache import cache
from ...services.audit_notes import NoteDispatcher
from ...services.hubspot_service import HubSpotService, get_hubspot_service
from .schemas import BookingCancel, BookingCreate, BookingListQuery, StudentCredentials
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


def get_booking_service(
    background_tasks: BackgroundTasks,
    hubspot: HubSpotService = Depends(get_hubspot_service),
) -> BookingService:
    """Dependency injection for BookingService; notes run after the response"""
    notes = NoteDispatcher(hubspot, scheduler=background_tasks.add_task)
    return BookingService(hubspot, notes=notes, cache_instance=cache)


@router.post("/create", status_code=201)
async def create_booking(
    data: BookingCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Book a mock exam session and debit one credit"""
    result = await service.create_booking(data)
    return {"success": True, "data": result, "message": "Booking created successfully"}


@router.get("")
async def list_bookings(
    query: Annotated[BookingListQuery, Query()],
    service: BookingService = Depends(get_booking_service),
):
    """List the student's bookings"""
    result = await service.list_bookings(query)
    return {"success": True, "data": result}


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    credentials: Annotated[StudentCredentials, Query()],
    service: BookingService = Depends(get_booking_service),
):
    """Get one booking with its mock exam and enrollment"""
    result = await service.get_booking(booking_id, credentials)
    return {"success": True, "data": result, "message": "Successfully retrieved booking details"}


@router.delete("/{booking_id}")
async def cancel_booking(
    booking_id: str,
    data: BookingCancel,
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a booking, restoring the credit and the seat"""
    logger.info(f"📋 Cancellation requested for booking {booking_id}")
    result = await service.cancel_booking(booking_id, data)
    return {"success": True, "data": result, "message": "Booking cancelled successfully"}
