"""
HubSpot Webhook Handler
Recalculates mock exam capacity when bookings change in HubSpot
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..config import HUBSPOT_WEBHOOK_SECRET, WEBHOOK_SIGNATURE_REQUIRED
from ..domain.mock_exams.capacity import CapacityLedger
from ..domain.mock_exams.reconciliation import ReconciliationService
from ..domain.mock_exams.repository import MockExamRepository
from ..services.hubspot_service import HubSpotAPIError, HubSpotService, get_hubspot_service
from ..webhook_security import verify_hubspot_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def get_reconciliation_service(
    hubspot: HubSpotService = Depends(get_hubspot_service),
) -> ReconciliationService:
    return ReconciliationService(CapacityLedger(MockExamRepository(hubspot)))


@router.post("/booking-sync")
async def handle_booking_sync_webhook(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Handle HubSpot booking change events

    Always answers 200 so HubSpot does not retry-storm on permanent errors.
    Only a rate limit (429) or a bad signature (401) is reported as such.
    """
    if WEBHOOK_SIGNATURE_REQUIRED:
        try:
            body = await verify_hubspot_webhook(request, HUBSPOT_WEBHOOK_SECRET)
        except HTTPException as e:
            return JSONResponse(
                status_code=e.status_code,
                content={"success": False, "error": e.detail, "code": "UNAUTHORIZED"},
            )
    else:
        body = await request.body()

    try:
        events = json.loads(body.decode("utf-8")) if body else []
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("❌ Invalid JSON payload")
        events = []

    try:
        result = await service.reconcile_from_events(events)
    except HubSpotAPIError as e:
        if e.status == 429:
            logger.warning("⚠️ HubSpot rate limit hit while processing webhook")
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": e.message, "code": "RATE_LIMITED"},
            )
        logger.error(f"❌ Webhook error (returning 200 to prevent retries): {e.message}")
        result = {"processed": 0, "error": "Error processed, check logs", "message": e.message}
    except Exception as e:
        logger.error(f"❌ Webhook error (returning 200 to prevent retries): {e}")
        result = {"processed": 0, "error": "Error processed, check logs", "message": str(e)}

    return {"success": True, **result}
