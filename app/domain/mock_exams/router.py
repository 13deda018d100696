"""Mock exam router - FastAPI endpoints for session listing"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...cache import cache
from ...services.hubspot_service import HubSpotService, get_hubspot_service
from .capacity import CapacityLedger
from .reconciliation import ReconciliationService
from .repository import MockExamRepository
from .schemas import AvailableExamsQuery
from .service import MockExamService

router = APIRouter(prefix="/api/mock-exams", tags=["Mock Exams"])


def get_mock_exam_service(hubspot: HubSpotService = Depends(get_hubspot_service)) -> MockExamService:
    """Dependency injection for MockExamService"""
    repository = MockExamRepository(hubspot)
    reconciliation = ReconciliationService(CapacityLedger(repository))
    return MockExamService(repository, reconciliation, cache_instance=cache)


@router.get("/available")
async def list_available_exams(
    query: Annotated[AvailableExamsQuery, Query()],
    service: MockExamService = Depends(get_mock_exam_service),
):
    """Active sessions of one type with their remaining capacity"""
    exams = await service.list_available_exams(query)
    return {"success": True, "data": exams}
