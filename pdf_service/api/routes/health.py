"""
Health Routes
=============

FastAPI routes for health check endpoints.
"""

from fastapi import APIRouter, Depends

from pdf_service.api.dependencies import get_orchestrator
from pdf_service.core.orchestrator import PDFOrchestrator
from pdf_service.models.schemas import DetailedHealthResponse, HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(message="PDF Service API is running")


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    orchestrator: PDFOrchestrator = Depends(get_orchestrator),
) -> DetailedHealthResponse:
    """Health check including engine state and cache sizes."""
    caches = orchestrator.cache_sizes()
    return DetailedHealthResponse(
        message="PDF Service API is running",
        version=orchestrator.settings.app_version,
        engine=orchestrator.engine.stats(),
        cached_templates=caches["templates"],
        cached_locales=caches["locales"],
    )
