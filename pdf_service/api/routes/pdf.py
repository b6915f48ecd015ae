"""
PDF Routes
==========

FastAPI routes for PDF generation from templates, raw HTML and URLs.
Errors propagate as ``PDFServiceError`` and are shaped by the application's
exception handlers.
"""

from fastapi import APIRouter, Depends

from pdf_service.api.dependencies import get_orchestrator
from pdf_service.core.orchestrator import PDFOrchestrator
from pdf_service.models.schemas import (
    FromHTMLRequest,
    FromURLRequest,
    GenerateRequest,
    PDFResponse,
)

router = APIRouter(prefix="/pdf", tags=["PDF"])


@router.post("/generate", response_model=PDFResponse, response_model_exclude_none=True)
async def generate_pdf(
    request: GenerateRequest, orchestrator: PDFOrchestrator = Depends(get_orchestrator)
) -> PDFResponse:
    """
    Generate a PDF from a stored template.

    Payload: ``{template_specifications: {id, folder?, locale?}, data: {...}, options?}``
    """
    payload = await orchestrator.generate_from_template(
        request.template_specifications, request.data, request.options
    )
    return PDFResponse(data=payload)


@router.post("/from-html", response_model=PDFResponse, response_model_exclude_none=True)
async def generate_from_html(
    request: FromHTMLRequest, orchestrator: PDFOrchestrator = Depends(get_orchestrator)
) -> PDFResponse:
    """Generate a PDF from raw HTML."""
    payload = await orchestrator.generate_from_html(request.html, request.options)
    return PDFResponse(data=payload)


@router.post("/from-url", response_model=PDFResponse, response_model_exclude_none=True)
async def generate_from_url(
    request: FromURLRequest, orchestrator: PDFOrchestrator = Depends(get_orchestrator)
) -> PDFResponse:
    """Generate a PDF from a remote page."""
    payload = await orchestrator.generate_from_url(request.url, request.options)
    return PDFResponse(data=payload)
