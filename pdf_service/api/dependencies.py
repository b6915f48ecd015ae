"""
API Dependencies
================

FastAPI dependencies resolving per-application components.
"""

from fastapi import Request

from pdf_service.core.orchestrator import PDFOrchestrator


def get_orchestrator(request: Request) -> PDFOrchestrator:
    """The orchestrator owned by the running application."""
    return request.app.state.orchestrator
