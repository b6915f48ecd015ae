"""
FastAPI Application
==================

Main FastAPI application with REST endpoints for PDF generation.
All core errors are mapped to the ``{success: false, error}`` envelope here.
"""

from contextlib import asynccontextmanager
import asyncio
import os
import signal
import uuid
from typing import AsyncGenerator, Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pdf_service.api.routes.health import router as health_router
from pdf_service.api.routes.pdf import router as pdf_router
from pdf_service.config.logging import get_logger, setup_logging
from pdf_service.config.settings import Settings, get_settings
from pdf_service.core.errors import EngineStartupError, PDFServiceError
from pdf_service.core.locales.store import LocaleStore
from pdf_service.core.orchestrator import PDFOrchestrator
from pdf_service.core.rendering.engine import PDFRenderingEngine
from pdf_service.core.templates.store import TemplateStore
from pdf_service.models.schemas import EngineState, ErrorResponse

logger = get_logger(__name__)

VALUE_ERROR_PREFIX = "Value error, "


def build_orchestrator(settings: Settings) -> PDFOrchestrator:
    """Wire the core components for one application instance."""
    return PDFOrchestrator(
        engine=PDFRenderingEngine(settings),
        templates=TemplateStore(settings.templates_path),
        locales=LocaleStore(
            settings.locales_path, settings.supported_locales, settings.default_locale
        ),
        settings=settings,
    )


def validation_message(exc: RequestValidationError) -> str:
    """Human readable summary of request validation errors."""
    messages = []
    for error in exc.errors():
        message = str(error.get("msg", "Invalid request"))
        if message.startswith(VALUE_ERROR_PREFIX):
            messages.append(message[len(VALUE_ERROR_PREFIX):])
            continue
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {message}" if field else message)
    return "; ".join(messages) or "Invalid request"


def terminate_process() -> None:
    """Ask the server to stop; the lifespan shutdown then closes the browser."""
    os.kill(os.getpid(), signal.SIGTERM)


def error_response(
    request: Request,
    status_code: int,
    message: str,
    error_code: Optional[str] = None,
    details: Optional[dict] = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=message,
        error_code=error_code,
        details=details,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


def create_app(
    settings: Optional[Settings] = None, orchestrator: Optional[PDFOrchestrator] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to use, the global settings when omitted
        orchestrator: Pre-built orchestrator, built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        logger.info("Starting FastAPI application", environment=settings.environment)
        try:
            yield
        finally:
            logger.info("Shutting down FastAPI application")
            try:
                await app.state.orchestrator.shutdown()
                logger.info("Rendering engine shut down")
            except Exception as e:
                logger.error("Error shutting down rendering engine", error=str(e))

    app = FastAPI(
        title=settings.app_name,
        description="Convert templates, HTML and web pages to PDF documents",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def limit_payload_size(request: Request, call_next) -> Any:  # type: ignore
        """Reject bodies larger than the configured maximum."""
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > settings.max_payload_bytes:
                max_mb = settings.max_payload_bytes // (1024 * 1024)
                return error_response(
                    request,
                    413,
                    f"Payload too large. Maximum size is {max_mb}MB",
                    error_code="PAYLOAD_TOO_LARGE",
                )
        return await call_next(request)

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next) -> Any:  # type: ignore
        """Add request ID to all requests."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # Exception handlers
    @app.exception_handler(PDFServiceError)
    async def service_error_handler(request: Request, exc: PDFServiceError) -> JSONResponse:
        """Map core errors to the error envelope."""
        logger.error(
            "Request failed",
            error=exc.message,
            error_code=exc.error_code,
            kind=exc.kind.value,
            status_code=exc.status_code,
            path=request.url.path,
            request_id=getattr(request.state, "request_id", None),
        )

        engine_state = request.app.state.orchestrator.engine.state
        if (
            isinstance(exc, EngineStartupError)
            and settings.exit_on_engine_failure
            and engine_state not in (EngineState.CLOSING, EngineState.CLOSED)
        ):
            logger.critical("Browser cannot be launched, terminating process")
            asyncio.get_running_loop().call_later(0.5, terminate_process)

        return error_response(
            request,
            exc.status_code,
            exc.message,
            error_code=exc.error_code,
            details={"kind": exc.kind.value} if settings.debug else None,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Invalid request bodies are caller errors."""
        message = validation_message(exc)
        logger.warning("Request validation failed", error=message, path=request.url.path)
        return error_response(request, 400, message, error_code="VALIDATION_ERROR")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """HTTP errors (unknown routes, wrong methods) in the same envelope."""
        return error_response(request, exc.status_code, str(exc.detail), error_code=str(exc.status_code))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """General exception handler for unexpected errors."""
        logger.error(
            "Unhandled exception",
            exception=str(exc),
            request_id=getattr(request.state, "request_id", None),
            exc_info=True,
        )
        return error_response(
            request,
            500,
            "Internal server error",
            error_code="INTERNAL_ERROR",
            details={"exception": str(exc)} if settings.debug else None,
        )

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, Any]:
        """Service description and endpoint map."""
        prefix = settings.api_prefix
        return {
            "success": True,
            "message": settings.app_name,
            "version": settings.app_version,
            "endpoints": {
                "health": f"GET {prefix}/health",
                "generate": f"POST {prefix}/pdf/generate",
                "from_html": f"POST {prefix}/pdf/from-html",
                "from_url": f"POST {prefix}/pdf/from-url",
            },
        }

    app.include_router(health_router, prefix=settings.api_prefix)
    app.include_router(pdf_router, prefix=settings.api_prefix)

    return app


def run() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pdf_service.api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
