"""
Request Orchestrator
====================

Composes the locale store, template store and rendering engine for each API
request and shapes the PDF payload returned to the caller.
"""

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pdf_service.config.logging import get_logger
from pdf_service.config.settings import Settings, get_settings
from pdf_service.core.errors import CallerError
from pdf_service.core.locales.store import LocaleStore
from pdf_service.core.rendering.engine import PDFRenderingEngine
from pdf_service.core.templates.store import TemplateStore
from pdf_service.models.schemas import (
    OutputOptions,
    PDFPayload,
    RenderRequest,
    TemplateSpecification,
)

logger = get_logger(__name__)

LABELS_KEY = "labels"


def lookup(data: Mapping[str, Any], dotted_path: str) -> Any:
    """Follow ``a.b.c`` through nested mappings; None when any step is missing."""
    current: Any = data
    for part in dotted_path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def slugify(text: str) -> str:
    return re.sub(r"\s+", "-", text.strip()).lower()


class PDFOrchestrator:
    """Entry point used by the API routes."""

    def __init__(
        self,
        engine: PDFRenderingEngine,
        templates: TemplateStore,
        locales: LocaleStore,
        settings: Optional[Settings] = None,
    ):
        self.engine = engine
        self.templates = templates
        self.locales = locales
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="orchestrator")  # structlog.BoundLoggerBase

    async def generate_from_template(
        self,
        template_specifications: Optional[TemplateSpecification],
        data: Optional[Dict[str, Any]],
        options: Optional[OutputOptions] = None,
    ) -> PDFPayload:
        """
        Render a stored template with data to PDF.

        Args:
            template_specifications: Template id, optional folder and locale
            data: Template data; a ``labels`` entry suppresses locale injection
            options: Output options, defaults when omitted

        Returns:
            PDFPayload including a derived filename

        Raises:
            CallerError: If the template specification or data is missing
        """
        if template_specifications is None:
            raise CallerError("template_specifications is required")
        if data is None:
            raise CallerError("Data is required")

        spec = template_specifications
        context = await self.inject_labels(spec, data)

        compiled = await self.templates.resolve(spec.id, spec.folder)
        html = await compiled.render(context)

        self.logger.info(
            "Template rendered",
            template=spec.id,
            folder=spec.folder,
            locale=spec.locale,
            html_length=len(html),
        )

        document = await self.engine.render(
            RenderRequest(markup=html, options=options or OutputOptions())
        )
        return PDFPayload.from_document(document, filename=self.build_filename(spec.id, data))

    async def generate_from_html(
        self, html: Optional[str], options: Optional[OutputOptions] = None
    ) -> PDFPayload:
        """Render raw HTML to PDF."""
        if not html:
            raise CallerError("HTML content is required")
        document = await self.engine.render(
            RenderRequest(markup=html, options=options or OutputOptions())
        )
        return PDFPayload.from_document(document)

    async def generate_from_url(
        self, url: Optional[str], options: Optional[OutputOptions] = None
    ) -> PDFPayload:
        """Navigate to a URL and render it to PDF."""
        if not url:
            raise CallerError("URL is required")
        document = await self.engine.render(
            RenderRequest(source_url=url, options=options or OutputOptions())
        )
        return PDFPayload.from_document(document)

    async def inject_labels(
        self, spec: TemplateSpecification, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Return template context with locale labels merged in.

        Labels already present in ``data`` always win and the locale store is
        not consulted. Otherwise the request locale, or the namespace default,
        selects the labels. The caller's mapping is never mutated.
        """
        if data.get(LABELS_KEY) is not None:
            return data

        locale = spec.locale or self.settings.namespace_locales.get(spec.folder or "")
        if not locale:
            return data

        label_set = await self.locales.resolve(locale)
        context = dict(data)
        context[LABELS_KEY] = label_set.labels
        return context

    def build_filename(
        self, template_id: str, data: Mapping[str, Any], on: Optional[date] = None
    ) -> str:
        """``<id>-<identifier-slug>-<YYYY-MM-DD>.pdf``, or ``<id>-report-<date>.pdf``."""
        stamp = (on or datetime.now(timezone.utc).date()).isoformat()
        identifier = lookup(data, self.settings.filename_identifier_field)
        if isinstance(identifier, str) and identifier.strip():
            base = f"{template_id}-{slugify(identifier)}"
        else:
            base = f"{template_id}-report"
        return f"{base}-{stamp}.pdf"

    def cache_sizes(self) -> Dict[str, int]:
        return {
            "templates": len(self.templates.cached_keys()),
            "locales": len(self.locales.cached_locales()),
        }

    async def shutdown(self) -> None:
        await self.engine.shutdown()
