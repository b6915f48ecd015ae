"""
Pydantic Models and Schemas
===========================

Output options, render requests/results, and the API request/response envelopes.
Caller-facing validation (page format, landscape flag) lives here so invalid
options are rejected before they reach the rendering engine.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums
class PageFormat(str, Enum):
    """Paper sizes accepted by the renderer."""
    A4 = "A4"
    LETTER = "Letter"
    LEGAL = "Legal"
    A3 = "A3"
    A5 = "A5"
    TABLOID = "Tabloid"


VALID_FORMATS = [page_format.value for page_format in PageFormat]


class EngineState(str, Enum):
    """Lifecycle states of the shared browser process."""
    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    READY = "ready"
    CRASHED = "crashed"
    FAILED = "failed"
    CLOSING = "closing"
    CLOSED = "closed"


# Rendering Models
class Margins(BaseModel):
    """Page margins as CSS lengths."""
    top: str = "10mm"
    right: str = "10mm"
    bottom: str = "10mm"
    left: str = "10mm"


class OutputOptions(BaseModel):
    """Options applied when printing a page to PDF."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    page_format: PageFormat = Field(PageFormat.A4, alias="format", description="Paper size")
    landscape: bool = Field(False, description="Landscape orientation")
    margins: Margins = Field(default_factory=Margins, alias="margin", description="Page margins")
    print_background: bool = Field(
        True, alias="printBackground", description="Print background graphics"
    )
    display_header_footer: bool = Field(
        False, alias="displayHeaderFooter", description="Render header and footer templates"
    )
    header_markup: str = Field("", alias="headerTemplate", description="Header HTML template")
    footer_markup: str = Field("", alias="footerTemplate", description="Footer HTML template")
    prefer_declared_page_size: bool = Field(
        False, alias="preferCSSPageSize", description="Prefer CSS @page size over format"
    )
    render_timeout_ms: Optional[int] = Field(
        None, alias="timeout", gt=0, description="Content load timeout in milliseconds"
    )

    @field_validator("page_format", mode="before")
    @classmethod
    def validate_format(cls, v: Any) -> Any:
        """Reject paper sizes outside the supported set."""
        if isinstance(v, PageFormat):
            return v
        if v not in VALID_FORMATS:
            raise ValueError(f"Invalid format. Allowed values: {', '.join(VALID_FORMATS)}")
        return v

    @field_validator("landscape", mode="before")
    @classmethod
    def validate_landscape(cls, v: Any) -> Any:
        """Only real booleans are accepted, no "true"/1 coercion."""
        if not isinstance(v, bool):
            raise ValueError("Landscape must be a boolean value")
        return v

    def to_pdf_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for Playwright's ``page.pdf``."""
        return {
            "format": self.page_format.value,
            "landscape": self.landscape,
            "margin": self.margins.model_dump(),
            "print_background": self.print_background,
            "display_header_footer": self.display_header_footer,
            "header_template": self.header_markup,
            "footer_template": self.footer_markup,
            "prefer_css_page_size": self.prefer_declared_page_size,
        }


class RenderRequest(BaseModel):
    """A single render job: either markup or a URL, never both."""

    model_config = ConfigDict(frozen=True)

    markup: Optional[str] = Field(None, description="HTML content to render")
    source_url: Optional[str] = Field(None, description="URL to navigate to and render")
    options: OutputOptions = Field(default_factory=OutputOptions, description="Output options")


class RenderedDocument(BaseModel):
    """Result of PDF generation."""
    pdf_data: bytes = Field(..., description="PDF binary data", exclude=True)
    base64_data: str = Field(..., description="Base64 encoded PDF data")
    encoding: str = Field("base64", description="Encoding of base64_data")
    mime_type: str = Field("application/pdf", description="MIME type")
    size_bytes: int = Field(..., description="File size in bytes")
    page_format: str = Field(..., description="Effective page format")


# API Request Models
class TemplateSpecification(BaseModel):
    """Which template to render and in which locale."""
    id: str = Field(..., min_length=1, description="Template name (file name without .html)")
    folder: Optional[str] = Field(None, description="Template namespace")
    locale: Optional[str] = Field(None, description="Locale for injected labels")


class GenerateRequest(BaseModel):
    """Body of POST /pdf/generate."""
    template_specifications: Optional[TemplateSpecification] = None
    data: Optional[Dict[str, Any]] = None
    options: Optional[OutputOptions] = None


class FromHTMLRequest(BaseModel):
    """Body of POST /pdf/from-html."""
    html: Optional[str] = None
    options: Optional[OutputOptions] = None


class FromURLRequest(BaseModel):
    """Body of POST /pdf/from-url."""
    url: Optional[str] = None
    options: Optional[OutputOptions] = None


# API Response Models
class PDFPayload(BaseModel):
    """The ``data`` member of a successful PDF response."""
    base64: str
    mimeType: str
    size: int
    format: str
    filename: Optional[str] = None

    @classmethod
    def from_document(
        cls, document: RenderedDocument, filename: Optional[str] = None
    ) -> "PDFPayload":
        return cls(
            base64=document.base64_data,
            mimeType=document.mime_type,
            size=document.size_bytes,
            format=document.page_format,
            filename=filename,
        )


class PDFResponse(BaseModel):
    """Successful PDF response envelope."""
    success: bool = True
    data: PDFPayload


class HealthResponse(BaseModel):
    """Basic liveness response."""
    success: bool = True
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class EngineStats(BaseModel):
    """Snapshot of the rendering engine."""
    state: EngineState
    launches: int = Field(0, ge=0, description="Browser launches since start")
    renders: int = Field(0, ge=0, description="Successful renders")
    failures: int = Field(0, ge=0, description="Failed renders")
    open_contexts: int = Field(0, ge=0, description="Pages currently open")
    memory_mb: Optional[float] = Field(None, description="Service process RSS in MB")
    last_error: Optional[str] = None


class DetailedHealthResponse(HealthResponse):
    """Health response with component details."""
    version: str
    engine: EngineStats
    cached_templates: int = 0
    cached_locales: int = 0


class ErrorResponse(BaseModel):
    """Standard error response model."""
    success: bool = False
    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")


# Locale Models
class LocaleLabelSet(BaseModel):
    """Labels loaded for one supported locale."""

    model_config = ConfigDict(frozen=True)

    locale: str = Field(..., description="Resolved (supported) locale code")
    labels: Dict[str, Any] = Field(default_factory=dict, description="Label key to text")
