"""
Error Taxonomy
==============

Exceptions raised by the core components. Each carries an ``ErrorKind`` and the
HTTP status the API layer maps it to; the mapping itself happens in one place
(``pdf_service.api.main``).
"""

import re
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure classes surfaced to callers."""

    CALLER = "caller"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    FATAL = "fatal"


class PDFServiceError(Exception):
    """Base class for every error raised by the service core."""

    kind: ErrorKind = ErrorKind.TRANSIENT
    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def error_code(self) -> str:
        """SCREAMING_SNAKE_CASE name derived from the class name."""
        return re.sub(
            r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", type(self).__name__
        ).upper()


class CallerError(PDFServiceError):
    """Malformed or missing request fields."""

    kind = ErrorKind.CALLER
    status_code = 400


class TemplateNotFound(PDFServiceError):
    """No template source exists for the requested name and namespace."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, name: str, namespace: Optional[str] = None):
        location = f"{namespace}/{name}" if namespace else name
        super().__init__(f"Template not found: {location}")
        self.name = name
        self.namespace = namespace


class TemplateRenderError(PDFServiceError):
    """A template failed to compile or to render against the supplied data."""

    kind = ErrorKind.TRANSIENT
    status_code = 500


class LocaleUnavailable(PDFServiceError):
    """Neither the requested nor the default locale could be loaded."""

    kind = ErrorKind.NOT_FOUND
    status_code = 500

    def __init__(self, locale: str):
        super().__init__(f"Failed to load translations for locale \"{locale}\"")
        self.locale = locale


class RenderError(PDFServiceError):
    """The rendering backend rejected the content or the output options."""

    kind = ErrorKind.TRANSIENT
    status_code = 500


class ContentLoadTimeout(RenderError):
    """Content did not reach network quiescence within the render timeout."""


class ContextCreationError(RenderError):
    """A page could not be opened on the browser, even after one relaunch."""


class EngineStartupError(PDFServiceError):
    """The browser process could not be launched."""

    kind = ErrorKind.FATAL
    status_code = 500
