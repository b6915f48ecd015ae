"""
Template Store
==============

Resolves templates at ``<templates_path>/[<namespace>/]<name>.html``, compiles
them with Jinja2 and caches the compiled result per ``(namespace, name)`` for
the lifetime of the process.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import aiofiles
import jinja2

from pdf_service.config.logging import get_logger
from pdf_service.config.settings import get_settings
from pdf_service.core.concurrency import SingleFlight
from pdf_service.core.errors import PDFServiceError, TemplateNotFound, TemplateRenderError
from pdf_service.core.templates.helpers import register_helpers

logger = get_logger(__name__)

TEMPLATE_SUFFIX = ".html"
_SEGMENT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

TemplateKey = Tuple[str, str]


@dataclass(frozen=True)
class CompiledTemplate:
    """A compiled template and the cache key it was stored under."""

    key: TemplateKey
    template: jinja2.Template = field(repr=False, compare=False)

    async def render(self, data: Mapping[str, Any]) -> str:
        """
        Render the template against ``data``.

        Raises:
            TemplateRenderError: If rendering fails for the given data
        """
        try:
            return await self.template.render_async(data)
        except jinja2.TemplateError as e:
            raise TemplateRenderError(f"Template rendering failed: {e}") from e
        except (TypeError, ValueError, AttributeError, KeyError, ArithmeticError) as e:
            raise TemplateRenderError(f"Template rendering failed: {e}") from e


def _safe_segments(value: str) -> bool:
    parts = value.split("/")
    return all(_SEGMENT.match(part) and part not in (".", "..") for part in parts)


class TemplateStore:
    """Loads, compiles and caches Jinja2 HTML templates."""

    def __init__(self, templates_path: Optional[Path] = None):
        settings = get_settings()
        self.templates_path = Path(templates_path or settings.templates_path)
        self.logger: Any = logger.bind(component="template_store")  # structlog.BoundLoggerBase
        self._cache: Dict[TemplateKey, CompiledTemplate] = {}
        self._compiles = SingleFlight()
        self._setup_jinja2_environment()

    def _setup_jinja2_environment(self) -> None:
        """Setup Jinja2 template environment."""
        self.env = jinja2.Environment(
            # Lets templates {% include %} siblings such as partials/header.html
            loader=jinja2.FileSystemLoader(str(self.templates_path)),
            autoescape=True,
            enable_async=True,
            # Missing paths such as labels.title render empty instead of raising
            undefined=jinja2.ChainableUndefined,
        )
        register_helpers(self.env)

    @staticmethod
    def cache_key(name: str, namespace: Optional[str] = None) -> TemplateKey:
        return (namespace or "", name)

    def template_path(self, name: str, namespace: Optional[str] = None) -> Path:
        """
        Location of the source for ``(namespace, name)``.

        Raises:
            TemplateNotFound: If the name or namespace is not a plain relative path
        """
        if not name or not _safe_segments(name) or (namespace and not _safe_segments(namespace)):
            raise TemplateNotFound(name, namespace)
        directory = self.templates_path / namespace if namespace else self.templates_path
        return directory / f"{name}{TEMPLATE_SUFFIX}"

    async def resolve(self, name: str, namespace: Optional[str] = None) -> CompiledTemplate:
        """
        Get the compiled template for ``(namespace, name)``.

        Cache hits perform no I/O. Concurrent first requests for the same key
        share a single read and compile.

        Raises:
            TemplateNotFound: If no source exists at the resolved location
            TemplateRenderError: If the source fails to compile
        """
        key = self.cache_key(name, namespace)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        return await self._compiles.do(key, lambda: self._load(key, name, namespace))

    def compile(self, source: str, key: TemplateKey = ("", "<string>")) -> CompiledTemplate:
        """Compile template source without touching the cache."""
        try:
            return CompiledTemplate(key=key, template=self.env.from_string(source))
        except jinja2.TemplateSyntaxError as e:
            raise TemplateRenderError(
                f"Template compilation failed for {'/'.join(filter(None, key))}: {e}"
            ) from e

    def clear_cache(self) -> None:
        self._cache.clear()

    def cached_keys(self) -> List[TemplateKey]:
        return list(self._cache)

    async def _load(self, key: TemplateKey, name: str, namespace: Optional[str]) -> CompiledTemplate:
        path = self.template_path(name, namespace)
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                source = await f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            self.logger.warning("Template not found", template=name, namespace=namespace, path=str(path))
            raise TemplateNotFound(name, namespace) from e
        except (OSError, UnicodeDecodeError) as e:
            self.logger.error("Template read failed", path=str(path), error=str(e))
            raise PDFServiceError(f"Failed to read template {name}: {e}") from e

        compiled = self.compile(source, key)
        self._cache[key] = compiled
        self.logger.info(
            "Template compiled", template=name, namespace=namespace, source_length=len(source)
        )
        return compiled
