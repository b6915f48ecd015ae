"""
Locale Store
============

Loads label sets from ``<locales_path>/<locale>.json`` and caches them per
locale. Unsupported locales are rewritten to the default before any lookup, so
the cache only ever holds supported keys.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from pdf_service.config.logging import get_logger
from pdf_service.config.settings import get_settings
from pdf_service.core.concurrency import SingleFlight
from pdf_service.core.errors import LocaleUnavailable
from pdf_service.models.schemas import LocaleLabelSet

logger = get_logger(__name__)


class LocaleStore:
    """Cached label sets with deterministic fallback to the default locale."""

    def __init__(
        self,
        locales_path: Optional[Path] = None,
        supported_locales: Optional[List[str]] = None,
        default_locale: Optional[str] = None,
    ):
        settings = get_settings()
        self.locales_path = Path(locales_path or settings.locales_path)
        self._supported = list(supported_locales or settings.supported_locales)
        self.default_locale = default_locale or settings.default_locale
        if self.default_locale not in self._supported:
            raise ValueError(f"Default locale '{self.default_locale}' is not supported")

        self._cache: Dict[str, LocaleLabelSet] = {}
        self._loads = SingleFlight()
        self.logger: Any = logger.bind(component="locale_store")  # structlog.BoundLoggerBase

    @property
    def supported_locales(self) -> List[str]:
        return list(self._supported)

    def is_supported(self, locale: Optional[str]) -> bool:
        return locale in self._supported

    def normalize(self, locale: Optional[str]) -> str:
        """Map a requested locale onto the one that will actually be served."""
        if not self.is_supported(locale):
            self.logger.warning(
                "Locale not supported, falling back",
                locale=locale,
                default_locale=self.default_locale,
            )
            return self.default_locale
        return locale  # type: ignore[return-value]

    async def resolve(self, locale: Optional[str]) -> LocaleLabelSet:
        """
        Get the label set for a locale.

        Args:
            locale: Requested locale code, possibly unsupported or None

        Returns:
            LocaleLabelSet for the requested locale, or for the default locale
            when the requested one is unsupported or fails to load

        Raises:
            LocaleUnavailable: If the default locale itself cannot be loaded
        """
        locale = self.normalize(locale)

        cached = self._cache.get(locale)
        if cached is not None:
            return cached

        try:
            return await self._loads.do(locale, lambda: self._load(locale))
        except LocaleUnavailable:
            if locale == self.default_locale:
                raise
            self.logger.info("Falling back to default locale", default_locale=self.default_locale)
            return await self.resolve(self.default_locale)

    async def translate(self, locale: Optional[str], key: str, fallback: Optional[str] = None) -> Any:
        """Look up one label; a missing key yields ``fallback`` or the key itself."""
        label_set = await self.resolve(locale)
        return label_set.labels.get(key) or fallback or key

    def clear_cache(self) -> None:
        self._cache.clear()

    def cached_locales(self) -> List[str]:
        return list(self._cache)

    async def _load(self, locale: str) -> LocaleLabelSet:
        path = self.locales_path / f"{locale}.json"
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                content = await f.read()
            labels = json.loads(content)
            if not isinstance(labels, dict):
                raise ValueError("label file must contain a JSON object")
        except (OSError, ValueError) as e:
            self.logger.error("Error loading translations", locale=locale, path=str(path), error=str(e))
            raise LocaleUnavailable(locale) from e

        label_set = LocaleLabelSet(locale=locale, labels=labels)
        self._cache[locale] = label_set
        self.logger.info("Translations loaded", locale=locale, keys=len(labels))
        return label_set
