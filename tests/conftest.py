"""
Test Configuration
==================

Pytest configuration with fixtures for all test types.
Provides test settings, on-disk template and locale fixtures, and a fake
Playwright so the rendering engine runs without a real browser.
"""

import json
from pathlib import Path
from typing import AsyncGenerator, Dict, Generator

import pytest
from fastapi.testclient import TestClient

import pdf_service.config.settings as settings_module
from pdf_service.api.main import build_orchestrator, create_app
from pdf_service.config.settings import Settings
from pdf_service.core.locales.store import LocaleStore
from pdf_service.core.orchestrator import PDFOrchestrator
from pdf_service.core.rendering.engine import PDFRenderingEngine
from pdf_service.core.templates.store import TemplateStore

from tests.utils.helpers import make_settings
from tests.utils.mocks import FakePlaywright, patch_playwright


@pytest.fixture(autouse=True)
def override_settings(monkeypatch) -> Settings:
    """Make every ``get_settings()`` call return test settings."""
    test_settings = make_settings()
    monkeypatch.setattr(settings_module, "settings", test_settings)
    return test_settings


@pytest.fixture
def test_settings(override_settings: Settings) -> Settings:
    return override_settings


@pytest.fixture
def templates_dir(tmp_path: Path) -> Path:
    """Template root with one template at the top level and one in a namespace."""
    root = tmp_path / "templates"
    (root / "reports").mkdir(parents=True)
    (root / "greeting.html").write_text(
        "<h1>{{ labels.hello | default('Hello') }}, {{ name }}</h1>", encoding="utf-8"
    )
    (root / "reports" / "summary.html").write_text(
        "<p>{{ labels.patient }}: {{ patient.full_name }}</p>"
        "<p>{{ visit.date | format_date('d/m/Y') }}</p>",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def locale_labels() -> Dict[str, Dict[str, str]]:
    return {
        "en": {"hello": "Hello", "patient": "Patient", "total": "Total"},
        "mk": {"hello": "Здраво", "patient": "Пациент"},
    }


@pytest.fixture
def locales_dir(tmp_path: Path, locale_labels: Dict[str, Dict[str, str]]) -> Path:
    root = tmp_path / "locales"
    root.mkdir()
    for locale, labels in locale_labels.items():
        (root / f"{locale}.json").write_text(json.dumps(labels, ensure_ascii=False), encoding="utf-8")
    return root


@pytest.fixture
def fake_playwright() -> Generator[FakePlaywright, None, None]:
    """A fake Playwright installed in place of the real one for the test's duration."""
    fake = FakePlaywright()
    with patch_playwright(fake):
        yield fake


@pytest.fixture
async def engine(
    test_settings: Settings, fake_playwright: FakePlaywright
) -> AsyncGenerator[PDFRenderingEngine, None]:
    rendering_engine = PDFRenderingEngine(test_settings)
    yield rendering_engine
    await rendering_engine.shutdown()


@pytest.fixture
def template_store(templates_dir: Path) -> TemplateStore:
    return TemplateStore(templates_dir)


@pytest.fixture
def locale_store(locales_dir: Path) -> LocaleStore:
    return LocaleStore(locales_dir, ["en", "mk"], "en")


@pytest.fixture
def orchestrator(
    engine: PDFRenderingEngine,
    template_store: TemplateStore,
    locale_store: LocaleStore,
    test_settings: Settings,
) -> PDFOrchestrator:
    return PDFOrchestrator(engine, template_store, locale_store, test_settings)


@pytest.fixture
def api_settings(test_settings: Settings) -> Settings:
    """Settings for API tests; uses the templates and locales shipped with the package."""
    return test_settings


@pytest.fixture
def fastapi_client(
    api_settings: Settings, fake_playwright: FakePlaywright
) -> Generator[TestClient, None, None]:
    """Test client running the full application against the fake browser."""
    app = create_app(api_settings, build_orchestrator(api_settings))
    with TestClient(app) as client:
        yield client
