"""
Unit Tests for the PDF Rendering Engine
=======================================

Browser lifecycle, per-render isolation, timeouts and crash recovery, driven
against the fake Playwright from ``tests.utils.mocks``.
"""

import asyncio
import base64

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pdf_service.core.errors import (
    ContentLoadTimeout,
    ContextCreationError,
    EngineStartupError,
    RenderError,
)
from pdf_service.core.rendering.engine import PDFRenderingEngine, WAIT_UNTIL
from pdf_service.models.schemas import EngineState, OutputOptions, PageFormat, RenderRequest

from tests.utils.mocks import FAKE_PDF, FakePlaywright, patch_playwright


def markup_request(**options) -> RenderRequest:
    return RenderRequest(markup="<h1>Hello</h1>", options=OutputOptions(**options))


class TestBrowserLifecycle:
    """Lazy launch, single-flight launch and startup failures."""

    async def test_browser_not_launched_until_first_use(self, engine, fake_playwright):
        assert engine.state is EngineState.UNINITIALIZED
        assert fake_playwright.chromium.launch_count == 0

        await engine.ensure_browser_ready()

        assert engine.state is EngineState.READY
        assert engine.is_ready()
        assert fake_playwright.chromium.launch_count == 1

    async def test_launch_uses_configured_arguments(self, engine, fake_playwright):
        await engine.ensure_browser_ready()

        kwargs = fake_playwright.chromium.launch_kwargs
        assert kwargs["headless"] is True
        assert "--no-sandbox" in kwargs["args"]
        assert "--disable-dev-shm-usage" in kwargs["args"]

    async def test_concurrent_callers_share_one_launch(self, engine, fake_playwright):
        fake_playwright.launch_delay = 0.05

        browsers = await asyncio.gather(*(engine.ensure_browser_ready() for _ in range(10)))

        assert fake_playwright.chromium.launch_count == 1
        assert all(browser is browsers[0] for browser in browsers)

    async def test_ready_browser_is_reused(self, engine, fake_playwright):
        first = await engine.ensure_browser_ready()
        second = await engine.ensure_browser_ready()

        assert first is second
        assert fake_playwright.chromium.launch_count == 1

    async def test_launch_failure_is_fatal_and_sticky(self, test_settings):
        fake = FakePlaywright(launch_error=RuntimeError("Executable doesn't exist"))
        with patch_playwright(fake):
            engine = PDFRenderingEngine(test_settings)

            with pytest.raises(EngineStartupError) as first:
                await engine.render(markup_request())
            with pytest.raises(EngineStartupError) as second:
                await engine.render(markup_request())

            assert engine.state is EngineState.FAILED
            assert "Executable doesn't exist" in first.value.message
            assert second.value is first.value
            assert fake.chromium.launch_count == 1
            assert fake.stop_calls == 1
            await engine.shutdown()

    async def test_concurrent_callers_observe_launch_failure(self, test_settings):
        fake = FakePlaywright(launch_delay=0.02, launch_error=RuntimeError("boom"))
        with patch_playwright(fake):
            engine = PDFRenderingEngine(test_settings)

            results = await asyncio.gather(
                *(engine.ensure_browser_ready() for _ in range(5)), return_exceptions=True
            )

            assert all(isinstance(result, EngineStartupError) for result in results)
            assert fake.chromium.launch_count == 1
            await engine.shutdown()


class TestRendering:
    """Markup and URL renders and the options passed to the browser."""

    async def test_render_markup(self, engine, fake_playwright):
        document = await engine.render(markup_request())

        page = fake_playwright.last_page
        assert page.content == "<h1>Hello</h1>"
        assert page.load_kwargs == {"wait_until": WAIT_UNTIL, "timeout": 30000}
        assert document.pdf_data == FAKE_PDF
        assert base64.b64decode(document.base64_data) == FAKE_PDF
        assert document.size_bytes == len(FAKE_PDF)
        assert document.mime_type == "application/pdf"
        assert document.page_format == "A4"

    async def test_render_url(self, engine, fake_playwright):
        await engine.render(RenderRequest(source_url="https://example.com/report"))

        page = fake_playwright.last_page
        assert page.url == "https://example.com/report"
        assert page.content is None
        assert page.load_kwargs["wait_until"] == WAIT_UNTIL

    async def test_default_pdf_options(self, engine, fake_playwright):
        await engine.render(markup_request())

        assert fake_playwright.last_page.pdf_kwargs == {
            "format": "A4",
            "landscape": False,
            "margin": {"top": "10mm", "right": "10mm", "bottom": "10mm", "left": "10mm"},
            "print_background": True,
            "display_header_footer": False,
            "header_template": "",
            "footer_template": "",
            "prefer_css_page_size": False,
        }

    async def test_custom_pdf_options(self, engine, fake_playwright):
        options = OutputOptions.model_validate(
            {
                "format": "Letter",
                "landscape": True,
                "margin": {"top": "20mm", "bottom": "15mm"},
                "printBackground": False,
            }
        )

        document = await engine.render(RenderRequest(markup="<p>x</p>", options=options))

        kwargs = fake_playwright.last_page.pdf_kwargs
        assert kwargs["format"] == PageFormat.LETTER.value
        assert kwargs["landscape"] is True
        assert kwargs["margin"] == {"top": "20mm", "right": "10mm", "bottom": "15mm", "left": "10mm"}
        assert kwargs["print_background"] is False
        assert document.page_format == "Letter"

    async def test_per_request_timeout_is_forwarded(self, engine, fake_playwright):
        await engine.render(markup_request(timeout=5000))

        assert fake_playwright.last_page.load_kwargs["timeout"] == 5000

    async def test_each_render_gets_its_own_context(self, engine, fake_playwright):
        await engine.render(markup_request())
        await engine.render(markup_request())

        contexts = fake_playwright.all_contexts()
        assert len(contexts) == 2
        assert contexts[0] is not contexts[1]
        assert all(context.closed for context in contexts)
        assert engine.open_contexts == 0

    async def test_concurrent_renders(self, engine, fake_playwright):
        fake_playwright.page_options = {"load_delay": 0.01}

        documents = await asyncio.gather(*(engine.render(markup_request()) for _ in range(5)))

        assert len(documents) == 5
        assert fake_playwright.chromium.launch_count == 1
        assert len(fake_playwright.all_contexts()) == 5
        assert all(context.closed for context in fake_playwright.all_contexts())
        assert engine.open_contexts == 0

    async def test_nothing_to_render(self, engine):
        with pytest.raises(RenderError):
            await engine.render(RenderRequest())


class TestRenderFailures:
    """Timeouts and browser errors map onto the error taxonomy."""

    async def test_load_timeout(self, engine, fake_playwright):
        fake_playwright.page_options = {"load_delay": 1.0}

        with pytest.raises(ContentLoadTimeout):
            await engine.render(markup_request(timeout=50))

        assert fake_playwright.all_contexts()[0].closed
        assert engine.open_contexts == 0
        assert engine.stats().failures == 1

    async def test_playwright_timeout(self, engine, fake_playwright):
        fake_playwright.page_options = {
            "load_error": PlaywrightTimeoutError("Timeout 30000ms exceeded.")
        }

        with pytest.raises(ContentLoadTimeout):
            await engine.render(markup_request())

        assert engine.open_contexts == 0

    async def test_navigation_error(self, engine, fake_playwright):
        fake_playwright.page_options = {"load_error": PlaywrightError("net::ERR_NAME_NOT_RESOLVED")}

        with pytest.raises(RenderError) as exc_info:
            await engine.render(RenderRequest(source_url="https://nowhere.invalid"))

        assert type(exc_info.value) is RenderError
        assert "ERR_NAME_NOT_RESOLVED" in exc_info.value.message

    async def test_pdf_generation_error(self, engine, fake_playwright):
        fake_playwright.page_options = {"pdf_error": PlaywrightError("Invalid margin")}

        with pytest.raises(RenderError) as exc_info:
            await engine.render(markup_request())

        assert type(exc_info.value) is RenderError
        assert fake_playwright.all_contexts()[0].closed
        assert engine.state is EngineState.READY

    async def test_page_open_error(self, engine, fake_playwright):
        fake_playwright.page_options = {"open_error": PlaywrightError("Target closed")}

        with pytest.raises(RenderError) as exc_info:
            await engine.render(markup_request())

        assert "Target closed" in exc_info.value.message
        assert fake_playwright.all_contexts()[0].closed
        assert engine.open_contexts == 0
        assert engine.stats().failures == 1
        assert "Target closed" in engine.stats().last_error

    async def test_context_failure_on_live_browser(self, engine, fake_playwright):
        browser = await engine.ensure_browser_ready()
        browser.fail_new_context = True

        with pytest.raises(ContextCreationError):
            await engine.render(markup_request())

        assert fake_playwright.chromium.launch_count == 1
        assert engine.state is EngineState.READY


class TestCrashRecovery:
    """A browser that died between renders is replaced once."""

    async def test_recovers_after_disconnect_event(self, engine, fake_playwright):
        await engine.render(markup_request())
        first_browser = fake_playwright.browser

        first_browser.crash()
        assert engine.state is EngineState.CRASHED

        document = await engine.render(markup_request())

        assert document.size_bytes == len(FAKE_PDF)
        assert fake_playwright.chromium.launch_count == 2
        assert fake_playwright.browser is not first_browser
        assert engine.state is EngineState.READY

    async def test_recovers_from_silently_dead_browser(self, engine, fake_playwright):
        await engine.render(markup_request())
        # Connection gone without the disconnected event having been delivered
        fake_playwright.browser.connected = False

        await engine.render(markup_request())

        assert fake_playwright.chromium.launch_count == 2
        assert engine.state is EngineState.READY

    async def test_concurrent_renders_after_crash_relaunch_once(self, engine, fake_playwright):
        await engine.render(markup_request())
        fake_playwright.browser.crash()
        fake_playwright.launch_delay = 0.02

        await asyncio.gather(*(engine.render(markup_request()) for _ in range(5)))

        assert fake_playwright.chromium.launch_count == 2

    async def test_relaunch_failure(self, engine, fake_playwright):
        await engine.render(markup_request())
        fake_playwright.browser.connected = False
        fake_playwright.launch_error = RuntimeError("Chromium crashed on start")

        with pytest.raises(EngineStartupError):
            await engine.render(markup_request())

        assert engine.state is EngineState.FAILED


class TestRestartAndShutdown:
    """Operator restart and idempotent shutdown."""

    async def test_restart_replaces_browser(self, engine, fake_playwright):
        await engine.ensure_browser_ready()
        old_browser = fake_playwright.browser

        await engine.restart()

        assert old_browser.close_calls == 1
        assert fake_playwright.browser is not old_browser
        assert fake_playwright.chromium.launch_count == 2
        assert engine.state is EngineState.READY

    async def test_restart_clears_failed_state(self, test_settings):
        fake = FakePlaywright(launch_error=RuntimeError("no display"))
        with patch_playwright(fake):
            engine = PDFRenderingEngine(test_settings)
            with pytest.raises(EngineStartupError):
                await engine.ensure_browser_ready()

            fake.launch_error = None
            await engine.restart()

            assert engine.state is EngineState.READY
            await engine.render(markup_request())
            await engine.shutdown()

    async def test_shutdown_closes_browser_and_playwright(self, engine, fake_playwright):
        await engine.render(markup_request())

        await engine.shutdown()

        assert fake_playwright.browser.close_calls == 1
        assert fake_playwright.stop_calls == 1
        assert engine.state is EngineState.CLOSED

    async def test_shutdown_is_idempotent(self, engine, fake_playwright):
        await engine.ensure_browser_ready()

        await asyncio.gather(engine.shutdown(), engine.shutdown())
        await engine.shutdown()

        assert fake_playwright.browser.close_calls == 1
        assert fake_playwright.stop_calls == 1

    async def test_shutdown_without_launch(self, engine, fake_playwright):
        await engine.shutdown()

        assert engine.state is EngineState.CLOSED
        assert fake_playwright.chromium.launch_count == 0

    async def test_shutdown_waits_for_inflight_launch(self, engine, fake_playwright):
        fake_playwright.launch_delay = 0.05
        launch = asyncio.create_task(engine.ensure_browser_ready())
        await asyncio.sleep(0.01)

        await engine.shutdown()
        browser = await launch

        assert browser.close_calls == 1
        assert engine.state is EngineState.CLOSED

    async def test_render_after_shutdown(self, engine):
        await engine.shutdown()

        with pytest.raises(EngineStartupError):
            await engine.render(markup_request())

    async def test_restart_after_shutdown(self, engine):
        await engine.shutdown()

        with pytest.raises(EngineStartupError):
            await engine.restart()


class TestStats:
    async def test_stats_track_renders_and_failures(self, engine, fake_playwright):
        await engine.render(markup_request())
        fake_playwright.page_options = {"pdf_error": PlaywrightError("bad")}
        with pytest.raises(RenderError):
            await engine.render(markup_request())

        stats = engine.stats()
        assert stats.state is EngineState.READY
        assert stats.launches == 1
        assert stats.renders == 1
        assert stats.failures == 1
        assert stats.open_contexts == 0
        assert "bad" in stats.last_error
