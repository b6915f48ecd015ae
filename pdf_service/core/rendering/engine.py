"""
PDF Rendering Engine
====================

Playwright-based PDF generation from HTML content or a URL.
Owns one long-lived Chromium process, opens an isolated browser context per
render, and recovers once from a browser that died between renders.
"""

from typing import Optional, Any, AsyncGenerator, Dict
import asyncio
import base64
import time
from contextlib import asynccontextmanager

import psutil  # type: ignore
from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from pdf_service.config.logging import get_logger
from pdf_service.config.settings import Settings, get_settings
from pdf_service.core.errors import (
    ContentLoadTimeout,
    ContextCreationError,
    EngineStartupError,
    PDFServiceError,
    RenderError,
)
from pdf_service.models.schemas import EngineState, EngineStats, RenderRequest, RenderedDocument

logger = get_logger(__name__)

WAIT_UNTIL = "networkidle"


class PDFRenderingEngine:
    """
    Renders markup or URLs to PDF on a shared Chromium process.

    The browser is launched lazily on the first render. Every transition of
    the browser handle (launch, crash recovery, restart, shutdown) runs under
    one lifecycle lock, so concurrent callers arriving during a launch wait for
    it and observe its outcome instead of launching again.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="rendering_engine")  # structlog.BoundLoggerBase

        self._state = EngineState.UNINITIALIZED
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lifecycle_lock = asyncio.Lock()
        self._startup_error: Optional[EngineStartupError] = None
        self._shutdown_task: Optional["asyncio.Future[None]"] = None

        self._open_contexts = 0
        self._launches = 0
        self._renders = 0
        self._failures = 0
        self._last_error: Optional[str] = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def open_contexts(self) -> int:
        """Number of render contexts currently open."""
        return self._open_contexts

    def is_ready(self) -> bool:
        return (
            self._state is EngineState.READY
            and self._browser is not None
            and self._browser.is_connected()
        )

    async def ensure_browser_ready(self) -> Browser:
        """
        Return the running browser, launching it if needed.

        Raises:
            EngineStartupError: If the browser cannot be launched, has failed to
                launch before, or the engine has been shut down
        """
        if self._state is EngineState.READY and self._browser is not None:
            return self._browser
        async with self._lifecycle_lock:
            return await self._ensure_browser_locked()

    async def _ensure_browser_locked(self) -> Browser:
        if self._state is EngineState.READY and self._browser is not None:
            return self._browser
        if self._state is EngineState.FAILED and self._startup_error is not None:
            raise self._startup_error
        if self._state in (EngineState.CLOSING, EngineState.CLOSED):
            raise EngineStartupError("Rendering engine has been shut down")
        if self._state is EngineState.CRASHED:
            await self._discard_browser()
        return await self._launch()

    async def _launch(self) -> Browser:
        self._state = EngineState.LAUNCHING
        self._launches += 1
        self.logger.info("Launching browser", launch=self._launches)

        try:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            browser = await self._playwright.chromium.launch(
                headless=self.settings.browser_headless,
                args=list(self.settings.browser_args),
            )
        except Exception as e:
            self._startup_error = EngineStartupError(f"Browser launch failed: {e}")
            self._state = EngineState.FAILED
            self._last_error = str(self._startup_error)
            self.logger.critical("Browser launch failed", error=str(e))
            await self._stop_playwright()
            raise self._startup_error from e

        browser.on("disconnected", self._on_disconnected)
        self._browser = browser
        self._state = EngineState.READY
        self.logger.info("Browser ready", version=getattr(browser, "version", None))
        return browser

    def _on_disconnected(self, browser: Browser) -> None:
        """Playwright callback fired when the browser connection goes away."""
        if browser is self._browser and self._state is EngineState.READY:
            self._state = EngineState.CRASHED
            self.logger.warning("Browser disconnected unexpectedly")

    async def _discard_browser(self) -> None:
        browser, self._browser = self._browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except PlaywrightError as e:
            self.logger.debug("Ignoring error while closing dead browser", error=str(e))

    async def _recover(self, dead_browser: Browser) -> None:
        """Mark a dead browser as crashed so the next ensure relaunches it, once."""
        async with self._lifecycle_lock:
            if self._browser is not dead_browser:
                # Another request already recovered.
                return
            self._state = EngineState.CRASHED
            await self._discard_browser()
            self.logger.warning("Browser marked as crashed, relaunching")

    async def _new_context(self) -> BrowserContext:
        browser = await self.ensure_browser_ready()
        try:
            return await browser.new_context()
        except PlaywrightError as e:
            if browser.is_connected():
                raise ContextCreationError(f"Failed to create render context: {e}") from e
            self.logger.warning("Render context creation failed on a dead browser", error=str(e))
            await self._recover(browser)

        browser = await self.ensure_browser_ready()
        try:
            return await browser.new_context()
        except PlaywrightError as e:
            raise ContextCreationError(
                f"Failed to create render context after relaunch: {e}"
            ) from e

    @asynccontextmanager
    async def page(self) -> AsyncGenerator[Page, None]:
        """Open a fresh, isolated page; its context is closed on every exit path."""
        context = await self._new_context()
        self._open_contexts += 1
        try:
            try:
                page = await context.new_page()
            except PlaywrightError as e:
                raise RenderError(f"Failed to open page: {e}") from e
            yield page
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                self.logger.warning("Failed to close render context", error=str(e))
            finally:
                self._open_contexts -= 1

    async def render(self, request: RenderRequest) -> RenderedDocument:
        """
        Render a request to PDF.

        Args:
            request: Markup or source URL plus output options

        Returns:
            RenderedDocument with base64 data, byte size and effective format

        Raises:
            EngineStartupError: If the browser cannot be launched
            ContextCreationError: If no page can be opened even after a relaunch
            ContentLoadTimeout: If the content does not settle within the timeout
            RenderError: If the browser rejects the content or options
        """
        options = request.options
        timeout_ms = options.render_timeout_ms or self.settings.render_timeout_ms
        started = time.perf_counter()

        try:
            if request.markup is None and request.source_url is None:
                raise RenderError("Nothing to render: neither markup nor source URL given")

            async with self.page() as page:
                await self._load(page, request, timeout_ms)
                try:
                    pdf_bytes = await page.pdf(**options.to_pdf_kwargs())
                except PlaywrightError as e:
                    raise RenderError(f"Failed to generate PDF: {e}") from e

        except PDFServiceError as e:
            self._failures += 1
            self._last_error = str(e)
            self.logger.error(
                "PDF generation failed",
                error=str(e),
                error_code=e.error_code,
                source="url" if request.source_url is not None else "markup",
            )
            raise

        self._renders += 1
        result = RenderedDocument(
            pdf_data=pdf_bytes,
            base64_data=base64.b64encode(pdf_bytes).decode("utf-8"),
            size_bytes=len(pdf_bytes),
            page_format=options.page_format.value,
        )

        self.logger.info(
            "PDF generation completed",
            file_size=result.size_bytes,
            format=result.page_format,
            landscape=options.landscape,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return result

    async def _load(self, page: Page, request: RenderRequest, timeout_ms: int) -> None:
        """Load markup or navigate, waiting for network quiescence within ``timeout_ms``."""
        if request.markup is not None:
            load = page.set_content(request.markup, wait_until=WAIT_UNTIL, timeout=timeout_ms)
        else:
            load = page.goto(request.source_url, wait_until=WAIT_UNTIL, timeout=timeout_ms)

        try:
            await asyncio.wait_for(load, timeout=timeout_ms / 1000)
        except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
            raise ContentLoadTimeout(
                f"Content did not finish loading within {timeout_ms} ms"
            ) from e
        except PlaywrightError as e:
            raise RenderError(f"Failed to load content: {e}") from e

    async def restart(self) -> None:
        """
        Operator reset: drop the current browser (or a failed launch) and launch again.

        Raises:
            EngineStartupError: If the engine was shut down or the launch fails
        """
        async with self._lifecycle_lock:
            if self._state in (EngineState.CLOSING, EngineState.CLOSED):
                raise EngineStartupError("Rendering engine has been shut down")
            self.logger.info("Restarting browser", previous_state=self._state.value)
            await self._discard_browser()
            self._startup_error = None
            self._state = EngineState.UNINITIALIZED
            await self._launch()

    async def shutdown(self) -> None:
        """Close the browser and stop Playwright. Safe to call any number of times."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        # Waits for an in-flight launch to finish before closing what it produced.
        async with self._lifecycle_lock:
            previous = self._state
            self._state = EngineState.CLOSING
            self.logger.info("Shutting down rendering engine", previous_state=previous.value)
            try:
                await self._discard_browser()
            finally:
                await self._stop_playwright()
                self._state = EngineState.CLOSED
                self.logger.info("Rendering engine closed")

    async def _stop_playwright(self) -> None:
        playwright, self._playwright = self._playwright, None
        if playwright is None:
            return
        try:
            await playwright.stop()
        except Exception as e:
            self.logger.error("Error stopping Playwright", error=str(e))

    def stats(self) -> EngineStats:
        """Snapshot of engine state and counters."""
        return EngineStats(
            state=self._state,
            launches=self._launches,
            renders=self._renders,
            failures=self._failures,
            open_contexts=self._open_contexts,
            memory_mb=self._get_memory_usage().get("memory_mb"),
            last_error=self._last_error,
        )

    def _get_memory_usage(self) -> Dict[str, float]:
        """Get memory usage statistics for this process and its browser children."""
        try:
            process = psutil.Process()
            rss = process.memory_info().rss
            for child in process.children(recursive=True):
                try:
                    rss += child.memory_info().rss
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    continue
            return {"memory_mb": round(rss / 1024 / 1024, 2)}
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return {}
