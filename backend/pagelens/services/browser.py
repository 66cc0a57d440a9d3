"""Remote Playwright browser sessions used by the extraction pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Set

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pagelens.config import WAIT_UNTIL_OPTIONS, config
from pagelens.errors import ExtractionError, NavigationError, SelectorTimeoutError, SessionAcquisitionError
from pagelens.schemas import RenderOptions

logger = logging.getLogger(__name__)

NETWORK_QUIET = "networkquiet"
POLL_INTERVAL_SECONDS = 0.05


class NetworkQuietTracker:
    """Track in-flight requests on a page and wait for a mostly idle network.

    The page counts as quiet once no more than ``max_inflight`` requests have
    been pending for ``quiet_ms`` without interruption.
    """

    def __init__(self, page: Any, max_inflight: int, quiet_ms: int) -> None:
        self._page = page
        self._max_inflight = max(max_inflight, 0)
        self._quiet_ms = max(quiet_ms, 0)
        self._inflight: Set[Any] = set()
        self._handlers = (
            ("request", self._on_request),
            ("requestfinished", self._on_settled),
            ("requestfailed", self._on_settled),
        )
        for event, handler in self._handlers:
            page.on(event, handler)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def _on_request(self, request: Any) -> None:
        self._inflight.add(request)

    def _on_settled(self, request: Any) -> None:
        self._inflight.discard(request)

    def detach(self) -> None:
        for event, handler in self._handlers:
            self._page.remove_listener(event, handler)

    async def wait_until_quiet(self, timeout_ms: int) -> bool:
        """Wait for the quiet window.

        Args:
            timeout_ms: Upper bound for the wait in milliseconds.

        Returns:
            bool: ``True`` once the network settled, ``False`` if the bound
            elapsed first.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(timeout_ms, 0) / 1000
        quiet_since: Optional[float] = None
        while True:
            now = loop.time()
            if len(self._inflight) <= self._max_inflight:
                if quiet_since is None:
                    quiet_since = now
                if (now - quiet_since) * 1000 >= self._quiet_ms:
                    return True
            else:
                quiet_since = None
            if now >= deadline:
                return False
            await asyncio.sleep(POLL_INTERVAL_SECONDS)


@dataclass
class BrowserSession:
    """One remote browser connection with a single open page."""

    url: str
    browser: Browser
    context: Optional[BrowserContext] = None
    page: Optional[Page] = None
    released: bool = False


class RemoteBrowserManager:
    """Open and close request-scoped browser sessions.

    The Playwright driver is shared and started lazily; every session gets its
    own browser connection, context and page, and is released exactly once.
    """

    def __init__(
        self,
        ws_endpoint: Optional[str] = None,
        connect_mode: Optional[str] = None,
        connect_timeout_ms: Optional[int] = None,
        navigation_timeout_ms: Optional[int] = None,
        selector_timeout_ms: Optional[int] = None,
        network_quiet_ms: Optional[int] = None,
        network_max_inflight: Optional[int] = None,
    ) -> None:
        self._ws_endpoint = config.BROWSER_WS_ENDPOINT if ws_endpoint is None else ws_endpoint
        self._connect_mode = connect_mode or config.BROWSER_CONNECT_MODE
        self._connect_timeout_ms = connect_timeout_ms or config.BROWSER_CONNECT_TIMEOUT_MS
        self.navigation_timeout_ms = navigation_timeout_ms or config.BROWSER_NAVIGATION_TIMEOUT_MS
        self.selector_timeout_ms = selector_timeout_ms or config.BROWSER_SELECTOR_TIMEOUT_MS
        self._network_quiet_ms = config.BROWSER_NETWORK_QUIET_MS if network_quiet_ms is None else network_quiet_ms
        self._network_max_inflight = (
            config.BROWSER_NETWORK_MAX_INFLIGHT if network_max_inflight is None else network_max_inflight
        )
        self._playwright: Optional[Playwright] = None
        self._driver_lock = asyncio.Lock()
        self.acquired_count = 0
        self.released_count = 0

    async def _ensure_driver(self) -> Playwright:
        if self._playwright is not None:
            return self._playwright
        async with self._driver_lock:
            if self._playwright is None:
                logger.info("Starting Playwright driver")
                self._playwright = await async_playwright().start()
        return self._playwright

    async def shutdown(self) -> None:
        """Stop the shared Playwright driver."""
        async with self._driver_lock:
            if self._playwright is None:
                return
            try:
                await self._playwright.stop()
            except Exception:  # pragma: no cover - best effort cleanup
                logger.debug("Failed to stop Playwright driver", exc_info=True)
            finally:
                self._playwright = None

    async def _connect(self) -> Browser:
        playwright = await self._ensure_driver()
        timeout = self._connect_timeout_ms
        if not self._ws_endpoint:
            return await playwright.chromium.launch(headless=config.BROWSER_HEADLESS, timeout=timeout)
        if self._connect_mode == "playwright":
            return await playwright.chromium.connect(self._ws_endpoint, timeout=timeout)
        return await playwright.chromium.connect_over_cdp(self._ws_endpoint, timeout=timeout)

    async def acquire(
        self,
        url: str,
        render: Optional[RenderOptions] = None,
        *,
        wait_until: Optional[str] = None,
        navigation_timeout_ms: Optional[int] = None,
    ) -> BrowserSession:
        """Open a page on the remote browser and load ``url``.

        Args:
            url: Absolute URL to navigate to.
            render: Viewport, wait and selector settings for the load.
            wait_until: Navigation wait policy overriding ``render.wait_until``.
            navigation_timeout_ms: Overrides the configured navigation bound.

        Returns:
            BrowserSession: The loaded session. The caller owns it and must
            pass it to ``release``.

        Raises:
            SessionAcquisitionError: When no browser can be obtained.
            NavigationError: When the page fails to load in time.
            SelectorTimeoutError: When ``render.wait_for_selector`` never
                appears.
        """
        render = render or RenderOptions()
        policy = wait_until or render.wait_until or config.BROWSER_DEFAULT_WAIT_UNTIL
        if policy not in WAIT_UNTIL_OPTIONS:
            policy = config.BROWSER_DEFAULT_WAIT_UNTIL
        timeout_ms = navigation_timeout_ms or self.navigation_timeout_ms

        try:
            browser = await self._connect()
        except Exception as exc:
            logger.warning("Failed to open remote browser session", exc_info=exc)
            raise SessionAcquisitionError(f"Could not open a remote browser session: {exc}") from exc

        session = BrowserSession(url=url, browser=browser)
        self.acquired_count += 1
        logger.debug("Acquired browser session for %s", url)

        try:
            context_kwargs: Dict[str, Any] = {}
            if render.viewport is not None:
                context_kwargs["viewport"] = {"width": render.viewport.width, "height": render.viewport.height}
            try:
                session.context = await browser.new_context(**context_kwargs)
                session.page = await session.context.new_page()
            except PlaywrightError as exc:
                raise SessionAcquisitionError(f"Could not open a page on the remote browser: {exc}") from exc

            await self._navigate(session.page, url, policy, timeout_ms)
            if render.wait_for_selector:
                await self._wait_for_selector(session.page, render.wait_for_selector, url)
        except BaseException:
            await self.release(session)
            raise

        return session

    async def _navigate(self, page: Page, url: str, wait_until: str, timeout_ms: int) -> None:
        tracker: Optional[NetworkQuietTracker] = None
        goto_wait = wait_until
        if wait_until == NETWORK_QUIET:
            tracker = NetworkQuietTracker(page, self._network_max_inflight, self._network_quiet_ms)
            goto_wait = "domcontentloaded"

        navigation_start = time.perf_counter()
        try:
            response = await page.goto(url, wait_until=goto_wait, timeout=timeout_ms)
            if tracker is not None:
                elapsed_ms = int((time.perf_counter() - navigation_start) * 1000)
                if not await tracker.wait_until_quiet(timeout_ms - elapsed_ms):
                    logger.warning("Network never settled on %s (%d requests in flight)", url, tracker.inflight)
                    raise NavigationError(url, f"network did not settle within {timeout_ms}ms")
        except PlaywrightTimeoutError as exc:
            logger.warning("Navigation to %s timed out", url)
            raise NavigationError(url, f"timed out after {timeout_ms}ms") from exc
        except PlaywrightError as exc:
            logger.warning("Navigation to %s failed", url, exc_info=exc)
            raise NavigationError(url, str(exc)) from exc
        finally:
            if tracker is not None:
                tracker.detach()

        navigation_duration = int((time.perf_counter() - navigation_start) * 1000)
        status_code = response.status if response else None
        logger.debug(
            "Navigated to %s (status=%s, wait_until=%s, duration=%dms)", url, status_code, wait_until, navigation_duration
        )

    async def _wait_for_selector(self, page: Page, selector: str, url: str) -> None:
        try:
            await page.wait_for_selector(selector, timeout=self.selector_timeout_ms)
        except PlaywrightTimeoutError as exc:
            logger.warning("Selector %r did not appear on %s", selector, url)
            raise SelectorTimeoutError(selector, self.selector_timeout_ms, url) from exc
        except PlaywrightError as exc:
            raise ExtractionError(f"Invalid selector '{selector}': {exc}") from exc

    async def release(self, session: BrowserSession) -> None:
        """Close the session's context and browser connection.

        Repeated calls for the same session are ignored.
        """
        if session.released:
            return
        session.released = True
        self.released_count += 1

        if session.context is not None:
            try:
                await session.context.close()
            except PlaywrightError:
                logger.debug("Failed to close browser context", exc_info=True)
        try:
            await session.browser.close()
        except PlaywrightError:
            logger.debug("Failed to close browser connection", exc_info=True)
        logger.debug("Released browser session for %s", session.url)

    @asynccontextmanager
    async def session(
        self,
        url: str,
        render: Optional[RenderOptions] = None,
        **kwargs: Any,
    ) -> AsyncIterator[BrowserSession]:
        """Scoped acquisition: the session is released however the block exits."""
        session = await self.acquire(url, render, **kwargs)
        try:
            yield session
        finally:
            await self.release(session)


browser_manager = RemoteBrowserManager()
