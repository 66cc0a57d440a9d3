"""
Unit tests for remote browser session management.

The remote connection is replaced by in-memory fakes; these tests check
navigation policies, failure translation and that every acquired session is
released exactly once.
"""

import asyncio
import unittest

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from fakes import FakeBrowserManager, FakePage
from pagelens.errors import ExtractionError, NavigationError, SelectorTimeoutError, SessionAcquisitionError
from pagelens.schemas import RenderOptions, Viewport
from pagelens.services.browser import NetworkQuietTracker

URL = "https://example.com/"


@pytest.mark.unit
class TestAcquire(unittest.IsolatedAsyncioTestCase):
    """Tests for RemoteBrowserManager.acquire and release."""

    async def test_acquire_navigates_and_release_closes(self):
        """Should load the url and close context and browser on release."""
        manager = FakeBrowserManager()
        session = await manager.acquire(URL)

        self.assertIs(session.page, manager.page)
        self.assertEqual(manager.page.goto_calls[0]["url"], URL)
        self.assertEqual(manager.acquired_count, 1)

        await manager.release(session)

        self.assertTrue(session.released)
        self.assertEqual(manager.released_count, 1)
        self.assertEqual(manager.context.close_count, 1)
        self.assertEqual(manager.browser.close_count, 1)

    async def test_release_is_idempotent(self):
        """Should ignore repeated release calls."""
        manager = FakeBrowserManager()
        session = await manager.acquire(URL)

        await manager.release(session)
        await manager.release(session)

        self.assertEqual(manager.released_count, 1)
        self.assertEqual(manager.browser.close_count, 1)

    async def test_viewport_applied_to_context(self):
        """Should open the context with the requested viewport."""
        manager = FakeBrowserManager()
        render = RenderOptions(viewport=Viewport(width=800, height=600))

        async with manager.session(URL, render):
            pass

        self.assertEqual(manager.browser.context_kwargs, [{"viewport": {"width": 800, "height": 600}}])

    async def test_network_quiet_uses_dom_content_loaded(self):
        """Should navigate with domcontentloaded and then watch the network."""
        manager = FakeBrowserManager()

        async with manager.session(URL, RenderOptions(wait_until="networkquiet")):
            pass

        self.assertEqual(manager.page.goto_calls[0]["wait_until"], "domcontentloaded")
        self.assertEqual(manager.page.listeners, {"request": [], "requestfinished": [], "requestfailed": []})

    async def test_native_wait_policy_passed_through(self):
        """Should hand native wait policies straight to the browser."""
        manager = FakeBrowserManager()

        async with manager.session(URL, RenderOptions(wait_until="load")):
            pass

        self.assertEqual(manager.page.goto_calls[0]["wait_until"], "load")
        self.assertEqual(manager.page.listeners, {})

    async def test_wait_until_override_and_timeout(self):
        """Should let callers override the policy and navigation bound."""
        manager = FakeBrowserManager()

        async with manager.session(URL, wait_until="commit", navigation_timeout_ms=1234):
            pass

        self.assertEqual(manager.page.goto_calls[0], {"url": URL, "wait_until": "commit", "timeout": 1234})

    async def test_connect_failure(self):
        """Should report SessionAcquisitionError without counting a session."""
        manager = FakeBrowserManager(connect_error=PlaywrightError("connect ECONNREFUSED"))

        with self.assertRaises(SessionAcquisitionError):
            await manager.acquire(URL)

        self.assertEqual(manager.acquired_count, 0)
        self.assertEqual(manager.released_count, 0)

    async def test_navigation_timeout_releases(self):
        """Should raise NavigationError naming the url and release the session."""
        manager = FakeBrowserManager(page=FakePage(goto_error=PlaywrightTimeoutError("Timeout 30000ms exceeded")))

        with self.assertRaises(NavigationError) as ctx:
            await manager.acquire(URL)

        self.assertIn(URL, ctx.exception.message)
        self.assertEqual(manager.acquired_count, 1)
        self.assertEqual(manager.released_count, 1)
        self.assertEqual(manager.browser.close_count, 1)

    async def test_navigation_error_releases(self):
        """Should translate network errors into NavigationError."""
        manager = FakeBrowserManager(page=FakePage(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED")))

        with self.assertRaises(NavigationError) as ctx:
            await manager.acquire(URL)

        self.assertIn("ERR_NAME_NOT_RESOLVED", ctx.exception.message)
        self.assertEqual(manager.released_count, 1)

    async def test_selector_timeout_releases(self):
        """Should raise SelectorTimeoutError with the bound and release the session."""
        page = FakePage(selector_error=PlaywrightTimeoutError("Timeout 10000ms exceeded"))
        manager = FakeBrowserManager(page=page)

        with self.assertRaises(SelectorTimeoutError) as ctx:
            await manager.acquire(URL, RenderOptions(wait_for_selector="#never"))

        self.assertEqual(page.selector_calls, [{"selector": "#never", "timeout": 10000}])
        self.assertEqual(ctx.exception.selector, "#never")
        self.assertIn("#never", ctx.exception.message)
        self.assertEqual(manager.released_count, 1)

    async def test_invalid_selector(self):
        """Should report a malformed selector as an extraction failure."""
        manager = FakeBrowserManager(page=FakePage(selector_error=PlaywrightError("Unexpected token")))

        with self.assertRaises(ExtractionError):
            await manager.acquire(URL, RenderOptions(wait_for_selector="div["))

        self.assertEqual(manager.released_count, 1)

    async def test_scoped_session_released_on_error(self):
        """Should release the session when the scoped block raises."""
        manager = FakeBrowserManager()

        with self.assertRaises(RuntimeError):
            async with manager.session(URL):
                raise RuntimeError("boom")

        self.assertEqual(manager.acquired_count, manager.released_count)

    async def test_cancellation_during_navigation_releases(self):
        """Should release the session when the caller is cancelled mid-load."""
        manager = FakeBrowserManager(page=FakePage(goto_delay=5))
        task = asyncio.ensure_future(manager.acquire(URL))
        await asyncio.sleep(0.05)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertEqual(manager.acquired_count, 1)
        self.assertEqual(manager.released_count, 1)

    async def test_network_never_quiet(self):
        """Should fail navigation when requests keep the network busy."""
        page = FakePage(requests_on_goto=3)
        manager = FakeBrowserManager(page=page, navigation_timeout_ms=200, network_max_inflight=2)

        with self.assertRaises(NavigationError) as ctx:
            await manager.acquire(URL)

        self.assertIn("network did not settle", ctx.exception.message)
        self.assertEqual(manager.released_count, 1)
        self.assertEqual(manager.page.listeners, {"request": [], "requestfinished": [], "requestfailed": []})

    async def test_network_settles_after_requests_finish(self):
        """Should complete navigation once pending requests finish."""
        page = FakePage(requests_on_goto=3, settle_after=0.1)
        manager = FakeBrowserManager(
            page=page, navigation_timeout_ms=2000, network_max_inflight=2, network_quiet_ms=50
        )

        async with manager.session(URL, RenderOptions(wait_until="networkquiet")) as session:
            self.assertIs(session.page, page)
            self.assertEqual(page.pending_requests, [])

        self.assertEqual(page.goto_calls[0]["wait_until"], "domcontentloaded")
        self.assertEqual(manager.acquired_count, manager.released_count)


@pytest.mark.unit
class TestNetworkQuietTracker(unittest.IsolatedAsyncioTestCase):
    """Tests for NetworkQuietTracker."""

    async def test_counts_inflight_requests(self):
        """Should track requests until they finish or fail."""
        page = FakePage()
        tracker = NetworkQuietTracker(page, max_inflight=2, quiet_ms=0)
        first, second = object(), object()

        page.emit("request", first)
        page.emit("request", second)
        self.assertEqual(tracker.inflight, 2)

        page.emit("requestfinished", first)
        page.emit("requestfailed", second)
        self.assertEqual(tracker.inflight, 0)

    async def test_quiet_after_requests_settle(self):
        """Should report quiet once in-flight requests drop to the threshold."""
        page = FakePage()
        tracker = NetworkQuietTracker(page, max_inflight=2, quiet_ms=100)
        requests = [object() for _ in range(3)]
        for request in requests:
            page.emit("request", request)

        async def finish_one():
            await asyncio.sleep(0.1)
            page.emit("requestfinished", requests[0])

        finisher = asyncio.ensure_future(finish_one())
        self.assertTrue(await tracker.wait_until_quiet(2000))
        await finisher

    async def test_times_out_when_busy(self):
        """Should give up when the bound elapses first."""
        page = FakePage()
        tracker = NetworkQuietTracker(page, max_inflight=0, quiet_ms=50)
        page.emit("request", object())

        self.assertFalse(await tracker.wait_until_quiet(150))

    async def test_detach_removes_listeners(self):
        """Should stop tracking after detach."""
        page = FakePage()
        tracker = NetworkQuietTracker(page, max_inflight=2, quiet_ms=0)
        tracker.detach()

        page.emit("request", object())
        self.assertEqual(tracker.inflight, 0)


if __name__ == "__main__":
    unittest.main()
