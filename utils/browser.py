"""Shared headless browser with per-job pages (Playwright backend)."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Set

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Response
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from utils.errors import ListingRemovedError, NetworkError
from utils.page_reader import (
    NetworkResponse,
    PageReader,
    ResponseHandler,
    ResponsePredicate,
)

logger = logging.getLogger(__name__)

REMOVED_STATUSES = {404, 410}


class PlaywrightPageReader(PageReader):
    """PageReader backed by a live Playwright page."""

    def __init__(self, page: Page, url: str):
        super().__init__(url=url)
        self._page = page
        self._listeners: List[Any] = []
        self._pending: Set[asyncio.Task] = set()

    async def content(self) -> str:
        return await self._page.content()

    async def evaluate(self, script: str) -> Any:
        try:
            return await self._page.evaluate(script)
        except PlaywrightError as e:
            logger.debug(f"Page evaluation failed on {self.url}: {e}")
            return None

    def on_response(self, predicate: ResponsePredicate, handler: ResponseHandler) -> None:
        """
        Register a handler for responses whose URL matches predicate.

        Bodies are read in background tasks; call settle() to wait for them.
        """

        async def _grab(response: Response) -> None:
            try:
                body = await response.text()
            except PlaywrightError as e:
                logger.debug(f"Could not read response body {response.url}: {e}")
                return
            handler(
                NetworkResponse(
                    url=response.url,
                    status=response.status,
                    body=body,
                    content_type=response.headers.get("content-type", ""),
                )
            )

        def listener(response: Response) -> None:
            if not predicate(response.url):
                return
            task = asyncio.ensure_future(_grab(response))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        self._page.on("response", listener)
        self._listeners.append(listener)

    async def settle(self) -> None:
        """Wait for in-flight response body reads."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def remove_listeners(self) -> None:
        for listener in self._listeners:
            self._page.remove_listener("response", listener)
        self._listeners.clear()
        for task in list(self._pending):
            task.cancel()


class BrowserSession:
    """
    Reference-counted owner of one headless browser process.

    The browser starts on the first acquire() and closes when the last holder
    releases it. Pages are opened per job through page(), which always closes
    the page and detaches response listeners on exit.

    Example:
        >>> async with BrowserSession() as session:
        ...     async with session.page(url) as reader:
        ...         html = await reader.content()
    """

    def __init__(
        self,
        headless: bool = True,
        navigation_timeout: float = 30.0,
        user_agent: Optional[str] = None,
    ):
        self.headless = headless
        self.navigation_timeout = navigation_timeout
        self.user_agent = user_agent
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._refs = 0
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def acquire(self) -> None:
        async with self._lock:
            if self._browser is None:
                logger.info(f"Launching browser (headless={self.headless})")
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless
                )
            self._refs += 1

    async def release(self) -> None:
        async with self._lock:
            self._refs = max(0, self._refs - 1)
            if self._refs == 0 and self._browser is not None:
                logger.info("Closing browser")
                try:
                    await self._browser.close()
                finally:
                    self._browser = None
                    if self._playwright is not None:
                        await self._playwright.stop()
                        self._playwright = None

    async def __aenter__(self) -> "BrowserSession":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()

    @asynccontextmanager
    async def page(
        self,
        url: str,
        capture: Optional[ResponsePredicate] = None,
        wait_for: Optional[str] = None,
    ) -> AsyncIterator[PageReader]:
        """
        Open a page, navigate to url and yield a reader for it.

        Args:
            url: Page to load
            capture: Predicate selecting network responses to keep
            wait_for: Optional CSS selector to wait for after load

        Raises:
            NetworkError: On navigation timeout or a failing HTTP status
            ListingRemovedError: On HTTP 404/410
        """
        await self.acquire()
        page: Optional[Page] = None
        reader: Optional[PlaywrightPageReader] = None
        timeout_ms = self.navigation_timeout * 1000
        try:
            page = await self._browser.new_page(user_agent=self.user_agent)
            page.set_default_timeout(timeout_ms)
            reader = PlaywrightPageReader(page, url)
            if capture is not None:
                reader.on_response(capture, reader.responses.append)

            try:
                response = await page.goto(url, timeout=timeout_ms, wait_until="load")
            except PlaywrightTimeoutError as e:
                raise NetworkError(
                    f"Navigation timed out after {self.navigation_timeout}s: {url}",
                    {"url": url},
                ) from e
            except PlaywrightError as e:
                raise NetworkError(f"Navigation failed for {url}: {e}", {"url": url}) from e

            status = response.status if response is not None else None
            reader.status = status
            if status in REMOVED_STATUSES:
                raise ListingRemovedError(
                    f"HTTP {status} for {url}", {"url": url, "status": status}
                )
            if status is not None and status >= 400:
                raise NetworkError(
                    f"HTTP {status} for {url}", {"url": url, "status": status}
                )

            if wait_for:
                try:
                    await page.wait_for_selector(wait_for, timeout=5000)
                except PlaywrightTimeoutError:
                    logger.debug(f"Selector {wait_for} did not appear on {url}")

            await reader.settle()
            yield reader
        finally:
            if reader is not None:
                reader.remove_listeners()
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as e:
                    logger.warning(f"Failed to close page for {url}: {e}")
            await self.release()
