"""
Browser Resource Pool

Fixed number of isolated browser pages shared by all airline tasks.
Pages are handed out through an async context manager so they come back
to the pool on success, error, timeout and cancellation alike.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Protocol

from playwright.async_api import async_playwright

from .errors import FareTaskError, NavigationTimeout, PoolExhausted

logger = logging.getLogger(__name__)


# Chromium flags for Docker/Railway style containers
BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--disable-gpu",
    "--lang=zh-TW",
]

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Hide the usual automation fingerprints
STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['zh-TW', 'zh', 'en-US', 'en'] });
"""


class PageFactory(Protocol):
    async def new_page(self) -> Any: ...

    async def close_page(self, page: Any) -> None: ...

    def is_healthy(self, page: Any) -> bool: ...

    async def close(self) -> None: ...


class PlaywrightPageFactory:
    """Launches Chromium once and opens one context + page per pool slot."""

    def __init__(
        self,
        headless: bool = True,
        viewport: dict | None = None,
        locale: str = "zh-TW",
        timezone_id: str = "Asia/Taipei",
        default_timeout_ms: int = 30000,
        navigation_timeout_ms: int = 45000,
    ):
        self.headless = headless
        self.viewport = viewport or {"width": 1366, "height": 768}
        self.locale = locale
        self.timezone_id = timezone_id
        self.default_timeout_ms = default_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self._playwright = None
        self._browser = None
        self._launch_lock = asyncio.Lock()

    async def _ensure_browser(self):
        async with self._launch_lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            logger.info("Launching Chromium (headless=%s)", self.headless)
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless, args=BROWSER_ARGS
            )
            return self._browser

    async def new_page(self):
        browser = await self._ensure_browser()
        context = await browser.new_context(
            viewport=self.viewport,
            user_agent=USER_AGENT,
            locale=self.locale,
            timezone_id=self.timezone_id,
            ignore_https_errors=True,
        )
        page = await context.new_page()
        await page.add_init_script(STEALTH_SCRIPT)
        page.set_default_timeout(self.default_timeout_ms)
        page.set_default_navigation_timeout(self.navigation_timeout_ms)
        return page

    async def close_page(self, page) -> None:
        if not page.is_closed():
            await page.context.close()

    def is_healthy(self, page) -> bool:
        if self._browser is None or not self._browser.is_connected():
            return False
        return not page.is_closed()

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


async def check_browser(headless: bool = True) -> dict:
    """Launch a throwaway Chromium and report its version."""
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=headless, args=BROWSER_ARGS)
            version = browser.version
            await browser.close()
        return {"success": True, "version": version}
    except Exception as e:
        return {"success": False, "error": str(e)}


@dataclass
class _Slot:
    index: int
    page: Any = None


class ScopedPage:
    """A pool-issued page, valid only inside its `async with pool.acquire()` block."""

    def __init__(self, page, slot_index: int):
        self.page = page
        self.slot_index = slot_index
        self._healthy = True

    @property
    def healthy(self) -> bool:
        return self._healthy

    def mark_unhealthy(self) -> None:
        """Ask the pool to discard this page instead of reusing it."""
        self._healthy = False


class BrowserPool:
    """
    Bounded pool of browser pages.

    Slots are created empty and filled lazily on first acquire. Idle slots
    are handed out last-released first, so a warm page is reused before an
    empty slot spawns another one; waiters are still served in FIFO order.
    A page that comes back unhealthy is closed and its slot emptied so the
    next holder gets a fresh one.
    """

    def __init__(self, page_factory: PageFactory, size: int = 3, acquire_timeout: float = 60.0):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.size = size
        self.acquire_timeout = acquire_timeout
        self._factory = page_factory
        self._idle: asyncio.LifoQueue[_Slot] = asyncio.LifoQueue()
        for i in range(size):
            self._idle.put_nowait(_Slot(index=i))
        self._in_use: set[int] = set()
        self.spawned = 0
        self.discarded = 0
        self._closed = False

    @property
    def in_use(self) -> int:
        return len(self._in_use)

    @property
    def idle(self) -> int:
        return self._idle.qsize()

    @asynccontextmanager
    async def acquire(self, timeout: Optional[float] = None) -> AsyncIterator[ScopedPage]:
        if self._closed:
            raise PoolExhausted("browser pool is closed")
        wait = self.acquire_timeout if timeout is None else timeout
        try:
            slot = await asyncio.wait_for(self._idle.get(), timeout=wait)
        except asyncio.TimeoutError:
            raise PoolExhausted(f"no browser page became free within {wait:.1f}s")

        scoped: Optional[ScopedPage] = None
        self._in_use.add(slot.index)
        try:
            if slot.page is None:
                try:
                    slot.page = await self._factory.new_page()
                except Exception as e:
                    raise PoolExhausted(f"could not open a browser page: {e}") from e
                self.spawned += 1
                logger.debug("Spawned page for slot %d", slot.index)
            scoped = ScopedPage(slot.page, slot.index)
            try:
                yield scoped
            except (NavigationTimeout, asyncio.CancelledError):
                # The page may be stuck mid-navigation
                scoped.mark_unhealthy()
                raise
            except FareTaskError:
                raise
            except Exception:
                scoped.mark_unhealthy()
                raise
        finally:
            await self._release(slot, scoped)

    async def _release(self, slot: _Slot, scoped: Optional[ScopedPage]) -> None:
        page = slot.page
        healthy = (
            page is not None
            and scoped is not None
            and scoped.healthy
            and self._factory.is_healthy(page)
        )
        if not healthy:
            slot.page = None
        # Return the slot before any await so cancellation cannot leak it
        self._in_use.discard(slot.index)
        self._idle.put_nowait(slot)

        if not healthy and page is not None:
            self.discarded += 1
            logger.info("Discarding unhealthy page from slot %d", slot.index)
            try:
                await self._factory.close_page(page)
            except Exception as e:
                logger.debug("Error while closing discarded page: %s", e)

    async def close(self) -> None:
        """Close every idle page and the underlying browser."""
        self._closed = True
        while not self._idle.empty():
            slot = self._idle.get_nowait()
            if slot.page is not None:
                try:
                    await self._factory.close_page(slot.page)
                except Exception as e:
                    logger.debug("Error while closing page: %s", e)
                slot.page = None
        await self._factory.close()

    async def __aenter__(self) -> BrowserPool:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
