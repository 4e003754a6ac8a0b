"""Playwright Chromium как BrowserSession: одна изолированная вкладка на задачу."""
import asyncio

from loguru import logger
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.config import Settings
from src.exceptions import CommunicationError, PageLoadTimeoutError

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


class PlaywrightBrowser:
    """
    Браузер запускается лениво при первой задаче и живёт до close().
    Каждая страница открывается в собственном контексте, чтобы cookies
    и storage одной задачи не влияли на другую.
    """

    def __init__(self, settings: Settings, headless: bool | None = None) -> None:
        self.settings = settings
        self.headless = settings.headless if headless is None else headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless, args=LAUNCH_ARGS,
                )
                logger.info(f"[browser] Chromium launched (headless={self.headless})")
            return self._browser

    async def open_page(self, url: str) -> Page:
        """Открыть вкладку и начать навигацию, не дожидаясь загрузки."""
        browser = await self._ensure_browser()
        context = await browser.new_context(
            viewport={
                "width": self.settings.viewport_width,
                "height": self.settings.viewport_height,
            },
        )
        page = await context.new_page()
        timeout = self.settings.page_load_timeout
        try:
            await page.goto(url, wait_until="commit", timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            await context.close()
            raise PageLoadTimeoutError(f"Page load timed out after {timeout:g}s") from e
        except PlaywrightError as e:
            await context.close()
            raise CommunicationError(f"Failed to open {url}: {e}") from e
        return page

    async def wait_for_load(self, page: Page, timeout: float) -> None:
        """Дождаться события load, затем дать странице settle_delay на отрисовку."""
        try:
            await page.wait_for_load_state("load", timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise PageLoadTimeoutError(f"Page load timed out after {timeout:g}s") from e
        except PlaywrightError as e:
            raise CommunicationError(f"Page closed while loading: {e}") from e
        await asyncio.sleep(self.settings.settle_delay)

    async def close_page(self, page: Page) -> None:
        await page.context.close()

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.info("[browser] Chromium stopped")
