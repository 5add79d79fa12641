"""Playwright-based page loader that returns the visible text of a page."""

import logging

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from .config import BrowserConfig
from .utils import validate_url

logger = logging.getLogger(__name__)


class PageLoadError(Exception):
    """Raised when a page cannot be opened or read."""


class PageLoader:
    """Loads one page at a time in a private headless Chromium instance.

    Uses the Playwright sync API, so an instance must stay on the thread that
    created it. Callers in async code run it through ``asyncio.to_thread``.
    """

    # Configuration constants
    DEFAULT_VIEWPORT_WIDTH = 1280
    DEFAULT_VIEWPORT_HEIGHT = 900
    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    )
    DEFAULT_LOCALE = "en-US"

    def __init__(self, config: BrowserConfig | None = None):
        """
        Initialize the loader.

        Args:
            config: Browser settings (headless mode, timeouts, text limit).
        """
        self.config = config or BrowserConfig()
        self.playwright: Playwright | None = None
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None
        self.page: Page | None = None

    def setup_browser(self) -> None:
        """Start Chromium with a fresh, non-persistent context."""
        logger.debug("Setting up browser")

        self.playwright = sync_playwright().start()
        self.browser = self.playwright.chromium.launch(
            headless=self.config.headless,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--disable-dev-shm-usage",
                "--no-sandbox",
            ],
        )
        self.context = self.browser.new_context(
            viewport={
                "width": self.DEFAULT_VIEWPORT_WIDTH,
                "height": self.DEFAULT_VIEWPORT_HEIGHT,
            },
            user_agent=self.DEFAULT_USER_AGENT,
            locale=self.DEFAULT_LOCALE,
        )
        self.page = self.context.new_page()
        logger.debug("Browser setup complete")

    def load_text(self, url: str) -> str:
        """
        Navigate to *url* and return the page's visible text.

        Args:
            url: Absolute http(s) URL.

        Returns:
            Body text, truncated to ``max_page_chars``.

        Raises:
            PageLoadError: If the URL is invalid, navigation fails or the page is empty.
        """
        if not validate_url(url):
            raise PageLoadError(f"Invalid URL: {url}")

        if self.page is None:
            self.setup_browser()

        if self.page is None:
            raise PageLoadError("Could not initialize browser")

        try:
            logger.debug(f"Navigating to {url}")
            self.page.goto(url, wait_until="load", timeout=self.config.page_load_timeout)
            # Listings render client-side after the load event
            self.page.wait_for_timeout(self.config.settle_delay)
            text = self.page.inner_text("body")
        except PlaywrightError as e:
            raise PageLoadError(f"Failed to load {url}: {e}") from e

        text = text.strip()
        if not text:
            raise PageLoadError(f"Page has no text content: {url}")

        if len(text) > self.config.max_page_chars:
            logger.debug(f"Truncating page text for {url} from {len(text)} chars")
            text = text[: self.config.max_page_chars]
        return text

    def close(self) -> None:
        """Close browser and cleanup resources."""
        for resource, name in [(self.page, "page"), (self.context, "context"), (self.browser, "browser")]:
            if resource:
                try:
                    resource.close()
                except PlaywrightError as e:
                    logger.debug(f"Error closing {name}: {e}")

        if self.playwright:
            try:
                self.playwright.stop()
            except PlaywrightError as e:
                logger.debug(f"Error stopping playwright: {e}")

        self.page = self.context = self.browser = self.playwright = None
        logger.debug("Browser closed")

    def __enter__(self):
        """Context manager entry; a failed launch releases what was started."""
        try:
            self.setup_browser()
        except PlaywrightError:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False


def fetch_page_text(url: str, config: BrowserConfig | None = None) -> str:
    """Open a private browser, read *url* and close the browser again."""
    try:
        with PageLoader(config) as loader:
            return loader.load_text(url)
    except PlaywrightError as e:
        raise PageLoadError(f"Browser error for {url}: {e}") from e
