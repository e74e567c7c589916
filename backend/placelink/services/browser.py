import asyncio
import logging
import time
from contextlib import asynccontextmanager

from playwright.async_api import async_playwright, Browser, BrowserContext, Page

from placelink.config import settings
from placelink.core.metrics import active_browser_pages, browser_launches_total

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Request interception: skip trackers and heavy media so "networkidle"
# settles sooner on place pages
# ---------------------------------------------------------------------------

TRACKING_DOMAINS = frozenset(
    {
        "doubleclick.net",
        "googlesyndication.com",
        "googletagservices.com",
        "googletagmanager.com",
        "google-analytics.com",
        "adservice.google.com",
        "facebook.net",
        "hotjar.com",
    }
)

BLOCKED_RESOURCE_TYPES = frozenset({"media", "font"})

DEFAULT_VIEWPORT = {"width": 1366, "height": 900}


async def _setup_route_blocking(context: BrowserContext):
    """Abort tracker requests and media/font downloads on a context."""

    async def _route_handler(route, request):
        url = request.url
        try:
            after_scheme = url.split("//", 1)[1]
            hostname = after_scheme.split("/", 1)[0].split(":")[0].lower()
        except (IndexError, ValueError):
            await route.continue_()
            return

        for domain in TRACKING_DOMAINS:
            if domain in hostname:
                await route.abort()
                return

        if request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
            return

        await route.continue_()

    await context.route("**/*", _route_handler)


class BrowserSession:
    """Owns one reusable headless Chromium process.

    The browser is launched lazily on first use, shared by every scrape
    while it stays connected, and closed by a background idle watcher once
    nothing has acquired a page for BROWSER_IDLE_TIMEOUT seconds. Each
    acquire_page() call gets its own context and page, both closed on exit.
    """

    _CHROMIUM_ARGS = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-blink-features=AutomationControlled",
        "--disable-infobars",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-extensions",
        "--disable-background-networking",
        "--disable-sync",
    ]

    # Containers and serverless hosts: small /dev/shm, no GPU, tight memory
    _CONSTRAINED_ARGS = [
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-software-rasterizer",
        "--single-process",
        "--no-zygote",
        "--renderer-process-limit=1",
        "--js-flags=--max-old-space-size=256",
    ]

    def __init__(
        self,
        idle_timeout: float | None = None,
        check_interval: float | None = None,
        clock=time.monotonic,
    ):
        self._playwright = None
        self._browser: Browser | None = None
        self._loop = None
        self._init_lock: asyncio.Lock | None = None
        self._lock_loop = None
        self._idle_task: asyncio.Task | None = None
        self._active_pages = 0
        self._clock = clock
        self._idle_timeout = (
            settings.BROWSER_IDLE_TIMEOUT if idle_timeout is None else idle_timeout
        )
        self._check_interval = (
            settings.BROWSER_IDLE_CHECK_INTERVAL
            if check_interval is None
            else check_interval
        )
        self.last_used_at = 0.0

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @property
    def active_pages(self) -> int:
        return self._active_pages

    def _get_init_lock(self) -> asyncio.Lock:
        """Get or create an asyncio.Lock bound to the current event loop."""
        current_loop = asyncio.get_running_loop()
        if self._init_lock is None or self._lock_loop is not current_loop:
            self._init_lock = asyncio.Lock()
            self._lock_loop = current_loop
        return self._init_lock

    def _launch_options(self) -> dict:
        args = list(self._CHROMIUM_ARGS)
        if settings.BROWSER_CONSTRAINED_ENV:
            args.extend(self._CONSTRAINED_ARGS)
        options: dict = {"headless": settings.BROWSER_HEADLESS, "args": args}
        if settings.BROWSER_EXECUTABLE_PATH:
            options["executable_path"] = settings.BROWSER_EXECUTABLE_PATH
        return options

    async def get_browser(self) -> Browser:
        """Return the live browser, launching one if needed.

        Launch failures propagate to the caller; retries are the
        orchestrator's concern.
        """
        self.last_used_at = self._clock()
        current_loop = asyncio.get_running_loop()

        if self.is_connected and self._loop is current_loop:
            return self._browser

        async with self._get_init_lock():
            # Double-check after acquiring lock
            if self.is_connected and self._loop is current_loop:
                return self._browser
            await self._launch(current_loop)
        return self._browser

    async def _launch(self, current_loop):
        """Launch Chromium. Must be called under the init lock."""
        if self._loop is not None and self._loop is not current_loop:
            # Handles from another event loop cannot be awaited here
            logger.debug("Event loop changed, discarding stale browser handle")
            self._browser = None
            self._playwright = None
            self._idle_task = None
        elif self._browser is not None:
            logger.warning("Chromium disconnected, relaunching")
            await self._close_browser()

        if self._playwright is None:
            self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                **self._launch_options()
            )
        except Exception:
            await self._stop_playwright()
            raise

        self._loop = current_loop
        browser_launches_total.inc()
        logger.info(
            "Chromium launched (headless=%s, constrained=%s)",
            settings.BROWSER_HEADLESS,
            settings.BROWSER_CONSTRAINED_ENV,
        )
        self._arm_idle_watch()

    async def _relaunch_browser(self):
        """Relaunch after the browser died between get_browser() and use."""
        current_loop = asyncio.get_running_loop()
        async with self._get_init_lock():
            if self.is_connected:
                return  # Already relaunched by another coroutine
            await self._launch(current_loop)

    # ------------------------------------------------------------------
    # Idle teardown
    # ------------------------------------------------------------------

    def _arm_idle_watch(self):
        if self._idle_task is None or self._idle_task.done():
            self._idle_task = asyncio.create_task(self._idle_watch())

    def _is_idle(self) -> bool:
        return (
            self._active_pages == 0
            and self._clock() - self.last_used_at > self._idle_timeout
        )

    async def _idle_watch(self):
        """Close the browser after a quiet period; exits once it is gone."""
        while True:
            await asyncio.sleep(self._check_interval)
            if not self.is_connected:
                return
            if not self._is_idle():
                continue
            async with self._get_init_lock():
                # A scrape may have acquired the browser while we waited
                if not self.is_connected or not self._is_idle():
                    continue
                logger.info(
                    "Closing browser after %.0fs idle",
                    self._clock() - self.last_used_at,
                )
                # The next launch must arm a fresh watcher
                if self._idle_task is asyncio.current_task():
                    self._idle_task = None
                # Handles are already detached; finish closing even if shutdown cancels us
                await asyncio.shield(self._close_browser())
                return

    async def _stop_playwright(self):
        playwright, self._playwright = self._playwright, None
        if playwright:
            try:
                await playwright.stop()
            except Exception as e:
                logger.debug("Playwright stop failed: %s", e)

    async def _close_browser(self):
        # Detach both handles before suspending so a concurrent launch
        # always starts its own driver
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser:
            try:
                await browser.close()
            except Exception as e:
                logger.debug("Browser close failed: %s", e)
        if playwright:
            try:
                await playwright.stop()
            except Exception as e:
                logger.debug("Playwright stop failed: %s", e)

    async def shutdown(self):
        task, self._idle_task = self._idle_task, None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close_browser()
        self._loop = None
        logger.info("Browser session shut down")

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def _is_browser_closed_error(self, exc: Exception) -> bool:
        """Check if an exception indicates the browser process has died."""
        msg = str(exc).lower()
        return any(
            phrase in msg
            for phrase in [
                "browser has been closed",
                "target page, context or browser has been closed",
                "connection closed",
                "browser closed",
            ]
        )

    @asynccontextmanager
    async def acquire_page(
        self,
        user_agent: str | None = None,
        cookies: list[dict] | None = None,
        locale: str = "en-US",
    ):
        """Yield a fresh page on the shared browser.

        The page and its context are closed on every exit path, including
        errors and cancellation.

        Args:
            user_agent: User-Agent for the page's context
            cookies: Cookies to set before the first navigation
            locale: Browser locale (also drives Accept-Language)
        """
        browser = await self.get_browser()

        context_kwargs: dict = dict(
            viewport=DEFAULT_VIEWPORT,
            locale=locale,
            java_script_enabled=True,
            color_scheme="light",
        )
        if user_agent:
            context_kwargs["user_agent"] = user_agent

        try:
            context: BrowserContext = await browser.new_context(**context_kwargs)
        except Exception as e:
            if not self._is_browser_closed_error(e):
                raise
            logger.warning("Browser closed during new_context, relaunching")
            await self._relaunch_browser()
            context = await self._browser.new_context(**context_kwargs)

        self._active_pages += 1
        active_browser_pages.inc()
        page: Page | None = None
        try:
            await _setup_route_blocking(context)
            if cookies:
                await context.add_cookies(cookies)
            page = await context.new_page()
            yield page
        finally:
            # Shield cleanup so a cancelled caller cannot leak the tab
            try:
                await asyncio.shield(self._safe_cleanup_page(page, context))
            except (asyncio.CancelledError, Exception):
                pass
            self._active_pages -= 1
            active_browser_pages.dec()

    async def _safe_cleanup_page(self, page: Page | None, context: BrowserContext):
        """Close page and context, safe against cancellation."""
        if page is not None:
            try:
                await page.close()
            except BaseException:
                pass
        try:
            await context.close()
        except BaseException:
            pass


# Module-level singleton
browser_session = BrowserSession()
