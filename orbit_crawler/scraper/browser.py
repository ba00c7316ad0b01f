"""Owner of the shared headless browser process.

One Chromium process is launched lazily and reused; each fetch opens its own
tab through :meth:`BrowserSessionManager.page`, which always closes the tab.
If the process dies it is relaunched on the next :meth:`acquire`.

Playwright's sync API is bound to the thread that started it, so a manager
must be driven from a single thread (the API layer funnels browser work
through a one-worker executor for this reason).
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Sequence

from playwright.sync_api import Browser, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from orbit_crawler.config import Settings, settings as default_settings
from orbit_crawler.errors import BrowserLaunchError, BrowserUnavailableError
from orbit_crawler.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
)

# Returns a started Playwright driver.  Tests inject a fake.
Launcher = Callable[[], Playwright]


def _start_playwright() -> Playwright:
    return sync_playwright().start()


class BrowserSessionManager:
    """Lazily launched, self-healing browser shared by every fetch.

    Args:
        headless: Run without a window.
        executable_path: Explicit Chromium binary; ``None`` uses Playwright's.
        viewport: ``(width, height)`` applied to every new tab.
        user_agent: Desktop user-agent string applied to every new tab.
        launch_args: Extra Chromium command-line flags.
        launcher: Factory for the Playwright driver.
        cfg: Settings used for any argument left as ``None``.
    """

    def __init__(
        self,
        headless: Optional[bool] = None,
        executable_path: Optional[str] = None,
        viewport: Optional[tuple[int, int]] = None,
        user_agent: Optional[str] = None,
        launch_args: Sequence[str] = DEFAULT_LAUNCH_ARGS,
        launcher: Launcher = _start_playwright,
        cfg: Optional[Settings] = None,
    ) -> None:
        cfg = cfg or default_settings
        self.headless = cfg.browser_headless if headless is None else headless
        self.executable_path = executable_path or cfg.browser_executable_path
        self.viewport = viewport or (cfg.viewport_width, cfg.viewport_height)
        self.user_agent = user_agent or cfg.user_agent
        self.launch_args = list(launch_args) + [
            f"--window-size={self.viewport[0]},{self.viewport[1]}"
        ]
        self._launcher = launcher
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def acquire(self) -> Browser:
        """Return a live browser, launching or relaunching it as needed.

        Raises:
            BrowserLaunchError: The browser could not be started.  Not retried.
        """
        with self._lock:
            if self._browser is not None:
                if self._is_alive(self._browser):
                    return self._browser
                logger.warning("browser_disconnected", action="relaunch")
                self._close_browser()
            self._browser = self._launch()
            return self._browser

    def is_alive(self) -> bool:
        """``True`` when a launched browser is still connected."""
        browser = self._browser
        return browser is not None and self._is_alive(browser)

    def new_page(self) -> Page:
        """Open a new tab with the configured viewport and user agent.

        The caller owns the tab and must close it; prefer :meth:`page`.

        Raises:
            BrowserLaunchError: The browser could not be started.
            BrowserUnavailableError: The browser went away before the tab opened.
        """
        browser = self.acquire()
        width, height = self.viewport
        try:
            return browser.new_page(
                viewport={"width": width, "height": height},
                user_agent=self.user_agent,
            )
        except PlaywrightError as exc:
            logger.warning("new_page_failed", error=str(exc))
            raise BrowserUnavailableError(f"Could not open a browser tab: {exc}") from exc

    @contextmanager
    def page(self) -> Iterator[Page]:
        """Yield a new tab and close it on every exit path."""
        tab = self.new_page()
        try:
            yield tab
        finally:
            try:
                tab.close()
            except Exception as exc:  # noqa: BLE001 - a dead tab must not mask the fetch result
                logger.debug("page_close_failed", error=str(exc))

    def close(self) -> None:
        """Close the browser and stop Playwright.  Safe to call repeatedly."""
        with self._lock:
            self._close_browser()
            if self._playwright is not None:
                try:
                    self._playwright.stop()
                except Exception as exc:  # noqa: BLE001
                    logger.debug("playwright_stop_failed", error=str(exc))
                self._playwright = None
        atexit.unregister(self.close)

    def __enter__(self) -> "BrowserSessionManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals (callers hold self._lock)
    # ------------------------------------------------------------------

    @staticmethod
    def _is_alive(browser: Browser) -> bool:
        try:
            return bool(browser.is_connected())
        except Exception:  # noqa: BLE001 - an unresponsive handle counts as dead
            return False

    def _launch(self) -> Browser:
        logger.info("browser_launching", headless=self.headless)
        try:
            if self._playwright is None:
                self._playwright = self._launcher()
                # Only a manager with a live driver is held by atexit.
                atexit.register(self.close)
            kwargs: dict = {"headless": self.headless, "args": self.launch_args}
            if self.executable_path:
                kwargs["executable_path"] = self.executable_path
            return self._playwright.chromium.launch(**kwargs)
        except Exception as exc:
            logger.error("browser_launch_failed", error=str(exc))
            raise BrowserLaunchError(f"Failed to launch headless browser: {exc}") from exc

    def _close_browser(self) -> None:
        if self._browser is None:
            return
        try:
            self._browser.close()
        except Exception as exc:  # noqa: BLE001 - the process may already be gone
            logger.debug("browser_close_failed", error=str(exc))
        self._browser = None
        logger.info("browser_closed")
