# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""BrowserPool: one shared Chromium process, one isolated context per capture.

Lifecycle follows the ``AsyncContextManager`` pattern::

    async with BrowserPool(config=ServiceConfig()) as pool:
        async with pool.page() as page:
            await page.goto("https://example.com")

Capacity is *not* gated here; see ``limiter.py``.  Every page lives in its
own BrowserContext, closed on exit whatever happened inside the block.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from types import TracebackType

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from .config import ServiceConfig
from .errors import BrowserUnavailableError, PageCreationError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


# ---------------------------------------------------------------------------
# Health snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PoolHealth:
    """Immutable snapshot of pool state for monitoring."""

    open_pages: int
    pages_created: int
    browser_connected: bool


# ── Chromium auto-install ─────────────────────────────────────────

_chromium_install_attempted = False
_AUTO_INSTALL_TIMEOUT = 300  # seconds, Chromium ~140MB download


async def _auto_install_chromium() -> bool:
    """Run ``playwright install chromium`` once per process.

    Returns True if install succeeded, False otherwise.
    """
    global _chromium_install_attempted  # noqa: PLW0603
    if _chromium_install_attempted:
        return False
    _chromium_install_attempted = True

    logger.info("Chromium not found, running 'playwright install chromium' …")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_AUTO_INSTALL_TIMEOUT)
        if proc.returncode == 0:
            logger.info("Chromium installed successfully")
            return True
        logger.warning(
            "playwright install chromium failed (rc=%d): %s",
            proc.returncode,
            stderr.decode(errors="replace")[:500],
        )
        return False
    except TimeoutError:
        logger.warning("Chromium install timed out after %ds", _AUTO_INSTALL_TIMEOUT)
        return False
    except Exception:
        logger.warning("Chromium auto-install failed", exc_info=True)
        return False


def chromium_launch_args() -> list[str]:
    """Headless Chromium flags tuned for one-shot rendering."""
    return [
        "--no-sandbox",
        "--disable-gpu",
        "--disable-dev-shm-usage",
        "--disable-extensions",
        "--disable-plugins",
        "--disable-background-networking",
        "--disable-background-timer-throttling",
        "--disable-backgrounding-occluded-windows",
        "--disable-renderer-backgrounding",
        "--disable-sync",
        "--disable-translate",
        "--disable-default-apps",
        "--disable-features=ServiceWorker",
        "--no-first-run",
        "--hide-scrollbars",
        "--mute-audio",
        "--disable-breakpad",
        "--no-pings",
        "--noerrdialogs",
    ]


# ---------------------------------------------------------------------------
# BrowserPool
# ---------------------------------------------------------------------------


class BrowserPool:
    """Shared browser handing out short-lived, isolated pages.

    Use as an async context manager::

        async with BrowserPool() as pool:
            async with pool.page() as page:
                ...
    """

    def __init__(self, config: ServiceConfig | None = None) -> None:
        self._config = config or ServiceConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._open_pages = 0
        self._pages_created = 0

    # ── AsyncContextManager ──────────────────────────────────────────

    async def __aenter__(self) -> BrowserPool:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    async def start(self) -> None:
        """Start Playwright and launch Chromium.

        Raises:
            BrowserUnavailableError: Chromium cannot be launched, even after
                one auto-install attempt.
        """
        try:
            self._playwright = await async_playwright().start()
        except Exception as exc:
            raise BrowserUnavailableError(f"Playwright driver failed to start: {exc}") from exc

        args = chromium_launch_args()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self._config.headless, args=args)
        except Exception as exc:
            if "executable doesn't exist" in str(exc).lower() and await _auto_install_chromium():
                try:
                    self._browser = await self._playwright.chromium.launch(headless=self._config.headless, args=args)
                except Exception as retry_exc:
                    await self._stop_playwright()
                    raise BrowserUnavailableError(f"Chromium failed to launch: {retry_exc}") from retry_exc
            else:
                await self._stop_playwright()
                raise BrowserUnavailableError(
                    "Chromium is not available. Please run: playwright install chromium"
                ) from exc

        logger.info("BrowserPool started (headless=%s)", self._config.headless)

    # ── Resource management ──────────────────────────────────────────

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Open a fresh context + page, closing both on exit.

        Raises:
            PageCreationError: the browser is gone or refused a new context.
        """
        if self._browser is None or not self._browser.is_connected():
            raise PageCreationError("Browser is not connected")

        context: BrowserContext | None = None
        try:
            context = await asyncio.wait_for(
                self._browser.new_context(
                    device_scale_factor=1,
                    user_agent=DEFAULT_USER_AGENT,
                    service_workers="block",
                    accept_downloads=False,
                    permissions=[],
                ),
                timeout=self._config.page_timeout,
            )
            page = await asyncio.wait_for(context.new_page(), timeout=self._config.page_timeout)
        except Exception as exc:
            if context is not None:
                with suppress(Exception):
                    await context.close()
            raise PageCreationError(f"Could not create page: {exc}") from exc

        self._open_pages += 1
        self._pages_created += 1
        try:
            yield page
        finally:
            self._open_pages -= 1
            with suppress(Exception):
                await context.close()

    # ── Monitoring ───────────────────────────────────────────────────

    def health(self) -> PoolHealth:
        """Return a snapshot of pool health."""
        connected = self._browser is not None and self._browser.is_connected()
        return PoolHealth(
            open_pages=self._open_pages,
            pages_created=self._pages_created,
            browser_connected=connected,
        )

    # ── Shutdown ─────────────────────────────────────────────────────

    async def _stop_playwright(self) -> None:
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None

    async def shutdown(self) -> None:
        """Close the browser and stop Playwright. Idempotent."""
        if self._browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        await self._stop_playwright()
        logger.info("BrowserPool shut down")
