# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Capture pipeline: drive one browser page from URL to image bytes.

Stages (each timed, each failing with its own exception type):

    setup       page creation (PageCreationError), viewport (ViewportError),
                interception router install
    navigation  goto, bounded by page_timeout (NavigationTimeout)
    load        wait for the load event (LoadTimeout)
    render      JPEG screenshot, viewport or full page (CaptureError)

The page, its context and the router are released on every exit path.
Nothing here writes to the cache; persistence is the caller's job.
"""

from __future__ import annotations

import logging
from contextlib import suppress

from playwright.async_api import Page

from . import CaptureResult
from .browser_pool import BrowserPool
from .config import ServiceConfig
from .errors import (
    CaptureError,
    CaptureFailure,
    LoadTimeout,
    NavigationTimeout,
    PageCreationError,
    ViewportError,
)
from .interception import ROUTE_PATTERN, InterceptionPolicy
from .pipeline_timer import PipelineTimer
from .urls import ensure_scheme

logger = logging.getLogger(__name__)

RENDER_FORMAT = "jpeg"
RENDER_CONTENT_TYPE = "image/jpeg"


class CapturePipeline:
    """Renders URLs to images using pages borrowed from a :class:`BrowserPool`."""

    def __init__(self, pool: BrowserPool, policy: InterceptionPolicy, config: ServiceConfig) -> None:
        self._pool = pool
        self._policy = policy
        self._config = config

    async def capture(self, url: str, width: int, height: int, full_page: bool = False) -> CaptureResult:
        """Render *url* at *width* x *height*.

        Raises:
            CaptureFailure: one of its subclasses, with ``timing`` set to the
                stage durations measured up to the failure.
        """
        target = ensure_scheme(url)
        timer = PipelineTimer()
        timer.stage("setup")
        try:
            async with self._pool.page() as page:
                await self._apply_viewport(page, width, height)
                try:
                    handler = await self._policy.install(page)
                except Exception as exc:
                    raise PageCreationError(f"Could not install request router: {exc}") from exc
                try:
                    timer.stage("navigation")
                    await self._navigate(page, target)
                    timer.stage("load")
                    await self._wait_for_load(page)
                    timer.stage("render")
                    data = await self._render(page, full_page)
                    timer.finalize()
                finally:
                    with suppress(Exception):
                        await page.unroute(ROUTE_PATTERN, handler)
        except CaptureFailure as exc:
            timer.finalize()
            exc.timing = timer.to_timing()
            logger.warning("Capture failed url=%s error=%s report=%s", target, exc, timer.failure_report())
            raise

        return CaptureResult(data=data, content_type=RENDER_CONTENT_TYPE, timing=timer.to_timing())

    # ── Stages ───────────────────────────────────────────────────────

    async def _apply_viewport(self, page: Page, width: int, height: int) -> None:
        try:
            await page.set_viewport_size({"width": width, "height": height})
        except Exception as exc:
            raise ViewportError(f"Could not set viewport {width}x{height}: {exc}") from exc

    async def _navigate(self, page: Page, url: str) -> None:
        try:
            await page.goto(url, wait_until="commit", timeout=self._config.page_timeout_ms)
        except Exception as exc:
            raise NavigationTimeout(f"Navigation to {url} failed: {exc}") from exc

    async def _wait_for_load(self, page: Page) -> None:
        try:
            await page.wait_for_load_state("load", timeout=self._config.page_timeout_ms)
        except Exception as exc:
            raise LoadTimeout(f"Page did not finish loading: {exc}") from exc

    async def _render(self, page: Page, full_page: bool) -> bytes:
        try:
            return await page.screenshot(
                type=RENDER_FORMAT,
                quality=self._config.screenshot_quality,
                full_page=full_page,
                timeout=self._config.page_timeout_ms,
            )
        except Exception as exc:
            raise CaptureError(f"Screenshot failed: {exc}") from exc
