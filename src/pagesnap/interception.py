# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-request interception policy applied while a page loads.

The decision itself is a pure function of (url, resource_type) plus the
immutable blocklist and config flags, so it can be exercised against plain
fixtures.  :meth:`InterceptionPolicy.install` adapts it to a Playwright
route handler for one page.

Decision order (first match wins):

1. font, when font blocking is on
2. media / websocket / media file extension, when media blocking is on
3. non-rendering traffic (xhr, fetch, ping, prefetch, ...), always
4. favicon / web-manifest URLs, always
5. blocklisted host, unless the request is a stylesheet or the document
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Route

from .blocklist import Blocklist, extract_host

logger = logging.getLogger(__name__)

MEDIA_RESOURCE_TYPES = frozenset({"media", "websocket"})
MEDIA_EXTENSIONS = (".mp4", ".webm", ".mp3", ".wav", ".ogg")

# Cannot change rendered pixels of a static snapshot.
NON_RENDERING_TYPES = frozenset(
    {
        "xhr",
        "fetch",
        "ping",
        "prefetch",
        "signedexchange",
        "eventsource",
        "manifest",
    }
)

FAVICON_MARKERS = (
    "favicon.ico",
    ".webmanifest",
    "manifest.json",
    "apple-touch-icon",
    "android-chrome",
)

# Never blocklist-checked: blocking them breaks layout entirely.
LAYOUT_CRITICAL_TYPES = frozenset({"stylesheet", "document"})

ROUTE_PATTERN = "**/*"

RouteHandler = Callable[[Route], Awaitable[None]]


def _url_path(url: str) -> str:
    try:
        return urlsplit(url).path.lower()
    except ValueError:
        return url.lower()


class InterceptionPolicy:
    """Allow/block decisions for sub-resource requests."""

    def __init__(
        self,
        blocklist: Blocklist,
        *,
        block_fonts: bool = True,
        block_media: bool = True,
        debug: bool = False,
    ) -> None:
        self._blocklist = blocklist
        self._block_fonts = block_fonts
        self._block_media = block_media
        self._debug = debug

    def decide(self, url: str, resource_type: str) -> str | None:
        """Return the reason *url* should be blocked, or None to allow it."""
        if self._block_fonts and resource_type == "font":
            return "font"

        path = _url_path(url)

        if self._block_media and (resource_type in MEDIA_RESOURCE_TYPES or path.endswith(MEDIA_EXTENSIONS)):
            return "media"

        if resource_type in NON_RENDERING_TYPES:
            return "non_rendering"

        if any(marker in path for marker in FAVICON_MARKERS):
            return "favicon"

        if resource_type not in LAYOUT_CRITICAL_TYPES and self._blocklist.is_blocked(extract_host(url)):
            return "blocklist"

        return None

    def should_block(self, url: str, resource_type: str) -> bool:
        reason = self.decide(url, resource_type)
        if self._debug:
            if reason is None:
                logger.debug("fetching type=%s url=%s", resource_type, url)
            else:
                logger.debug("blocked reason=%s type=%s url=%s", reason, resource_type, url)
        return reason is not None

    async def install(self, page: Page) -> RouteHandler:
        """Route every request on *page* through this policy.

        Returns the handler so the caller can ``page.unroute`` it on teardown.
        """

        async def _handler(route: Route) -> None:
            request = route.request
            try:
                if self.should_block(request.url, request.resource_type):
                    await route.abort("blockedbyclient")
                else:
                    await route.continue_()
            except PlaywrightError as exc:
                # Page torn down while the request was in flight.
                logger.debug("Route handling skipped for %s: %s", request.url, exc)

        await page.route(ROUTE_PATTERN, _handler)
        return _handler
