# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Capture service: the request flow around the capture pipeline.

    ETag → conditional 304 → cache lookup → permit → capture → best-effort save

Framework-agnostic: ``server.py`` translates HTTP to :class:`CaptureRequest`
and :class:`CaptureResponse` back to HTTP.  Concurrent misses for the same
key are not coalesced; each pays for its own capture and the last write wins.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from . import CaptureResult, Timing
from .errors import PersistenceError
from .etag import compute_etag, etag_matches
from .limiter import ConcurrencyLimiter
from .repository import RepositoryProtocol

logger = logging.getLogger(__name__)


class Capturer(Protocol):
    async def capture(self, url: str, width: int, height: int, full_page: bool = False) -> CaptureResult: ...


@dataclass(frozen=True, slots=True)
class CaptureRequest:
    """A resolved capture request (normalized URL, clamped dimensions)."""

    url: str
    width: int
    height: int
    full_page: bool = False


@dataclass(frozen=True, slots=True)
class CaptureResponse:
    """Outcome of :meth:`CaptureService.handle` (200 with an image, or 304)."""

    status: int
    etag: str
    data: bytes = b""
    content_type: str = ""
    timing: Timing | None = None
    cache_hit: bool = False

    @property
    def not_modified(self) -> bool:
        return self.status == 304


class CaptureService:
    """Serve captures from cache when possible, otherwise render and store."""

    def __init__(
        self,
        pipeline: Capturer,
        repository: RepositoryProtocol,
        limiter: ConcurrencyLimiter,
    ) -> None:
        self._pipeline = pipeline
        self._repository = repository
        self._limiter = limiter

    async def handle(
        self,
        request: CaptureRequest,
        *,
        if_none_match: str | None = None,
        cancel_event: asyncio.Event | None = None,
        now: datetime | None = None,
    ) -> CaptureResponse:
        """Produce the image for *request*.

        Raises:
            CaptureCancelledError: caller cancelled while waiting for a slot.
            CapacityExceededError: no slot freed up within the acquire timeout.
            CaptureFailure: the pipeline failed (cached entries stay intact).
        """
        etag = compute_etag(request.url, request.width, request.height, now)
        if etag_matches(if_none_match, etag):
            return CaptureResponse(status=304, etag=etag)

        # Full-page renders have a different shape than the keyed viewport
        # render, so they bypass the cache in both directions.
        if not request.full_page:
            cached = await self._repository.get(request.url, request.width, request.height)
            if cached is not None:
                logger.debug("Cache hit url=%s size=%dx%d", request.url, request.width, request.height)
                return CaptureResponse(
                    status=200,
                    etag=etag,
                    data=cached.data,
                    content_type=cached.content_type,
                    cache_hit=True,
                )

        async with self._limiter.permit(cancel_event):
            result = await self._pipeline.capture(request.url, request.width, request.height, request.full_page)

        timing = result.timing
        logger.info(
            "Screenshot captured url=%s setup_ms=%d nav_ms=%d load_ms=%d render_ms=%d total_ms=%d size_kb=%d",
            request.url,
            timing.setup_ms,
            timing.navigation_ms,
            timing.load_ms,
            timing.render_ms,
            timing.total_ms,
            result.size // 1024,
        )

        if not request.full_page:
            await self._store(request, result)

        return CaptureResponse(
            status=200,
            etag=etag,
            data=result.data,
            content_type=result.content_type,
            timing=timing,
        )

    async def _store(self, request: CaptureRequest, result: CaptureResult) -> None:
        try:
            await self._repository.save(
                request.url, result.data, result.content_type, request.width, request.height
            )
        except PersistenceError as exc:
            logger.warning("Screenshot not cached url=%s: %s", request.url, exc)
