# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for CaptureService: conditional requests, caching, capture flow."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timezone

import pytest

from pagesnap.dimensions import resolve_dimensions
from pagesnap.errors import (
    CapacityExceededError,
    CaptureCancelledError,
    NavigationTimeout,
    PersistenceError,
)
from pagesnap.etag import compute_etag
from pagesnap.limiter import ConcurrencyLimiter
from pagesnap.repository import InMemoryRepository
from pagesnap.service import CaptureRequest, CaptureService
from pagesnap.urls import normalize_target_url

NOW = datetime(2026, 3, 1, 12, 15, tzinfo=timezone.utc)


class _FailingRepository(InMemoryRepository):
    async def save(self, url, data, content_type, width, height):
        raise PersistenceError("disk full")


@pytest.fixture
def service(fake_pipeline, memory_repo, limiter) -> CaptureService:
    return CaptureService(fake_pipeline, memory_repo, limiter)


@pytest.fixture
def og_request() -> CaptureRequest:
    return CaptureRequest(url="https://example.com", width=1200, height=630)


# ---------------------------------------------------------------------------
# Miss / hit
# ---------------------------------------------------------------------------


class TestCacheFlow:
    async def test_example_com_default_preset(self, service, fake_pipeline, memory_repo):
        url = normalize_target_url("example.com")
        dim = resolve_dimensions(None, None, None, max_width=1920, max_height=1920)
        response = await service.handle(CaptureRequest(url, dim.width, dim.height), now=NOW)

        assert response.status == 200
        assert fake_pipeline.calls == [("https://example.com", 1200, 630, False)]
        assert await memory_repo.get("https://example.com", 1200, 630) is not None

    async def test_miss_captures_and_stores(self, service, og_request, fake_pipeline, memory_repo):
        response = await service.handle(og_request, now=NOW)
        assert response.cache_hit is False
        assert response.data == fake_pipeline.data
        assert response.content_type == "image/jpeg"
        assert response.timing.total_ms == 195
        assert response.etag == compute_etag("https://example.com", 1200, 630, NOW)
        assert len(memory_repo) == 1

    async def test_hit_skips_capture(self, service, og_request, fake_pipeline):
        await service.handle(og_request, now=NOW)
        response = await service.handle(og_request, now=NOW)
        assert response.cache_hit is True
        assert response.data == fake_pipeline.data
        assert response.timing is None
        assert len(fake_pipeline.calls) == 1

    async def test_different_dimensions_miss(self, service, og_request, fake_pipeline):
        await service.handle(og_request, now=NOW)
        await service.handle(CaptureRequest("https://example.com", 1080, 1080), now=NOW)
        assert len(fake_pipeline.calls) == 2


# ---------------------------------------------------------------------------
# Conditional requests
# ---------------------------------------------------------------------------


class TestConditional:
    async def test_matching_etag_returns_304_without_capture(self, service, og_request, fake_pipeline):
        first = await service.handle(og_request, now=NOW)
        second = await service.handle(og_request, if_none_match=first.etag, now=NOW)
        assert second.status == 304
        assert second.not_modified
        assert second.data == b""
        assert second.etag == first.etag
        assert len(fake_pipeline.calls) == 1

    async def test_304_even_when_not_cached(self, service, og_request, fake_pipeline):
        etag = compute_etag(og_request.url, og_request.width, og_request.height, NOW)
        response = await service.handle(og_request, if_none_match=etag, now=NOW)
        assert response.status == 304
        assert fake_pipeline.calls == []

    async def test_stale_etag_from_previous_hour(self, service, og_request):
        previous = compute_etag(og_request.url, 1200, 630, datetime(2026, 3, 1, 11, 59, tzinfo=timezone.utc))
        response = await service.handle(og_request, if_none_match=previous, now=NOW)
        assert response.status == 200


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_persistence_failure_still_serves(self, fake_pipeline, limiter, og_request):
        service = CaptureService(fake_pipeline, _FailingRepository(), limiter)
        response = await service.handle(og_request, now=NOW)
        assert response.status == 200
        assert response.data == fake_pipeline.data

    async def test_capture_failure_propagates_and_stores_nothing(
        self, service, og_request, fake_pipeline, memory_repo, limiter
    ):
        fake_pipeline.error = NavigationTimeout("timed out")
        with pytest.raises(NavigationTimeout):
            await service.handle(og_request, now=NOW)
        assert len(memory_repo) == 0
        assert limiter.active == 0

    async def test_failure_keeps_previous_entry(self, service, og_request, fake_pipeline, memory_repo):
        await memory_repo.save(og_request.url, b"previous", "image/jpeg", 1200, 630)
        fake_pipeline.error = NavigationTimeout("timed out")
        full = CaptureRequest(og_request.url, 1200, 630, full_page=True)
        with pytest.raises(NavigationTimeout):
            await service.handle(full, now=NOW)
        assert (await memory_repo.get(og_request.url, 1200, 630)).data == b"previous"

    async def test_cancelled_before_capture(self, fake_pipeline, memory_repo, og_request):
        limiter = ConcurrencyLimiter(1)
        service = CaptureService(fake_pipeline, memory_repo, limiter)
        event = asyncio.Event()
        event.set()
        with pytest.raises(CaptureCancelledError):
            await service.handle(og_request, cancel_event=event, now=NOW)
        assert fake_pipeline.calls == []

    async def test_capacity_exceeded(self, fake_pipeline, memory_repo, og_request):
        limiter = ConcurrencyLimiter(1, acquire_timeout=0.05)
        service = CaptureService(fake_pipeline, memory_repo, limiter)
        async with limiter.permit():
            with pytest.raises(CapacityExceededError):
                await service.handle(og_request, now=NOW)
        assert fake_pipeline.calls == []


# ---------------------------------------------------------------------------
# Full-page renders
# ---------------------------------------------------------------------------


class TestFullPage:
    async def test_full_page_bypasses_cache(self, service, fake_pipeline, memory_repo):
        await memory_repo.save("https://example.com", b"viewport", "image/jpeg", 1200, 630)
        response = await service.handle(CaptureRequest("https://example.com", 1200, 630, full_page=True), now=NOW)
        assert response.cache_hit is False
        assert fake_pipeline.calls == [("https://example.com", 1200, 630, True)]
        assert (await memory_repo.get("https://example.com", 1200, 630)).data == b"viewport"


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    async def test_captures_bounded_by_limiter(self, fake_pipeline, memory_repo):
        limiter = ConcurrencyLimiter(2)
        service = CaptureService(fake_pipeline, memory_repo, limiter)
        fake_pipeline.delay = 0.02
        peak = 0

        async def watch():
            nonlocal peak
            while True:
                peak = max(peak, limiter.active)
                await asyncio.sleep(0.001)

        watcher = asyncio.create_task(watch())
        requests = [CaptureRequest(f"https://site{i}.com", 100, 100) for i in range(5)]
        await asyncio.gather(*(service.handle(r, now=NOW) for r in requests))
        watcher.cancel()
        with suppress(asyncio.CancelledError):
            await watcher

        assert len(fake_pipeline.calls) == 5
        assert peak <= 2
        assert limiter.health().peak == 2
