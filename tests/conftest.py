# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import pagesnap  # noqa: F401
except ImportError:
    raise ImportError("pagesnap is not installed. Run: pip install -e '.[dev]'") from None

import asyncio

import pytest

from pagesnap import CaptureResult, Timing
from pagesnap.limiter import ConcurrencyLimiter
from pagesnap.repository import InMemoryRepository

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-payload\xff\xd9"


class FakePipeline:
    """Stands in for CapturePipeline; records every call."""

    def __init__(self, data: bytes = JPEG_BYTES) -> None:
        self.data = data
        self.error: BaseException | None = None
        self.delay = 0.0
        self.calls: list[tuple[str, int, int, bool]] = []

    async def capture(self, url, width, height, full_page=False):
        self.calls.append((url, width, height, full_page))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return CaptureResult(
            data=self.data,
            content_type="image/jpeg",
            timing=Timing(setup_ms=5, navigation_ms=40, load_ms=120, render_ms=30, total_ms=195),
        )


@pytest.fixture
def fake_pipeline() -> FakePipeline:
    return FakePipeline()


@pytest.fixture
def memory_repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def limiter() -> ConcurrencyLimiter:
    return ConcurrencyLimiter(2, acquire_timeout=1.0)
