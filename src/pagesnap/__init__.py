# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagesnap: cached, concurrency-bounded URL-to-image capture service.

Renders arbitrary URLs with headless Chromium while filtering ad/tracker
traffic, then keeps the result in a SQLite cache keyed by (url, width, height):
- capture: one browser-driven render of a URL into an image
- cache: durable storage of the latest render for each key
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True, slots=True)
class Timing:
    """Per-stage capture durations in milliseconds."""

    setup_ms: float = 0.0
    navigation_ms: float = 0.0
    load_ms: float = 0.0
    render_ms: float = 0.0
    total_ms: float = 0.0

    def to_headers(self) -> dict[str, str]:
        """Auxiliary response headers (integer milliseconds)."""
        return {
            "X-Setup-Ms": str(int(self.setup_ms)),
            "X-Nav-Ms": str(int(self.navigation_ms)),
            "X-Load-Ms": str(int(self.load_ms)),
            "X-Render-Ms": str(int(self.render_ms)),
            "X-Total-Ms": str(int(self.total_ms)),
        }


@dataclass(frozen=True, slots=True)
class CaptureResult:
    """Successful capture: image bytes plus how long each stage took."""

    data: bytes
    content_type: str
    timing: Timing

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class CachedImage:
    """Stored render returned by a cache lookup."""

    data: bytes
    content_type: str


@dataclass(frozen=True, slots=True)
class ImageSummary:
    """Listing row for a cached render (no image bytes)."""

    id: int
    url: str
    size: int  # byte length of the stored image
    content_type: str
    width: int
    height: int
    created_at: float  # time.time()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "size": self.size,
            "content_type": self.content_type,
            "width": self.width,
            "height": self.height,
            "created_at": datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat(timespec="seconds"),
        }
