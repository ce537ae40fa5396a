# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Cache repository abstraction: protocol-based data access layer.

Defines ``RepositoryProtocol`` for the screenshot cache and
``InMemoryRepository`` for tests and throwaway runs.  The key
(url, width, height) identifies at most one stored render; saving the same
key again replaces it.

Pattern: runtime-checkable Protocol + concrete implementations
(see ``repository_sqlite.py`` for the durable one).
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from . import CachedImage, ImageSummary

DEFAULT_LIST_LIMIT = 100

# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class RepositoryProtocol(Protocol):
    """Interface for the screenshot cache: in-memory or SQLite."""

    async def get(self, url: str, width: int, height: int) -> CachedImage | None: ...

    async def save(self, url: str, data: bytes, content_type: str, width: int, height: int) -> None: ...

    async def list_images(self, limit: int = DEFAULT_LIST_LIMIT) -> list[ImageSummary]: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Row:
    id: int
    data: bytes
    content_type: str
    created_at: float


class InMemoryRepository:
    """Dict-backed repository with the same upsert semantics as SQLite.

    Suitable for tests where persistence is not required.
    """

    def __init__(self) -> None:
        self._rows: dict[tuple[str, int, int], _Row] = {}
        self._ids = itertools.count(1)

    async def get(self, url: str, width: int, height: int) -> CachedImage | None:
        """Look up a stored render. Returns ``None`` on a miss."""
        row = self._rows.get((url, width, height))
        if row is None:
            return None
        return CachedImage(data=row.data, content_type=row.content_type)

    async def save(self, url: str, data: bytes, content_type: str, width: int, height: int) -> None:
        """Insert or fully replace the render for (url, width, height)."""
        key = (url, width, height)
        existing = self._rows.get(key)
        row_id = existing.id if existing is not None else next(self._ids)
        self._rows[key] = _Row(id=row_id, data=data, content_type=content_type, created_at=time.time())

    async def list_images(self, limit: int = DEFAULT_LIST_LIMIT) -> list[ImageSummary]:
        """Summaries ordered newest first."""
        items = sorted(self._rows.items(), key=lambda kv: (kv[1].created_at, kv[1].id), reverse=True)
        return [
            ImageSummary(
                id=row.id,
                url=url,
                size=len(row.data),
                content_type=row.content_type,
                width=width,
                height=height,
                created_at=row.created_at,
            )
            for (url, width, height), row in items[:limit]
        ]

    async def close(self) -> None:
        """No-op for in-memory repository."""

    def __len__(self) -> int:
        return len(self._rows)
