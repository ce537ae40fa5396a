# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SQLite-backed screenshot cache.

Uses ``aiosqlite`` (>=0.22.0, futures-based) with a single long-lived
connection.  WAL journal mode enables concurrent reads with serialized
writes.  Schema versioned via ``PRAGMA user_version``; each entry of
``_MIGRATIONS`` upgrades the database by one version.

Dependencies: repository.py (RepositoryProtocol), errors.py.
"""

from __future__ import annotations

import logging
import time
from contextlib import suppress
from pathlib import Path

import aiosqlite

from . import CachedImage, ImageSummary
from .errors import PersistenceError
from .repository import DEFAULT_LIST_LIMIT

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_CREATE_SCREENSHOTS = """
CREATE TABLE IF NOT EXISTS screenshots (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    url          TEXT NOT NULL,
    data         BLOB NOT NULL,
    content_type TEXT NOT NULL DEFAULT 'image/jpeg',
    width        INTEGER NOT NULL,
    height       INTEGER NOT NULL,
    created_at   REAL NOT NULL,
    UNIQUE (url, width, height)
)
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_screenshots_created_at ON screenshots(created_at)",
]

# Index i holds the statements that take the schema from version i to i + 1.
_MIGRATIONS: list[list[str]] = [
    [_CREATE_SCREENSHOTS, *_CREATE_INDEXES],
]

_SCHEMA_VERSION = len(_MIGRATIONS)

_UPSERT = """
INSERT INTO screenshots (url, data, content_type, width, height, created_at)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT (url, width, height) DO UPDATE SET
    data = excluded.data,
    content_type = excluded.content_type,
    created_at = excluded.created_at
"""


def _row_to_summary(row: aiosqlite.Row) -> ImageSummary:
    """Convert a positional listing row to an ``ImageSummary``."""
    return ImageSummary(
        id=row[0],
        url=row[1],
        size=row[2],
        content_type=row[3],
        width=row[4],
        height=row[5],
        created_at=row[6],
    )


# ---------------------------------------------------------------------------
# SqliteRepository
# ---------------------------------------------------------------------------


class SqliteRepository:
    """SQLite-backed repository implementing ``RepositoryProtocol``.

    Use the ``create()`` async classmethod factory: never instantiate directly.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @classmethod
    async def create(cls, db_path: str | Path) -> SqliteRepository:
        """Open (or create) a SQLite database and apply pending migrations.

        Resolves ``~`` and creates parent directories automatically.

        Raises:
            ValueError: If the existing database has a newer schema version.
        """
        path = Path(db_path).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        db = await aiosqlite.connect(str(path))
        try:
            await db.execute("PRAGMA journal_mode = WAL")
            await db.execute("PRAGMA synchronous = NORMAL")
            await db.execute("PRAGMA busy_timeout = 5000")

            cursor = await db.execute("PRAGMA user_version")
            row = await cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > _SCHEMA_VERSION:
                raise ValueError(
                    f"Database schema version {current_version} is newer than supported version {_SCHEMA_VERSION}"
                )

            for version in range(current_version, _SCHEMA_VERSION):
                for statement in _MIGRATIONS[version]:
                    await db.execute(statement)
                await db.execute(f"PRAGMA user_version = {version + 1}")
                await db.commit()
                logger.info("Applied cache schema migration %d", version + 1)
        except BaseException:
            await db.close()
            raise

        return cls(db)

    # ── RepositoryProtocol methods ────────────────────────────────

    async def get(self, url: str, width: int, height: int) -> CachedImage | None:
        """Look up a stored render. Returns ``None`` if not found."""
        cursor = await self._db.execute(
            "SELECT data, content_type FROM screenshots WHERE url = ? AND width = ? AND height = ?",
            (url, width, height),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return CachedImage(data=bytes(row[0]), content_type=row[1])

    async def save(self, url: str, data: bytes, content_type: str, width: int, height: int) -> None:
        """Insert or replace the render for (url, width, height).

        Raises:
            PersistenceError: the write (or its commit) failed.
        """
        try:
            await self._db.execute(_UPSERT, (url, data, content_type, width, height, time.time()))
            await self._db.commit()
        except (aiosqlite.Error, ValueError) as exc:
            raise PersistenceError(f"Could not cache render for {url}: {exc}") from exc

    async def list_images(self, limit: int = DEFAULT_LIST_LIMIT) -> list[ImageSummary]:
        """Return summaries (no image bytes) ordered newest first."""
        cursor = await self._db.execute(
            "SELECT id, url, length(data), content_type, width, height, created_at "
            "FROM screenshots ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [_row_to_summary(r) for r in rows]

    async def close(self) -> None:
        """Close the database connection. Idempotent."""
        with suppress(Exception):
            await self._db.close()
