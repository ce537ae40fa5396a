# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Content-independent ETags bucketed by the hour.

The token depends only on the cache key and the current UTC hour, so a
conditional request can be answered with 304 without touching storage, and
every key naturally goes stale when the hour rolls over.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

_HOUR_BUCKET_FORMAT = "%Y-%m-%d-%H"


def hour_bucket(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(_HOUR_BUCKET_FORMAT)


def compute_etag(url: str, width: int, height: int, now: datetime | None = None) -> str:
    """Quoted strong ETag for (url, width, height) in the current hour."""
    material = f"{url}|{width}|{height}|{hour_bucket(now)}"
    digest = hashlib.md5(material.encode("utf-8"), usedforsecurity=False).hexdigest()
    return f'"{digest}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """Evaluate an ``If-None-Match`` header against *etag* (weak comparison)."""
    if not if_none_match:
        return False
    target = etag.strip('"')
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate.strip('"') == target:
            return True
    return False
