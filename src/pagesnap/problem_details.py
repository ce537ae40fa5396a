# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RFC 9457 Problem Details for HTTP APIs.

Maps pagesnap exceptions to outward error responses.  Each failure kind
gets its own status and a short human-readable ``detail``; internal
diagnostics (exception text, stack traces, file paths) stay in the logs.

Key public API:

- ``ProblemType``  : StrEnum error taxonomy.
- ``ProblemDetail``: frozen dataclass (→ JSON dict / Starlette response).
- ``sanitize_detail()``: scrub credentials & paths from caller-facing text.
- ``from_exception()``: build a ``ProblemDetail`` from any exception.

Type URI namespace: ``https://pagesnap.dev/errors/{slug}``
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import (
    BrowserUnavailableError,
    CapacityExceededError,
    CaptureCancelledError,
    CaptureFailure,
    InvalidTargetError,
)

# ── Constants ────────────────────────────────────────────────────────

_ERROR_BASE = "https://pagesnap.dev/errors"

MAX_DETAIL_LENGTH = 200

# ── ProblemType taxonomy ─────────────────────────────────────────────


class ProblemType(StrEnum):
    """Error taxonomy for pagesnap."""

    INVALID_URL = "invalid-url"
    BOT_BLOCKED = "bot-blocked"
    PAGE_TIMEOUT = "page-timeout"
    CAPTURE_FAILED = "capture-failed"
    SERVER_BUSY = "server-busy"
    REQUEST_CANCELLED = "request-cancelled"
    BROWSER_UNAVAILABLE = "browser-unavailable"
    INTERNAL_ERROR = "internal-error"

    @property
    def uri(self) -> str:
        """Full type URI for RFC 9457 ``type`` field."""
        return f"{_ERROR_BASE}/{self.value}"


# ── Per-type metadata: (status, title) ───────────────────────────────

_TYPE_METADATA: dict[ProblemType, tuple[int, str]] = {
    ProblemType.INVALID_URL: (400, "Invalid URL"),
    ProblemType.BOT_BLOCKED: (403, "Forbidden"),
    ProblemType.PAGE_TIMEOUT: (504, "Page Timed Out"),
    ProblemType.CAPTURE_FAILED: (500, "Capture Failed"),
    ProblemType.SERVER_BUSY: (503, "Server Busy"),
    ProblemType.REQUEST_CANCELLED: (503, "Request Cancelled"),
    ProblemType.BROWSER_UNAVAILABLE: (503, "Browser Unavailable"),
    ProblemType.INTERNAL_ERROR: (500, "Internal Server Error"),
}

# ── Secret sanitization patterns ─────────────────────────────────────

_SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"Bearer\s+\S+"), "Bearer <redacted>"),
    (re.compile(r"Basic\s+[A-Za-z0-9+/=]{8,}"), "Basic <redacted>"),
    (re.compile(r"://[^@\s/]+@"), "://<redacted>@"),
    (
        re.compile(r"(?:API_KEY|SECRET|TOKEN|PASSWORD)\s*[=:]\s*\S+", re.IGNORECASE),
        "<redacted>",
    ),
]

_PATH_PATTERN = re.compile(
    r"(/(?:Users|home|tmp|var|etc|opt|root|srv|proc|sys|usr|Library"
    r"|Applications|private|snap|mnt|media|nix)/[\w./-]+"
    r"|[A-Z]:\\[\w.\\-]+)"
)


def sanitize_detail(text: str) -> str:
    """Scrub secrets and filesystem paths from *text*, then truncate."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    text = _PATH_PATTERN.sub("<path>", text)
    if len(text) > MAX_DETAIL_LENGTH:
        text = text[:MAX_DETAIL_LENGTH] + "..."
    return text


# ── ProblemDetail dataclass ──────────────────────────────────────────

# Standard RFC 9457 fields that extensions must never shadow.
_STANDARD_FIELDS = frozenset({"type", "title", "status", "detail", "instance"})


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """RFC 9457 Problem Detail object."""

    type: str = "about:blank"
    title: str = ""
    status: int = 500
    detail: str = ""
    instance: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """RFC 9457 JSON dict.  Empty optional fields omitted, extensions merged at top level."""
        d: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.title:
            d["title"] = self.title
        if self.detail:
            d["detail"] = self.detail
        if self.instance:
            d["instance"] = self.instance
        for k, v in self.extensions.items():
            if k not in _STANDARD_FIELDS:
                d[k] = v
        return d

    def to_response(self):
        """Starlette ``JSONResponse`` with ``application/problem+json``.

        Adds ``Retry-After`` when the extensions carry ``retry_after``.
        """
        from starlette.responses import JSONResponse

        headers: dict[str, str] = {"Cache-Control": "no-store"}
        if "retry_after" in self.extensions:
            headers["Retry-After"] = str(math.ceil(self.extensions["retry_after"]))

        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status,
            media_type="application/problem+json",
            headers=headers,
        )


# ── Factories ────────────────────────────────────────────────────────


def build(problem_type: ProblemType, detail: str, *, instance: str = "", **extensions: Any) -> ProblemDetail:
    """Build a ``ProblemDetail`` of *problem_type* with a sanitized *detail*."""
    status, title = _TYPE_METADATA[problem_type]
    return ProblemDetail(
        type=problem_type.uri,
        title=title,
        status=status,
        detail=sanitize_detail(detail),
        instance=instance,
        extensions=extensions,
    )


def from_exception(exc: BaseException, *, instance: str = "") -> ProblemDetail:
    """Map an exception to the outward problem for its failure kind."""
    if isinstance(exc, InvalidTargetError):
        return build(ProblemType.INVALID_URL, str(exc), instance=instance)
    if isinstance(exc, CaptureFailure):
        if exc.is_timeout:
            return build(ProblemType.PAGE_TIMEOUT, "timeout loading page", instance=instance, stage=exc.stage)
        return build(
            ProblemType.CAPTURE_FAILED, "failed to capture screenshot", instance=instance, stage=exc.stage
        )
    if isinstance(exc, CaptureCancelledError):
        return build(ProblemType.REQUEST_CANCELLED, "request cancelled", instance=instance)
    if isinstance(exc, CapacityExceededError):
        return build(
            ProblemType.SERVER_BUSY,
            "all capture slots are busy, retry shortly",
            instance=instance,
            retry_after=exc.retry_after,
        )
    if isinstance(exc, BrowserUnavailableError):
        return build(ProblemType.BROWSER_UNAVAILABLE, "browser is not available", instance=instance)
    return build(ProblemType.INTERNAL_ERROR, "internal error", instance=instance)
