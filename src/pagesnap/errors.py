# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagesnap exception hierarchy.

All pagesnap-specific errors inherit from PageSnapError, allowing callers
to catch the base class for any failure or specific subclasses for
targeted handling.  Capture failures carry the stage timing collected up to
the point of failure so callers can log it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from . import Timing


class PageSnapError(Exception):
    """Base exception for all pagesnap errors."""


class BrowserUnavailableError(PageSnapError):
    """Chromium could not be launched or connected (fatal at startup)."""


class BlocklistUnavailableError(PageSnapError):
    """A configured blocklist file cannot be read or parsed (fatal at startup)."""


class InvalidTargetError(PageSnapError):
    """Target URL is malformed or points at a forbidden host."""


class CaptureFailure(PageSnapError):
    """A single capture failed at a specific pipeline stage."""

    stage: str = "unknown"
    is_timeout: bool = False

    def __init__(self, message: str, *, timing: Timing | None = None) -> None:
        super().__init__(message)
        self.timing = timing


class PageCreationError(CaptureFailure):
    """Browser context or page could not be created."""

    stage = "setup"


class ViewportError(CaptureFailure):
    """Viewport could not be applied to the page."""

    stage = "setup"


class NavigationTimeout(CaptureFailure):
    """Navigation failed or exceeded the page timeout."""

    stage = "navigation"
    is_timeout = True


class LoadTimeout(CaptureFailure):
    """Page did not reach the load-complete state in time."""

    stage = "load"
    is_timeout = True


class CaptureError(CaptureFailure):
    """Rendering the page to an image failed."""

    stage = "render"


class PersistenceError(PageSnapError):
    """Cache write failed (recovered by callers, never user-visible)."""


class CaptureCancelledError(PageSnapError):
    """Caller went away while waiting for a capture slot."""


class CapacityExceededError(PageSnapError):
    """No capture slot became free within the acquire timeout."""

    def __init__(self, message: str, *, retry_after: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after
