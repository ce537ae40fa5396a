# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Counting permit pool bounding simultaneous browser captures.

Standalone leaf module (stdlib only).

- **Semaphore**: ``asyncio.Semaphore`` (CPython FIFO-guaranteed).
- **Cancellation**: a waiter races the semaphore against the caller's
  cancel event; whichever finishes first wins, and a cancelled waiter never
  ends up holding a permit.
- **Acquire timeout**: a bounded wait; exceeding it is reported as
  :class:`CapacityExceededError`, distinct from caller cancellation.
- **Release**: always in ``finally``; an error inside the permit block
  never leaks a slot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

from .errors import CapacityExceededError, CaptureCancelledError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LimiterHealth:
    """Immutable snapshot of limiter state for monitoring."""

    active: int
    capacity: int
    waiting: int
    peak: int
    total_cancelled: int
    total_timed_out: int


class ConcurrencyLimiter:
    """Fixed-capacity permit pool.

    Usage::

        limiter = ConcurrencyLimiter(10)
        async with limiter.permit(cancel_event):
            await pipeline.capture(...)
    """

    def __init__(self, capacity: int, *, acquire_timeout: float | None = None) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self._capacity = capacity
        self._acquire_timeout = acquire_timeout
        self._semaphore = asyncio.Semaphore(capacity)
        self._active = 0
        self._waiting = 0
        self._peak = 0
        self._total_cancelled = 0
        self._total_timed_out = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def active(self) -> int:
        return self._active

    async def acquire(self, cancel_event: asyncio.Event | None = None) -> None:
        """Wait for a free permit.

        Raises:
            CaptureCancelledError: *cancel_event* fired before a permit was free.
            CapacityExceededError: the acquire timeout elapsed first.
        """
        if cancel_event is not None and cancel_event.is_set():
            self._total_cancelled += 1
            raise CaptureCancelledError("request cancelled")

        self._waiting += 1
        try:
            acquired = await self._wait(cancel_event)
        finally:
            self._waiting -= 1

        if not acquired:
            self._total_cancelled += 1
            raise CaptureCancelledError("request cancelled")

        self._active += 1
        self._peak = max(self._peak, self._active)

    def release(self) -> None:
        self._active -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self, cancel_event: asyncio.Event | None = None) -> AsyncIterator[None]:
        """Hold one permit for the duration of the block."""
        await self.acquire(cancel_event)
        try:
            yield
        finally:
            self.release()

    def health(self) -> LimiterHealth:
        return LimiterHealth(
            active=self._active,
            capacity=self._capacity,
            waiting=self._waiting,
            peak=self._peak,
            total_cancelled=self._total_cancelled,
            total_timed_out=self._total_timed_out,
        )

    # ── Internal ─────────────────────────────────────────────────────

    async def _wait(self, cancel_event: asyncio.Event | None) -> bool:
        """Return True once a permit is held, False if cancelled first."""
        try:
            async with asyncio.timeout(self._acquire_timeout):
                if cancel_event is None:
                    await self._semaphore.acquire()
                    return True
                return await self._race(cancel_event)
        except TimeoutError:
            self._total_timed_out += 1
            logger.warning(
                "No capture slot within %.1fs (active=%d, capacity=%d)",
                self._acquire_timeout,
                self._active,
                self._capacity,
            )
            raise CapacityExceededError(
                "all capture slots are busy", retry_after=self._acquire_timeout or 0.0
            ) from None

    async def _race(self, cancel_event: asyncio.Event) -> bool:
        acquire_task = asyncio.ensure_future(self._semaphore.acquire())
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _pending = await asyncio.wait({acquire_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            await self._abandon(acquire_task)
            raise
        finally:
            cancel_task.cancel()
            with suppress(asyncio.CancelledError):
                await cancel_task

        if acquire_task in done:
            return True
        await self._abandon(acquire_task)
        return False

    async def _abandon(self, acquire_task: asyncio.Future) -> None:
        """Cancel a pending acquire; give the permit back if it won the race anyway."""
        if not acquire_task.done():
            acquire_task.cancel()
            with suppress(asyncio.CancelledError):
                await acquire_task
        if not acquire_task.cancelled() and acquire_task.exception() is None:
            self._semaphore.release()
