# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Capture stage timer for latency headers and failure diagnostics.

Created before the first stage so it survives a failing stage and can still
report how far the capture got and how long it took overall.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from . import Timing

STAGES = ("setup", "navigation", "load", "render")


@dataclass(slots=True)
class StageRecord:
    name: str
    start_ns: int
    end_ns: int = 0


class PipelineTimer:
    """Track capture stage transitions for latency reporting."""

    __slots__ = ("_stages", "_current", "_start_ns", "_end_ns")

    def __init__(self) -> None:
        self._stages: list[StageRecord] = []
        self._current: StageRecord | None = None
        self._start_ns: int = time.monotonic_ns()
        self._end_ns: int = 0

    def stage(self, name: str) -> None:
        """End previous stage + start new stage."""
        now = time.monotonic_ns()
        if self._current is not None:
            self._current.end_ns = now
            self._stages.append(self._current)
        self._current = StageRecord(name=name, start_ns=now)

    def finalize(self) -> None:
        """End current stage and freeze the total. Call on success or error."""
        now = time.monotonic_ns()
        if self._current is not None:
            self._current.end_ns = now
            self._stages.append(self._current)
            self._current = None
        if not self._end_ns:
            self._end_ns = now

    @property
    def current_stage(self) -> str | None:
        return self._current.name if self._current else None

    def elapsed_per_stage(self) -> dict[str, float]:
        """Return {stage_name: elapsed_ms} for all stages (including current)."""
        now = time.monotonic_ns()
        result: dict[str, float] = {}
        for s in self._stages:
            result[s.name] = round((s.end_ns - s.start_ns) / 1e6, 1)
        if self._current is not None:
            result[self._current.name] = round((now - self._current.start_ns) / 1e6, 1)
        return result

    def total_ms(self) -> float:
        end = self._end_ns or time.monotonic_ns()
        return round((end - self._start_ns) / 1e6, 1)

    def to_timing(self) -> Timing:
        """Snapshot as a :class:`Timing`; stages never reached stay at 0."""
        stages = self.elapsed_per_stage()
        return Timing(
            setup_ms=stages.get("setup", 0.0),
            navigation_ms=stages.get("navigation", 0.0),
            load_ms=stages.get("load", 0.0),
            render_ms=stages.get("render", 0.0),
            total_ms=self.total_ms(),
        )

    def failure_report(self) -> dict:
        """Structured diagnostic for a failed capture."""
        stages = self.elapsed_per_stage()
        failed = self.current_stage or (self._stages[-1].name if self._stages else "unknown")
        return {
            "completed_stages": [name for name in stages if name != failed],
            "failed_at": failed,
            "stages_ms": stages,
            "total_ms": self.total_ms(),
            "hint": self.hint_for_stage(failed),
        }

    @staticmethod
    def hint_for_stage(stage: str) -> str:
        hints = {
            "setup": "Browser could not open a page; it may be overloaded or disconnected.",
            "navigation": "Site may be slow, unreachable, or refusing the connection.",
            "load": "Page keeps loading resources; it may use long-polling or heavy scripts.",
            "render": "Page is too large or the renderer is stalling.",
        }
        return hints.get(stage, f"Failed during '{stage}' stage.")
