# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Named size presets and request dimension resolution."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Dimension:
    width: int
    height: int


PRESETS: dict[str, Dimension] = {
    "thumb": Dimension(400, 210),
    "og": Dimension(1200, 630),
    "twitter": Dimension(1200, 675),
    "square": Dimension(1080, 1080),
    "mobile": Dimension(375, 667),
    "desktop": Dimension(1920, 1080),
}
DEFAULT_PRESET = "og"


def _parse_dimension(raw: str | int | None, default: int, maximum: int) -> int:
    """Positive integer clamped to *maximum*; anything else yields *default*.

    *default* is clamped as well, so a preset never exceeds the maximum.
    """
    if raw is None or raw == "":
        return min(default, maximum)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return min(default, maximum)
    if value <= 0:
        return min(default, maximum)
    return min(value, maximum)


def resolve_dimensions(
    preset: str | None,
    width: str | int | None,
    height: str | int | None,
    *,
    max_width: int,
    max_height: int,
) -> Dimension:
    """Work out the capture size for a request.

    The preset (unknown or missing → ``og``) supplies defaults; explicit
    width/height override them. Both explicit and preset-derived sizes are
    clamped to the configured maximum. Non-numeric or non-positive values
    fall back to the (clamped) preset value.
    """
    base = PRESETS.get((preset or "").lower(), PRESETS[DEFAULT_PRESET])
    return Dimension(
        width=_parse_dimension(width, base.width, max_width),
        height=_parse_dimension(height, base.height, max_height),
    )
