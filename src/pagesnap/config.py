# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Service configuration: one immutable value handed to every component.

Leaf module (stdlib only).  Defaults can be overridden by ``PAGESNAP_*``
environment variables via :meth:`ServiceConfig.from_env`, and the CLI
layers its own flags on top with :func:`dataclasses.replace`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "~/.pagesnap/pagesnap.db"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """Immutable configuration for the capture service."""

    host: str = "127.0.0.1"
    port: int = 8000
    page_timeout: float = 30.0  # seconds, per navigation / load stage
    screenshot_quality: int = 50  # JPEG quality 0-100
    cache_ttl: int = 300  # Cache-Control max-age (seconds)
    max_width: int = 1920
    max_height: int = 1920
    max_concurrent: int = 10
    acquire_timeout: float = 30.0  # seconds waiting for a capture slot
    block_fonts: bool = True
    block_media: bool = True
    debug: bool = False  # log every interception decision
    headless: bool = True
    db_path: str = DEFAULT_DB_PATH
    allow_local: bool = False
    min_user_agent_length: int = 20
    drain_timeout: int = 30
    blocklist_path: str = ""  # empty: bundled seed list

    def __post_init__(self) -> None:
        if self.page_timeout <= 0:
            raise ValueError(f"page_timeout must be > 0, got {self.page_timeout}")
        if not 0 <= self.screenshot_quality <= 100:
            raise ValueError(f"screenshot_quality must be 0-100, got {self.screenshot_quality}")
        if self.cache_ttl < 0:
            raise ValueError(f"cache_ttl must be >= 0, got {self.cache_ttl}")
        if self.max_width <= 0 or self.max_height <= 0:
            raise ValueError(f"max dimensions must be > 0, got {self.max_width}x{self.max_height}")
        if self.max_concurrent <= 0:
            raise ValueError(f"max_concurrent must be > 0, got {self.max_concurrent}")
        if self.acquire_timeout <= 0:
            raise ValueError(f"acquire_timeout must be > 0, got {self.acquire_timeout}")
        if self.min_user_agent_length < 0:
            raise ValueError(f"min_user_agent_length must be >= 0, got {self.min_user_agent_length}")

    @property
    def page_timeout_ms(self) -> float:
        """Playwright expresses timeouts in milliseconds."""
        return self.page_timeout * 1000

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ServiceConfig:
        """Build a config from ``PAGESNAP_<FIELD>`` environment variables.

        Unparsable values are logged and ignored (the default is kept).
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(f"PAGESNAP_{f.name.upper()}", "").strip()
            if not raw:
                continue
            value = _coerce(raw, f.type)
            if value is None:
                logger.warning("Ignoring invalid PAGESNAP_%s=%r", f.name.upper(), raw)
                continue
            overrides[f.name] = value
        return cls(**overrides)


def _coerce(raw: str, type_name: object) -> object | None:
    """Parse an env string according to a dataclass field annotation."""
    # Annotations are strings under ``from __future__ import annotations``.
    kind = type_name if isinstance(type_name, str) else getattr(type_name, "__name__", "str")
    if kind == "bool":
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        return None
    if kind == "int":
        try:
            return int(raw)
        except ValueError:
            return None
    if kind == "float":
        try:
            return float(raw)
        except ValueError:
            return None
    return raw
