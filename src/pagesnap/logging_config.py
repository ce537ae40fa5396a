# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge. CLI: ConsoleRenderer, HTTP server: JSONRenderer.

Leaf module: no pagesnap imports. Safe to call early in startup.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Chatty third-party loggers kept at WARNING unless debug is requested.
_NOISY_LOGGERS = ("aiosqlite", "asyncio")


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Configure structlog with stdlib bridge.

    Args:
        json_output: True for JSON lines (server), False for human-readable (CLI).
        level: Root logger level (default INFO).
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(root_level)

    if root_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def bind_request(request_id: str, **fields: object) -> None:
    """Attach *request_id* (plus any extra fields) to every log line of this task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **fields)


def unbind_request() -> None:
    """Drop per-request logging context at the end of a request."""
    structlog.contextvars.clear_contextvars()
