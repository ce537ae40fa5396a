# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagesnap HTTP server.

Routes:
- ``GET /``            capture (``url``, ``preset``, ``width``, ``height``, ``full``)
- ``GET /screenshots`` JSON listing of cached renders (``limit``)
- ``GET /healthz``     liveness
- ``GET /readyz``      readiness (browser + limiter state)
- ``GET /robots.txt``  disallow everything

Component lifecycle lives in :func:`open_components`; the Starlette app only
borrows the resulting :class:`AppState`.  All logging goes to stderr.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from . import problem_details
from .blocklist import Blocklist
from .bot_filter import is_bot
from .browser_pool import BrowserPool
from .capture import CapturePipeline
from .config import ServiceConfig
from .dimensions import resolve_dimensions
from .errors import BlocklistUnavailableError, BrowserUnavailableError, PageSnapError
from .interception import InterceptionPolicy
from .limiter import ConcurrencyLimiter
from .logging_config import bind_request, unbind_request
from .problem_details import ProblemType
from .repository import DEFAULT_LIST_LIMIT, RepositoryProtocol
from .repository_sqlite import SqliteRepository
from .service import CaptureRequest, CaptureService
from .urls import normalize_target_url, validate_target

logger = logging.getLogger("pagesnap.server")

_DISCONNECT_POLL_SECONDS = 0.2
_MAX_LIST_LIMIT = 1000


# ── Query models ─────────────────────────────────────────────────────


class CaptureQuery(BaseModel):
    """Query string of a capture request.

    Width/height stay strings here: malformed values fall back to the
    preset instead of failing the request (see ``resolve_dimensions``).
    """

    model_config = ConfigDict(extra="ignore")

    url: str = ""
    preset: str | None = None
    width: str | None = None
    height: str | None = None
    full: bool = False

    @field_validator("full", mode="before")
    @classmethod
    def _lenient_flag(cls, value: object) -> bool:
        return str(value).strip().lower() in ("1", "true", "yes", "on")


class ListQuery(BaseModel):
    model_config = ConfigDict(extra="ignore")

    limit: int = Field(default=DEFAULT_LIST_LIMIT, ge=1, le=_MAX_LIST_LIMIT)


# ── Application state ────────────────────────────────────────────────


@dataclass(slots=True)
class AppState:
    """Everything a request handler needs, built once per process."""

    config: ServiceConfig
    service: CaptureService
    repository: RepositoryProtocol
    limiter: ConcurrencyLimiter
    pool: BrowserPool | None = None


def _load_blocklist(config: ServiceConfig) -> Blocklist:
    if not config.blocklist_path:
        return Blocklist.load()
    try:
        return Blocklist.load_file(config.blocklist_path)
    except (OSError, ValueError) as exc:
        raise BlocklistUnavailableError(f"Cannot load blocklist {config.blocklist_path}: {exc}") from exc


@asynccontextmanager
async def open_components(config: ServiceConfig) -> AsyncIterator[AppState]:
    """Start browser, cache and limiter; tear them down on exit.

    Raises:
        BrowserUnavailableError: Chromium cannot be started (fatal).
        BlocklistUnavailableError: the configured blocklist file is unusable.
    """
    blocklist = _load_blocklist(config)
    policy = InterceptionPolicy(
        blocklist,
        block_fonts=config.block_fonts,
        block_media=config.block_media,
        debug=config.debug,
    )
    repository = await SqliteRepository.create(config.resolved_db_path)
    logger.info("SQLite cache: %s", config.resolved_db_path)
    try:
        async with BrowserPool(config) as pool:
            limiter = ConcurrencyLimiter(config.max_concurrent, acquire_timeout=config.acquire_timeout)
            service = CaptureService(CapturePipeline(pool, policy, config), repository, limiter)
            yield AppState(config=config, service=service, repository=repository, limiter=limiter, pool=pool)
    finally:
        await repository.close()


# ── Handlers ─────────────────────────────────────────────────────────


def _state(request: Request) -> AppState:
    return request.app.state.pagesnap


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    """Set *cancel_event* once the client goes away."""
    while not await request.is_disconnected():
        await asyncio.sleep(_DISCONNECT_POLL_SECONDS)
    cancel_event.set()


async def capture_screenshot(request: Request) -> Response:
    state = _state(request)
    config = state.config

    user_agent = request.headers.get("user-agent", "")
    if is_bot(user_agent, min_length=config.min_user_agent_length):
        client = request.client.host if request.client else ""
        logger.warning("Blocked bot request ua=%r ip=%s", user_agent, client)
        return problem_details.build(ProblemType.BOT_BLOCKED, "forbidden").to_response()

    try:
        query = CaptureQuery.model_validate(dict(request.query_params))
    except ValidationError:
        return problem_details.build(ProblemType.INVALID_URL, "invalid query parameters").to_response()

    try:
        url = normalize_target_url(query.url)
        validate_target(url, allow_local=config.allow_local)
    except PageSnapError as exc:
        return problem_details.from_exception(exc, instance=request.url.path).to_response()

    dim = resolve_dimensions(
        query.preset,
        query.width,
        query.height,
        max_width=config.max_width,
        max_height=config.max_height,
    )
    capture_request = CaptureRequest(url=url, width=dim.width, height=dim.height, full_page=query.full)

    bind_request(uuid.uuid4().hex[:12], url=url)
    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        result = await state.service.handle(
            capture_request,
            if_none_match=request.headers.get("if-none-match"),
            cancel_event=cancel_event,
        )
    except PageSnapError as exc:
        timing = getattr(exc, "timing", None)
        logger.error(
            "Screenshot failed url=%s error=%s elapsed_ms=%d",
            url,
            exc,
            timing.total_ms if timing else 0,
        )
        return problem_details.from_exception(exc, instance=request.url.path).to_response()
    except Exception as exc:
        logger.error("Unexpected capture error url=%s", url, exc_info=True)
        return problem_details.from_exception(exc, instance=request.url.path).to_response()
    finally:
        watcher.cancel()
        with suppress(asyncio.CancelledError):
            await watcher
        unbind_request()

    headers = {
        "Cache-Control": f"public, max-age={config.cache_ttl}",
        "ETag": result.etag,
    }
    if result.not_modified:
        return Response(status_code=304, headers=headers)

    headers["X-Cache"] = "HIT" if result.cache_hit else "MISS"
    if result.timing is not None:
        headers.update(result.timing.to_headers())
    return Response(content=result.data, media_type=result.content_type, headers=headers)


async def list_screenshots(request: Request) -> Response:
    try:
        query = ListQuery.model_validate(dict(request.query_params))
    except ValidationError:
        return problem_details.build(
            ProblemType.INVALID_URL, f"limit must be between 1 and {_MAX_LIST_LIMIT}"
        ).to_response()
    try:
        images = await _state(request).repository.list_images(query.limit)
    except Exception as exc:
        logger.error("Listing cached screenshots failed", exc_info=True)
        return problem_details.from_exception(exc, instance=request.url.path).to_response()
    return JSONResponse({"count": len(images), "screenshots": [img.to_dict() for img in images]})


async def healthz(request: Request) -> Response:
    return PlainTextResponse("ok")


async def readyz(request: Request) -> Response:
    state = _state(request)
    limiter = state.limiter.health()
    pool = state.pool.health() if state.pool is not None else None
    browser_connected = pool.browser_connected if pool is not None else False
    return JSONResponse(
        {
            "status": "ready" if browser_connected else "not_ready",
            "browser_connected": browser_connected,
            "pages": {
                "open": pool.open_pages if pool is not None else 0,
                "created": pool.pages_created if pool is not None else 0,
            },
            "captures": {
                "active": limiter.active,
                "capacity": limiter.capacity,
                "waiting": limiter.waiting,
                "peak": limiter.peak,
                "cancelled": limiter.total_cancelled,
                "timed_out": limiter.total_timed_out,
            },
        },
        status_code=200 if browser_connected else 503,
    )


async def robots_txt(request: Request) -> Response:
    return PlainTextResponse("User-agent: *\nDisallow: /\n")


def create_app(state: AppState) -> Starlette:
    """Build the ASGI app around already-started components."""
    app = Starlette(
        routes=[
            Route("/", capture_screenshot, methods=["GET"]),
            Route("/screenshots", list_screenshots, methods=["GET"]),
            Route("/healthz", healthz, methods=["GET"]),
            Route("/readyz", readyz, methods=["GET"]),
            Route("/robots.txt", robots_txt, methods=["GET"]),
        ],
    )
    app.state.pagesnap = state
    return app


# ── Entry point ──────────────────────────────────────────────────────


async def serve(config: ServiceConfig) -> int:
    """Run the HTTP server until a shutdown signal. Returns a process exit code."""
    import uvicorn

    try:
        async with open_components(config) as state:
            logger.info(
                "Server starting host=%s port=%d max_concurrent=%d",
                config.host,
                config.port,
                config.max_concurrent,
            )
            uv_config = uvicorn.Config(
                create_app(state),
                host=config.host,
                port=config.port,
                log_level="debug" if config.debug else "info",
                timeout_graceful_shutdown=config.drain_timeout,
                lifespan="off",
            )
            await uvicorn.Server(uv_config).serve()
    except (BrowserUnavailableError, BlocklistUnavailableError) as exc:
        logger.error("Failed to start: %s", exc)
        return 1

    logger.info("Server stopped")
    return 0
