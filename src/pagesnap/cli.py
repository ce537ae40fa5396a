# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagesnap CLI: serve, list, build-blocklist commands.

Usage:
    pagesnap serve [--host HOST] [--port PORT] [--max-concurrent N] [--debug] ...
    pagesnap list [--limit N] [--db-path PATH]
    pagesnap build-blocklist FILTER_DIR [--output PATH]

Every ``serve`` flag falls back to its ``PAGESNAP_*`` environment variable.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from .config import ServiceConfig

logger = logging.getLogger(__name__)


def _require_cli_deps() -> None:
    """Check that CLI optional dependencies are installed."""
    try:
        from tabulate import tabulate  # noqa: F401
    except ImportError as e:
        print(
            f"Missing CLI dependency: {e.name}\nInstall with: pip install pagesnap[cli]",
            file=sys.stderr,
        )
        sys.exit(1)


def _config_from_args(args: argparse.Namespace) -> ServiceConfig:
    """Environment first, then explicitly passed flags on top."""
    config = ServiceConfig.from_env()
    overrides = {
        name: getattr(args, name)
        for name in (
            "host",
            "port",
            "page_timeout",
            "screenshot_quality",
            "cache_ttl",
            "max_concurrent",
            "db_path",
            "blocklist_path",
        )
        if getattr(args, name, None) is not None
    }
    if getattr(args, "debug", False):
        overrides["debug"] = True
    if getattr(args, "allow_local", False):
        overrides["allow_local"] = True
    if getattr(args, "headed", False):
        overrides["headless"] = False
    return dataclasses.replace(config, **overrides) if overrides else config


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the HTTP capture server."""
    from .logging_config import configure as configure_logging
    from .server import serve

    try:
        config = _config_from_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(json_output=not args.console_logs, level="DEBUG" if config.debug else "INFO")
    if config.allow_local:
        logger.warning(
            "SECURITY: Local network access enabled (--allow-local). "
            "localhost and private IPs can be captured. Do not use in production."
        )

    try:
        code = asyncio.run(serve(config))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


def _format_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


async def _list_images(db_path: Path, limit: int):
    from .repository_sqlite import SqliteRepository

    repo = await SqliteRepository.create(db_path)
    try:
        return await repo.list_images(limit)
    finally:
        await repo.close()


def cmd_list(args: argparse.Namespace) -> None:
    """Print the most recent cached screenshots as a table."""
    _require_cli_deps()
    from tabulate import tabulate

    try:
        config = _config_from_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    db_path = config.resolved_db_path
    if not db_path.exists():
        print(f"No cache database at {db_path}", file=sys.stderr)
        sys.exit(1)

    images = asyncio.run(_list_images(db_path, args.limit))
    if not images:
        print("No cached screenshots.")
        return

    rows = [
        [
            img.id,
            img.url,
            f"{img.width}x{img.height}",
            f"{img.size / 1024:.1f}",
            _format_timestamp(img.created_at),
        ]
        for img in images
    ]
    headers = ["ID", "URL", "Size", "KB", "Created (UTC)"]
    print(tabulate(rows, headers=headers, tablefmt="simple", disable_numparse=True))


def cmd_build_blocklist(args: argparse.Namespace) -> None:
    """Compile filter lists into the bundled domain blocklist."""
    from .filter_parser import build_domain_list

    filter_dir = Path(args.filter_dir)
    if not filter_dir.is_dir():
        print(f"Error: {filter_dir} is not a directory", file=sys.stderr)
        sys.exit(1)

    output = Path(args.output) if args.output else Path(__file__).parent / "data" / "domains.json"
    count = build_domain_list(filter_dir, output)
    print(f"Wrote {count} domains to {output}")


_serve_epilog = """\
examples:
  pagesnap serve
  pagesnap serve --host 0.0.0.0 --port 8080 --max-concurrent 4
  PAGESNAP_CACHE_TTL=600 pagesnap serve --console-logs
"""


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pagesnap",
        description="URL to image screenshot service",
    )
    subparsers = parser.add_subparsers(dest="command")

    p_serve = subparsers.add_parser(
        "serve",
        help="Start the HTTP capture server",
        epilog=_serve_epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_serve.add_argument("--host", type=str, help="Bind address (default: 127.0.0.1)")
    p_serve.add_argument("--port", type=int, help="Bind port (default: 8000)")
    p_serve.add_argument("--page-timeout", type=float, help="Seconds per navigation/load stage")
    p_serve.add_argument("--screenshot-quality", type=int, help="JPEG quality 0-100")
    p_serve.add_argument("--cache-ttl", type=int, help="Cache-Control max-age in seconds")
    p_serve.add_argument("--max-concurrent", type=int, help="Maximum simultaneous captures")
    p_serve.add_argument("--db-path", type=str, help="SQLite cache path")
    p_serve.add_argument(
        "--blocklist",
        dest="blocklist_path",
        type=str,
        help="Domain list JSON written by build-blocklist (default: bundled seed list)",
    )
    p_serve.add_argument("--allow-local", action="store_true", help="Allow localhost and private IP targets")
    p_serve.add_argument("--headed", action="store_true", help="Run Chromium with a visible window")
    p_serve.add_argument("--debug", action="store_true", help="Log every blocked request")
    p_serve.add_argument("--console-logs", action="store_true", help="Human-readable logs instead of JSON lines")

    p_list = subparsers.add_parser("list", help="List cached screenshots")
    p_list.add_argument("--limit", type=int, default=20, help="Rows to show (default: 20)")
    p_list.add_argument("--db-path", type=str, help="SQLite cache path")

    p_block = subparsers.add_parser("build-blocklist", help="Compile filter lists into domains.json")
    p_block.add_argument("filter_dir", help="Directory of Adblock-style filter lists")
    p_block.add_argument("--output", type=str, help="Output JSON path (default: bundled data file)")

    args = parser.parse_args(argv)

    commands = {
        "serve": cmd_serve,
        "list": cmd_list,
        "build-blocklist": cmd_build_blocklist,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)
    handler(args)


if __name__ == "__main__":
    main()
