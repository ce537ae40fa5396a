# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Build the embedded blocked-domain list from Adblock Plus filter files.

Only network rules of the form ``||domain^...`` contribute; cosmetic rules,
exceptions (``@@``), comments and section headers are skipped.  Output is a
sorted JSON array of lowercase domains, the format read by
:meth:`pagesnap.blocklist.Blocklist.load`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

_SKIP_PREFIXES = ("!", "[", "@@", "#")
_RULE_TERMINATORS = frozenset("^$/*|")


def _is_ipv4(text: str) -> bool:
    parts = text.split(".")
    return len(parts) == 4 and all(p.isdigit() for p in parts)


def parse_filter_line(line: str) -> str | None:
    """Extract the blocked domain from one filter rule, or None."""
    line = line.strip()
    if not line or line.startswith(_SKIP_PREFIXES):
        return None
    if not line.startswith("||"):
        return None

    body = line[2:]
    end = len(body)
    for i, ch in enumerate(body):
        if ch in _RULE_TERMINATORS:
            end = i
            break
    domain = body[:end].lower()

    if "*" in domain or "." not in domain:
        return None
    if _is_ipv4(domain):
        return None
    return domain


def parse_filter_lines(lines: Iterable[str]) -> set[str]:
    """Collect unique domains from filter-list lines."""
    domains: set[str] = set()
    for line in lines:
        domain = parse_filter_line(line)
        if domain is not None:
            domains.add(domain)
    return domains


def build_domain_list(filter_dir: str | Path, output: str | Path) -> int:
    """Parse every ``*.txt`` in *filter_dir* and write the JSON domain list.

    Unreadable files are logged and skipped.  Returns the number of unique
    domains written.
    """
    filter_dir = Path(filter_dir)
    domains: set[str] = set()
    for path in sorted(filter_dir.glob("*.txt")):
        try:
            with path.open(encoding="utf-8", errors="replace") as f:
                found = parse_filter_lines(f)
        except OSError as exc:
            logger.warning("Skipping filter file %s: %s", path.name, exc)
            continue
        new = found - domains
        domains |= found
        logger.info("Parsed %s: %d new domains", path.name, len(new))

    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(sorted(domains)), encoding="utf-8")
    logger.info("Wrote %d unique domains to %s", len(domains), output)
    return len(domains)
