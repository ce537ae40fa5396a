# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Ad/tracker domain blocklist with label-aligned suffix matching.

Built once at startup from a domain list plus a small hand-curated critical
set. The bundled ``data/domains.json`` is a seed list of common ad and
tracker networks; production deployments generate a full list from
EasyList-style filter files with ``pagesnap build-blocklist`` and point
``PAGESNAP_BLOCKLIST_PATH`` at it. The result is shared read-only by every
capture. The domain set is a ``frozenset``; a refresh means building a new
``Blocklist`` and swapping the reference, never mutating one in place.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from importlib import resources
from pathlib import Path

logger = logging.getLogger(__name__)

DOMAINS_RESOURCE = "domains.json"

# Always blocked, even when the embedded list fails to load.
CRITICAL_DOMAINS: frozenset[str] = frozenset(
    {
        "google-analytics.com",
        "googletagmanager.com",
        "hotjar.com",
        "mixpanel.com",
        "segment.io",
        "newrelic.com",
        "nr-data.net",
        "sentry.io",
        "doubleclick.net",
        "googlesyndication.com",
        "adservice.google.com",
        "facebook.net",
        "ads.linkedin.com",
        "accounts.google.com",
        "platform.linkedin.com",
        "connect.facebook.net",
        "ponf.linkedin.com",
        "px.ads.linkedin.com",
        "bat.bing.com",
        "tr.snapchat.com",
        "li.protechts.net",
        "challenges.cloudflare.com",
        "intercom.io",
        "crisp.chat",
        "drift.com",
        "zendesk.com",
    }
)


def extract_host(url: str) -> str:
    """Reduce a URL to its bare lowercase host.

    Pure string surgery: strip everything through ``://``, cut at the first
    ``/``, then at the first ``:`` (port).  ``"https://Ads.Example.com:443/x"``
    becomes ``"ads.example.com"``.
    """
    host = url.lower()
    idx = host.find("://")
    if idx != -1:
        host = host[idx + 3 :]
    idx = host.find("/")
    if idx != -1:
        host = host[:idx]
    idx = host.find(":")
    if idx != -1:
        host = host[:idx]
    return host


def _parse_domain_list(raw: str, source: str) -> list[str]:
    domain_list = json.loads(raw)
    if not isinstance(domain_list, list) or not all(isinstance(d, str) for d in domain_list):
        raise ValueError(f"{source} must be a JSON array of strings")
    return domain_list


class Blocklist:
    """Immutable set of blocked domains answering suffix-match queries."""

    __slots__ = ("_domains",)

    def __init__(self, domains: frozenset[str]) -> None:
        self._domains = domains

    @classmethod
    def from_domains(cls, domains: Iterable[str], *, include_critical: bool = True) -> Blocklist:
        """Build from an iterable of domains (lowercased, blanks dropped)."""
        cleaned = {d.strip().lower() for d in domains if d and d.strip()}
        if include_critical:
            cleaned |= CRITICAL_DOMAINS
        return cls(frozenset(cleaned))

    @classmethod
    def load(cls, resource: str = DOMAINS_RESOURCE) -> Blocklist:
        """Load the embedded domain list merged with the critical set.

        A missing or malformed data file is not fatal: the blocklist
        degrades to the critical set and a warning is logged.
        """
        try:
            raw = resources.files("pagesnap.data").joinpath(resource).read_text(encoding="utf-8")
            domain_list = _parse_domain_list(raw, resource)
        except (OSError, ValueError) as exc:
            logger.warning("Blocklist data unavailable, using critical domains only: %s", exc)
            return cls(CRITICAL_DOMAINS)

        blocklist = cls.from_domains(domain_list)
        logger.info("Blocklist loaded (domains=%d)", len(blocklist))
        return blocklist

    @classmethod
    def load_file(cls, path: str | Path) -> Blocklist:
        """Load a domain list written by ``pagesnap build-blocklist``.

        Unlike :meth:`load`, failures propagate: an operator-supplied list
        that cannot be read is a configuration error.

        Raises:
            OSError: the file cannot be read.
            ValueError: the file is not a JSON array of strings.
        """
        path = Path(path).expanduser()
        domain_list = _parse_domain_list(path.read_text(encoding="utf-8"), str(path))
        blocklist = cls.from_domains(domain_list)
        logger.info("Blocklist loaded from %s (domains=%d)", path, len(blocklist))
        return blocklist

    def __len__(self) -> int:
        return len(self._domains)

    def __contains__(self, domain: object) -> bool:
        return domain in self._domains

    @property
    def domains(self) -> frozenset[str]:
        return self._domains

    def is_blocked(self, host: str) -> bool:
        """True if *host* equals, or is a subdomain of, a blocked domain.

        *host* must already be a bare lowercase hostname (see
        :func:`extract_host`).  Suffixes are label-aligned and never shorter
        than two labels, so ``notdoubleclick.net`` does not match
        ``doubleclick.net`` and a bare TLD is never tested.
        """
        if host in self._domains:
            return True
        labels = host.split(".")
        for i in range(1, len(labels) - 1):
            if ".".join(labels[i:]) in self._domains:
                return True
        return False
