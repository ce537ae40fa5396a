# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Target URL normalization and SSRF validation.

Pure functions (stdlib only).  ``normalize_target_url`` produces the
scheme-qualified form used both for navigation and as the cache key.
"""

from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlsplit, urlunsplit

from .errors import InvalidTargetError

ALLOWED_URL_SCHEMES = frozenset({"http", "https"})

_EXPLICIT_SCHEME = re.compile(r"^\s*([a-zA-Z][a-zA-Z0-9+.\-]*)://")

# Hostnames that must never be navigated to
BLOCKED_HOSTS = frozenset({"localhost", "metadata.google.internal"})

# Always blocked regardless of allow_local
_CLOUD_METADATA_HOSTS = frozenset({"metadata.google.internal", "169.254.169.254"})
_CLOUD_METADATA_NETWORKS = [ipaddress.ip_network("169.254.0.0/16")]

# Private/reserved IP ranges (RFC 1918, loopback, link-local, CGNAT)
_PRIVATE_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("100.64.0.0/10"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("::ffff:0:0/96"),
]


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` when *url* has no http(s) scheme."""
    url = url.strip()
    lowered = url.lower()
    if lowered.startswith(("http://", "https://")):
        return url
    return "https://" + url


def normalize_target_url(url: str) -> str:
    """Return the canonical scheme-qualified form of *url*.

    Lowercases scheme and host, drops the fragment, keeps path and query
    verbatim.

    Raises:
        InvalidTargetError: empty URL, non-http(s) scheme, or no hostname.
    """
    if not url or not url.strip():
        raise InvalidTargetError("missing /?url=<url>")
    explicit = _EXPLICIT_SCHEME.match(url)
    if explicit and explicit.group(1).lower() not in ALLOWED_URL_SCHEMES:
        raise InvalidTargetError(f"URL scheme '{explicit.group(1).lower()}' is not allowed. Use http or https.")
    try:
        parts = urlsplit(ensure_scheme(url))
        hostname = parts.hostname
        parts.port  # noqa: B018 - raises on a malformed port
    except ValueError as exc:
        raise InvalidTargetError("Invalid URL format.") from exc

    if not hostname:
        raise InvalidTargetError("URL must include a hostname.")

    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ""))


def validate_target(url: str, *, allow_local: bool = False) -> None:
    """Reject URLs that would make the browser reach internal infrastructure.

    Cloud metadata endpoints are always rejected; ``localhost`` and private
    IP literals are rejected unless *allow_local* is set.  Hostnames are not
    resolved.

    Raises:
        InvalidTargetError: the host is not allowed.
    """
    hostname = (urlsplit(url).hostname or "").lower()

    if hostname in _CLOUD_METADATA_HOSTS:
        raise InvalidTargetError(f"Access to '{hostname}' is blocked.")
    if hostname in BLOCKED_HOSTS and not allow_local:
        raise InvalidTargetError(f"Access to '{hostname}' is blocked.")

    try:
        addr = ipaddress.ip_address(hostname)
    except ValueError:
        return  # a domain name

    if any(addr in net for net in _CLOUD_METADATA_NETWORKS):
        raise InvalidTargetError(f"Access to cloud metadata IP '{hostname}' is blocked.")
    if not allow_local and any(addr in net for net in _PRIVATE_NETWORKS):
        raise InvalidTargetError(f"Access to private/reserved IP '{hostname}' is blocked.")
