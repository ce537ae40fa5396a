# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for target URL normalization and SSRF validation."""

from __future__ import annotations

import pytest

from pagesnap.errors import InvalidTargetError
from pagesnap.urls import ensure_scheme, normalize_target_url, validate_target


class TestEnsureScheme:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("example.com", "https://example.com"),
            ("http://example.com", "http://example.com"),
            ("HTTPS://example.com", "HTTPS://example.com"),
            ("  example.com/a  ", "https://example.com/a"),
        ],
    )
    def test_prefix(self, url, expected):
        assert ensure_scheme(url) == expected


class TestNormalize:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("example.com", "https://example.com"),
            ("HTTP://Example.COM/Path?Q=1", "http://example.com/Path?Q=1"),
            ("https://example.com/page#section", "https://example.com/page"),
            ("https://example.com:8443/", "https://example.com:8443/"),
        ],
    )
    def test_canonical_form(self, url, expected):
        assert normalize_target_url(url) == expected

    @pytest.mark.parametrize("url", ["", "   "])
    def test_missing(self, url):
        with pytest.raises(InvalidTargetError, match="missing"):
            normalize_target_url(url)

    @pytest.mark.parametrize("url", ["ftp://example.com", "javascript:alert(1)", "file:///etc/passwd"])
    def test_bad_scheme(self, url):
        with pytest.raises(InvalidTargetError):
            normalize_target_url(url)

    def test_no_host(self):
        with pytest.raises(InvalidTargetError, match="hostname"):
            normalize_target_url("https:///path")


class TestValidateTarget:
    @pytest.mark.parametrize("url", ["https://example.com", "http://8.8.8.8/", "https://sub.example.co.uk/x"])
    def test_public_allowed(self, url):
        validate_target(url)

    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost/",
            "http://127.0.0.1/",
            "http://10.1.2.3/",
            "http://192.168.0.1/",
            "http://172.16.5.4/",
            "http://[::1]/",
        ],
    )
    def test_private_blocked(self, url):
        with pytest.raises(InvalidTargetError):
            validate_target(url)

    @pytest.mark.parametrize("url", ["http://localhost/", "http://127.0.0.1:3000/", "http://192.168.0.1/"])
    def test_allow_local(self, url):
        validate_target(url, allow_local=True)

    @pytest.mark.parametrize(
        "url", ["http://169.254.169.254/latest/", "http://metadata.google.internal/", "http://169.254.1.1/"]
    )
    def test_metadata_always_blocked(self, url):
        with pytest.raises(InvalidTargetError):
            validate_target(url, allow_local=True)
