# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for Blocklist: label-aligned suffix matching and data loading."""

from __future__ import annotations

import json
import logging

import pytest
from hypothesis import given
from hypothesis import strategies as st

from pagesnap.blocklist import CRITICAL_DOMAINS, Blocklist, extract_host

LABEL = st.from_regex(r"[a-z0-9]([a-z0-9-]{0,8}[a-z0-9])?", fullmatch=True)


@pytest.fixture
def blocklist() -> Blocklist:
    return Blocklist.from_domains(["doubleclick.net", "ads.example.com"], include_critical=False)


# ---------------------------------------------------------------------------
# extract_host
# ---------------------------------------------------------------------------


class TestExtractHost:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://Ads.Example.com:443/x?y=1", "ads.example.com"),
            ("http://doubleclick.net", "doubleclick.net"),
            ("doubleclick.net/path", "doubleclick.net"),
            ("https://example.com:8080", "example.com"),
            ("", ""),
        ],
    )
    def test_extract(self, url, expected):
        assert extract_host(url) == expected


# ---------------------------------------------------------------------------
# is_blocked
# ---------------------------------------------------------------------------


class TestIsBlocked:
    def test_exact_match(self, blocklist):
        assert blocklist.is_blocked("doubleclick.net")

    def test_subdomain_match(self, blocklist):
        assert blocklist.is_blocked("ad.doubleclick.net")
        assert blocklist.is_blocked("x.y.doubleclick.net")

    def test_not_label_aligned(self, blocklist):
        assert not blocklist.is_blocked("notdoubleclick.net")

    def test_unrelated_host(self, blocklist):
        assert not blocklist.is_blocked("google.com")

    def test_parent_of_blocked_domain_not_blocked(self, blocklist):
        assert not blocklist.is_blocked("example.com")
        assert blocklist.is_blocked("cdn.ads.example.com")

    def test_bare_tld_never_matches(self):
        bl = Blocklist.from_domains(["net"], include_critical=False)
        assert not bl.is_blocked("doubleclick.net")

    def test_empty_host(self, blocklist):
        assert not blocklist.is_blocked("")

    @given(prefix=st.lists(LABEL, min_size=1, max_size=4))
    def test_any_subdomain_is_blocked(self, prefix):
        bl = Blocklist.from_domains(["doubleclick.net"], include_critical=False)
        assert bl.is_blocked(".".join([*prefix, "doubleclick.net"]))

    @given(glued=LABEL)
    def test_glued_prefix_is_not_blocked(self, glued):
        bl = Blocklist.from_domains(["doubleclick.net"], include_critical=False)
        assert not bl.is_blocked(f"{glued}doubleclick.net")


# ---------------------------------------------------------------------------
# Construction / loading
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_from_domains_normalizes(self):
        bl = Blocklist.from_domains(["  Tracker.IO ", "", "   "], include_critical=False)
        assert bl.domains == frozenset({"tracker.io"})

    def test_critical_included_by_default(self):
        bl = Blocklist.from_domains([])
        assert CRITICAL_DOMAINS <= bl.domains
        assert "google-analytics.com" in bl

    def test_domains_are_immutable(self, blocklist):
        assert isinstance(blocklist.domains, frozenset)


class TestLoad:
    def test_load_bundled_seed_list(self):
        # The bundled file is a seed list; full lists come from build-blocklist.
        bl = Blocklist.load()
        assert len(bl) > len(CRITICAL_DOMAINS)
        assert bl.is_blocked("ib.adnxs.com")
        assert bl.is_blocked("static.criteo.net")
        assert CRITICAL_DOMAINS <= bl.domains
        assert bl.is_blocked("static.criteo.com")

    def test_missing_resource_falls_back_to_critical(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pagesnap.blocklist"):
            bl = Blocklist.load("does-not-exist.json")
        assert bl.domains == CRITICAL_DOMAINS
        assert "critical domains only" in caplog.text

    def test_malformed_resource_falls_back_to_critical(self, monkeypatch):
        class _FakeFile:
            def joinpath(self, name):
                return self

            def read_text(self, encoding="utf-8"):
                return '{"not": "a list"}'

        monkeypatch.setattr("pagesnap.blocklist.resources.files", lambda package: _FakeFile())
        bl = Blocklist.load()
        assert bl.domains == CRITICAL_DOMAINS

    def test_fallback_still_blocks_critical(self):
        bl = Blocklist.load("does-not-exist.json")
        assert bl.is_blocked("stats.g.doubleclick.net")


class TestLoadFile:
    def test_generated_list(self, tmp_path):
        path = tmp_path / "domains.json"
        path.write_text(json.dumps(["ads.example", "Tracker.Example.org"]))
        bl = Blocklist.load_file(path)
        assert bl.is_blocked("cdn.ads.example")
        assert bl.is_blocked("tracker.example.org")
        assert CRITICAL_DOMAINS <= bl.domains

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            Blocklist.load_file(tmp_path / "absent.json")

    @pytest.mark.parametrize("content", ["not json", '{"a": 1}', "[1, 2]"])
    def test_malformed_file_raises(self, tmp_path, content):
        path = tmp_path / "domains.json"
        path.write_text(content)
        with pytest.raises(ValueError):
            Blocklist.load_file(path)
