# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pagesnap.logging_config: structlog + stdlib bridge."""

from __future__ import annotations

import json
import logging
import sys

import pytest
import structlog

from pagesnap.logging_config import bind_request, configure, unbind_request


@pytest.fixture(autouse=True)
def _reset_logging():
    """Ensure clean logging state before/after each test."""
    root = logging.getLogger()
    old_handlers = root.handlers[:]
    old_level = root.level
    yield
    root.handlers = old_handlers
    root.setLevel(old_level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


class TestRenderers:
    def test_single_stderr_handler(self):
        configure(json_output=False)
        configure(json_output=True)
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr

    def test_console_output_is_human_readable(self, capsys):
        configure(json_output=False)
        logging.getLogger("test.console").info("hello world")
        captured = capsys.readouterr()
        assert "hello world" in captured.err
        assert not captured.err.strip().startswith("{")

    def test_json_output(self, capsys):
        configure(json_output=True)
        logging.getLogger("pagesnap.capture").warning("Capture failed url=%s", "https://example.com")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["event"] == "Capture failed url=https://example.com"
        assert parsed["logger"] == "pagesnap.capture"
        assert parsed["level"] == "warning"
        assert "timestamp" in parsed


class TestRequestContext:
    def test_bound_fields_in_output(self, capsys):
        configure(json_output=True)
        bind_request("req123", url="https://example.com")
        logging.getLogger("test.ctx").info("ctx test")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["request_id"] == "req123"
        assert parsed["url"] == "https://example.com"

    def test_unbind_clears(self, capsys):
        configure(json_output=True)
        bind_request("req123")
        unbind_request()
        logging.getLogger("test.ctx").info("after")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert "request_id" not in parsed


class TestLevels:
    def test_default_level_is_info(self):
        configure()
        assert logging.getLogger().level == logging.INFO

    def test_invalid_level_falls_back_to_info(self):
        configure(level="NONEXISTENT")
        assert logging.getLogger().level == logging.INFO

    def test_noisy_loggers_quieted(self):
        configure(level="INFO")
        assert logging.getLogger("aiosqlite").level == logging.WARNING

    def test_debug_keeps_noisy_loggers(self):
        logging.getLogger("aiosqlite").setLevel(logging.NOTSET)
        configure(level="DEBUG")
        assert logging.getLogger("aiosqlite").level == logging.NOTSET
