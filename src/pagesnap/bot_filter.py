# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Reject crawler and scripted-client User-Agents.

Every capture costs a browser render, so requests from bots, link-preview
fetchers and HTTP libraries are refused before any work is done.  Matching
is a case-insensitive substring test; very short User-Agents count as bots.
"""

from __future__ import annotations

BLOCKED_BOT_TOKENS: tuple[str, ...] = (
    "bot",
    "crawler",
    "spider",
    "crawling",
    "googlebot",
    "bingbot",
    "yandex",
    "baidu",
    "duckduckbot",
    "slurp",
    "ia_archiver",
    "facebookexternalhit",
    "twitterbot",
    "linkedinbot",
    "embedly",
    "quora",
    "pinterest",
    "slackbot",
    "discordbot",
    "telegrambot",
    "whatsapp",
    "applebot",
    "semrush",
    "ahref",
    "mj12bot",
    "dotbot",
    "petalbot",
    "curl",
    "wget",
    "python",
    "httpie",
    "postman",
    "insomnia",
    "java",
    "ruby",
    "perl",
    "php",
    "go-http-client",
    "scrapy",
    "httpclient",
    "apache-http",
    "okhttp",
)


def is_bot(user_agent: str | None, *, min_length: int = 20) -> bool:
    """True if *user_agent* is missing, too short, or names a known bot/client."""
    if not user_agent or len(user_agent) < min_length:
        return True
    ua = user_agent.lower()
    return any(token in ua for token in BLOCKED_BOT_TOKENS)
