"""Heartbeat token stripping."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from autoreply.tokens import HEARTBEAT_TOKEN

type StripMode = Literal["message", "heartbeat"]

DEFAULT_HEARTBEAT_ACK_MAX_CHARS = 30

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_NBSP_RE = re.compile(r"&nbsp;", re.IGNORECASE)
_LEADING_MARKUP_RE = re.compile(r"^[*`~_]+")
_TRAILING_MARKUP_RE = re.compile(r"[*`~_]+$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class StripResult:
    """Outcome of removing the heartbeat token from agent text."""

    text: str
    should_skip: bool
    did_strip: bool


def _strip_markup(text: str) -> str:
    text = _HTML_TAG_RE.sub(" ", text)
    text = _NBSP_RE.sub(" ", text)
    text = _LEADING_MARKUP_RE.sub("", text)
    return _TRAILING_MARKUP_RE.sub("", text)


def _strip_token_at_edges(raw: str) -> tuple[str, bool]:
    text = raw.strip()
    if not text or HEARTBEAT_TOKEN not in text:
        return text, False

    did_strip = False
    while True:
        current = text.strip()
        if current.startswith(HEARTBEAT_TOKEN):
            text = current[len(HEARTBEAT_TOKEN) :].lstrip()
            did_strip = True
            continue
        if current.endswith(HEARTBEAT_TOKEN):
            text = current[: len(current) - len(HEARTBEAT_TOKEN)].rstrip()
            did_strip = True
            continue
        break

    return _WHITESPACE_RE.sub(" ", text).strip(), did_strip


def strip_heartbeat_token(
    raw: str | None,
    *,
    mode: StripMode = "message",
    max_ack_chars: int = DEFAULT_HEARTBEAT_ACK_MAX_CHARS,
) -> StripResult:
    """Remove a leading or trailing heartbeat token from agent output.

    In ``message`` mode the remainder is kept whenever it is non-empty. In
    ``heartbeat`` mode a short acknowledgement (up to ``max_ack_chars``) next to
    the token is treated as part of the heartbeat and skipped as well. A token
    in the middle of the text is left alone.
    """
    if not raw or not raw.strip():
        return StripResult(text="", should_skip=True, did_strip=False)

    trimmed = raw.strip()
    normalized = _strip_markup(trimmed)
    if HEARTBEAT_TOKEN not in trimmed and HEARTBEAT_TOKEN not in normalized:
        return StripResult(text=trimmed, should_skip=False, did_strip=False)

    original_text, original_stripped = _strip_token_at_edges(trimmed)
    normalized_text, normalized_stripped = _strip_token_at_edges(normalized)
    if original_stripped and original_text:
        text, did_strip = original_text, original_stripped
    else:
        text, did_strip = normalized_text, normalized_stripped

    if not did_strip:
        return StripResult(text=trimmed, should_skip=False, did_strip=False)
    if not text:
        return StripResult(text="", should_skip=True, did_strip=True)

    rest = text.strip()
    if mode == "heartbeat" and len(rest) <= max(0, max_ack_chars):
        return StripResult(text="", should_skip=True, did_strip=True)
    return StripResult(text=rest, should_skip=False, did_strip=True)
