"""Sentinel tokens exchanged with the agent."""

from __future__ import annotations

HEARTBEAT_TOKEN = "HEARTBEAT_OK"
SILENT_REPLY_TOKEN = "NO_REPLY"


def is_silent_reply_text(text: str | None, token: str = SILENT_REPLY_TOKEN) -> bool:
    if not text:
        return False
    return text.strip() == token
