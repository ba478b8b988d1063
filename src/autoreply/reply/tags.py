"""Reply-target tags embedded in agent text."""

from __future__ import annotations

import re
from dataclasses import dataclass

REPLY_TAG_RE = re.compile(r"\[\[\s*(?:reply_to_current|reply_to\s*:\s*([^\]\n]+))\s*\]\]", re.IGNORECASE)
_INLINE_SPACE_RE = re.compile(r"[ \t]+")
_NEWLINE_PADDING_RE = re.compile(r"[ \t]*\n[ \t]*")


@dataclass(frozen=True)
class ReplyTagResult:
    cleaned: str
    reply_to_id: str | None = None
    reply_to_current: bool = False
    has_tag: bool = False


def extract_reply_to_tag(text: str | None, current_message_id: str | None = None) -> ReplyTagResult:
    """Strip ``[[reply_to:<id>]]`` / ``[[reply_to_current]]`` tags from text.

    The last explicit id wins. ``reply_to_current`` resolves to
    ``current_message_id`` when one is known. Anything that does not match the
    tag grammar is left in the text untouched.
    """
    if not text:
        return ReplyTagResult(cleaned="")

    saw_current = False
    has_tag = False
    last_explicit_id: str | None = None

    def _consume(match: re.Match[str]) -> str:
        nonlocal saw_current, has_tag, last_explicit_id
        has_tag = True
        raw_id = match.group(1)
        if raw_id is None:
            saw_current = True
            return ""
        if raw_id.strip():
            last_explicit_id = raw_id.strip()
        return ""

    cleaned = REPLY_TAG_RE.sub(_consume, text)
    if not has_tag:
        return ReplyTagResult(cleaned=text.strip())

    cleaned = _INLINE_SPACE_RE.sub(" ", cleaned)
    cleaned = _NEWLINE_PADDING_RE.sub("\n", cleaned).strip()

    reply_to_id = last_explicit_id
    if reply_to_id is None and saw_current and current_message_id and current_message_id.strip():
        reply_to_id = current_message_id.strip()
    return ReplyTagResult(
        cleaned=cleaned,
        reply_to_id=reply_to_id,
        reply_to_current=saw_current,
        has_tag=True,
    )
