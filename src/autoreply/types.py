"""Reply payload and dispatch data types."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

type ReplyKind = Literal["tool", "block", "final"]


@dataclass(frozen=True)
class ReplyPayload:
    """One unit of outbound content destined for a chat surface."""

    text: str | None = None
    media_url: str | None = None
    media_urls: tuple[str, ...] = ()
    reply_to_id: str | None = None

    @property
    def has_media(self) -> bool:
        return bool(self.media_url) or len(self.media_urls) > 0

    @property
    def is_empty(self) -> bool:
        """True when there is neither visible text nor a media reference."""
        return not (self.text or "").strip() and not self.has_media

    def with_text(self, text: str | None) -> ReplyPayload:
        return replace(self, text=text)


@dataclass(frozen=True)
class DispatchInfo:
    """Classification metadata handed to the delivery callback."""

    kind: ReplyKind


@dataclass(frozen=True)
class QueueEntry:
    """A payload waiting in the dispatcher queue."""

    payload: ReplyPayload
    kind: ReplyKind
    sequence: int

    @property
    def info(self) -> DispatchInfo:
        return DispatchInfo(kind=self.kind)
