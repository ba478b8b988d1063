"""Ordered reply delivery queue."""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from loguru import logger

from autoreply.errors import DeliveryError
from autoreply.reply.heartbeat import strip_heartbeat_token
from autoreply.tokens import HEARTBEAT_TOKEN, SILENT_REPLY_TOKEN, is_silent_reply_text
from autoreply.types import DispatchInfo, QueueEntry, ReplyKind, ReplyPayload

if TYPE_CHECKING:
    from autoreply.reply.typing import TypingController

type Deliverer = Callable[[ReplyPayload, DispatchInfo], Awaitable[None]]
type IdleObserver = Callable[[], None]


def normalize_reply_payload(
    payload: ReplyPayload,
    *,
    response_prefix: str | None = None,
    silent_token: str | None = SILENT_REPLY_TOKEN,
    on_heartbeat_strip: Callable[[], None] | None = None,
) -> ReplyPayload | None:
    """Sanitize one payload for delivery, or return None when it must be suppressed."""
    has_media = payload.has_media
    trimmed = (payload.text or "").strip()
    if not trimmed and not has_media:
        return None
    if silent_token and is_silent_reply_text(trimmed, silent_token) and not has_media:
        return None

    text = payload.text
    if text is not None and not trimmed:
        text = ""
    if text and HEARTBEAT_TOKEN in text:
        stripped = strip_heartbeat_token(text, mode="message")
        if stripped.did_strip and on_heartbeat_strip is not None:
            on_heartbeat_strip()
        if stripped.should_skip and not has_media:
            return None
        text = stripped.text

    if response_prefix and text and not text.startswith(response_prefix):
        text = f"{response_prefix} {text}"
    return payload.with_text(text)


class ReplyDispatcher:
    """Serializes delivery of tool results, block replies and final replies.

    Payloads are sanitized when enqueued so callers learn synchronously whether
    anything will be sent. A single worker delivers entries strictly in enqueue
    order; entry n+1 is never handed to ``deliver`` before entry n settled.
    """

    def __init__(
        self,
        deliver: Deliverer,
        *,
        response_prefix: str | None = None,
        silent_token: str | None = SILENT_REPLY_TOKEN,
        on_heartbeat_strip: Callable[[], None] | None = None,
        on_idle: Callable[[], None] | None = None,
        on_error: Callable[[BaseException, DispatchInfo], None] | None = None,
        typing: TypingController | None = None,
    ) -> None:
        self._deliver = deliver
        self._response_prefix = response_prefix
        self._silent_token = silent_token
        self._on_heartbeat_strip = on_heartbeat_strip
        self._on_idle = on_idle
        self._on_error = on_error
        self._queue: deque[QueueEntry] = deque()
        self._sequence = itertools.count(1)
        self._counts: dict[ReplyKind, int] = {"tool": 0, "block": 0, "final": 0}
        self._worker: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._failures: list[DeliveryError] = []
        self._idle_observers: list[IdleObserver] = []
        if typing is not None:
            self.add_idle_observer(typing.mark_dispatch_idle)

    @property
    def is_idle(self) -> bool:
        return self._idle.is_set()

    def add_idle_observer(self, observer: IdleObserver) -> None:
        self._idle_observers.append(observer)

    def send_tool_result(self, payload: ReplyPayload) -> bool:
        return self._enqueue("tool", payload)

    def send_block_reply(self, payload: ReplyPayload) -> bool:
        return self._enqueue("block", payload)

    def send_final_reply(self, payload: ReplyPayload) -> bool:
        return self._enqueue("final", payload)

    def queued_counts(self) -> dict[ReplyKind, int]:
        return dict(self._counts)

    async def wait_for_idle(self) -> None:
        """Wait until every accepted payload has been delivered.

        Raises:
            DeliveryError: the first delivery failure since the previous wait.
        """
        await self._idle.wait()
        if self._failures:
            failures, self._failures = self._failures, []
            raise failures[0]

    def mark_idle(self) -> None:
        """Signal idle observers for a cycle that dispatched nothing."""
        if self.is_idle:
            self._notify_observers()

    def _enqueue(self, kind: ReplyKind, payload: ReplyPayload) -> bool:
        normalized = normalize_reply_payload(
            payload,
            response_prefix=self._response_prefix,
            silent_token=self._silent_token,
            on_heartbeat_strip=self._on_heartbeat_strip,
        )
        if normalized is None:
            logger.debug("reply.dispatch.suppressed kind={}", kind)
            return False

        entry = QueueEntry(payload=normalized, kind=kind, sequence=next(self._sequence))
        self._queue.append(entry)
        self._counts[kind] += 1
        self._idle.clear()
        if self._worker is None:
            self._worker = asyncio.get_running_loop().create_task(self._drain())
        return True

    async def _drain(self) -> None:
        try:
            while self._queue:
                entry = self._queue.popleft()
                try:
                    await self._deliver(entry.payload, entry.info)
                except Exception as exc:
                    logger.opt(exception=exc).warning(
                        "reply.dispatch.error kind={} sequence={}", entry.kind, entry.sequence
                    )
                    self._failures.append(DeliveryError(entry.kind, entry.sequence, exc))
                    self._report_error(exc, entry)
                except asyncio.CancelledError as exc:
                    logger.warning("reply.dispatch.cancelled kind={} sequence={}", entry.kind, entry.sequence)
                    self._failures.append(DeliveryError(entry.kind, entry.sequence, exc))
                    raise
        finally:
            # Entries left behind by a cancelled drain are dropped with it.
            self._queue.clear()
            self._worker = None
            self._idle.set()
        self._notify_observers()
        if self._on_idle is not None:
            self._on_idle()

    def _report_error(self, exc: Exception, entry: QueueEntry) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(exc, entry.info)
        except Exception:
            logger.opt(exception=True).warning("reply.dispatch.on_error_failed sequence={}", entry.sequence)

    def _notify_observers(self) -> None:
        for observer in list(self._idle_observers):
            observer()
