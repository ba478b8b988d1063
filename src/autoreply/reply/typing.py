"""Typing indicator lifecycle for one reply cycle."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Literal

from loguru import logger

from autoreply.tokens import SILENT_REPLY_TOKEN, is_silent_reply_text

type TypingSignal = Literal["start", "run_complete", "dispatch_idle", "stop"]
type StopReason = Literal["idle", "ttl"]

DEFAULT_TYPING_INTERVAL_SECONDS = 6.0
DEFAULT_TYPING_TTL_SECONDS = 120.0


@dataclass(frozen=True)
class TypingState:
    """Flags of one typing cycle. All False means idle and ready for a new cycle."""

    started: bool = False
    active: bool = False
    run_complete: bool = False
    dispatch_idle: bool = False

    @property
    def should_stop(self) -> bool:
        # Stop only when the model run is done and the dispatcher queue is empty.
        return self.active and self.run_complete and self.dispatch_idle


def advance(state: TypingState, signal: TypingSignal) -> TypingState:
    """Pure transition function of the typing state machine."""
    if signal == "start":
        if not state.active:
            state = replace(state, active=True, run_complete=False, dispatch_idle=False)
        return replace(state, started=True)
    if signal == "run_complete":
        return replace(state, run_complete=True)
    if signal == "dispatch_idle":
        return replace(state, dispatch_idle=True)
    return TypingState()


def _format_ttl(seconds: float) -> str:
    if seconds % 60 == 0:
        return f"{int(seconds // 60)}m"
    return f"{round(seconds)}s"


class TypingController:
    """Keeps a surface's typing indicator alive while a turn is in flight.

    The indicator starts with the first outgoing text and stops once both the
    agent run and the reply dispatcher have finished, or when no text activity
    refreshed the TTL for ``typing_ttl_seconds``.
    """

    def __init__(
        self,
        on_reply_start: Callable[[], Awaitable[None] | None] | None = None,
        *,
        typing_interval_seconds: float = DEFAULT_TYPING_INTERVAL_SECONDS,
        typing_ttl_seconds: float = DEFAULT_TYPING_TTL_SECONDS,
        silent_token: str | None = SILENT_REPLY_TOKEN,
        on_stop: Callable[[StopReason], None] | None = None,
    ) -> None:
        self._on_reply_start = on_reply_start
        self._interval = typing_interval_seconds
        self._ttl = typing_ttl_seconds
        self._silent_token = silent_token
        self._on_stop = on_stop
        self._state = TypingState()
        self._loop_task: asyncio.Task[None] | None = None
        self._ttl_timer: asyncio.TimerHandle | None = None

    @property
    def state(self) -> TypingState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state.active

    @property
    def loop_running(self) -> bool:
        return self._loop_task is not None

    async def on_reply_start(self) -> None:
        await self._ensure_start()

    async def start_typing_loop(self) -> None:
        if self._on_reply_start is None:
            return
        if self._interval <= 0:
            return
        if self._loop_task is not None:
            return
        await self._ensure_start()
        if self._loop_task is not None or not self._state.active:
            return
        self.refresh_typing_ttl()
        self._loop_task = asyncio.create_task(self._typing_loop())

    async def start_typing_on_text(self, text: str | None) -> None:
        trimmed = (text or "").strip()
        if not trimmed:
            return
        if self._silent_token and is_silent_reply_text(trimmed, self._silent_token):
            return
        self.refresh_typing_ttl()
        await self.start_typing_loop()

    def refresh_typing_ttl(self) -> None:
        if self._interval <= 0 or self._ttl <= 0:
            return
        if self._ttl_timer is not None:
            self._ttl_timer.cancel()
        self._ttl_timer = asyncio.get_running_loop().call_later(self._ttl, self._on_ttl_expired)

    def mark_run_complete(self) -> None:
        self._state = advance(self._state, "run_complete")
        self._maybe_stop_on_idle()

    def mark_dispatch_idle(self) -> None:
        self._state = advance(self._state, "dispatch_idle")
        self._maybe_stop_on_idle()

    def cleanup(self) -> None:
        if self._ttl_timer is not None:
            self._ttl_timer.cancel()
            self._ttl_timer = None
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None
        self._state = advance(self._state, "stop")

    async def _ensure_start(self) -> None:
        first_entry = not self._state.started
        self._state = advance(self._state, "start")
        if first_entry:
            await self._trigger()

    async def _trigger(self) -> None:
        if self._on_reply_start is None:
            return
        result = self._on_reply_start()
        if inspect.isawaitable(result):
            await result

    async def _typing_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._trigger()
            except Exception:
                logger.opt(exception=True).warning("typing.signal.error")

    def _on_ttl_expired(self) -> None:
        self._ttl_timer = None
        if self._loop_task is None:
            return
        logger.info("typing.ttl.reached ttl={}; stopping typing indicator", _format_ttl(self._ttl))
        self._stop("ttl")

    def _maybe_stop_on_idle(self) -> None:
        if self._state.should_stop:
            self._stop("idle")

    def _stop(self, reason: StopReason) -> None:
        logger.debug("typing.stop reason={}", reason)
        self.cleanup()
        if self._on_stop is not None:
            self._on_stop(reason)
