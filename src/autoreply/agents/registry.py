"""Agent run correlation and streamed run events."""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Generator, Iterable
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

_run_context: ContextVar[str] = ContextVar("agent_run")


def current_run() -> str:
    """Get the id of the agent run bound to the current context."""
    return _run_context.get("-")


@contextlib.contextmanager
def bind_run(run_id: str) -> Generator[str, None, None]:
    reset_token = _run_context.set(run_id)
    try:
        yield run_id
    finally:
        _run_context.reset(reset_token)


@dataclass(frozen=True)
class AgentEvent:
    """One side-channel event streamed by the agent while a run is in flight."""

    stream: str
    phase: str = ""
    will_retry: bool = False
    data: dict[str, Any] = field(default_factory=dict)
    run_id: str | None = None

    @classmethod
    def from_raw(cls, stream: str, data: dict[str, Any], run_id: str | None = None) -> AgentEvent:
        return cls(
            stream=stream,
            phase=str(data.get("phase") or ""),
            will_retry=bool(data.get("willRetry", data.get("will_retry", False))),
            data=dict(data),
            run_id=run_id,
        )


def auto_compaction_completed(events: Iterable[AgentEvent]) -> bool:
    """True when a compaction pass finished and the agent is not going to retry."""
    return any(event.stream == "compaction" and event.phase == "end" and not event.will_retry for event in events)


@dataclass(frozen=True)
class AgentRunContext:
    session_key: str


type AgentEventListener = Callable[[AgentEvent, AgentRunContext | None], None]


class AgentRunRegistry:
    """Maps run ids to their session so streamed events can be attributed."""

    def __init__(self) -> None:
        self._runs: dict[str, AgentRunContext] = {}
        self._listeners: list[AgentEventListener] = []

    def register(self, run_id: str, session_key: str) -> AgentRunContext:
        context = AgentRunContext(session_key=session_key)
        self._runs[run_id] = context
        return context

    def get(self, run_id: str) -> AgentRunContext | None:
        return self._runs.get(run_id)

    def clear(self, run_id: str) -> None:
        self._runs.pop(run_id, None)

    def subscribe(self, listener: AgentEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: AgentEvent) -> None:
        context = self._runs.get(event.run_id) if event.run_id else None
        for listener in list(self._listeners):
            try:
                listener(event, context)
            except Exception:
                logger.opt(exception=True).warning("agent.event.listener_error stream={}", event.stream)
