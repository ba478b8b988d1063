"""Agent execution contract."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Protocol

from autoreply.agents.registry import AgentEvent
from autoreply.types import ReplyPayload

type VerboseLevel = Literal["off", "on"]


@dataclass(frozen=True)
class Usage:
    """Token counters reported by the provider for one run."""

    input: int | None = None
    output: int | None = None
    cache_read: int | None = None
    cache_write: int | None = None
    total: int | None = None


@dataclass(frozen=True)
class AgentMeta:
    session_id: str
    provider: str | None = None
    model: str | None = None
    usage: Usage | None = None


@dataclass(frozen=True)
class AgentRunMeta:
    duration_ms: int = 0
    agent_meta: AgentMeta | None = None


@dataclass(frozen=True)
class AgentRunResult:
    payloads: list[ReplyPayload] = field(default_factory=list)
    meta: AgentRunMeta = field(default_factory=AgentRunMeta)


@dataclass(frozen=True)
class AgentRunParams:
    """Everything one agent invocation needs for a (provider, model) attempt."""

    session_id: str
    prompt: str
    provider: str
    model: str
    run_id: str
    session_key: str | None = None
    surface: str | None = None
    workspace_dir: Path | None = None
    extra_system_prompt: str | None = None
    think_level: str | None = None
    verbose_level: VerboseLevel = "off"
    bash_elevated: bool = False
    enforce_final_tag: bool = False
    timeout_seconds: float = 600
    on_agent_event: Callable[[AgentEvent], None] | None = None

    def emit(self, event: AgentEvent) -> None:
        if self.on_agent_event is not None:
            self.on_agent_event(event)


class AgentExecutor(Protocol):
    """Runs one agent turn. Raises when the attempt failed."""

    async def __call__(self, params: AgentRunParams) -> AgentRunResult: ...
