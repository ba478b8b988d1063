"""Agent execution collaborators."""

from autoreply.agents.context import DEFAULT_CONTEXT_TOKENS, lookup_context_tokens
from autoreply.agents.fallback import (
    FallbackAttempt,
    FallbackResult,
    ModelRef,
    parse_model_ref,
    resolve_fallback_candidates,
    run_with_model_fallback,
)
from autoreply.agents.registry import AgentEvent, AgentRunRegistry, auto_compaction_completed, bind_run, current_run
from autoreply.agents.runner import AgentExecutor, AgentMeta, AgentRunMeta, AgentRunParams, AgentRunResult, Usage

__all__ = [
    "DEFAULT_CONTEXT_TOKENS",
    "AgentEvent",
    "AgentExecutor",
    "AgentMeta",
    "AgentRunMeta",
    "AgentRunParams",
    "AgentRunRegistry",
    "AgentRunResult",
    "FallbackAttempt",
    "FallbackResult",
    "ModelRef",
    "Usage",
    "auto_compaction_completed",
    "bind_run",
    "current_run",
    "lookup_context_tokens",
    "parse_model_ref",
    "resolve_fallback_candidates",
    "run_with_model_fallback",
]
