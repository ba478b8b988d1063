import asyncio

import pytest

from autoreply.agents.context import DEFAULT_CONTEXT_TOKENS, lookup_context_tokens
from autoreply.agents.fallback import (
    ModelRef,
    parse_model_ref,
    resolve_fallback_candidates,
    run_with_model_fallback,
)
from autoreply.errors import FallbackExhaustedError, InvalidModelFormatError


class ScriptedRun:
    """Fails for the listed models and echoes the model ref otherwise."""

    def __init__(self, failing: dict[str, Exception] | None = None) -> None:
        self.failing = failing or {}
        self.calls: list[str] = []

    async def __call__(self, provider: str, model: str) -> str:
        ref = f"{provider}:{model}"
        self.calls.append(ref)
        if ref in self.failing:
            raise self.failing[ref]
        return f"ok from {ref}"


def test_parse_model_ref() -> None:
    assert parse_model_ref("Anthropic:claude-x") == ModelRef(provider="anthropic", model="claude-x")
    assert parse_model_ref("gpt-4o-mini") == ModelRef(provider="openai", model="gpt-4o-mini")
    assert parse_model_ref("openrouter:qwen/qwen3:free") == ModelRef(provider="openrouter", model="qwen/qwen3:free")
    assert str(parse_model_ref("a:b")) == "a:b"


@pytest.mark.parametrize("raw", ["", "  ", ":model", "provider:"])
def test_parse_model_ref_rejects_malformed_refs(raw: str) -> None:
    with pytest.raises(InvalidModelFormatError):
        parse_model_ref(raw)


def test_candidates_are_ordered_and_deduplicated() -> None:
    candidates = resolve_fallback_candidates(
        "OpenAI",
        "gpt-4o",
        fallbacks=["anthropic:claude-x", "openai:gpt-4o", "anthropic:claude-x"],
        primary="openai:gpt-4o-mini",
    )
    assert [str(ref) for ref in candidates] == ["openai:gpt-4o", "anthropic:claude-x", "openai:gpt-4o-mini"]


@pytest.mark.asyncio
async def test_first_candidate_success_has_no_attempts() -> None:
    run = ScriptedRun()

    outcome = await run_with_model_fallback("openai", "gpt-4o", run, fallbacks=["anthropic:claude-x"])

    assert outcome.result == "ok from openai:gpt-4o"
    assert (outcome.provider, outcome.model) == ("openai", "gpt-4o")
    assert outcome.attempts == []
    assert run.calls == ["openai:gpt-4o"]


@pytest.mark.asyncio
async def test_falls_back_to_next_candidate_and_reports_errors() -> None:
    run = ScriptedRun({"openai:gpt-4o": RuntimeError("rate limited")})
    seen: list[tuple[str, int, int]] = []

    async def _on_error(ref: ModelRef, exc: Exception, index: int, total: int) -> None:
        seen.append((str(ref), index, total))

    outcome = await run_with_model_fallback(
        "openai",
        "gpt-4o",
        run,
        fallbacks=["anthropic:claude-x"],
        on_error=_on_error,
    )

    assert outcome.result == "ok from anthropic:claude-x"
    assert outcome.provider == "anthropic"
    assert [attempt.error for attempt in outcome.attempts] == ["rate limited"]
    assert seen == [("openai:gpt-4o", 1, 2)]


@pytest.mark.asyncio
async def test_single_candidate_failure_reraises_original_error() -> None:
    error = ValueError("bad request")
    run = ScriptedRun({"openai:gpt-4o": error})

    with pytest.raises(ValueError) as exc_info:
        await run_with_model_fallback("openai", "gpt-4o", run)

    assert exc_info.value is error


@pytest.mark.asyncio
async def test_all_candidates_failing_raises_summary() -> None:
    run = ScriptedRun(
        {
            "openai:gpt-4o": RuntimeError("down"),
            "anthropic:claude-x": TimeoutError(),
        }
    )

    with pytest.raises(FallbackExhaustedError) as exc_info:
        await run_with_model_fallback("openai", "gpt-4o", run, primary="anthropic:claude-x")

    assert len(exc_info.value.attempts) == 2
    assert str(exc_info.value) == "All models failed (2): openai:gpt-4o: down | anthropic:claude-x: TimeoutError"


@pytest.mark.asyncio
async def test_cancellation_is_not_treated_as_candidate_failure() -> None:
    run = ScriptedRun({"openai:gpt-4o": asyncio.CancelledError()})

    with pytest.raises(asyncio.CancelledError):
        await run_with_model_fallback("openai", "gpt-4o", run, fallbacks=["anthropic:claude-x"])

    assert run.calls == ["openai:gpt-4o"]


def test_lookup_context_tokens() -> None:
    overrides = {"gpt-4o": 128_000, "anthropic:claude-x": 1_000_000}

    assert lookup_context_tokens("gpt-4o", overrides) == 128_000
    assert lookup_context_tokens("openai:gpt-4o", overrides) == 128_000
    assert lookup_context_tokens("anthropic:claude-x", overrides) == 1_000_000
    assert lookup_context_tokens("unknown", overrides) is None
    assert lookup_context_tokens("gpt-4o", None) is None
    assert DEFAULT_CONTEXT_TOKENS == 200_000
