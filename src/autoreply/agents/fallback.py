"""Provider/model fallback."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from loguru import logger

from autoreply.errors import FallbackExhaustedError, InvalidModelFormatError

DEFAULT_PROVIDER = "openai"


@dataclass(frozen=True)
class ModelRef:
    provider: str
    model: str

    def __str__(self) -> str:
        return f"{self.provider}:{self.model}"


@dataclass(frozen=True)
class FallbackAttempt:
    provider: str
    model: str
    error: str


@dataclass(frozen=True)
class FallbackResult[T]:
    result: T
    provider: str
    model: str
    attempts: list[FallbackAttempt]


type FallbackErrorHook = Callable[[ModelRef, Exception, int, int], Awaitable[None] | None]


def parse_model_ref(raw: str, default_provider: str = DEFAULT_PROVIDER) -> ModelRef:
    """Parse ``provider:model``; a bare model name uses ``default_provider``."""
    value = raw.strip()
    if not value:
        raise InvalidModelFormatError("model reference is empty")
    provider, separator, model = value.partition(":")
    if not separator:
        return ModelRef(provider=default_provider, model=value)
    if not provider.strip() or not model.strip():
        raise InvalidModelFormatError(f"model reference must be provider:model, got {raw!r}")
    return ModelRef(provider=provider.strip().lower(), model=model.strip())


def resolve_fallback_candidates(
    provider: str,
    model: str,
    *,
    fallbacks: Iterable[str] = (),
    primary: str | None = None,
    default_provider: str = DEFAULT_PROVIDER,
) -> list[ModelRef]:
    """Requested pair first, then configured fallbacks, then the primary model."""
    candidates: list[ModelRef] = []
    seen: set[tuple[str, str]] = set()

    def _add(ref: ModelRef) -> None:
        key = (ref.provider, ref.model)
        if key in seen:
            return
        seen.add(key)
        candidates.append(ref)

    _add(ModelRef(provider=provider.strip().lower() or default_provider, model=model.strip()))
    for raw in fallbacks:
        _add(parse_model_ref(raw, default_provider))
    if primary:
        _add(parse_model_ref(primary, default_provider))
    return candidates


async def run_with_model_fallback[T](
    provider: str,
    model: str,
    run: Callable[[str, str], Awaitable[T]],
    *,
    fallbacks: Iterable[str] = (),
    primary: str | None = None,
    default_provider: str = DEFAULT_PROVIDER,
    on_error: FallbackErrorHook | None = None,
) -> FallbackResult[T]:
    """Try each candidate until one succeeds.

    A single failing candidate re-raises its own error. When several were
    tried, ``FallbackExhaustedError`` lists every attempt. Cancellation is never
    treated as a candidate failure.
    """
    candidates = resolve_fallback_candidates(
        provider,
        model,
        fallbacks=fallbacks,
        primary=primary,
        default_provider=default_provider,
    )
    attempts: list[FallbackAttempt] = []
    last_error: Exception | None = None
    total = len(candidates)
    for index, candidate in enumerate(candidates, start=1):
        try:
            result = await run(candidate.provider, candidate.model)
        except Exception as exc:
            last_error = exc
            attempts.append(
                FallbackAttempt(provider=candidate.provider, model=candidate.model, error=str(exc) or type(exc).__name__)
            )
            logger.warning(
                "model.fallback.attempt_failed candidate={} attempt={}/{} error={}", candidate, index, total, exc
            )
            if on_error is not None:
                outcome = on_error(candidate, exc, index, total)
                if inspect.isawaitable(outcome):
                    await outcome
            continue
        return FallbackResult(result=result, provider=candidate.provider, model=candidate.model, attempts=attempts)

    if len(attempts) <= 1 and last_error is not None:
        raise last_error
    raise FallbackExhaustedError(attempts) from last_error
