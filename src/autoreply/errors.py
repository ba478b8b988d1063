"""Application-level exception types for autoreply."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autoreply.agents.fallback import FallbackAttempt
    from autoreply.types import ReplyKind


class AutoReplyError(Exception):
    """Base exception for autoreply."""


class ConfigurationError(AutoReplyError):
    """Base exception for configuration and startup validation errors."""


class InvalidModelFormatError(ConfigurationError):
    """Raised when a model reference is not provider:model."""


class AgentRunError(AutoReplyError):
    """Raised when an agent turn cannot produce a result."""


class FallbackExhaustedError(AgentRunError):
    """Raised when every provider/model candidate failed."""

    def __init__(self, attempts: list[FallbackAttempt]) -> None:
        self.attempts = list(attempts)
        summary = " | ".join(f"{attempt.provider}:{attempt.model}: {attempt.error}" for attempt in self.attempts)
        super().__init__(f"All models failed ({len(self.attempts)}): {summary}")


class DeliveryError(AutoReplyError):
    """Raised by the reply dispatcher when a delivery callback failed."""

    def __init__(self, kind: ReplyKind, sequence: int, cause: BaseException) -> None:
        self.kind = kind
        self.sequence = sequence
        self.cause = cause
        super().__init__(f"delivery failed kind={kind} sequence={sequence}: {cause!s}")
