"""Context window sizes."""

from __future__ import annotations

from collections.abc import Mapping

DEFAULT_CONTEXT_TOKENS = 200_000


def lookup_context_tokens(model: str | None, overrides: Mapping[str, int] | None = None) -> int | None:
    """Return the configured context window for ``model``.

    ``overrides`` may be keyed by the bare model name or by ``provider:model``.
    """
    if not model or not overrides:
        return None
    if model in overrides:
        return overrides[model]
    _, separator, bare = model.partition(":")
    if separator and bare in overrides:
        return overrides[bare]
    return None
