"""Session entries and the JSON-backed session store."""

from __future__ import annotations

import json
import threading
import time
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict

from autoreply.agents.runner import Usage


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionEntry(BaseModel):
    """Per-session accounting kept between turns."""

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    session_id: str | None = None
    updated_at: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_read_tokens: int | None = None
    cache_write_tokens: int | None = None
    total_tokens: int | None = None
    model_provider: str | None = None
    model: str | None = None
    context_tokens: int | None = None
    compaction_count: int = 0


class SessionStoreProtocol(Protocol):
    def get(self, key: str) -> SessionEntry | None: ...

    def set(self, key: str, entry: SessionEntry) -> None: ...

    def save(self) -> None: ...


class SessionStore:
    """Session key to entry mapping, optionally persisted as one JSON document."""

    def __init__(self, path: Path | None = None, entries: dict[str, SessionEntry] | None = None) -> None:
        self.path = path
        self._entries: dict[str, SessionEntry] = dict(entries or {})
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Path) -> SessionStore:
        if not path.exists():
            return cls(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            logger.opt(exception=True).warning("session.store.invalid path={}", path)
            return cls(path)
        if not isinstance(raw, dict):
            logger.warning("session.store.invalid path={}", path)
            return cls(path)
        entries = {str(key): SessionEntry.model_validate(value) for key, value in raw.items() if isinstance(value, dict)}
        return cls(path, entries)

    def get(self, key: str) -> SessionEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: SessionEntry) -> None:
        self._entries[key] = entry

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def items(self) -> list[tuple[str, SessionEntry]]:
        return list(self._entries.items())

    def save(self) -> None:
        if self.path is None:
            return
        with self._lock:
            data = {key: entry.model_dump(mode="json", exclude_none=True) for key, entry in self._entries.items()}
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex}.tmp")
            tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)


def increment_compaction_count(
    store: SessionStoreProtocol,
    session_key: str,
    *,
    fallback_entry: SessionEntry | None = None,
    now: int | None = None,
) -> int | None:
    """Bump the compaction counter of one session and persist the store."""
    entry = store.get(session_key) or fallback_entry
    if entry is None:
        return None
    next_count = entry.compaction_count + 1
    store.set(
        session_key,
        entry.model_copy(update={"compaction_count": next_count, "updated_at": now if now is not None else now_ms()}),
    )
    store.save()
    return next_count


def apply_run_usage(
    entry: SessionEntry,
    *,
    usage: Usage | None,
    provider: str | None,
    model: str | None,
    context_tokens: int | None,
    now: int,
) -> SessionEntry | None:
    """Fold one run's usage into a session entry.

    Returns the updated entry, or None when nothing changed.
    """
    if usage is not None:
        input_tokens = usage.input or 0
        output_tokens = usage.output or 0
        prompt_tokens = input_tokens + (usage.cache_read or 0) + (usage.cache_write or 0)
        total_tokens = prompt_tokens if prompt_tokens > 0 else (usage.total or input_tokens)
        return entry.model_copy(
            update={
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_read_tokens": usage.cache_read,
                "cache_write_tokens": usage.cache_write,
                "total_tokens": total_tokens,
                "model_provider": provider or entry.model_provider,
                "model": model or entry.model,
                "context_tokens": context_tokens or entry.context_tokens,
                "updated_at": now,
            }
        )

    update = {
        "model_provider": provider or entry.model_provider,
        "model": model or entry.model,
        "context_tokens": context_tokens or entry.context_tokens,
    }
    if all(getattr(entry, key) == value for key, value in update.items()):
        return None
    return entry.model_copy(update=update)
