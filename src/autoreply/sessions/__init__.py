"""Session accounting."""

from autoreply.sessions.store import (
    SessionEntry,
    SessionStore,
    SessionStoreProtocol,
    apply_run_usage,
    increment_compaction_count,
    now_ms,
)

__all__ = [
    "SessionEntry",
    "SessionStore",
    "SessionStoreProtocol",
    "apply_run_usage",
    "increment_compaction_count",
    "now_ms",
]
