import json
from pathlib import Path

from autoreply.agents.runner import Usage
from autoreply.sessions.store import SessionEntry, SessionStore, apply_run_usage, increment_compaction_count


class CountingStore(SessionStore):
    def __init__(self, entries: dict[str, SessionEntry] | None = None) -> None:
        super().__init__(entries=entries)
        self.saves = 0

    def save(self) -> None:
        self.saves += 1


def test_store_round_trips_entries_and_unknown_fields(tmp_path: Path) -> None:
    path = tmp_path / "state" / "sessions.json"
    store = SessionStore(path)
    store.set("chat:1", SessionEntry(session_id="s1", total_tokens=42, compaction_count=2, label="keep me"))
    store.save()

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["chat:1"]["total_tokens"] == 42
    assert "input_tokens" not in raw["chat:1"]

    loaded = SessionStore.load(path)
    entry = loaded.get("chat:1")
    assert entry is not None
    assert entry.compaction_count == 2
    assert entry.model_extra == {"label": "keep me"}
    assert "chat:1" in loaded
    assert list(loaded) == ["chat:1"]
    assert list(tmp_path.joinpath("state").glob("*.tmp")) == []


def test_load_missing_file_gives_empty_store(tmp_path: Path) -> None:
    store = SessionStore.load(tmp_path / "missing.json")
    assert len(store) == 0


def test_in_memory_store_save_is_noop() -> None:
    store = SessionStore()
    store.set("k", SessionEntry())
    store.save()
    assert [key for key, _ in store.items()] == ["k"]


def test_increment_compaction_count_persists() -> None:
    store = CountingStore({"chat:1": SessionEntry(session_id="s1", compaction_count=1)})

    assert increment_compaction_count(store, "chat:1", now=1000) == 2

    entry = store.get("chat:1")
    assert entry is not None
    assert entry.compaction_count == 2
    assert entry.updated_at == 1000
    assert store.saves == 1


def test_increment_compaction_count_uses_fallback_entry() -> None:
    store = CountingStore()

    assert increment_compaction_count(store, "chat:1", fallback_entry=SessionEntry(session_id="s1"), now=5) == 1
    entry = store.get("chat:1")
    assert entry is not None
    assert (entry.session_id, entry.compaction_count, entry.updated_at) == ("s1", 1, 5)
    assert increment_compaction_count(store, "chat:2") is None
    assert store.saves == 1


def test_apply_run_usage_counts_cached_prompt_tokens() -> None:
    entry = SessionEntry(session_id="s1", total_tokens=7)

    updated = apply_run_usage(
        entry,
        usage=Usage(input=100, output=20, cache_read=30, cache_write=5, total=999),
        provider="openai",
        model="gpt-4o",
        context_tokens=128_000,
        now=42,
    )

    assert updated is not None
    assert updated.input_tokens == 100
    assert updated.output_tokens == 20
    assert updated.total_tokens == 135
    assert updated.model_provider == "openai"
    assert updated.model == "gpt-4o"
    assert updated.context_tokens == 128_000
    assert updated.updated_at == 42
    assert entry.total_tokens == 7


def test_apply_run_usage_falls_back_to_reported_total() -> None:
    updated = apply_run_usage(
        SessionEntry(),
        usage=Usage(total=55),
        provider=None,
        model=None,
        context_tokens=None,
        now=1,
    )
    assert updated is not None
    assert updated.total_tokens == 55
    assert updated.input_tokens == 0


def test_apply_run_usage_without_usage_only_touches_model_fields() -> None:
    entry = SessionEntry(model_provider="openai", model="gpt-4o", context_tokens=128_000, updated_at=3)

    assert apply_run_usage(entry, usage=None, provider="openai", model="gpt-4o", context_tokens=None, now=9) is None

    updated = apply_run_usage(entry, usage=None, provider="anthropic", model="claude-x", context_tokens=None, now=9)
    assert updated is not None
    assert (updated.model_provider, updated.model, updated.context_tokens) == ("anthropic", "claude-x", 128_000)
    assert updated.updated_at == 3


def test_load_corrupt_file_gives_empty_store(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    path.write_text("{not json", encoding="utf-8")

    store = SessionStore.load(path)

    assert len(store) == 0
    assert store.path == path
