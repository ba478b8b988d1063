"""Followup turn runner."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from loguru import logger

from autoreply.agents.context import DEFAULT_CONTEXT_TOKENS, lookup_context_tokens
from autoreply.agents.fallback import FallbackResult, parse_model_ref, run_with_model_fallback
from autoreply.agents.registry import AgentEvent, AgentRunRegistry, auto_compaction_completed, bind_run
from autoreply.agents.runner import AgentExecutor, AgentRunParams, AgentRunResult, VerboseLevel
from autoreply.reply.dispatcher import ReplyDispatcher
from autoreply.reply.heartbeat import strip_heartbeat_token
from autoreply.reply.tags import extract_reply_to_tag
from autoreply.reply.typing import TypingController
from autoreply.sessions.store import (
    SessionEntry,
    SessionStoreProtocol,
    apply_run_usage,
    increment_compaction_count,
    now_ms,
)
from autoreply.tokens import HEARTBEAT_TOKEN
from autoreply.types import ReplyPayload

COMPACTION_NOTICE = "🧹 Auto-compaction complete{suffix}."


@dataclass(frozen=True)
class FollowupRun:
    """One queued agent turn. Never mutated after it was enqueued."""

    prompt: str
    session_id: str
    provider: str
    model: str
    session_key: str | None = None
    surface: str | None = None
    model_fallbacks: tuple[str, ...] = ()
    workspace_dir: Path | None = None
    extra_system_prompt: str | None = None
    think_level: str | None = None
    verbose_level: VerboseLevel = "off"
    bash_elevated: bool = False
    enforce_final_tag: bool = False
    timeout_seconds: float = 600
    message_id: str | None = None
    enqueued_at: float = field(default_factory=time.time)

    @property
    def queue_key(self) -> str:
        return self.session_key or self.session_id


def sanitize_agent_payloads(
    payloads: Sequence[ReplyPayload],
    *,
    current_message_id: str | None = None,
) -> list[ReplyPayload]:
    """Turn raw agent payloads into deliverable ones.

    Drops empty and heartbeat-only payloads and folds reply-to tags into
    ``reply_to_id``.
    """
    sanitized: list[ReplyPayload] = []
    for payload in payloads:
        if payload.is_empty:
            continue
        text = payload.text
        if text and HEARTBEAT_TOKEN in text:
            stripped = strip_heartbeat_token(text, mode="message")
            if stripped.should_skip and not payload.has_media:
                continue
            payload = payload.with_text(stripped.text)

        tagged = extract_reply_to_tag(payload.text, current_message_id)
        payload = replace(
            payload,
            text=tagged.cleaned or None,
            reply_to_id=tagged.reply_to_id or payload.reply_to_id,
        )
        if payload.text or payload.has_media:
            sanitized.append(payload)
    return sanitized


class FollowupRunner:
    """Runs one queued agent turn and feeds its replies to the dispatcher."""

    def __init__(
        self,
        *,
        execute: AgentExecutor,
        dispatcher: ReplyDispatcher,
        typing: TypingController,
        default_model: str,
        session_store: SessionStoreProtocol | None = None,
        session_key: str | None = None,
        session_entry: SessionEntry | None = None,
        context_tokens: int | None = None,
        context_token_overrides: Mapping[str, int] | None = None,
        model_fallbacks: Sequence[str] = (),
        run_registry: AgentRunRegistry | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._execute = execute
        self._dispatcher = dispatcher
        self._typing = typing
        self._default_model = default_model
        self._default_model_name = parse_model_ref(default_model).model
        self._session_store = session_store
        self._session_key = session_key
        self._session_entry = session_entry
        self._context_tokens = context_tokens
        self._context_token_overrides = context_token_overrides
        self._model_fallbacks = tuple(model_fallbacks)
        self._run_registry = run_registry or AgentRunRegistry()
        self._clock = clock

    async def __call__(self, queued: FollowupRun) -> None:
        await self.run(queued)

    async def run(self, queued: FollowupRun) -> None:
        run_id = str(uuid.uuid4())
        session_key = self._session_key or queued.session_key
        try:
            with bind_run(run_id):
                if session_key:
                    self._run_registry.register(run_id, session_key)
                await self._run_turn(queued, run_id, session_key)
        finally:
            self._run_registry.clear(run_id)
            self._typing.mark_run_complete()

    async def _run_turn(self, queued: FollowupRun, run_id: str, session_key: str | None) -> None:
        events: list[AgentEvent] = []

        def _on_agent_event(event: AgentEvent) -> None:
            events.append(event)
            self._run_registry.emit(replace(event, run_id=run_id))

        async def _attempt(provider: str, model: str) -> AgentRunResult:
            events.clear()
            logger.info("followup.agent.attempt provider={} model={}", provider, model)
            return await self._execute(self._build_params(queued, run_id, provider, model, _on_agent_event))

        try:
            outcome: FallbackResult[AgentRunResult] = await run_with_model_fallback(
                queued.provider,
                queued.model,
                _attempt,
                fallbacks=(*queued.model_fallbacks, *self._model_fallbacks),
                primary=self._default_model,
            )
        except Exception as exc:
            logger.error("followup.agent.failed before reply: {}", exc)
            return

        payloads = sanitize_agent_payloads(outcome.result.payloads, current_message_id=queued.message_id)
        if not payloads:
            logger.info("followup.run.empty provider={} model={}", outcome.provider, outcome.model)
            return

        compaction_completed = auto_compaction_completed(events)
        compaction_count: int | None = None
        if compaction_completed:
            compaction_count = await self._increment_compaction(session_key)

        if compaction_completed and queued.verbose_level == "on":
            suffix = f" (count {compaction_count})" if compaction_count is not None else ""
            payloads.insert(0, ReplyPayload(text=COMPACTION_NOTICE.format(suffix=suffix)))

        await self._update_session_usage(session_key, outcome)
        await self._send_payloads(payloads)

    def _build_params(
        self,
        queued: FollowupRun,
        run_id: str,
        provider: str,
        model: str,
        on_agent_event: Callable[[AgentEvent], None],
    ) -> AgentRunParams:
        return AgentRunParams(
            session_id=queued.session_id,
            session_key=queued.session_key,
            surface=queued.surface,
            workspace_dir=queued.workspace_dir,
            prompt=queued.prompt,
            extra_system_prompt=queued.extra_system_prompt,
            provider=provider,
            model=model,
            think_level=queued.think_level,
            verbose_level=queued.verbose_level,
            bash_elevated=queued.bash_elevated,
            enforce_final_tag=queued.enforce_final_tag,
            timeout_seconds=queued.timeout_seconds,
            run_id=run_id,
            on_agent_event=on_agent_event,
        )

    async def _increment_compaction(self, session_key: str | None) -> int | None:
        if self._session_store is None or not session_key:
            return None
        return await asyncio.to_thread(
            increment_compaction_count,
            self._session_store,
            session_key,
            fallback_entry=self._session_entry,
            now=self._clock(),
        )

    async def _update_session_usage(self, session_key: str | None, outcome: FallbackResult[AgentRunResult]) -> None:
        if self._session_store is None or not session_key:
            return
        entry = self._session_store.get(session_key)
        if entry is None:
            return

        agent_meta = outcome.result.meta.agent_meta
        usage = agent_meta.usage if agent_meta is not None else None
        provider_used = (agent_meta.provider if agent_meta is not None else None) or outcome.provider
        model_used = (agent_meta.model if agent_meta is not None else None) or outcome.model or self._default_model_name
        context_tokens = (
            self._context_tokens
            or lookup_context_tokens(model_used, self._context_token_overrides)
            or entry.context_tokens
            or DEFAULT_CONTEXT_TOKENS
        )
        updated = apply_run_usage(
            entry,
            usage=usage,
            provider=provider_used,
            model=model_used,
            context_tokens=context_tokens,
            now=self._clock(),
        )
        if updated is None:
            return
        self._session_store.set(session_key, updated)
        await asyncio.to_thread(self._session_store.save)
        logger.debug(
            "followup.session.usage session_key={} total_tokens={} model={}", session_key, updated.total_tokens, model_used
        )

    async def _send_payloads(self, payloads: list[ReplyPayload]) -> None:
        for payload in payloads:
            await self._typing.start_typing_on_text(payload.text)
            self._dispatcher.send_block_reply(payload)
        await self._dispatcher.wait_for_idle()
