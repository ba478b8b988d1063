"""Republic-backed agent executor."""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Callable
from typing import Any

from loguru import logger
from republic import LLM

from autoreply.agents.runner import AgentMeta, AgentRunMeta, AgentRunParams, AgentRunResult, Usage
from autoreply.types import ReplyPayload

THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
FINAL_BLOCK_RE = re.compile(r"<final>(.*?)</final>", re.DOTALL | re.IGNORECASE)
FINAL_TAG_INSTRUCTION = "Wrap the reply meant for the user in <final>...</final>. Anything outside is not delivered."

type LLMFactory = Callable[[str], Any]


class RepublicAgentExecutor:
    """Runs one chat completion per attempt through a republic ``LLM``."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_base: str | None = None,
        max_tokens: int = 4000,
        system_prompt: str = "",
        llm_factory: LLMFactory | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_base = api_base
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt.strip()
        self._llm_factory = llm_factory or self._build_llm
        self._llms: dict[str, Any] = {}

    async def __call__(self, params: AgentRunParams) -> AgentRunResult:
        llm = self._get_llm(f"{params.provider}:{params.model}")
        messages = self._build_messages(params)
        timeout = params.timeout_seconds if params.timeout_seconds > 0 else None
        started = time.monotonic()
        async with asyncio.timeout(timeout):
            response = await asyncio.to_thread(llm.chat.raw, messages=messages, max_tokens=self._max_tokens)
        duration_ms = int((time.monotonic() - started) * 1000)

        text = _visible_text(_extract_text(response), enforce_final_tag=params.enforce_final_tag)
        usage = _extract_usage(response)
        logger.info(
            "republic.agent.done provider={} model={} duration_ms={} chars={}",
            params.provider,
            params.model,
            duration_ms,
            len(text),
        )
        return AgentRunResult(
            payloads=[ReplyPayload(text=text)] if text else [],
            meta=AgentRunMeta(
                duration_ms=duration_ms,
                agent_meta=AgentMeta(
                    session_id=params.session_id,
                    provider=params.provider,
                    model=params.model,
                    usage=usage,
                ),
            ),
        )

    def _build_llm(self, model_ref: str) -> LLM:
        return LLM(model_ref, api_key=self._api_key, api_base=self._api_base)

    def _get_llm(self, model_ref: str) -> Any:
        llm = self._llms.get(model_ref)
        if llm is None:
            llm = self._llm_factory(model_ref)
            self._llms[model_ref] = llm
        return llm

    def _build_messages(self, params: AgentRunParams) -> list[dict[str, Any]]:
        blocks = [self._system_prompt, params.extra_system_prompt or ""]
        if params.enforce_final_tag:
            blocks.append(FINAL_TAG_INSTRUCTION)
        system_prompt = "\n\n".join(block.strip() for block in blocks if block and block.strip())
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": params.prompt})
        return messages


def _visible_text(raw: str, *, enforce_final_tag: bool) -> str:
    text = THINK_BLOCK_RE.sub("", raw)
    if enforce_final_tag:
        blocks = [match.strip() for match in FINAL_BLOCK_RE.findall(text)]
        return "\n\n".join(block for block in blocks if block)
    return text.strip()


def _extract_text(response: Any) -> str:
    if isinstance(response, str):
        return response
    choices = getattr(response, "choices", None)
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    if message is None:
        return ""
    return getattr(message, "content", "") or ""


def _extract_usage(response: Any) -> Usage | None:
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    prompt_tokens = _int_or_none(getattr(usage, "prompt_tokens", None))
    details = getattr(usage, "prompt_tokens_details", None)
    cached = _int_or_none(getattr(details, "cached_tokens", None)) if details is not None else None
    input_tokens = prompt_tokens
    if prompt_tokens is not None and cached:
        input_tokens = max(prompt_tokens - cached, 0)
    return Usage(
        input=input_tokens,
        output=_int_or_none(getattr(usage, "completion_tokens", None)),
        cache_read=cached,
        cache_write=_int_or_none(getattr(usage, "cache_creation_input_tokens", None)),
        total=_int_or_none(getattr(usage, "total_tokens", None)),
    )


def _int_or_none(value: object) -> int | None:
    return value if isinstance(value, int) else None
