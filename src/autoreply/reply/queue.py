"""Per-session followup queue."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable

from loguru import logger

from autoreply.reply.followup import FollowupRun

type RunTurn = Callable[[FollowupRun], Awaitable[None]]


class FollowupQueue:
    """Runs queued turns one at a time per session key.

    Different session keys drain concurrently; within one key, turns run in
    the order they were enqueued so a session entry only has one writer.
    """

    def __init__(self, run_turn: RunTurn) -> None:
        self._run_turn = run_turn
        self._pending: dict[str, deque[FollowupRun]] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def enqueue(self, run: FollowupRun) -> None:
        key = run.queue_key
        self._pending.setdefault(key, deque()).append(run)
        logger.info("followup.queue.enqueue key={} depth={}", key, len(self._pending[key]))
        if key not in self._tasks:
            self._tasks[key] = asyncio.get_running_loop().create_task(self._drain(key))

    def pending(self, key: str) -> int:
        return len(self._pending.get(key, ()))

    def is_running(self, key: str) -> bool:
        return key in self._tasks

    async def wait_for_idle(self, key: str | None = None) -> None:
        while True:
            if key is None:
                tasks = list(self._tasks.values())
            else:
                tasks = [task] if (task := self._tasks.get(key)) is not None else []
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _drain(self, key: str) -> None:
        queue = self._pending[key]
        try:
            while queue:
                run = queue.popleft()
                try:
                    await self._run_turn(run)
                except Exception:
                    logger.exception("followup.queue.run_error key={}", key)
        finally:
            self._tasks.pop(key, None)
            if not queue:
                self._pending.pop(key, None)
