import asyncio

import pytest

from autoreply.reply.followup import FollowupRun
from autoreply.reply.queue import FollowupQueue


class RecordingTurn:
    def __init__(self, delay: float = 0.01, fail_on: str | None = None) -> None:
        self.delay = delay
        self.fail_on = fail_on
        self.log: list[str] = []

    async def __call__(self, run: FollowupRun) -> None:
        self.log.append(f"start:{run.prompt}")
        await asyncio.sleep(self.delay)
        self.log.append(f"end:{run.prompt}")
        if run.prompt == self.fail_on:
            raise RuntimeError("turn failed")


def _run(prompt: str, session_key: str) -> FollowupRun:
    return FollowupRun(prompt=prompt, session_id=session_key, session_key=session_key, provider="openai", model="m")


@pytest.mark.asyncio
async def test_turns_for_one_session_run_sequentially() -> None:
    turn = RecordingTurn()
    queue = FollowupQueue(turn)

    queue.enqueue(_run("a", "chat:1"))
    queue.enqueue(_run("b", "chat:1"))
    assert queue.is_running("chat:1")
    assert queue.pending("chat:1") == 2

    await queue.wait_for_idle("chat:1")

    assert turn.log == ["start:a", "end:a", "start:b", "end:b"]
    assert not queue.is_running("chat:1")
    assert queue.pending("chat:1") == 0


@pytest.mark.asyncio
async def test_turns_for_different_sessions_overlap() -> None:
    turn = RecordingTurn()
    queue = FollowupQueue(turn)

    queue.enqueue(_run("a", "chat:1"))
    queue.enqueue(_run("b", "chat:2"))
    await queue.wait_for_idle()

    assert turn.log[:2] == ["start:a", "start:b"]


@pytest.mark.asyncio
async def test_failed_turn_does_not_stop_the_session_queue() -> None:
    turn = RecordingTurn(fail_on="a")
    queue = FollowupQueue(turn)

    queue.enqueue(_run("a", "chat:1"))
    queue.enqueue(_run("b", "chat:1"))
    await queue.wait_for_idle()

    assert turn.log == ["start:a", "end:a", "start:b", "end:b"]


@pytest.mark.asyncio
async def test_wait_for_idle_covers_turns_enqueued_while_draining() -> None:
    turn = RecordingTurn()
    queue = FollowupQueue(turn)

    async def _late_enqueue() -> None:
        await asyncio.sleep(0.005)
        queue.enqueue(_run("late", "chat:2"))

    queue.enqueue(_run("a", "chat:1"))
    late = asyncio.create_task(_late_enqueue())
    await queue.wait_for_idle()
    await late
    await queue.wait_for_idle()

    assert "end:late" in turn.log
