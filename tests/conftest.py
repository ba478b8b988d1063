from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from autoreply.types import DispatchInfo, ReplyPayload


@dataclass
class RecordingDeliverer:
    """Delivery callback that records what reached the surface."""

    delays: dict[str, float] = field(default_factory=dict)
    fail_on: set[str] = field(default_factory=set)
    delivered: list[tuple[ReplyPayload, DispatchInfo]] = field(default_factory=list)

    async def __call__(self, payload: ReplyPayload, info: DispatchInfo) -> None:
        delay = self.delays.get(info.kind, 0)
        if delay:
            await asyncio.sleep(delay)
        if payload.text in self.fail_on:
            raise RuntimeError(f"surface rejected {payload.text!r}")
        self.delivered.append((payload, info))

    @property
    def texts(self) -> list[str | None]:
        return [payload.text for payload, _ in self.delivered]

    @property
    def kinds(self) -> list[str]:
        return [info.kind for _, info in self.delivered]


@pytest.fixture
def deliverer() -> RecordingDeliverer:
    return RecordingDeliverer()
