"""Runtime logging helpers."""

from __future__ import annotations

import os
import sys
from logging import Handler
from typing import Literal

import loguru
from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

_PROFILE_FORMATS: dict[LogProfile, str] = {
    "chat": "run={extra[run]} {message}",
    "default": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<6} | {name}:{function}:{line} | run={extra[run]} | {message}",
}
_CONFIGURED: tuple[LogProfile, str] | None = None


def _inject_run(record: loguru.Record) -> None:
    from autoreply.agents.registry import current_run

    record["extra"]["run"] = current_run()


def _build_chat_handler() -> Handler:
    return RichHandler(
        console=Console(stderr=True),
        show_level=True,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )


def configure_logging(*, profile: LogProfile = "default", level: str | None = None) -> None:
    """Configure process-level logging once per (profile, level).

    Every record carries the id of the agent run bound to the current context
    as ``extra["run"]``.
    """
    global _CONFIGURED
    resolved_level = (level or os.getenv("AUTOREPLY_LOG_LEVEL", "INFO")).upper()
    if _CONFIGURED == (profile, resolved_level):
        return

    logger.remove()
    sink: Handler | object = _build_chat_handler() if profile == "chat" else sys.stderr
    logger.add(
        sink,
        level=resolved_level,
        format=_PROFILE_FORMATS[profile],
        backtrace=False,
        diagnose=False,
    )
    logger.configure(patcher=_inject_run)
    _CONFIGURED = (profile, resolved_level)
