"""autoreply command line."""

from __future__ import annotations

import asyncio

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from autoreply.agents.fallback import parse_model_ref
from autoreply.config import Settings, get_settings
from autoreply.errors import ConfigurationError
from autoreply.integrations.republic_client import RepublicAgentExecutor
from autoreply.reply.dispatcher import ReplyDispatcher
from autoreply.reply.followup import FollowupRun, FollowupRunner
from autoreply.reply.queue import FollowupQueue
from autoreply.reply.typing import TypingController
from autoreply.sessions.store import SessionEntry, SessionStore
from autoreply.types import DispatchInfo, ReplyPayload

app = typer.Typer(name="autoreply", help="Reply orchestration core for chat-bot assistants", add_completion=False)


def _load_store(settings: Settings) -> SessionStore:
    if settings.session_store_path is None:
        return SessionStore()
    return SessionStore.load(settings.session_store_path)


async def _deliver_stdout(payload: ReplyPayload, info: DispatchInfo) -> None:
    prefix = f"[{info.kind}]"
    if payload.reply_to_id:
        prefix = f"{prefix} (reply to {payload.reply_to_id})"
    if payload.text:
        typer.echo(f"{prefix} {payload.text}")
    for url in (payload.media_url, *payload.media_urls):
        if url:
            typer.echo(f"{prefix} media: {url}")


def _signal_typing() -> None:
    logger.debug("cli.typing")


async def _run_turn(settings: Settings, queued: FollowupRun, *, response_prefix: str | None) -> None:
    store = _load_store(settings)
    session_key = queued.queue_key
    if store.get(session_key) is None:
        store.set(session_key, SessionEntry(session_id=queued.session_id))

    typing_controller = TypingController(
        _signal_typing,
        typing_interval_seconds=settings.typing_interval_seconds,
        typing_ttl_seconds=settings.typing_ttl_seconds,
    )
    dispatcher = ReplyDispatcher(_deliver_stdout, response_prefix=response_prefix, typing=typing_controller)
    runner = FollowupRunner(
        execute=RepublicAgentExecutor(
            api_key=settings.api_key,
            api_base=settings.api_base,
            max_tokens=settings.max_tokens,
        ),
        dispatcher=dispatcher,
        typing=typing_controller,
        default_model=settings.model,
        session_store=store,
        context_tokens=settings.context_tokens,
        context_token_overrides=settings.context_token_overrides,
        model_fallbacks=settings.model_fallbacks,
    )
    queue = FollowupQueue(runner)
    try:
        queue.enqueue(queued)
        await queue.wait_for_idle()
        dispatcher.mark_idle()
    finally:
        typing_controller.cleanup()
    await asyncio.to_thread(store.save)


@app.command()
def run(
    prompt: str = typer.Argument(..., help="Prompt for the agent turn"),
    session_key: str = typer.Option("cli:local", "--session-key", "-s", help="Session key"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model as provider:model"),
    fallback: list[str] | None = typer.Option(None, "--fallback", "-f", help="Fallback model, repeatable"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Surface verbose notices"),
    prefix: str | None = typer.Option(None, "--prefix", help="Response prefix"),
    message_id: str | None = typer.Option(None, "--message-id", help="Id of the message being answered"),
) -> None:
    """Run one agent turn and print the delivered replies."""

    settings = get_settings()
    try:
        ref = parse_model_ref(model or settings.model)
    except ConfigurationError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    queued = FollowupRun(
        prompt=prompt,
        session_id=session_key,
        session_key=session_key,
        surface="cli",
        provider=ref.provider,
        model=ref.model,
        model_fallbacks=tuple(fallback or ()),
        verbose_level="on" if verbose or settings.verbose == "on" else "off",
        timeout_seconds=settings.timeout_seconds,
        message_id=message_id,
    )
    asyncio.run(_run_turn(settings, queued, response_prefix=prefix or settings.response_prefix))


@app.command()
def sessions() -> None:
    """Show session token accounting."""

    settings = get_settings()
    store = _load_store(settings)
    if not len(store):
        typer.echo("(no sessions)")
        return

    table = Table(title="Sessions")
    for column in ("key", "model", "input", "output", "total", "context", "compactions"):
        table.add_column(column)
    for key, entry in store.items():
        model = f"{entry.model_provider}:{entry.model}" if entry.model_provider else (entry.model or "-")
        table.add_row(
            key,
            model,
            str(entry.input_tokens or 0),
            str(entry.output_tokens or 0),
            str(entry.total_tokens or 0),
            str(entry.context_tokens or "-"),
            str(entry.compaction_count),
        )
    Console().print(table)


if __name__ == "__main__":
    app()
