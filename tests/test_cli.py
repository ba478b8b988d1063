import importlib
import json
from pathlib import Path

from typer.testing import CliRunner

from autoreply.agents.runner import AgentMeta, AgentRunMeta, AgentRunParams, AgentRunResult, Usage
from autoreply.config import Settings
from autoreply.types import ReplyPayload

cli_module = importlib.import_module("autoreply.__main__")


class EchoExecutor:
    instances: list["EchoExecutor"] = []

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.calls: list[AgentRunParams] = []
        EchoExecutor.instances.append(self)

    async def __call__(self, params: AgentRunParams) -> AgentRunResult:
        self.calls.append(params)
        return AgentRunResult(
            payloads=[ReplyPayload(text=f"[[reply_to_current]] echo: {params.prompt}")],
            meta=AgentRunMeta(
                agent_meta=AgentMeta(
                    session_id=params.session_id,
                    provider=params.provider,
                    model=params.model,
                    usage=Usage(input=12, output=3, total=15),
                )
            ),
        )


def _patch(monkeypatch, tmp_path: Path) -> Path:
    store_path = tmp_path / "sessions.json"
    settings = Settings(session_store_path=store_path, typing_interval_seconds=0, api_key="test-key")
    EchoExecutor.instances.clear()
    monkeypatch.setattr(cli_module, "get_settings", lambda: settings)
    monkeypatch.setattr(cli_module, "RepublicAgentExecutor", EchoExecutor)
    return store_path


def test_run_command_prints_replies_and_persists_usage(monkeypatch, tmp_path: Path) -> None:
    store_path = _patch(monkeypatch, tmp_path)

    result = CliRunner().invoke(
        cli_module.app,
        ["run", "hello", "--prefix", "PFX", "--message-id", "m-1", "--model", "anthropic:claude-x"],
    )

    assert result.exit_code == 0, result.output
    assert "[block] (reply to m-1) PFX echo: hello" in result.output
    executor = EchoExecutor.instances[0]
    assert executor.kwargs["api_key"] == "test-key"
    assert (executor.calls[0].provider, executor.calls[0].model) == ("anthropic", "claude-x")

    data = json.loads(store_path.read_text(encoding="utf-8"))
    assert data["cli:local"]["total_tokens"] == 12
    assert data["cli:local"]["model"] == "claude-x"


def test_run_command_rejects_malformed_model(monkeypatch, tmp_path: Path) -> None:
    _patch(monkeypatch, tmp_path)

    result = CliRunner().invoke(cli_module.app, ["run", "hello", "--model", "openai:"])

    assert result.exit_code == 2
    assert EchoExecutor.instances == []


def test_sessions_command_lists_entries(monkeypatch, tmp_path: Path) -> None:
    _patch(monkeypatch, tmp_path)
    runner = CliRunner()

    empty = runner.invoke(cli_module.app, ["sessions"])
    assert "(no sessions)" in empty.output

    runner.invoke(cli_module.app, ["run", "hello", "--session-key", "chat:42"])
    listed = runner.invoke(cli_module.app, ["sessions"])

    assert listed.exit_code == 0, listed.output
    assert "chat:42" in listed.output
