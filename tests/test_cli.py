"""
Tests for the click entry point.
"""

import pytest
from click.testing import CliRunner

from termai import cli
from termai.errors import ProviderError
from termai.messages import UserMessage
from termai.threads import ThreadStore
from tests.helpers import StubProvider, text_reply


@pytest.fixture
def config_file(tmp_path):
    db = tmp_path / "threads.db"
    path = tmp_path / "config.toml"
    path.write_text(f'db_path = "{db}"\nprovider = "openai"\nmodel = "gpt-4o"\n')
    return path


@pytest.fixture
def stub_provider(monkeypatch):
    def install(responses):
        provider = StubProvider(responses)
        monkeypatch.setattr(cli, "create_provider", lambda *args, **kwargs: provider)
        return provider

    return install


def test_help():
    result = CliRunner().invoke(cli.main, ["--help"])
    assert result.exit_code == 0
    assert "--agent" in result.output
    assert "--thread" in result.output


def test_no_input_is_an_error(config_file):
    result = CliRunner().invoke(cli.main, ["--config", str(config_file)])
    assert result.exit_code == 1
    assert "Nothing to do" in result.output


def test_unknown_provider_in_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('provider = "gemini"\n')

    result = CliRunner().invoke(cli.main, ["--config", str(path), "hello"])

    assert result.exit_code == 1
    assert "Unknown provider" in result.output


def test_history_with_no_threads(config_file):
    result = CliRunner().invoke(cli.main, ["--config", str(config_file), "--history"])
    assert result.exit_code == 0
    assert "No threads yet" in result.output


def test_history_lists_threads(config_file, tmp_path):
    store = ThreadStore(tmp_path / "threads.db")
    thread = store.create_thread()
    store.close()

    result = CliRunner().invoke(cli.main, ["--config", str(config_file), "--history"])

    assert result.exit_code == 0
    assert thread.id in result.output


def test_single_turn(config_file, stub_provider):
    provider = stub_provider([text_reply("Use ls -la.")])

    result = CliRunner().invoke(cli.main, ["--config", str(config_file), "list", "files"])

    assert result.exit_code == 0, result.output
    assert "Use ls -la." in result.output
    assert provider.calls[0]["messages"][-1] == UserMessage("list files")
    assert provider.closed


def test_single_turn_with_piped_context(config_file, stub_provider):
    provider = stub_provider([text_reply("grep TODO notes.txt")])

    result = CliRunner().invoke(
        cli.main, ["--config", str(config_file), "find", "todos"], input="notes.txt\n"
    )

    assert result.exit_code == 0, result.output
    messages = provider.calls[0]["messages"]
    assert messages[1] == UserMessage("Context: notes.txt\n")
    assert "ONLY the terminal command" in messages[0].content


def test_single_turn_provider_error_exits_1(config_file, stub_provider):
    stub_provider([ProviderError("Could not connect to the provider")])

    result = CliRunner().invoke(cli.main, ["--config", str(config_file), "hello"])

    assert result.exit_code == 1
    assert "Could not connect" in result.output


def test_agent_mode_persists_thread(config_file, stub_provider, tmp_path, monkeypatch):
    stub_provider([text_reply("Hi! What can I do?")])
    monkeypatch.setattr(cli, "AgentSession", _session_with_prompt(lambda: "exit"))

    result = CliRunner().invoke(cli.main, ["--config", str(config_file), "--agent", "hello"])

    assert result.exit_code == 0, result.output
    assert "Session ended." in result.output
    store = ThreadStore(tmp_path / "threads.db")
    try:
        threads = store.list_threads()
        assert len(threads) == 1
        assert threads[0]["name"] == "hello Hi! What can I do?"
        assert threads[0]["message_count"] == 2
    finally:
        store.close()


def _session_with_prompt(prompt):
    from termai.session import AgentSession

    def factory(*args, **kwargs):
        return AgentSession(*args, prompt=prompt, **kwargs)

    return factory
