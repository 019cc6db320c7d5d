"""Tests for vaultrag chat and summarize."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from vaultrag.cli.main import app
from vaultrag.exceptions import ConnectivityError

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated(cli_env):
    yield


def _saved(vault: Path) -> list[Path]:
    folder = vault / "llm-chats"
    return sorted(folder.iterdir()) if folder.exists() else []


# ---------------------------------------------------------------------------
# One-shot
# ---------------------------------------------------------------------------


def test_one_shot_streams_reply_and_saves(vault: Path) -> None:
    result = runner.invoke(app, ["chat", "hello", "--vault", str(vault)])

    assert result.exit_code == 0, result.output
    assert "Hello, world" in result.output
    assert "Saved to llm-chats/" in result.output
    [transcript] = _saved(vault)
    assert transcript.read_text(encoding="utf-8") == "## user\nhello\n\n## assistant\nHello, world"


def test_no_save(vault: Path) -> None:
    result = runner.invoke(app, ["chat", "hello", "--vault", str(vault), "--no-save"])
    assert result.exit_code == 0, result.output
    assert _saved(vault) == []


def test_reference_is_sent_to_model(vault: Path, write_note, chat_model) -> None:
    write_note("Notes/Meeting.md", "Agenda: budget")

    result = runner.invoke(app, ["chat", "Summarize [[Notes/Meeting]]", "--vault", str(vault)])

    assert result.exit_code == 0, result.output
    prompt = chat_model.stream_calls[0]["messages"][1]["content"]
    assert "Agenda: budget" in prompt
    assert "<query>\nSummarize Notes/Meeting\n</query>" in prompt


def test_missing_reference_exits_1(vault: Path, chat_model) -> None:
    result = runner.invoke(app, ["chat", "Explain [[ghost]]", "--vault", str(vault)])

    assert result.exit_code == 1
    assert "Referenced note(s) not found" in result.output
    assert "ghost" in result.output
    assert chat_model.stream_calls == []
    assert _saved(vault) == []


def test_workspace_before_index_exits_1(vault: Path) -> None:
    result = runner.invoke(app, ["chat", "@workspace anything", "--vault", str(vault)])
    assert result.exit_code == 1
    assert "not been indexed" in result.output


# ---------------------------------------------------------------------------
# Interactive
# ---------------------------------------------------------------------------


def test_interactive_until_exit(vault: Path, chat_model) -> None:
    result = runner.invoke(app, ["chat", "--vault", str(vault)], input="hello\nagain\nexit\n")

    assert result.exit_code == 0, result.output
    assert len(chat_model.stream_calls) == 2
    [transcript] = _saved(vault)
    assert transcript.read_text(encoding="utf-8").count("## user") == 2


def test_interactive_ends_on_eof(vault: Path, chat_model) -> None:
    result = runner.invoke(app, ["chat", "--vault", str(vault)], input="hello\n")
    assert result.exit_code == 0, result.output
    assert len(chat_model.stream_calls) == 1


def test_interactive_missing_reference_continues(vault: Path, chat_model) -> None:
    result = runner.invoke(
        app, ["chat", "--vault", str(vault)], input="about [[ghost]]\nhello\nquit\n"
    )

    assert result.exit_code == 0, result.output
    assert "Referenced note(s) not found" in result.output
    assert len(chat_model.stream_calls) == 1


def test_interactive_workspace_before_index_continues(vault: Path, chat_model) -> None:
    result = runner.invoke(
        app, ["chat", "--vault", str(vault)], input="hello\n@workspace fruit\nagain\nexit\n"
    )

    assert result.exit_code == 0, result.output
    assert "not been indexed" in result.output
    assert len(chat_model.stream_calls) == 2
    [transcript] = _saved(vault)
    text = transcript.read_text(encoding="utf-8")
    assert "## user\nhello" in text
    assert "## user\nagain" in text
    assert "@workspace" not in text


def test_interactive_unreachable_model_continues(vault: Path, chat_model) -> None:
    replies = iter([ConnectivityError("Chat model 'test/chat' is unreachable"), None])

    def flaky(messages, context_size=None, temperature=0.0, seed=None):
        error = next(replies)
        if error is not None:
            raise error
        yield "Back online"

    chat_model.stream = flaky
    result = runner.invoke(app, ["chat", "--vault", str(vault)], input="hello\nagain\nexit\n")

    assert result.exit_code == 0, result.output
    assert "is unreachable" in result.output
    assert "Back online" in result.output
    [transcript] = _saved(vault)
    assert transcript.read_text(encoding="utf-8") == "## user\nagain\n\n## assistant\nBack online"


def test_interactive_without_messages_saves_nothing(vault: Path) -> None:
    result = runner.invoke(app, ["chat", "--vault", str(vault)], input="exit\n")
    assert result.exit_code == 0, result.output
    assert _saved(vault) == []


# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------


def test_summarize_prints_summary(vault: Path, write_note, chat_model) -> None:
    write_note("a.md", "apple orchard notes")

    result = runner.invoke(app, ["summarize", "a.md", "--vault", str(vault)])

    assert result.exit_code == 0, result.output
    assert "A note about fruit." in result.output
    assert "apple orchard notes" in chat_model.complete_calls[0]["messages"][1]["content"]


def test_summarize_missing_note(vault: Path) -> None:
    result = runner.invoke(app, ["summarize", "ghost.md", "--vault", str(vault)])
    assert result.exit_code == 1
    assert "Note not found" in result.output
