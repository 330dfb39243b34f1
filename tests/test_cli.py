"""Tests for the deepseek CLI.

Covers every command via CliRunner with the client replaced by mocks, so
no request leaves the process.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from deepseek_kit import __version__
from deepseek_kit.cli import app, build_demo_registry, calculate
from deepseek_kit.errors import RateLimitError
from deepseek_kit.persistence.export import load_conversation, write_export
from deepseek_kit.providers.registry import load_client_config
from deepseek_kit.schemas.account import Balance, BalanceResponse, Model
from deepseek_kit.schemas.chat import (
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    DeepSeekModel,
    MessageRole,
    Usage,
)
from deepseek_kit.schemas.completion import CompletionChoice, CompletionResponse
from deepseek_kit.schemas.conversation import Conversation
from deepseek_kit.schemas.streaming import StreamFragment
from deepseek_kit.streaming.consumer import StreamConsumer

# NO_COLOR=1 prevents Rich from injecting ANSI codes inside option names,
# which breaks substring matching in CI (headless, no TTY).
# COLUMNS=200 prevents Rich from wrapping long lines.
runner = CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})

_CLIENT = "deepseek_kit.cli._make_client"


# ── Helpers ───────────────────────────────────────────────────


def _response(content: str, reasoning: str | None = None) -> ChatCompletionResponse:
    return ChatCompletionResponse(
        choices=[
            Choice(
                message=ChatMessage(
                    role=MessageRole.ASSISTANT, content=content, reasoning_content=reasoning,
                ),
                finish_reason="stop",
            )
        ],
        usage=Usage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


def _mock_client(**methods) -> MagicMock:
    client = MagicMock()
    client.config = load_client_config()
    for name, value in methods.items():
        setattr(client, name, value)
    return client


def _streaming_client(fragments: list[StreamFragment]) -> MagicMock:
    async def source():
        for fragment in fragments:
            yield fragment

    def start_session(request, emitter=None):
        return StreamConsumer(source(), emitter=emitter)

    return _mock_client(start_session=MagicMock(side_effect=start_session))


# ── Global options ────────────────────────────────────────────


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("chat", "stream", "reason", "functions", "balance", "keys"):
            assert command in result.output

    def test_missing_key_exits(self):
        fake = MagicMock(has_api_key=False)
        with patch("deepseek_kit.cli.DeepSeekClient", return_value=fake):
            result = runner.invoke(app, ["chat", "hi"])
        assert result.exit_code == 1
        assert "API key not set" in result.output

    def test_api_key_passed_to_client(self):
        fake = MagicMock(has_api_key=True)
        fake.complete = AsyncMock(return_value=_response("ok"))
        with patch("deepseek_kit.cli.DeepSeekClient", return_value=fake) as cls:
            result = runner.invoke(app, ["--api-key", "sk-cli", "chat", "hi"])
        assert result.exit_code == 0
        cls.assert_called_once_with(api_key="sk-cli")


# ── chat / reason / json / complete ───────────────────────────


class TestChat:
    def test_prints_reply_and_usage(self):
        client = _mock_client(complete=AsyncMock(return_value=_response("Hello there")))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["chat", "Hi", "--system", "Be brief"])

        assert result.exit_code == 0
        assert "Hello there" in result.output
        assert "Tokens: 10+5" in result.output
        request = client.complete.call_args.args[0]
        assert request.messages[0].role == MessageRole.SYSTEM

    def test_reasoner_alias(self):
        client = _mock_client(complete=AsyncMock(return_value=_response("4", "2+2")))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["chat", "2+2?", "--model", "reasoner"])

        assert result.exit_code == 0
        assert client.complete.call_args.args[0].model == DeepSeekModel.REASONER
        assert "Reasoning" in result.output

    def test_default_model_from_config(self):
        client = _mock_client(complete=AsyncMock(return_value=_response("ok", "hmm")))
        client.config = client.config.model_copy(update={"default_model": "deepseek-reasoner"})
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["chat", "hi"])

        assert result.exit_code == 0
        assert client.complete.call_args.args[0].model == DeepSeekModel.REASONER

    def test_unknown_model(self):
        with patch(_CLIENT, return_value=_mock_client()):
            result = runner.invoke(app, ["chat", "hi", "--model", "gpt"])
        assert result.exit_code == 1
        assert "Unknown model" in result.output

    def test_api_error_exits(self):
        client = _mock_client(complete=AsyncMock(side_effect=RateLimitError()))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["chat", "hi"])
        assert result.exit_code == 1
        assert "Rate limit exceeded" in result.output

    def test_save_conversation(self, tmp_path):
        path = tmp_path / "chat.json"
        client = _mock_client(complete=AsyncMock(return_value=_response("Hello there")))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["chat", "Hi", "--save", str(path)])

        assert result.exit_code == 0
        saved = load_conversation(path)
        assert [m.role for m in saved.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert saved.messages[1].content == "Hello there"


class TestReason:
    def test_shows_reasoning(self):
        client = _mock_client(complete=AsyncMock(return_value=_response("42", "Think hard")))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["reason", "Meaning of life?"])

        assert result.exit_code == 0
        assert "Think hard" in result.output
        assert "42" in result.output
        request = client.complete.call_args.args[0]
        assert request.model == DeepSeekModel.REASONER
        assert request.max_tokens == 32768

    def test_max_tokens_override(self):
        client = _mock_client(complete=AsyncMock(return_value=_response("42")))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["reason", "Why?", "--max-tokens", "500"])

        assert result.exit_code == 0
        assert client.complete.call_args.args[0].max_tokens == 500

    def test_hide_reasoning(self):
        client = _mock_client(complete=AsyncMock(return_value=_response("42", "Think hard")))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["reason", "Meaning of life?", "--hide-reasoning"])

        assert result.exit_code == 0
        assert "Think hard" not in result.output


class TestJsonMode:
    def test_pretty_prints(self):
        client = _mock_client(complete=AsyncMock(return_value=_response('{"city": "Paris"}')))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["json", "A city"])

        assert result.exit_code == 0
        assert '"city": "Paris"' in result.output
        request = client.complete.call_args.args[0]
        assert request.response_format.type == "json_object"

    def test_invalid_json_exits(self):
        client = _mock_client(complete=AsyncMock(return_value=_response("not json")))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["json", "A city"])
        assert result.exit_code == 1
        assert "did not return valid JSON" in result.output


class TestComplete:
    def test_fim(self):
        response = CompletionResponse(choices=[CompletionChoice(text="return a + b")])
        client = _mock_client(complete_fim=AsyncMock(return_value=response))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(
                app, ["complete", "def add(a, b): ", "--suffix", "\n", "--max-tokens", "16"],
            )

        assert result.exit_code == 0
        assert "def add(a, b):" in result.output
        assert "return a + b" in result.output
        request = client.complete_fim.call_args.args[0]
        assert request.suffix == "\n"
        assert request.max_tokens == 16


# ── stream ────────────────────────────────────────────────────


class TestStream:
    def test_streams_to_completion(self):
        client = _streaming_client([
            StreamFragment(content="Hello "),
            StreamFragment(content="world.", finish_reason="stop"),
        ])
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["stream", "Say hello"])

        assert result.exit_code == 0
        assert "Hello world." in result.output
        assert "complete | 2 chunks" in result.output

    def test_max_chunks_cancels_at_boundary(self):
        client = _streaming_client([
            StreamFragment(content="Hello "),
            StreamFragment(content="big world"),
            StreamFragment(content="!", finish_reason="stop"),
        ])
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(
                app, ["stream", "hi", "--max-chunks", "1", "--stop-after", "after_word"],
            )

        assert result.exit_code == 0
        assert "Hello big" in result.output
        assert "world" not in result.output
        assert "cancelled" in result.output
        assert "stopped after 1 chunks" in result.output

    def test_show_reasoning(self):
        client = _streaming_client([
            StreamFragment(reasoning_content="pondering"),
            StreamFragment(content="Done.", finish_reason="stop"),
        ])
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["stream", "hi", "--show-reasoning"])

        assert result.exit_code == 0
        assert "pondering" in result.output

    def test_source_failure_exits(self):
        async def broken():
            yield StreamFragment(content="Hel")
            raise ConnectionError("reset by peer")

        client = _mock_client(
            start_session=MagicMock(
                side_effect=lambda request, emitter=None: StreamConsumer(broken(), emitter=emitter)
            )
        )
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["stream", "hi"])

        assert result.exit_code == 1
        assert "Stream failed" in result.output
        assert "reset by peer" in result.output


# ── functions ─────────────────────────────────────────────────


class TestFunctions:
    def test_calculate(self):
        assert calculate("2 + 3 * 4")["result"] == 14
        assert calculate("-(2 ** 3)")["result"] == -8

    def test_calculate_rejects_code(self):
        assert "error" in calculate("__import__('os').getcwd()")
        assert "error" in calculate("1 / 0")

    def test_demo_registry(self):
        registry = build_demo_registry()
        assert "get_weather" in registry
        assert "calculate" in registry

    def test_round_trip_table(self):
        history = [
            ChatMessage.user("Weather in Paris?"),
            ChatMessage.assistant(""),
            ChatMessage.tool('{"temperature": 22}', tool_call_id="c1", name="get_weather"),
        ]
        client = _mock_client(
            complete_with_tools=AsyncMock(return_value=(_response("It is 22C"), history))
        )
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["functions", "Weather in Paris?"])

        assert result.exit_code == 0
        assert "get_weather" in result.output
        assert "It is 22C" in result.output
        request = client.complete_with_tools.call_args.args[0]
        assert request.tool_choice == "auto"
        assert len(request.tools) == 2
        client.tool_executor.assert_called_once()
        executor = client.complete_with_tools.call_args.kwargs["executor"]
        assert executor is client.tool_executor.return_value

    def test_invalid_choice(self):
        result = runner.invoke(app, ["functions", "hi", "--choice", "sometimes"])
        assert result.exit_code == 1
        assert "Invalid tool choice" in result.output


# ── models / balance ──────────────────────────────────────────


class TestAccount:
    def test_models_table(self):
        client = _mock_client(
            list_models=AsyncMock(return_value=[Model(id="deepseek-chat", owned_by="deepseek")])
        )
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["models"])

        assert result.exit_code == 0
        assert "deepseek-chat" in result.output
        assert "1 models available" in result.output

    def test_balance_table(self):
        balance = BalanceResponse(
            is_available=True,
            balance_infos=[Balance(currency="USD", total_balance="110.00")],
        )
        client = _mock_client(get_balance=AsyncMock(return_value=balance))
        with patch(_CLIENT, return_value=client):
            result = runner.invoke(app, ["balance"])

        assert result.exit_code == 0
        assert "available" in result.output
        assert "110.00" in result.output


# ── export / search ───────────────────────────────────────────


@pytest.fixture
def saved(tmp_path):
    conversation = Conversation(title="Trip planning")
    conversation.add("user", "Will it rain in Paris?")
    conversation.add("assistant", "No rain expected.")
    return write_export(conversation, tmp_path / "trip.json")


class TestExport:
    def test_to_stdout(self, saved):
        result = runner.invoke(app, ["export", str(saved), "--format", "text"])
        assert result.exit_code == 0
        assert "[USER]: Will it rain in Paris?" in result.output

    def test_to_file(self, saved, tmp_path):
        out = tmp_path / "trip.csv"
        result = runner.invoke(app, ["export", str(saved), "-f", "csv", "-o", str(out)])
        assert result.exit_code == 0
        assert out.read_text().startswith("Timestamp,Role,Content")

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["export", str(tmp_path / "nope.json")])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_not_a_conversation(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"messages": 3}))
        result = runner.invoke(app, ["export", str(path)])
        assert result.exit_code == 1


class TestSearch:
    def test_finds_matches(self, saved):
        result = runner.invoke(app, ["search", "role:assistant rain", str(saved)])
        assert result.exit_code == 0
        assert "No rain expected." in result.output
        assert "Will it rain" not in result.output

    def test_no_results(self, saved):
        result = runner.invoke(app, ["search", "snow", str(saved)])
        assert result.exit_code == 0
        assert "No matching messages" in result.output


# ── keys ──────────────────────────────────────────────────────


class TestKeys:
    def test_set(self, tmp_path):
        with patch("deepseek_kit.cli.save_key", return_value=tmp_path / "keys.env") as save:
            result = runner.invoke(app, ["keys", "set", "sk-1234567890abcd"])
        assert result.exit_code == 0
        save.assert_called_once_with("sk-1234567890abcd")
        assert "sk-...abcd" in result.output

    def test_set_with_failed_validation(self):
        with patch("deepseek_kit.cli.validate_key", new_callable=AsyncMock,
                   return_value=(False, "Invalid key (401 Unauthorized)")), \
                patch("deepseek_kit.cli.save_key") as save:
            result = runner.invoke(app, ["keys", "set", "sk-bad", "--validate"])
        assert result.exit_code == 1
        assert "Key rejected" in result.output
        save.assert_not_called()

    def test_show_masks(self):
        result = runner.invoke(app, ["--api-key", "sk-1234567890abcd", "keys", "show"])
        assert result.exit_code == 0
        assert "sk-...abcd" in result.output
        assert "1234567890" not in result.output

    def test_clear(self):
        with patch("deepseek_kit.cli.clear_keys", return_value=True):
            result = runner.invoke(app, ["keys", "clear"])
        assert result.exit_code == 0
        assert "Removed saved keys" in result.output
