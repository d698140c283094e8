"""Tests for the gemini tool handlers."""
from __future__ import annotations

import json
import shlex

import pytest

from gemini_mcp.errors import UnknownToolError
from gemini_mcp.executor import GeminiExecutor
from gemini_mcp.mcp_server.tools import GeminiTools
from gemini_mcp.process import ProcessOutput


def _make_runner(responses: dict[str, object]):
    """Build a runner that answers by substring match on the command.

    Values are stdout strings, callables returning stdout, or
    exceptions to raise.
    """
    commands: list[tuple[str, dict | None, str | None]] = []

    async def runner(command, *, env=None, cwd=None):
        commands.append((command, dict(env) if env else None, cwd))
        for pattern, response in responses.items():
            if pattern in command:
                if isinstance(response, Exception):
                    raise response
                stdout = response() if callable(response) else response
                return ProcessOutput(stdout=stdout)
        raise RuntimeError(f"Unexpected command: {command}")

    runner.commands = commands
    return runner


def _tools(runner) -> GeminiTools:
    return GeminiTools(GeminiExecutor(runner))


def _text(result) -> str:
    return result["content"][0]["text"]


class _CliError(Exception):
    def __init__(self, message: str, stderr: str) -> None:
        super().__init__(message)
        self.stderr = stderr


@pytest.mark.asyncio
async def test_start_returns_response_and_session_id():
    runner = _make_runner({
        "gemini": json.dumps({
            "session_id": "new-session-12345678",
            "response": "Hello! I am Gemini, ready to help.",
        }),
    })

    result = await _tools(runner).start("Hello")

    assert result["content"][0]["type"] == "text"
    assert _text(result) == "Hello! I am Gemini, ready to help."
    assert result["session_id"] == "new-session-12345678"
    assert "is_error" not in result


@pytest.mark.asyncio
async def test_start_without_session_id_uses_listing():
    runner = _make_runner({
        "--list-sessions": "  1. old [aaaa]\n  2. fresh [bbbb]\n",
        "gemini": json.dumps({"response": "Hi"}),
    })

    result = await _tools(runner).start("Hello")

    assert result["session_id"] == "bbbb"


@pytest.mark.asyncio
async def test_start_omits_session_id_when_unknown():
    runner = _make_runner({
        "--list-sessions": "No sessions found.",
        "gemini": "plain answer",
    })

    result = await _tools(runner).start("Hello")

    assert _text(result) == "plain answer"
    assert "session_id" not in result


@pytest.mark.asyncio
async def test_start_passes_model():
    runner = _make_runner({"gemini": json.dumps({"response": "OK", "session_id": "s"})})

    await _tools(runner).start("Test", model="gemini-3-flash")

    assert "-m gemini-3-flash" in runner.commands[0][0]


@pytest.mark.asyncio
async def test_reply_uses_latest_without_session_id():
    runner = _make_runner({
        "gemini": json.dumps({"response": "Continued conversation", "session_id": "cont-id"}),
    })

    result = await _tools(runner).reply("Continue please")

    assert "-r latest" in runner.commands[0][0]
    assert _text(result) == "Continued conversation"
    assert result["session_id"] == "cont-id"


@pytest.mark.asyncio
async def test_reply_with_empty_session_id_means_latest():
    runner = _make_runner({"gemini": json.dumps({"response": "ok"})})

    result = await _tools(runner).reply("Continue", session_id="")

    assert "-r latest" in runner.commands[0][0]
    assert "session_id" not in result


@pytest.mark.asyncio
async def test_reply_passes_session_id():
    sid = "22222222-0000-0000-0000-000000000002"
    runner = _make_runner({
        "gemini": json.dumps({"response": "Replied to session", "session_id": sid}),
    })

    result = await _tools(runner).reply("Reply to this", session_id=sid)

    assert f"-r {sid}" in runner.commands[0][0]
    assert result["session_id"] == sid


@pytest.mark.asyncio
async def test_runner_exception_becomes_error_payload():
    runner = _make_runner({
        "gemini": _CliError("Command failed: gemini", stderr="auth token expired"),
    })

    result = await _tools(runner).start("Hello")

    assert result["is_error"] is True
    text = _text(result)
    assert text.startswith("Error executing gemini: ")
    assert "Command failed: gemini" in text
    assert "Stderr: auth token expired" in text


@pytest.mark.asyncio
async def test_nonzero_exit_becomes_error_payload_with_stderr():
    async def runner(command, *, env=None, cwd=None):
        return ProcessOutput(stdout="", stderr="bash: gemini: command not found", returncode=127)

    result = await _tools(runner).reply("Hello", session_id="abc")

    assert result["is_error"] is True
    assert "exited with code 127" in _text(result)
    assert "command not found" in _text(result)


@pytest.mark.asyncio
async def test_empty_prompt_is_error_payload():
    runner = _make_runner({})

    result = await _tools(runner).start("")

    assert result["is_error"] is True
    assert "prompt" in _text(result)
    assert runner.commands == []


@pytest.mark.asyncio
async def test_server_keeps_serving_after_failure():
    calls = {"n": 0}

    def _flaky() -> str:
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("transient")
        return json.dumps({"response": "recovered", "session_id": "s"})

    runner = _make_runner({"gemini": _flaky})
    tools = _tools(runner)

    first = await tools.start("one")
    second = await tools.start("two")

    assert first["is_error"] is True
    assert _text(second) == "recovered"


@pytest.mark.asyncio
async def test_system_prompt_file_passed_to_cli():
    captured: dict[str, str] = {}

    async def runner(command, *, env=None, cwd=None):
        with open(env["GEMINI_SYSTEM_MD"], encoding="utf-8") as f:
            captured["system"] = f.read()
        captured["cwd"] = cwd
        return ProcessOutput(stdout=json.dumps({"response": "Arr", "session_id": "p"}))

    result = await _tools(runner).handle_tool_call(
        "gemini",
        {"prompt": "Hi", "systemPrompt": "Talk like a pirate.", "cwd": "/tmp/proj"},
    )

    assert _text(result) == "Arr"
    assert captured == {"system": "Talk like a pirate.", "cwd": "/tmp/proj"}


class TestHandleToolCall:
    @pytest.mark.asyncio
    async def test_routes_gemini(self):
        runner = _make_runner({"gemini": json.dumps({"response": "Hello", "session_id": "t"})})
        result = await _tools(runner).handle_tool_call("gemini", {"prompt": "Hello"})
        assert "Hello" in _text(result)

    @pytest.mark.asyncio
    async def test_routes_gemini_reply(self):
        runner = _make_runner({"gemini": json.dumps({"response": "Continued", "session_id": "t"})})
        result = await _tools(runner).handle_tool_call(
            "gemini-reply", {"prompt": "Continue", "sessionId": "abcd"},
        )
        assert "Continued" in _text(result)
        assert "-r abcd" in runner.commands[0][0]

    @pytest.mark.asyncio
    async def test_missing_prompt_is_error_payload(self):
        result = await _tools(_make_runner({})).handle_tool_call("gemini", {})
        assert result["is_error"] is True

    @pytest.mark.asyncio
    async def test_unknown_tool_raises(self):
        with pytest.raises(UnknownToolError, match="Unknown tool: unknown-tool"):
            await _tools(_make_runner({})).handle_tool_call("unknown-tool", {})


class TestListSessions:
    LISTING = (
        "Available sessions for this project (2):\n"
        "  1. first [aaaa1111-0000]\n"
        "  2. second [bbbb2222-0000]\n"
    )

    @pytest.mark.asyncio
    async def test_lists_sessions_oldest_first(self):
        runner = _make_runner({"--list-sessions": self.LISTING})
        result = await _tools(runner).list_sessions(cwd="/proj")

        assert _text(result) == (
            "Sessions (2):\n"
            "  1. aaaa1111-0000\n"
            "  2. bbbb2222-0000 (latest)"
        )
        assert runner.commands[0][2] == "/proj"

    @pytest.mark.asyncio
    async def test_no_sessions(self):
        runner = _make_runner({"--list-sessions": "No sessions found for this project."})
        result = await _tools(runner).list_sessions()
        assert _text(result) == "No sessions found."

    @pytest.mark.asyncio
    async def test_resolves_hint(self):
        runner = _make_runner({"--list-sessions": self.LISTING})
        result = await _tools(runner).handle_tool_call(
            "gemini-sessions", {"sessionId": "bbbb"},
        )

        assert "'bbbb' resolves to session 2 (bbbb2222-0000)." in _text(result)
        assert result["session_id"] == "bbbb2222-0000"

    @pytest.mark.asyncio
    async def test_hint_resolved_against_the_listing_shown(self):
        listings = iter([
            self.LISTING,
            "  1. replaced [ffff0000-0000]\n",
        ])
        runner = _make_runner({"--list-sessions": lambda: next(listings)})

        result = await _tools(runner).list_sessions(session_id="aaaa")

        assert len(runner.commands) == 1
        assert "'aaaa' resolves to session 1 (aaaa1111-0000)." in _text(result)
        assert result["session_id"] == "aaaa1111-0000"

    @pytest.mark.asyncio
    async def test_unmatched_hint(self):
        runner = _make_runner({"--list-sessions": self.LISTING})
        result = await _tools(runner).list_sessions(session_id="ffff")

        assert "No session matches 'ffff'." in _text(result)
        assert "session_id" not in result


@pytest.mark.asyncio
async def test_multi_turn_conversation():
    session_id = "e2e00001-0000-0000-0000-000000000001"
    prompts: list[str] = []

    async def runner(command, *, env=None, cwd=None):
        if "--list-sessions" in command:
            return ProcessOutput(stdout=f"  1. e2e test [{session_id}]")
        argv = shlex.split(command)
        prompts.append(argv[1])
        if "-r" in argv:
            assert argv[argv.index("-r") + 1] == session_id
            response = "Sure, I remember our conversation."
        else:
            response = "Hello! How can I help you today?"
        return ProcessOutput(stdout=json.dumps({"response": response}))

    tools = _tools(runner)

    first = await tools.handle_tool_call("gemini", {"prompt": "Hello"})
    assert _text(first) == "Hello! How can I help you today?"
    assert first["session_id"] == session_id

    second = await tools.handle_tool_call(
        "gemini-reply", {"prompt": 'Do you remember "that"?', "sessionId": first["session_id"]},
    )
    assert _text(second) == "Sure, I remember our conversation."
    # Resume never consults the directory, and the CLI reported no id.
    assert "session_id" not in second
    assert prompts == ["Hello", 'Do you remember "that"?']
