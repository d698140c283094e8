"""Gemini tool implementations, independent of the MCP transport.

Each handler returns a result dict::

    {"content": [{"type": "text", "text": ...}],
     "is_error": True,          # only on failure
     "session_id": "..."}       # when a session id is known

Failures never escape as exceptions: whatever goes wrong while running
the CLI comes back as an error-flagged payload, so the server keeps
serving later requests. Only an unknown tool name raises.
"""
from __future__ import annotations

import logging
from typing import Any

from ..errors import UnknownToolError
from ..executor import GeminiExecutor
from ..models import InvocationRequest, NewSession, Resume, SessionRecord
from ..sessions import match_hint

logger = logging.getLogger(__name__)

TOOL_DESCRIPTIONS: dict[str, str] = {
    "gemini": (
        "Start a new Gemini session with a prompt. Returns the response "
        "and the new Session ID. Optionally set the model, a system "
        "prompt for this session, and the working directory the CLI "
        "runs in."
    ),
    "gemini-reply": (
        "Continue an existing Gemini session. Pass the Session ID (or a "
        "unique prefix of it) returned by a previous call; if omitted, "
        "the most recent session is continued."
    ),
    "gemini-sessions": (
        "List the Gemini sessions stored for a working directory, "
        "oldest first. If sessionId is given, report which session it "
        "resolves to."
    ),
}


def _text(text: str, session_id: str | None = None) -> dict[str, Any]:
    """Format a successful text response."""
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if session_id:
        result["session_id"] = session_id
    return result


def _error(text: str) -> dict[str, Any]:
    """Format an error response."""
    return {
        "content": [{"type": "text", "text": f"Error executing gemini: {text}"}],
        "is_error": True,
    }


def _failure(exc: Exception) -> dict[str, Any]:
    message = str(exc) or type(exc).__name__
    stderr = getattr(exc, "stderr", None)
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    if stderr:
        message = f"{message}\nStderr: {stderr}"
    return _error(message)


def _format_sessions(sessions: list[SessionRecord]) -> str:
    lines = [f"Sessions ({len(sessions)}):"]
    for record in sessions:
        lines.append(f"  {record.index}. {record.identifier}")
    lines[-1] += " (latest)"
    return "\n".join(lines)


class GeminiTools:
    """Handlers for the gemini, gemini-reply and gemini-sessions tools."""

    def __init__(self, executor: GeminiExecutor) -> None:
        self._executor = executor

    async def start(
        self,
        prompt: str,
        model: str | None = None,
        system_prompt: str | None = None,
        cwd: str | None = None,
    ) -> dict[str, Any]:
        """Start a new conversation."""
        try:
            request = InvocationRequest(
                prompt=prompt,
                target=NewSession(),
                model=model,
                system_prompt=system_prompt,
                cwd=cwd,
            )
        except ValueError as exc:
            return _error(str(exc))
        return await self._invoke(request)

    async def reply(
        self,
        prompt: str,
        session_id: str | None = None,
        model: str | None = None,
        system_prompt: str | None = None,
        cwd: str | None = None,
    ) -> dict[str, Any]:
        """Continue a conversation, the latest one if no id is given."""
        try:
            request = InvocationRequest(
                prompt=prompt,
                target=Resume(hint=session_id or None),
                model=model,
                system_prompt=system_prompt,
                cwd=cwd,
            )
        except ValueError as exc:
            return _error(str(exc))
        return await self._invoke(request)

    async def list_sessions(
        self,
        cwd: str | None = None,
        session_id: str | None = None,
    ) -> dict[str, Any]:
        """Describe the session directory, optionally resolving a hint."""
        sessions = await self._executor.resolver.directory.list_sessions(cwd=cwd)
        text = _format_sessions(sessions) if sessions else "No sessions found."

        if not session_id:
            return _text(text)

        match = match_hint(sessions, session_id)
        if match is None:
            text += f"\n\nNo session matches '{session_id}'."
        else:
            text += (
                f"\n\n'{session_id}' resolves to session {match.index} "
                f"({match.identifier})."
            )
        return _text(text, match.identifier if match else None)

    async def handle_tool_call(
        self, name: str, args: dict[str, Any] | None
    ) -> dict[str, Any]:
        """Dispatch a raw tool call using the wire argument names."""
        args = args or {}
        if name == "gemini":
            return await self.start(
                args.get("prompt", ""),
                model=args.get("model"),
                system_prompt=args.get("systemPrompt"),
                cwd=args.get("cwd"),
            )
        if name == "gemini-reply":
            return await self.reply(
                args.get("prompt", ""),
                session_id=args.get("sessionId"),
                model=args.get("model"),
                system_prompt=args.get("systemPrompt"),
                cwd=args.get("cwd"),
            )
        if name == "gemini-sessions":
            return await self.list_sessions(
                cwd=args.get("cwd"),
                session_id=args.get("sessionId"),
            )
        raise UnknownToolError(name)

    async def _invoke(self, request: InvocationRequest) -> dict[str, Any]:
        try:
            result = await self._executor.run(request)
        except Exception as exc:
            logger.warning(
                "gemini invocation failed (resume=%s): %s",
                request.is_resume, exc,
            )
            return _failure(exc)

        logger.info(
            "gemini %s completed (session_id=%s, %d chars)",
            "reply" if request.is_resume else "start",
            result.session_id,
            len(result.response_text),
        )
        return _text(result.response_text, result.session_id)
