"""Data models for session resolution and command execution."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class SessionRecord:
    """One entry of ``gemini --list-sessions``.

    Index 1 is the oldest session; the listing is ascending, so the
    last record parsed is the most recently active one.
    """
    index: int
    identifier: str


@dataclass(frozen=True)
class NewSession:
    """Start a fresh conversation."""


@dataclass(frozen=True)
class Resume:
    """Continue a conversation.

    ``hint`` is a full session id or a prefix of one. None means the
    most recently active session.
    """
    hint: str | None = None


SessionTarget = Union[NewSession, Resume]


@dataclass(frozen=True)
class InvocationRequest:
    """A single prompt to send to the gemini CLI."""
    prompt: str
    target: SessionTarget = NewSession()
    model: str | None = None
    system_prompt: str | None = None
    cwd: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise ValueError("prompt must be a non-empty string")

    @property
    def is_resume(self) -> bool:
        return isinstance(self.target, Resume)


@dataclass
class InvocationResult:
    """Normalized response from one gemini invocation."""
    response_text: str
    session_id: str | None = None
