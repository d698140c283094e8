"""Process invocation for the gemini CLI.

Commands are composed as shell strings and run through bash, so the
prompt has to survive the shell intact. ``quote_prompt`` produces a
single double-quoted token that bash expands back to the exact input.

The runner is passed around as a capability (``ProcessRunner``) so
tests and alternative transports can swap it without touching module
state.
"""
from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

SHELL = "/bin/bash"

# Characters bash still interprets inside double quotes.
_DOUBLE_QUOTE_SPECIALS = ("\\", '"', "$", "`")


@dataclass
class ProcessOutput:
    """Captured result of one finished process."""
    stdout: str
    stderr: str = ""
    returncode: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner(Protocol):
    """Runs a shell command and returns its captured output.

    ``env`` is an overlay applied on top of the server's environment,
    never a replacement for it.
    """

    def __call__(
        self,
        command: str,
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> Awaitable[ProcessOutput]: ...


def quote_prompt(text: str) -> str:
    """Wrap text in double quotes, escaping what bash would expand."""
    escaped = "".join(
        "\\" + ch if ch in _DOUBLE_QUOTE_SPECIALS else ch
        for ch in text
    )
    return f'"{escaped}"'


def merge_env(overlay: Mapping[str, str] | None) -> dict[str, str] | None:
    """Return os.environ plus overlay, or None when there is no overlay."""
    if not overlay:
        return None
    env = os.environ.copy()
    env.update(overlay)
    return env


async def run_shell_command(
    command: str,
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
) -> ProcessOutput:
    """Run ``command`` under bash and wait for it to finish.

    The child never sees our stdin: under the stdio transport that is
    the client's JSON-RPC stream.

    Raises OSError when the shell itself cannot be started; a missing
    gemini binary shows up as a non-zero return code instead.
    """
    proc = await asyncio.create_subprocess_shell(
        command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=merge_env(env),
        cwd=cwd,
        executable=SHELL,
    )
    stdout_bytes, stderr_bytes = await proc.communicate()
    logger.debug(
        "Process exited rc=%s (stdout=%d bytes, stderr=%d bytes)",
        proc.returncode, len(stdout_bytes), len(stderr_bytes),
    )
    return ProcessOutput(
        stdout=stdout_bytes.decode("utf-8", errors="replace"),
        stderr=stderr_bytes.decode("utf-8", errors="replace"),
        returncode=proc.returncode if proc.returncode is not None else -1,
    )
