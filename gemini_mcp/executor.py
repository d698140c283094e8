"""Command executor for the gemini CLI.

Starts new conversations with ``gemini "<prompt>" --output-format json``
and continues them with ``-r <session>``. The CLI reports its session id
in the JSON payload most of the time; when it doesn't, a new
conversation falls back to the newest entry of ``--list-sessions``.

System prompts are handed over as a file: the CLI reads the path from
``GEMINI_SYSTEM_MD``. Each invocation gets its own temp directory, so
concurrent calls never share a file.
"""
from __future__ import annotations

import json
import logging
import os
import shlex
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .errors import ExecutionError
from .models import InvocationRequest, InvocationResult, Resume
from .process import ProcessOutput, ProcessRunner, quote_prompt, run_shell_command
from .sessions import SessionDirectory, SessionResolver

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT_ENV = "GEMINI_SYSTEM_MD"
SYSTEM_PROMPT_FILENAME = "system.md"
LATEST_SESSION = "latest"


@contextmanager
def system_prompt_file(text: str | None) -> Iterator[str | None]:
    """Materialize a system prompt as a temp file for one invocation.

    Yields the file path (None when there is no prompt). The file and
    its directory are removed on exit, whether or not the body raised.
    """
    if not text:
        yield None
        return

    temp_dir = tempfile.mkdtemp(prefix="gemini-mcp-")
    try:
        path = os.path.join(temp_dir, SYSTEM_PROMPT_FILENAME)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        yield path
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def _decode(stdout: str) -> Any:
    try:
        return json.loads(stdout)
    except ValueError:
        return None


def parse_gemini_output(stdout: str) -> tuple[str, str | None]:
    """Split CLI output into (response text, session id).

    JSON with a ``response`` field yields that field. JSON without one
    is dumped back to text. Anything that isn't JSON is returned as-is.
    """
    try:
        data = json.loads(stdout)
    except ValueError:
        return stdout, None

    if not isinstance(data, dict):
        return json.dumps(data, ensure_ascii=False), None

    response = data.get("response")
    if response:
        if isinstance(response, str):
            text = response
        else:
            text = json.dumps(response, ensure_ascii=False)
    else:
        text = json.dumps(data, ensure_ascii=False)

    session_id = data.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        session_id = None
    return text, session_id


class GeminiExecutor:
    """Runs prompts through the gemini CLI.

    The process runner and resolver are injected; by default both talk
    to the real CLI via bash.
    """

    def __init__(
        self,
        runner: ProcessRunner = run_shell_command,
        resolver: SessionResolver | None = None,
        *,
        command: str = "gemini",
        default_model: str | None = None,
        default_cwd: str | None = None,
        system_prompt_env: str = DEFAULT_SYSTEM_PROMPT_ENV,
    ) -> None:
        self._runner = runner
        self._command = command
        self._resolver = resolver or SessionResolver(
            SessionDirectory(runner, command)
        )
        self._default_model = default_model
        self._default_cwd = default_cwd
        self._system_prompt_env = system_prompt_env

    @property
    def command(self) -> str:
        return self._command

    @property
    def resolver(self) -> SessionResolver:
        return self._resolver

    def is_available(self) -> bool:
        """Check if the gemini CLI is on PATH."""
        return shutil.which(self._command) is not None

    def build_command(self, request: InvocationRequest) -> str:
        """Compose the shell command line for a request."""
        parts = [self._command, quote_prompt(request.prompt), "--output-format", "json"]

        model = request.model or self._default_model
        if model:
            parts.extend(["-m", shlex.quote(model)])

        if isinstance(request.target, Resume):
            parts.extend(["-r", shlex.quote(request.target.hint or LATEST_SESSION)])

        return " ".join(parts)

    async def run(self, request: InvocationRequest) -> InvocationResult:
        if request.is_resume:
            return await self.run_resume(request)
        return await self.run_new(request)

    async def run_new(self, request: InvocationRequest) -> InvocationResult:
        """Start a new conversation.

        If the CLI doesn't report a session id, the newest session in
        the directory is assumed to be the one just created.
        """
        output = await self._execute(request)
        text, session_id = parse_gemini_output(output.stdout)
        if session_id is None:
            session_id = await self._resolver.resolve_latest(
                cwd=self._effective_cwd(request)
            )
            logger.debug("No session_id in output; directory fallback gave %s", session_id)
        return InvocationResult(response_text=text, session_id=session_id)

    async def run_resume(self, request: InvocationRequest) -> InvocationResult:
        """Continue a conversation.

        The hint goes to the CLI verbatim; the CLI does its own prefix
        matching. Only the session id the CLI reports is returned.
        """
        output = await self._execute(request)
        text, session_id = parse_gemini_output(output.stdout)
        return InvocationResult(response_text=text, session_id=session_id)

    def _effective_cwd(self, request: InvocationRequest) -> str | None:
        return request.cwd or self._default_cwd

    async def _execute(self, request: InvocationRequest) -> ProcessOutput:
        command = self.build_command(request)
        cwd = self._effective_cwd(request)
        logger.debug(
            "Running %s (resume=%s, model=%s, cwd=%s, system_prompt=%s)",
            self._command,
            request.is_resume,
            request.model or self._default_model,
            cwd,
            bool(request.system_prompt),
        )

        with system_prompt_file(request.system_prompt) as prompt_path:
            env = {self._system_prompt_env: prompt_path} if prompt_path else None
            try:
                output = await self._runner(command, env=env, cwd=cwd)
            except OSError as exc:
                logger.warning("Failed to start %s: %s", self._command, exc)
                raise ExecutionError(
                    f"Failed to start {self._command}: {exc}"
                ) from exc

        if not output.ok and not isinstance(_decode(output.stdout), dict):
            logger.warning(
                "%s exited rc=%s: %s",
                self._command, output.returncode, output.stderr.strip(),
            )
            raise ExecutionError(
                f"{self._command} exited with code {output.returncode}",
                stderr=output.stderr,
                returncode=output.returncode,
            )
        return output
