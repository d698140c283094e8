"""Session directory reader and resolver.

The gemini CLI owns session persistence. We only read it back through
``gemini --list-sessions``, whose output looks like::

    Loaded cached credentials.

    Available sessions for this project (3):

      1. hello (11 days ago) [251d71bb-55c5-4923-9b99-4d953eaa0584]
      2. code review (5 days ago) [65303a90-1234-5678-9abc-def012345678]
      3. testing session (1 day ago) [abc12345-aaaa-bbbb-cccc-ddddeeeeffff]

Entries are numbered oldest first.
"""
from __future__ import annotations

import logging
import re

from .models import SessionRecord
from .process import ProcessRunner, run_shell_command

logger = logging.getLogger(__name__)

# "<ws><index>.<ws><anything>[<hex-and-hyphen id>]"
_SESSION_LINE_RE = re.compile(r"^\s*(\d+)\.\s+.*?\[([a-f0-9\-]+)\]")


def parse_session_listing(text: str) -> list[SessionRecord]:
    """Extract session records from ``--list-sessions`` output.

    Lines that don't match are skipped. Records come back in the order
    they appear; nothing is sorted or deduplicated.
    """
    records: list[SessionRecord] = []
    for line in text.splitlines():
        match = _SESSION_LINE_RE.match(line)
        if match:
            records.append(
                SessionRecord(index=int(match.group(1)), identifier=match.group(2))
            )
    return records


def match_hint(
    sessions: list[SessionRecord], hint: str
) -> SessionRecord | None:
    """First record whose identifier equals or starts with hint."""
    for record in sessions:
        if record.identifier == hint or record.identifier.startswith(hint):
            return record
    return None


class SessionDirectory:
    """Reads the gemini CLI's session list.

    Never raises: a failed listing and an empty one look the same to
    callers, since the CLI output can't tell them apart either.
    """

    def __init__(
        self,
        runner: ProcessRunner = run_shell_command,
        command: str = "gemini",
    ) -> None:
        self._runner = runner
        self._command = command

    async def list_sessions(self, cwd: str | None = None) -> list[SessionRecord]:
        try:
            output = await self._runner(f"{self._command} --list-sessions", cwd=cwd)
        except Exception as exc:
            logger.debug("Session listing failed to run: %s", exc)
            return []
        if not output.ok:
            logger.debug(
                "Session listing exited rc=%s: %s",
                output.returncode, output.stderr.strip(),
            )
            return []
        return parse_session_listing(output.stdout)


class SessionResolver:
    """Answers "which session?" questions against the directory."""

    def __init__(self, directory: SessionDirectory) -> None:
        self._directory = directory

    @property
    def directory(self) -> SessionDirectory:
        return self._directory

    async def resolve_latest(self, cwd: str | None = None) -> str | None:
        """Identifier of the highest-indexed session, or None."""
        sessions = await self._directory.list_sessions(cwd=cwd)
        if not sessions:
            return None
        latest = sessions[0]
        for record in sessions[1:]:
            if record.index >= latest.index:
                latest = record
        return latest.identifier

    async def resolve_by_hint(
        self, hint: str, cwd: str | None = None
    ) -> int | None:
        """Index of the first session whose id equals or starts with hint.

        Ambiguous prefixes resolve to the oldest match.
        """
        record = match_hint(await self._directory.list_sessions(cwd=cwd), hint)
        return record.index if record else None
