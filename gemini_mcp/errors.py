"""Exception hierarchy for the Gemini MCP bridge.

Listing failures and undecodable output are not errors here: they
degrade to an empty directory and raw-text responses. Only a failed
invocation surfaces to callers, as ExecutionError.
"""
from __future__ import annotations


class GeminiBridgeError(Exception):
    """Base exception for all bridge errors."""


class ExecutionError(GeminiBridgeError):
    """The gemini CLI could not be run or exited without usable output."""
    def __init__(
        self,
        message: str,
        *,
        stderr: str = "",
        returncode: int | None = None,
    ):
        self.message = message
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message)


class UnknownToolError(GeminiBridgeError):
    """A tool call named a tool this server does not expose."""
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class ConfigError(GeminiBridgeError):
    """Configuration file is missing or malformed."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid config {path}: {reason}")
