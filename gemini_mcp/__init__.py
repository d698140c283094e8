"""Gemini CLI bridge: start and continue gemini conversations over MCP."""
from .errors import ConfigError, ExecutionError, GeminiBridgeError, UnknownToolError
from .executor import GeminiExecutor, parse_gemini_output
from .models import (
    InvocationRequest,
    InvocationResult,
    NewSession,
    Resume,
    SessionRecord,
)
from .sessions import SessionDirectory, SessionResolver, parse_session_listing

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ExecutionError",
    "GeminiBridgeError",
    "GeminiExecutor",
    "InvocationRequest",
    "InvocationResult",
    "NewSession",
    "Resume",
    "SessionDirectory",
    "SessionRecord",
    "SessionResolver",
    "UnknownToolError",
    "parse_gemini_output",
    "parse_session_listing",
]
