"""MCP server exposing the gemini CLI as tools."""
from .tools import GeminiTools, TOOL_DESCRIPTIONS

__all__ = ["GeminiTools", "TOOL_DESCRIPTIONS"]
