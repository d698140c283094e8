"""FastMCP tool definitions for the Gemini bridge.

Exposed:
    gemini, gemini-reply, gemini-sessions

Argument names follow the wire schema (camelCase), since FastMCP
derives the input schema from the function signature. Annotations are
left unpostponed so FastMCP can spot the Context parameter.
"""
from typing import Any

from mcp.server.fastmcp import FastMCP, Context

from .tools import TOOL_DESCRIPTIONS

_ERROR_PREFIX = "Error executing gemini: "


def _extract_text(result: dict[str, Any], annotate: bool = True) -> str:
    """Convert a GeminiTools response to plain string.

    The session id, when known, is appended as a trailer line so the
    calling agent can pass it back to gemini-reply. If is_error is set,
    raise ValueError so FastMCP marks the response as an error.
    """
    text = result["content"][0]["text"]
    if result.get("is_error"):
        raise ValueError(text.removeprefix(_ERROR_PREFIX))
    session_id = result.get("session_id")
    if annotate and session_id:
        text = f"{text}\n\nSession ID: {session_id}"
    return text


def _get_tools(ctx: Context):
    """Get GeminiTools from lifespan context."""
    return ctx.request_context.lifespan_context["gemini_tools"]


def register_tools(mcp: FastMCP) -> None:
    """Register the gemini tools with the FastMCP instance."""

    @mcp.tool(name="gemini", description=TOOL_DESCRIPTIONS["gemini"])
    async def gemini(
        prompt: str,
        model: str | None = None,
        systemPrompt: str | None = None,  # noqa: N803
        cwd: str | None = None,
        ctx: Context = None,
    ) -> str:
        tools = _get_tools(ctx)
        result = await tools.start(
            prompt, model=model, system_prompt=systemPrompt, cwd=cwd,
        )
        return _extract_text(result)

    @mcp.tool(name="gemini-reply", description=TOOL_DESCRIPTIONS["gemini-reply"])
    async def gemini_reply(
        prompt: str,
        sessionId: str | None = None,  # noqa: N803
        model: str | None = None,
        systemPrompt: str | None = None,  # noqa: N803
        cwd: str | None = None,
        ctx: Context = None,
    ) -> str:
        tools = _get_tools(ctx)
        result = await tools.reply(
            prompt,
            session_id=sessionId,
            model=model,
            system_prompt=systemPrompt,
            cwd=cwd,
        )
        return _extract_text(result)

    @mcp.tool(name="gemini-sessions", description=TOOL_DESCRIPTIONS["gemini-sessions"])
    async def gemini_sessions(
        cwd: str | None = None,
        sessionId: str | None = None,  # noqa: N803
        ctx: Context = None,
    ) -> str:
        tools = _get_tools(ctx)
        result = await tools.list_sessions(cwd=cwd, session_id=sessionId)
        return _extract_text(result, annotate=False)
