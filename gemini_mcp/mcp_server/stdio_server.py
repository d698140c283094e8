"""Stdio MCP server exposing the gemini CLI.

Usage:
    # Via an MCP client config (recommended), or manually:
    gemini-mcp
    python -m gemini_mcp.mcp_server.stdio_server
    python -m gemini_mcp.mcp_server.stdio_server \
        --config ~/.gemini-mcp/config.yaml \
        --cwd /path/to/project
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from ..config import BridgeConfig, load_yaml_config
from ..executor import GeminiExecutor
from ..process import run_shell_command
from ..sessions import SessionDirectory, SessionResolver
from .tools import GeminiTools

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# Parsed CLI args, set in main() before the server starts
_parsed_args: argparse.Namespace | None = None


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI args for the MCP server process."""
    parser = argparse.ArgumentParser(
        prog="gemini-mcp",
        description="MCP server exposing the Gemini CLI",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=(
            "YAML config file. "
            "Also reads GEMINI_MCP_CONFIG_FILE env var."
        ),
    )
    parser.add_argument(
        "--cwd",
        default=None,
        help="Default working directory for gemini invocations",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> BridgeConfig:
    """Resolve config from --config, GEMINI_MCP_CONFIG_FILE, or env vars.

    CLI flags override whatever the config source provides.
    """
    config_file = args.config or os.getenv("GEMINI_MCP_CONFIG_FILE")
    if config_file:
        logger.info(
            "Config source: %s (from %s)",
            config_file,
            "--config" if args.config else "GEMINI_MCP_CONFIG_FILE env",
        )
        config = load_yaml_config(config_file)
    else:
        logger.info("No config file specified; using env vars / defaults")
        config = BridgeConfig.from_env()

    if args.cwd:
        config.default_cwd = args.cwd
    if args.verbose:
        config.log_level = "DEBUG"
    return config


def build_tools(config: BridgeConfig) -> GeminiTools:
    """Wire runner, directory, resolver and executor for one server."""
    directory = SessionDirectory(run_shell_command, config.command)
    executor = GeminiExecutor(
        run_shell_command,
        SessionResolver(directory),
        command=config.command,
        default_model=config.default_model,
        default_cwd=config.default_cwd,
        system_prompt_env=config.system_prompt_env,
    )
    if not executor.is_available():
        logger.warning(
            "'%s' CLI not found on PATH; tool calls will fail until it is installed",
            config.command,
        )
    return GeminiTools(executor)


@asynccontextmanager
async def gemini_lifespan(server: FastMCP):
    """Initialize bridge state for the server lifetime.

    Yields context dict accessible via ctx.request_context.lifespan_context
    in tool handlers.
    """
    global _parsed_args
    if _parsed_args is None:
        _parsed_args = _parse_args()

    config = load_config(_parsed_args)

    # Logging must go to stderr (stdout is the stdio transport).
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    root = logging.getLogger()
    root.addHandler(stderr_handler)
    root.setLevel(config.log_level.upper())

    gemini_tools = build_tools(config)
    logger.info(
        "Gemini MCP server initialized (command=%s, cwd=%s, default_model=%s)",
        config.command,
        config.default_cwd,
        config.default_model,
    )

    try:
        yield {
            "config": config,
            "gemini_tools": gemini_tools,
        }
    finally:
        logger.info("Gemini MCP server shut down")
        root.removeHandler(stderr_handler)


# Create the FastMCP instance
mcp = FastMCP(
    name="gemini-mcp",
    instructions=(
        "Tools for talking to Google's Gemini through the local gemini "
        "CLI. Use gemini to start a conversation; it returns a Session "
        "ID. Pass that ID to gemini-reply to continue the same "
        "conversation. Use gemini-sessions to see stored sessions."
    ),
    lifespan=gemini_lifespan,
)

# Register tools
from .mcp_tools import register_tools  # noqa: E402

register_tools(mcp)


def main() -> None:
    """Entry point for the MCP server."""
    global _parsed_args
    _parsed_args = _parse_args()
    # Persistent per-process log file; stdio clients usually hide stderr.
    try:
        log_dir = Path.home() / ".gemini-mcp" / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"gemini-mcp-{os.getpid()}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        root = logging.getLogger()
        root.setLevel(logging.INFO)
        root.addHandler(file_handler)
        logger.info(
            "Starting stdio MCP server (pid=%s, argv=%s)", os.getpid(), sys.argv
        )
    except OSError as exc:
        logger.warning("File logging disabled: %s", exc)

    try:
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal stdio MCP server error (pid=%s)", os.getpid())
        raise


if __name__ == "__main__":
    main()
