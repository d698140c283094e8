"""Configuration loaded from environment variables or a YAML file.

All settings have sensible defaults. Override via GEMINI_MCP_* env vars,
or point the server at a YAML file:

    gemini:
      command: gemini
      default_model: gemini-2.5-flash
      default_cwd: /path/to/project
      system_prompt_env: GEMINI_SYSTEM_MD

    logging:
      level: DEBUG
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .executor import DEFAULT_SYSTEM_PROMPT_ENV

logger = logging.getLogger(__name__)


def check_log_level(level: str, source: str) -> str:
    """Normalize a logging level name, rejecting ones logging doesn't know."""
    name = level.strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ConfigError(source, f"unknown log level '{level}'")
    return name


@dataclass
class BridgeConfig:
    """Gemini MCP bridge configuration."""

    # Path or name of the gemini CLI binary.
    command: str = "gemini"
    # Model passed via -m when a request doesn't name one.
    default_model: str | None = None
    # Working directory for invocations without an explicit cwd.
    # None inherits the server's cwd.
    default_cwd: str | None = None
    # Environment variable the CLI reads the system prompt file path from.
    system_prompt_env: str = DEFAULT_SYSTEM_PROMPT_ENV

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> BridgeConfig:
        """Load configuration from GEMINI_MCP_* environment variables."""
        bridge_vars = {
            k: v for k, v in os.environ.items() if k.startswith("GEMINI_MCP_")
        }
        if bridge_vars:
            logger.info(
                "BridgeConfig.from_env: GEMINI_MCP_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(bridge_vars.items())),
            )
        else:
            logger.debug("BridgeConfig.from_env: no GEMINI_MCP_* env vars set, using defaults")

        return cls(
            command=os.getenv("GEMINI_MCP_COMMAND", cls.command),
            default_model=os.getenv("GEMINI_MCP_DEFAULT_MODEL") or None,
            default_cwd=os.getenv("GEMINI_MCP_DEFAULT_CWD") or None,
            system_prompt_env=os.getenv(
                "GEMINI_MCP_SYSTEM_PROMPT_ENV", cls.system_prompt_env
            ),
            log_level=check_log_level(
                os.getenv("GEMINI_MCP_LOG_LEVEL", cls.log_level),
                "GEMINI_MCP_LOG_LEVEL",
            ),
        )


_GEMINI_KEYS = {f.name for f in fields(BridgeConfig)} - {"log_level"}


def _section(raw: dict[str, Any], name: str, path: str) -> dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(path, f"'{name}' must be a mapping")
    return section


def load_yaml_config(path: str | Path) -> BridgeConfig:
    """Load a BridgeConfig from a YAML file.

    Unknown keys are logged and ignored. Values must be strings.
    """
    path_str = str(path)
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigError(path_str, "file not found")

    with open(file_path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(path_str, f"YAML parse error: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(path_str, "top level must be a mapping")

    for key in raw:
        if key not in ("gemini", "logging"):
            logger.warning("Ignoring unknown config section '%s' in %s", key, path_str)

    values: dict[str, Any] = {}
    for key, value in _section(raw, "gemini", path_str).items():
        if key not in _GEMINI_KEYS:
            logger.warning("Ignoring unknown gemini option '%s' in %s", key, path_str)
            continue
        if value is not None and not isinstance(value, str):
            raise ConfigError(path_str, f"gemini.{key} must be a string")
        values[key] = value

    level = _section(raw, "logging", path_str).get("level")
    if level is not None:
        if not isinstance(level, str):
            raise ConfigError(path_str, "logging.level must be a string")
        values["log_level"] = check_log_level(level, path_str)

    if not values.get("command"):
        values.pop("command", None)
    if not values.get("system_prompt_env"):
        values.pop("system_prompt_env", None)

    config = BridgeConfig(**values)
    logger.info(
        "Loaded config from %s: command=%s model=%s cwd=%s",
        path_str, config.command, config.default_model, config.default_cwd,
    )
    return config
