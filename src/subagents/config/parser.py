"""Load, validate, and resolve subagents configuration."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from subagents.config.models import ServerConfig
from subagents.execution.models import DEFAULT_EXECUTION_TIMEOUT_MS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "subagents.yaml"

#: Environment variables and the config keys they override.
_ENV_KEYS = {
    "AGENTS_DIR": "agents_dir",
    "AGENT_TYPE": "agent_type",
    "LOG_LEVEL": "log_level",
    "CLI_API_KEY": "cli_api_key",
    "AGENT_COMMAND": "command",
}


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ServerConfig:
    """Build a validated ServerConfig.

    Values come from, in increasing precedence: defaults, the YAML file,
    and environment variables.  A ``.env`` file next to the config file
    (or in the current directory) is loaded into the environment first.

    Args:
        path: Explicit config file path.  If None, ``subagents.yaml`` in
              the current directory is used when it exists.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        ConfigError: On missing file, bad YAML, or validation failure.
    """
    config_path = _resolve_path(path)
    base_dir = config_path.parent if config_path is not None else Path.cwd()

    raw: dict[str, Any] = {}
    if config_path is not None:
        raw = _read_yaml(config_path)

    if environ is None:
        _load_env(base_dir)
        environ = os.environ
    _apply_env(raw, environ)
    _resolve_agents_dir(raw, base_dir)
    return _validate(raw)


def _resolve_path(path: Path | None) -> Path | None:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = Path.cwd() / DEFAULT_CONFIG_NAME
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        detail = ""
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            detail = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{detail}"
        raise ConfigError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)

    return data


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _apply_env(raw: dict[str, Any], environ: Mapping[str, str]) -> None:
    for env_key, field in _ENV_KEYS.items():
        value = environ.get(env_key)
        if value:
            raw[field] = value

    timeout = environ.get("EXECUTION_TIMEOUT_MS", "").strip()
    if timeout:
        try:
            raw["execution_timeout_ms"] = int(timeout)
        except ValueError:
            logger.warning(
                "Ignoring invalid EXECUTION_TIMEOUT_MS=%r, using %d",
                timeout,
                DEFAULT_EXECUTION_TIMEOUT_MS,
            )
            raw["execution_timeout_ms"] = DEFAULT_EXECUTION_TIMEOUT_MS


def _resolve_agents_dir(raw: dict[str, Any], base_dir: Path) -> None:
    agents_dir = raw.get("agents_dir")
    if not isinstance(agents_dir, str | Path):
        return
    resolved = Path(agents_dir).expanduser()
    if not resolved.is_absolute():
        resolved = (base_dir / resolved).resolve()
    raw["agents_dir"] = resolved


def _validate(raw: dict[str, Any]) -> ServerConfig:
    try:
        return ServerConfig.model_validate(raw)
    except ValidationError as exc:
        errors = exc.errors()
        parts: list[str] = []
        for err in errors:
            loc = " → ".join(str(s) for s in err["loc"]) or "config"
            msg = err["msg"]
            if "extra inputs" in msg.lower():
                msg = "Unknown setting"
            elif "input should be" in msg.lower():
                msg = f"Invalid value: {msg}"
            parts.append(f"  {loc}: {msg}")
        joined = "\n".join(parts)
        msg = f"Config validation failed:\n{joined}"
        raise ConfigError(msg) from exc
