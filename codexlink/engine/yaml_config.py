"""YAML settings loader.

Optional overlay on top of the environment. When no file exists,
``BridgeConfig.from_env()`` values are used unchanged.

Example YAML:
    codex:
      cli_path: /opt/homebrew/bin/codex
      default_model: gpt-5.1-codex
      timeout_ms: 60000
      mcp_server_path: /srv/tools/mcp-server.js

    logging:
      level: DEBUG
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

import yaml

from .config import BridgeConfig

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".codexlink" / "settings.yaml"


@dataclass
class CodexSettings:
    """The ``codex:`` section."""
    cli_path: str | None = None
    default_model: str | None = None
    timeout_ms: int | None = None
    mcp_server_path: str | None = None


@dataclass
class Settings:
    """Complete parsed settings file."""
    codex: CodexSettings
    log_level: str | None = None


def load_settings(path: str | Path | None = None) -> Settings:
    """Load a YAML settings file, returning empty settings if it is missing.

    Parse errors are logged and re-raised.
    """
    path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.debug("load_settings: no settings file at %s; using defaults", path)
        return Settings(codex=CodexSettings())
    except yaml.YAMLError as exc:
        logger.error("load_settings: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        logger.warning("load_settings: %s is not a mapping; ignoring", path)
        return Settings(codex=CodexSettings())

    codex_raw = raw.get("codex") or {}
    timeout = codex_raw.get("timeout_ms")
    codex = CodexSettings(
        cli_path=codex_raw.get("cli_path") or None,
        default_model=codex_raw.get("default_model") or None,
        timeout_ms=int(timeout) if timeout is not None else None,
        mcp_server_path=codex_raw.get("mcp_server_path") or None,
    )
    logging_raw = raw.get("logging") or {}
    settings = Settings(codex=codex, log_level=logging_raw.get("level") or None)
    logger.info(
        "Loaded settings from %s (sections: %s)",
        path.name, ", ".join(sorted(raw.keys())) or "(empty)",
    )
    return settings


def apply_settings(config: BridgeConfig, settings: Settings) -> BridgeConfig:
    """Return a copy of *config* with YAML values layered on top.

    The executable path from YAML only fills in when no
    ``CODEX_CLI_PATH`` override was given.
    """
    codex = settings.codex
    return replace(
        config,
        cli_path_override=config.cli_path_override or codex.cli_path,
        default_model=codex.default_model or config.default_model,
        timeout_ms=codex.timeout_ms if codex.timeout_ms is not None else config.timeout_ms,
        mcp_server_path=codex.mcp_server_path or config.mcp_server_path,
        log_level=settings.log_level or config.log_level,
    )
