"""Configuration loaded from environment variables.

Environment variables are read once, in ``BridgeConfig.from_env()``.
The detector, config store and provider receive the resulting object
and never consult ``os.environ`` themselves.
"""
from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

API_KEY_ENV = "OPENAI_API_KEY"
CLI_PATH_ENV = "CODEX_CLI_PATH"
CODEX_HOME_ENV = "CODEX_HOME"

DEFAULT_MODEL = "gpt-5.2"
DEFAULT_TIMEOUT_MS = 30000


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer; using %d", name, raw, default)
        return default


@dataclass
class BridgeConfig:
    """Codex bridge configuration."""

    # Value of OPENAI_API_KEY, if set
    api_key: str | None = field(default=None, repr=False)
    # Explicit executable path (CODEX_CLI_PATH)
    cli_path_override: str | None = None
    # Codex's own config directory; holds auth.json and config.toml
    codex_home: Path = field(default_factory=lambda: Path.home() / ".codex")
    home: Path = field(default_factory=Path.home)
    platform: str = sys.platform

    default_model: str = DEFAULT_MODEL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    # Path to the bundled MCP tool server, when one is deployed
    mcp_server_path: str | None = None

    log_level: str = "INFO"

    @property
    def auth_path(self) -> Path:
        return self.codex_home / "auth.json"

    @property
    def user_config_path(self) -> Path:
        return self.codex_home / "config.toml"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BridgeConfig:
        """Load configuration from the process environment (or *environ*)."""
        env = os.environ if environ is None else environ

        home = Path.home()
        codex_home = env.get(CODEX_HOME_ENV)
        config = cls(
            api_key=env.get(API_KEY_ENV) or None,
            cli_path_override=env.get(CLI_PATH_ENV) or None,
            codex_home=Path(codex_home).expanduser() if codex_home else home / ".codex",
            home=home,
            default_model=env.get("CODEXLINK_DEFAULT_MODEL", cls.default_model),
            timeout_ms=_int_env(env, "CODEXLINK_TIMEOUT_MS", cls.timeout_ms),
            log_level=env.get("CODEXLINK_LOG_LEVEL", cls.log_level),
        )
        logger.debug(
            "BridgeConfig.from_env: codex_home=%s cli_path=%s api_key=%s model=%s",
            config.codex_home,
            config.cli_path_override or "(auto)",
            "set" if config.api_key else "unset",
            config.default_model,
        )
        return config
