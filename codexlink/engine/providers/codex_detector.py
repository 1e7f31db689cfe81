"""Codex CLI installation and authentication detection.

Every check here is infallible: OS-level failures (missing
binaries, unreadable files, malformed JSON, hung ``--version``)
degrade to "not found" and never raise to the caller.

The detector holds no state of its own beyond the ``BridgeConfig``
it was built with, so its checks depend only on that config and the
filesystem.
"""
from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Any

from ..config import BridgeConfig
from ..models import (
    AuthMethod,
    AuthStatus,
    FullStatus,
    InstallationInfo,
    InstallationStatus,
    InstallMethod,
    InstallState,
)

logger = logging.getLogger(__name__)

CLI_NAME = "codex"
VERSION_TIMEOUT_SECONDS = 5.0

SUPPORTED_MODELS = (
    "gpt-5.2",
    "gpt-5.1-codex-max",
    "gpt-5.1-codex",
    "gpt-5.1-codex-mini",
    "gpt-5.1",
)
DEFAULT_MODEL = "gpt-5.2"

INSTALL_COMMANDS = {
    "npm": "npm install -g @openai/codex@latest",
    "macos": "brew install codex",
    "linux": "npm install -g @openai/codex@latest",
    "windows": "npm install -g @openai/codex@latest",
}

_VERSION_RE = re.compile(r"(\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?)")
_TOKEN_KEYS = frozenset({"access_token", "refresh_token", "id_token"})
_API_KEY_FIELDS = ("api_key", "openai_api_key", "OPENAI_API_KEY")


class CodexCliDetector:
    """Locates the Codex CLI and its credentials."""

    def __init__(self, config: BridgeConfig | None = None) -> None:
        self._config = config or BridgeConfig.from_env()

    # ── Paths ───────────────────────────────────────────────────

    def config_dir(self) -> Path:
        return self._config.codex_home

    def auth_path(self) -> Path:
        return self._config.auth_path

    def _package_manager_candidates(self) -> list[Path]:
        """Install locations used by npm and Homebrew on this platform."""
        home = self._config.home
        platform = self._config.platform
        if platform.startswith("win"):
            appdata = home / "AppData" / "Roaming"
            return [
                appdata / "npm" / "codex.cmd",
                appdata / "npm" / "codex.exe",
                home / "scoop" / "shims" / "codex.exe",
            ]
        candidates = [
            home / ".npm-global" / "bin" / CLI_NAME,
            home / ".local" / "bin" / CLI_NAME,
            home / ".volta" / "bin" / CLI_NAME,
            Path("/usr/local/bin") / CLI_NAME,
        ]
        if platform == "darwin":
            candidates.insert(0, Path("/opt/homebrew/bin") / CLI_NAME)
        else:
            candidates.append(Path("/home/linuxbrew/.linuxbrew/bin") / CLI_NAME)
            candidates.append(Path("/usr/bin") / CLI_NAME)
        return candidates

    # ── Installation ────────────────────────────────────────────

    @staticmethod
    def _is_executable(path: Path) -> bool:
        try:
            return path.is_file() and os.access(path, os.X_OK)
        except OSError:
            return False

    def _which(self) -> str | None:
        try:
            return shutil.which(CLI_NAME)
        except OSError as exc:
            logger.debug("PATH lookup for %s failed: %s", CLI_NAME, exc)
            return None

    def _locate(self) -> tuple[str, InstallMethod] | None:
        override = self._config.cli_path_override
        if override:
            if self._is_executable(Path(override)):
                return override, InstallMethod.PATH_LOOKUP
            logger.debug("Configured Codex path %s is not executable", override)

        found = self._which()
        if found:
            return found, InstallMethod.PATH_LOOKUP

        for candidate in self._package_manager_candidates():
            if self._is_executable(candidate):
                return str(candidate), InstallMethod.PACKAGE_MANAGER
        return None

    def get_version(self, path: str) -> str | None:
        """Run ``<path> --version`` and extract a semantic version."""
        try:
            result = subprocess.run(
                [path, "--version"],
                capture_output=True,
                text=True,
                timeout=VERSION_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as exc:
            logger.debug("Could not run %s --version: %s", path, exc)
            return None
        match = _VERSION_RE.search(result.stdout or "") or _VERSION_RE.search(result.stderr or "")
        return match.group(1) if match else None

    def detect_installation(self) -> InstallationStatus:
        """Find the CLI: override path, then PATH, then package-manager dirs."""
        located = self._locate()
        if located is not None:
            path, method = located
            status = InstallationStatus(
                installed=True,
                path=path,
                version=self.get_version(path),
                method=method,
            )
            logger.debug("Codex CLI found at %s (%s, version=%s)", path, method.value, status.version)
            return status

        if self._config.api_key:
            return InstallationStatus(installed=False, has_api_key=True)
        return InstallationStatus(installed=False)

    # ── Authentication ──────────────────────────────────────────

    def _read_auth_file(self) -> dict[str, Any] | None:
        path = self.auth_path()
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read Codex auth file %s: %s", path, exc)
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Codex auth file %s is not valid JSON; ignoring", path)
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _has_token_object(data: dict[str, Any]) -> bool:
        for key in ("token", "tokens"):
            tokens = data.get(key)
            if isinstance(tokens, dict) and any(
                str(name).lower() in _TOKEN_KEYS
                for name in tokens
            ):
                return True
        return False

    def check_auth(self, installation: InstallationStatus | None = None) -> AuthStatus:
        """Resolve which credential, if any, Codex will use.

        Token forms outrank an API key stored in auth.json, which
        outranks OPENAI_API_KEY in the environment. Tokens upgrade to
        ``cli_verified`` when the CLI itself is installed.
        """
        has_env_key = bool(self._config.api_key)
        data = self._read_auth_file()

        if data is not None:
            has_tokens = (
                self._has_token_object(data)
                or "access_token" in data
                or "refresh_token" in data
            )
            if has_tokens:
                if installation is None:
                    installation = self.detect_installation()
                method = (
                    AuthMethod.CLI_VERIFIED if installation.installed
                    else AuthMethod.CLI_TOKENS
                )
                return AuthStatus(
                    authenticated=True,
                    method=method,
                    has_auth_file=True,
                    has_env_key=has_env_key,
                )
            if any(data.get(name) for name in _API_KEY_FIELDS):
                return AuthStatus(
                    authenticated=True,
                    method=AuthMethod.AUTH_FILE,
                    has_auth_file=True,
                    has_env_key=has_env_key,
                )

        if has_env_key:
            return AuthStatus(
                authenticated=True,
                method=AuthMethod.ENV,
                has_auth_file=data is not None,
                has_env_key=True,
            )
        return AuthStatus(
            authenticated=False,
            method=AuthMethod.NONE,
            has_auth_file=data is not None,
            has_env_key=False,
        )

    # ── Reporting ───────────────────────────────────────────────

    @staticmethod
    def get_install_commands() -> dict[str, str]:
        return dict(INSTALL_COMMANDS)

    def get_installation_info(
        self, installation: InstallationStatus | None = None,
    ) -> InstallationInfo:
        if installation is None:
            installation = self.detect_installation()

        if installation.installed:
            return InstallationInfo(
                status=InstallState.INSTALLED,
                method=installation.method.value if installation.method else None,
                version=installation.version,
                path=installation.path,
                recommendation=(
                    "Codex CLI is installed and ready for GPT-5.1/5.2 Codex models."
                ),
            )

        if installation.has_api_key:
            return InstallationInfo(
                status=InstallState.API_KEY_ONLY,
                method="api-key-only",
                recommendation=(
                    "OPENAI_API_KEY detected, but the Codex CLI was not found. "
                    "Install Codex CLI to run Codex models locally."
                ),
                install_commands=self.get_install_commands(),
            )

        return InstallationInfo(
            status=InstallState.NOT_INSTALLED,
            method=None,
            recommendation=(
                "Install OpenAI Codex CLI and sign in with 'codex login', "
                "or set OPENAI_API_KEY."
            ),
            install_commands=self.get_install_commands(),
        )

    def get_full_status(self) -> FullStatus:
        installation = self.detect_installation()
        return FullStatus(
            status=self.get_installation_info(installation),
            auth=self.check_auth(installation),
            installation=installation,
        )

    # ── Models ──────────────────────────────────────────────────

    @staticmethod
    def is_model_supported(model_id: str) -> bool:
        return model_id in SUPPORTED_MODELS

    @staticmethod
    def get_default_model() -> str:
        return DEFAULT_MODEL
