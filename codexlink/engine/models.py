"""Core data models for the Codex bridge.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Union


class InstallMethod(str, Enum):
    """How the Codex executable was located."""
    PATH_LOOKUP = "path-lookup"
    PACKAGE_MANAGER = "package-manager"


class AuthMethod(str, Enum):
    """Which credential source authenticates the Codex CLI."""
    NONE = "none"
    ENV = "env"
    AUTH_FILE = "auth_file"
    CLI_TOKENS = "cli_tokens"
    CLI_VERIFIED = "cli_verified"


class InstallState(str, Enum):
    """User-facing installation state."""
    INSTALLED = "installed"
    API_KEY_ONLY = "api_key_only"
    NOT_INSTALLED = "not_installed"


@dataclass
class InstallationStatus:
    """Result of a single installation check. Never persisted."""
    installed: bool
    path: str | None = None
    version: str | None = None
    method: InstallMethod | None = None
    has_api_key: bool | None = None


@dataclass
class AuthStatus:
    """Result of a single credential check."""
    authenticated: bool
    method: AuthMethod = AuthMethod.NONE
    has_auth_file: bool = False
    has_env_key: bool = False


@dataclass
class InstallationInfo:
    """Installation state mapped to a recommendation for the user."""
    status: InstallState
    method: str | None
    recommendation: str
    version: str | None = None
    path: str | None = None
    install_commands: dict[str, str] | None = None


@dataclass
class FullStatus:
    """Installation info, auth and raw installation bundled together."""
    status: InstallationInfo
    auth: AuthStatus
    installation: InstallationStatus


@dataclass
class ProviderInstallation:
    """Installation plus auth as reported by a provider."""
    installed: bool
    path: str | None = None
    version: str | None = None
    method: InstallMethod | None = None
    has_api_key: bool = False
    authenticated: bool = False


@dataclass
class ModelDefinition:
    """A model the provider can run."""
    id: str
    name: str
    model_string: str
    provider: str
    description: str = ""
    context_window: int = 0
    max_output_tokens: int = 0
    supports_vision: bool = False
    supports_tools: bool = False
    tier: str = "standard"
    default: bool = False


@dataclass
class ConversationTurn:
    """A prior turn replayed into a stateless CLI invocation."""
    role: str  # "user" or "assistant"
    content: str


@dataclass
class QueryRequest:
    """One query submitted to a provider."""
    prompt: str | list[dict[str, Any]]
    cwd: str
    model: str | None = None
    system_prompt: str | None = None
    conversation_history: list[ConversationTurn] = field(default_factory=list)
    mcp_servers: dict[str, dict[str, Any]] = field(default_factory=dict)
    abort_event: asyncio.Event | None = field(default=None, repr=False)
    timeout_ms: int | None = None


@dataclass
class McpServerEntry:
    """One ``[mcp_servers.<name>]`` table in config.toml."""
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    startup_timeout_sec: int | None = None
    tool_timeout_sec: int | None = None
    enabled_tools: list[str] = field(default_factory=list)

    def to_table(self) -> dict[str, Any]:
        """Render as a config table, omitting unset optional keys."""
        table: dict[str, Any] = {"command": self.command, "args": list(self.args)}
        if self.startup_timeout_sec is not None:
            table["startup_timeout_sec"] = self.startup_timeout_sec
        if self.tool_timeout_sec is not None:
            table["tool_timeout_sec"] = self.tool_timeout_sec
        if self.enabled_tools:
            table["enabled_tools"] = list(self.enabled_tools)
        if self.env:
            table["env"] = dict(self.env)
        return table


# ── Content blocks ──────────────────────────────────────────────


@dataclass
class TextBlock:
    text: str
    type: str = field(default="text", init=False)


@dataclass
class ThinkingBlock:
    thinking: str
    type: str = field(default="thinking", init=False)


@dataclass
class ToolUseBlock:
    name: str
    input: Any
    type: str = field(default="tool_use", init=False)


@dataclass
class ToolResultBlock:
    tool_use_id: str | None
    content: Any
    type: str = field(default="tool_result", init=False)


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock]


# ── Normalized messages ─────────────────────────────────────────


@dataclass
class AssistantMessage:
    """Assistant output carrying one or more content blocks."""
    content: list[ContentBlock]
    role: str = field(default="assistant", init=False)
    type: str = field(default="assistant", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": {
                "role": self.role,
                "content": [asdict(block) for block in self.content],
            },
        }


@dataclass
class ErrorMessage:
    error: str
    type: str = field(default="error", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "error": self.error}


@dataclass
class ResultMessage:
    subtype: str = "success"
    type: str = field(default="result", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "subtype": self.subtype}


NormalizedMessage = Union[AssistantMessage, ErrorMessage, ResultMessage]
