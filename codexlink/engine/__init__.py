"""Codex bridge engine: detection, config.toml management and query streaming."""
from .config import BridgeConfig
from .errors import (
    CodexLinkError,
    ConfigParseError,
    ConfigValueError,
    ProcessAbortedError,
    ProcessFailedError,
    ProcessTimeoutError,
)
from .models import (
    AssistantMessage,
    AuthMethod,
    AuthStatus,
    ConversationTurn,
    ErrorMessage,
    InstallationInfo,
    InstallationStatus,
    InstallMethod,
    InstallState,
    McpServerEntry,
    ModelDefinition,
    QueryRequest,
    ResultMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = [
    # Config
    "BridgeConfig",
    # Errors
    "CodexLinkError",
    "ConfigParseError",
    "ConfigValueError",
    "ProcessAbortedError",
    "ProcessFailedError",
    "ProcessTimeoutError",
    # Models
    "AssistantMessage",
    "AuthMethod",
    "AuthStatus",
    "ConversationTurn",
    "ErrorMessage",
    "InstallationInfo",
    "InstallationStatus",
    "InstallMethod",
    "InstallState",
    "McpServerEntry",
    "ModelDefinition",
    "QueryRequest",
    "ResultMessage",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
]
