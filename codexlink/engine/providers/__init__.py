"""Provider abstraction for external agent runtimes."""
from .base import Provider
from .codex_config import CodexConfigManager
from .codex_detector import CodexCliDetector
from .codex_provider import CodexProvider

__all__ = [
    "Provider",
    "CodexCliDetector",
    "CodexConfigManager",
    "CodexProvider",
]
