"""codexlink: drive the OpenAI Codex CLI and normalize its event stream."""

__version__ = "0.3.0"
