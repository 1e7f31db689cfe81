"""Exception hierarchy for the Codex bridge.

Errors raised below the orchestration boundary. The query
orchestrator itself never raises; it reports failures as error
messages in its output stream.
"""
from __future__ import annotations


class CodexLinkError(Exception):
    """Base exception for all codexlink errors."""


class ConfigParseError(CodexLinkError):
    """A config.toml line falls outside the supported TOML subset."""
    def __init__(self, line_no: int, line: str, reason: str):
        self.line_no = line_no
        self.line = line
        self.reason = reason
        super().__init__(f"config.toml line {line_no}: {reason}: {line.strip()!r}")


class ConfigValueError(CodexLinkError):
    """A value cannot be represented in the supported TOML subset."""
    def __init__(self, key: str, value: object):
        self.key = key
        self.value = value
        super().__init__(
            f"Cannot serialize {key!r}: unsupported type {type(value).__name__}"
        )


class ProcessFailedError(CodexLinkError):
    """The external CLI exited with a non-zero status or failed to start."""
    def __init__(self, command: str, returncode: int | None, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()
        if returncode is None:
            message = f"Failed to start '{command}'"
        else:
            message = f"'{command}' exited with code {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProcessTimeoutError(CodexLinkError):
    """The external CLI exceeded its wall-clock budget."""
    def __init__(self, command: str, timeout_ms: int):
        self.command = command
        self.timeout_ms = timeout_ms
        super().__init__(f"'{command}' timed out after {timeout_ms}ms")


class ProcessAbortedError(CodexLinkError):
    """The caller's abort event fired while the external CLI was running."""
    def __init__(self, command: str):
        self.command = command
        super().__init__(f"'{command}' was aborted")
