"""Codex ``config.toml`` reader/writer.

Codex reads MCP server definitions from ``~/.codex/config.toml``
(or ``<project>/.codex/config.toml`` when present). This module
parses and writes the subset of TOML those files use:

- blank lines and ``#`` comments
- ``key = value`` where value is a basic or literal string, a
  boolean, an integer, a float, or a single-line array of those
- ``[a.b.c]`` table headers

Array-of-tables (``[[x]]``), inline tables and multiline strings
are not supported and raise ``ConfigParseError`` instead of being
skipped.
"""
from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Any

from ...shared.services.durable_write import atomic_write_text
from ..config import BridgeConfig
from ..errors import ConfigParseError, ConfigValueError
from ..models import McpServerEntry

logger = logging.getLogger(__name__)

ConfigDocument = dict[str, Any]

MCP_SERVERS_KEY = "mcp_servers"
MANAGED_SERVER_NAME = "codexlink-tools"
PROJECT_PATH_ENV = "CODEXLINK_PROJECT_PATH"

_BARE_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.\d+(?:[eE][+-]?\d+)?|\d+[eE][+-]?\d+)$")
_ESCAPES = {"\\": "\\", '"': '"', "n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f"}
_LITERAL_END = frozenset(" \t,]#")


# ── Parsing ─────────────────────────────────────────────────────


class _LineParser:
    """Recursive-descent parser over one logical line."""

    def __init__(self, text: str, line_no: int) -> None:
        self.text = text
        self.line_no = line_no
        self.pos = 0

    def error(self, reason: str) -> ConfigParseError:
        return ConfigParseError(self.line_no, self.text, reason)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_ws(self) -> None:
        while self.peek() in (" ", "\t"):
            self.pos += 1

    def expect(self, char: str) -> None:
        self.skip_ws()
        if self.peek() != char:
            raise self.error(f"expected {char!r}")
        self.pos += 1

    def expect_end(self) -> None:
        self.skip_ws()
        if self.pos < len(self.text) and self.peek() != "#":
            raise self.error("unexpected trailing characters")

    def parse_header(self) -> list[str]:
        if self.text.startswith("[["):
            raise self.error("array-of-tables headers are not supported")
        self.expect("[")
        path = self.parse_dotted_key()
        self.expect("]")
        self.expect_end()
        return path

    def parse_dotted_key(self) -> list[str]:
        parts = [self.parse_key()]
        while True:
            self.skip_ws()
            if self.peek() != ".":
                return parts
            self.pos += 1
            parts.append(self.parse_key())

    def parse_key(self) -> str:
        self.skip_ws()
        char = self.peek()
        if char == '"':
            return self.parse_basic_string()
        if char == "'":
            return self.parse_literal_string()
        start = self.pos
        while self.pos < len(self.text) and (
            self.text[self.pos].isalnum() or self.text[self.pos] in "_-"
        ):
            self.pos += 1
        if start == self.pos:
            raise self.error("expected a key")
        return self.text[start:self.pos]

    def parse_value(self) -> Any:
        self.skip_ws()
        char = self.peek()
        if self.text.startswith(('"""', "'''"), self.pos):
            raise self.error("multiline strings are not supported")
        if char == '"':
            return self.parse_basic_string()
        if char == "'":
            return self.parse_literal_string()
        if char == "[":
            return self.parse_array()
        if char == "{":
            raise self.error("inline tables are not supported")
        if not char:
            raise self.error("missing value")
        return self.parse_literal()

    def parse_basic_string(self) -> str:
        self.pos += 1
        out: list[str] = []
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char == '"':
                self.pos += 1
                return "".join(out)
            if char == "\\":
                self.pos += 1
                esc = self.peek()
                if esc == "u":
                    digits = self.text[self.pos + 1:self.pos + 5]
                    if len(digits) != 4 or not all(c in "0123456789abcdefABCDEF" for c in digits):
                        raise self.error("invalid unicode escape")
                    out.append(chr(int(digits, 16)))
                    self.pos += 5
                    continue
                if esc not in _ESCAPES:
                    raise self.error(f"invalid escape sequence '\\{esc}'")
                out.append(_ESCAPES[esc])
                self.pos += 1
                continue
            out.append(char)
            self.pos += 1
        raise self.error("unterminated string")

    def parse_literal_string(self) -> str:
        end = self.text.find("'", self.pos + 1)
        if end == -1:
            raise self.error("unterminated string")
        value = self.text[self.pos + 1:end]
        self.pos = end + 1
        return value

    def parse_array(self) -> list[Any]:
        self.pos += 1
        items: list[Any] = []
        while True:
            self.skip_ws()
            if self.peek() == "]":
                self.pos += 1
                return items
            if not self.peek() or self.peek() == "#":
                raise self.error("multiline arrays are not supported")
            items.append(self.parse_value())
            self.skip_ws()
            if self.peek() == ",":
                self.pos += 1
            elif self.peek() != "]":
                raise self.error("expected ',' or ']' in array")

    def parse_literal(self) -> bool | int | float:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in _LITERAL_END:
            self.pos += 1
        token = self.text[start:self.pos]
        if token == "true":
            return True
        if token == "false":
            return False
        if _INT_RE.match(token):
            return int(token)
        if _FLOAT_RE.match(token):
            return float(token)
        raise self.error(f"unsupported value {token!r}")


def _descend(table: ConfigDocument, path: list[str], parser: _LineParser) -> ConfigDocument:
    for part in path:
        child = table.get(part)
        if child is None:
            child = {}
            table[part] = child
        elif not isinstance(child, dict):
            raise parser.error(f"key {part!r} already holds a value")
        table = child
    return table


def parse_document(text: str) -> ConfigDocument:
    """Parse config.toml text into nested dicts.

    A ``[a.b]`` header creates (or reuses) the chain of tables and
    makes the innermost one the target for following assignments.
    """
    root: ConfigDocument = {}
    current = root
    for line_no, raw in enumerate(text.split("\n"), start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parser = _LineParser(stripped, line_no)
        if stripped.startswith("["):
            current = _descend(root, parser.parse_header(), parser)
            continue
        key = parser.parse_dotted_key()
        parser.expect("=")
        value = parser.parse_value()
        parser.expect_end()
        target = _descend(current, key[:-1], parser)
        if isinstance(target.get(key[-1]), dict):
            raise parser.error(f"key {key[-1]!r} already holds a table")
        target[key[-1]] = value
    return root


# ── Serializing ─────────────────────────────────────────────────


def escape_string(value: str) -> str:
    """Escape *value* for a double-quoted TOML string.

    Backslashes go first; escaping them later would double the
    backslashes introduced for quotes and control characters.
    """
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def format_value(value: Any, key: str = "value") -> str:
    """Render a scalar (or array of scalars) as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ConfigValueError(key, value)
        return repr(value)
    if isinstance(value, str):
        return f'"{escape_string(value)}"'
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_value(item, key) for item in value) + "]"
    raise ConfigValueError(key, value)


def _format_key(key: str) -> str:
    if _BARE_KEY_RE.match(key):
        return key
    return f'"{escape_string(key)}"'


def _emit_table(table: ConfigDocument, path: list[str], lines: list[str]) -> None:
    scalars = [(k, v) for k, v in table.items() if not isinstance(v, dict)]
    children = [(k, v) for k, v in table.items() if isinstance(v, dict)]

    # Tables holding only sub-tables are implied by their children's headers.
    if path and (scalars or not children):
        if lines:
            lines.append("")
        lines.append("[" + ".".join(_format_key(part) for part in path) + "]")
    for key, value in scalars:
        lines.append(f"{_format_key(key)} = {format_value(value, key)}")
    for key, child in children:
        _emit_table(child, path + [key], lines)


def serialize_document(doc: ConfigDocument) -> str:
    """Render *doc*: scalars of each table first, then sub-tables depth-first."""
    lines: list[str] = []
    _emit_table(doc, [], lines)
    return "\n".join(lines) + "\n" if lines else ""


# ── File management ─────────────────────────────────────────────


class CodexConfigManager:
    """Reads and writes Codex config.toml files.

    The project-scoped file (``<project>/.codex/config.toml``) wins
    when it exists; otherwise the user file under ``codex_home`` is
    used. Writes replace the whole file. There is no locking, so
    concurrent writers to the same file race (last writer wins).
    """

    def __init__(self, config: BridgeConfig | None = None) -> None:
        self._config = config or BridgeConfig.from_env()
        self.user_config_path: Path = self._config.user_config_path
        self.project_config_path: Path | None = None

    @staticmethod
    def project_config_for(project_path: str | Path) -> Path:
        return Path(project_path) / ".codex" / "config.toml"

    def set_project_path(self, project_path: str | Path) -> None:
        """Default project used when ``resolve_config_path`` gets none."""
        self.project_config_path = self.project_config_for(project_path)

    def resolve_config_path(self, project_path: str | Path | None = None) -> Path:
        """Return the config file currently in effect."""
        if project_path is not None:
            candidate: Path | None = self.project_config_for(project_path)
        else:
            candidate = self.project_config_path
        if candidate is not None and candidate.is_file():
            return candidate
        self.user_config_path.parent.mkdir(parents=True, exist_ok=True)
        return self.user_config_path

    def read_config(self, path: str | Path) -> ConfigDocument:
        """Parse *path*; a missing file is an empty document."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No Codex config at %s; starting empty", path)
            return {}
        return parse_document(text)

    def write_config(self, path: str | Path, doc: ConfigDocument) -> None:
        """Serialize *doc* and replace the contents of *path*."""
        path = Path(path)
        atomic_write_text(path, serialize_document(doc))
        logger.info("Wrote Codex config %s", path)

    @staticmethod
    def managed_server_entry(project_path: str | Path, server_path: str) -> McpServerEntry:
        return McpServerEntry(
            command="node",
            args=[server_path],
            env={PROJECT_PATH_ENV: str(project_path)},
            startup_timeout_sec=10,
            tool_timeout_sec=60,
            enabled_tools=["UpdateFeatureStatus"],
        )

    def configure_mcp_server(self, project_path: str | Path, server_path: str) -> Path:
        """Upsert the codexlink tool server and return the file written.

        Other ``[mcp_servers.*]`` entries and unrelated keys are kept.
        """
        config_path = self.resolve_config_path(project_path)
        doc = self.read_config(config_path)

        doc["experimental_use_rmcp_client"] = True
        servers = doc.get(MCP_SERVERS_KEY)
        if not isinstance(servers, dict):
            servers = {}
            doc[MCP_SERVERS_KEY] = servers
        servers[MANAGED_SERVER_NAME] = self.managed_server_entry(
            project_path, server_path,
        ).to_table()

        self.write_config(config_path, doc)
        logger.info(
            "Registered MCP server %s for project %s in %s",
            MANAGED_SERVER_NAME, project_path, config_path,
        )
        return config_path

    def remove_mcp_server(self, project_path: str | Path) -> None:
        """Remove the codexlink tool server. Never raises.

        The file is left untouched when the entry is absent.
        """
        try:
            config_path = self.resolve_config_path(project_path)
            doc = self.read_config(config_path)
            servers = doc.get(MCP_SERVERS_KEY)
            if not isinstance(servers, dict) or MANAGED_SERVER_NAME not in servers:
                logger.debug("No %s entry in %s; nothing to remove", MANAGED_SERVER_NAME, config_path)
                return
            del servers[MANAGED_SERVER_NAME]
            if not servers:
                del doc[MCP_SERVERS_KEY]
            self.write_config(config_path, doc)
            logger.info("Removed MCP server %s from %s", MANAGED_SERVER_NAME, config_path)
        except Exception as exc:
            logger.warning(
                "Failed to remove MCP server %s for %s: %s",
                MANAGED_SERVER_NAME, project_path, exc,
            )
