"""Translate ``codex exec --json`` events into normalized messages.

Codex --json event types:
  thread.started, turn.started, turn.completed, turn.failed,
  item.started, item.updated, item.completed, thread.completed, error

Items are normalized into ``CodexItem`` on ingestion so the
dispatch below never has to care which field carried the kind
(``type`` in current releases, ``item_type`` in older ones) or
which optional fields are missing.

``translate_event`` is a pure function: one event in, zero or one
message out.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..models import (
    AssistantMessage,
    ContentBlock,
    ErrorMessage,
    NormalizedMessage,
    ResultMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

SHELL_TOOL_NAME = "bash"

_SUPPRESSED_EVENTS = frozenset({"thread.started", "turn.started", "turn.completed"})
_ITEM_EVENTS = frozenset({"item.started", "item.updated", "item.completed"})


@dataclass
class CodexItem:
    """A Codex thread item with its shape ambiguity resolved."""
    kind: str
    phase: str  # "started", "updated" or "completed"
    text: str | None = None
    content: Any = None
    command: str = ""
    output: str = ""
    entries: list[Any] = field(default_factory=list)
    tool: str = ""
    input: Any = None
    tool_use_id: str | None = None
    tool_output: Any = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def normalize_item(event_type: str, item: dict[str, Any]) -> CodexItem:
    """Build a ``CodexItem`` from an ``item.*`` event payload."""
    kind = str(item.get("type") or item.get("item_type") or "")
    phase = event_type.split(".", 1)[1]
    if kind == "todo_list":
        entries = item.get("items") or []
    elif kind == "file_change":
        entries = item.get("changes") or []
    else:
        entries = []
    return CodexItem(
        kind=kind,
        phase=phase,
        text=_as_text(item.get("text")),
        content=item.get("content"),
        command=str(item.get("command") or ""),
        output=str(item.get("aggregated_output") or item.get("output") or ""),
        entries=list(entries) if isinstance(entries, list) else [],
        tool=str(item.get("tool") or item.get("name") or ""),
        input=item.get("input"),
        tool_use_id=_as_text(item.get("tool_use_id")),
        tool_output=item.get("output"),
        raw=item,
    )


# ── Item renderers ──────────────────────────────────────────────


def _reasoning(item: CodexItem) -> ContentBlock:
    return ThinkingBlock(thinking=item.text or "")


def _agent_message(item: CodexItem) -> ContentBlock:
    content = item.content if item.content is not None else item.text
    return TextBlock(text=_as_text(content) or "")


def _message(item: CodexItem) -> ContentBlock:
    text = item.text if item.text is not None else _as_text(item.content)
    return TextBlock(text=text or "")


def _command_execution(item: CodexItem) -> ContentBlock:
    if item.phase == "started":
        return ToolUseBlock(name=SHELL_TOOL_NAME, input={"command": item.command})
    text = f"```bash\n{item.command}\n```"
    if item.output:
        text += f"\n\n```\n{item.output.rstrip()}\n```"
    return TextBlock(text=text)


def _todo_entry(entry: Any) -> tuple[str, str | None]:
    if isinstance(entry, dict):
        status = entry.get("status")
        if status is None and "completed" in entry:
            status = "completed" if entry.get("completed") else "pending"
        return str(entry.get("text") or entry.get("content") or ""), status
    return str(entry), None


def _todo_list(item: CodexItem) -> ContentBlock:
    header = "**Updated Todo List:**" if item.phase == "updated" else "**Todo List:**"
    lines = [header]
    for index, entry in enumerate(item.entries, start=1):
        text, status = _todo_entry(entry)
        if status is None:
            lines.append(f"{index}. {text}")
        else:
            marker = "✓" if status == "completed" else " "
            lines.append(f"{index}. [{marker}] {text}")
    return TextBlock(text="\n".join(lines))


def _file_change(item: CodexItem) -> ContentBlock:
    lines = ["**File Changes:**"]
    for change in item.entries:
        path = change.get("path", "") if isinstance(change, dict) else change
        lines.append(f"- Modified: {path}")
    return TextBlock(text="\n".join(lines))


def _tool_use(item: CodexItem) -> ContentBlock:
    return ToolUseBlock(name=item.tool, input=item.input)


def _tool_result(item: CodexItem) -> ContentBlock:
    return ToolResultBlock(tool_use_id=item.tool_use_id, content=item.tool_output)


def _fallback(item: CodexItem) -> ContentBlock:
    if item.text is not None:
        return TextBlock(text=item.text)
    logger.debug("Codex item kind %r has no text; rendering raw payload", item.kind)
    return TextBlock(text=json.dumps(item.raw, default=str))


_ITEM_RENDERERS: dict[str, Callable[[CodexItem], ContentBlock]] = {
    "reasoning": _reasoning,
    "agent_message": _agent_message,
    "message": _message,
    "command_execution": _command_execution,
    "todo_list": _todo_list,
    "file_change": _file_change,
    "tool_use": _tool_use,
    "tool_result": _tool_result,
}


def translate_item(item: CodexItem) -> AssistantMessage:
    """Render one item as a single-block assistant message."""
    renderer = _ITEM_RENDERERS.get(item.kind, _fallback)
    return AssistantMessage(content=[renderer(item)])


def _error_text(event: dict[str, Any]) -> str:
    for container in (event.get("data"), event, event.get("error")):
        if isinstance(container, dict) and container.get("message"):
            return str(container["message"])
    if isinstance(event.get("error"), str):
        return event["error"]
    return "Unknown Codex error"


def translate_event(event: dict[str, Any]) -> NormalizedMessage | None:
    """Translate one Codex event; ``None`` means the event is suppressed."""
    event_type = str(event.get("type") or "")

    if event_type in _SUPPRESSED_EVENTS:
        return None

    if event_type in _ITEM_EVENTS:
        item = event.get("item")
        if not isinstance(item, dict):
            logger.debug("Codex %s event without an item payload", event_type)
            return None
        return translate_item(normalize_item(event_type, item))

    if event_type in ("error", "turn.failed"):
        return ErrorMessage(error=_error_text(event))

    if event_type == "thread.completed":
        return ResultMessage(subtype="success")

    logger.debug("Ignoring Codex event type %r", event_type)
    return None
