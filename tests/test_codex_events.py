"""Tests for translating Codex JSONL events into normalized messages."""
from __future__ import annotations

import json

import pytest

from codexlink.engine.models import (
    AssistantMessage,
    ErrorMessage,
    ResultMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from codexlink.engine.providers.codex_events import (
    normalize_item,
    translate_event,
)


def _item(event_type: str, **item) -> dict:
    return {"type": event_type, "item": item}


def _only_block(message):
    assert isinstance(message, AssistantMessage)
    assert len(message.content) == 1
    return message.content[0]


# ── Lifecycle events ────────────────────────────────────────────


@pytest.mark.parametrize("event_type", ["thread.started", "turn.started", "turn.completed"])
def test_lifecycle_events_are_suppressed(event_type: str) -> None:
    assert translate_event({"type": event_type, "thread_id": "t1"}) is None


def test_unknown_event_type_is_ignored() -> None:
    assert translate_event({"type": "session.ping"}) is None


def test_event_without_type_is_ignored() -> None:
    assert translate_event({"foo": "bar"}) is None


def test_item_event_without_item_is_ignored() -> None:
    assert translate_event({"type": "item.completed"}) is None


def test_thread_completed_is_result() -> None:
    message = translate_event({"type": "thread.completed"})
    assert isinstance(message, ResultMessage)
    assert message.subtype == "success"
    assert message.to_dict() == {"type": "result", "subtype": "success"}


def test_error_with_data_message() -> None:
    message = translate_event({"type": "error", "data": {"message": "Rate limit exceeded"}})
    assert isinstance(message, ErrorMessage)
    assert message.error == "Rate limit exceeded"


def test_error_with_top_level_message() -> None:
    assert translate_event({"type": "error", "message": "boom"}).error == "boom"


def test_turn_failed_with_nested_error() -> None:
    message = translate_event({"type": "turn.failed", "error": {"message": "stream closed"}})
    assert isinstance(message, ErrorMessage)
    assert message.error == "stream closed"


def test_error_without_message() -> None:
    assert translate_event({"type": "error"}).error == "Unknown Codex error"


# ── Item kinds ──────────────────────────────────────────────────


def test_reasoning_becomes_thinking() -> None:
    block = _only_block(translate_event(
        _item("item.completed", type="reasoning", text="Let me analyze this...")
    ))
    assert isinstance(block, ThinkingBlock)
    assert block.thinking == "Let me analyze this..."


def test_agent_message_uses_content() -> None:
    block = _only_block(translate_event(
        _item("item.completed", type="agent_message", content="Here is the result")
    ))
    assert isinstance(block, TextBlock)
    assert block.text == "Here is the result"


def test_agent_message_falls_back_to_text() -> None:
    block = _only_block(translate_event(
        _item("item.completed", type="agent_message", text="Done.")
    ))
    assert block.text == "Done."


def test_message_item() -> None:
    block = _only_block(translate_event(
        _item("item.completed", type="message", text="Hello from Codex")
    ))
    assert block.text == "Hello from Codex"


def test_legacy_item_type_field() -> None:
    block = _only_block(translate_event(
        _item("item.completed", item_type="message", text="legacy")
    ))
    assert isinstance(block, TextBlock)
    assert block.text == "legacy"


def test_command_started_is_bash_tool_use() -> None:
    block = _only_block(translate_event(
        _item("item.started", type="command_execution", command="ls -la")
    ))
    assert isinstance(block, ToolUseBlock)
    assert block.name == "bash"
    assert block.input == {"command": "ls -la"}


def test_command_completed_renders_fences() -> None:
    block = _only_block(translate_event(_item(
        "item.completed",
        type="command_execution",
        command="ls",
        aggregated_output="file1.txt\nfile2.txt\n",
    )))
    assert isinstance(block, TextBlock)
    assert "```bash\nls\n```" in block.text
    assert "file1.txt\nfile2.txt" in block.text


def test_command_completed_without_output() -> None:
    block = _only_block(translate_event(
        _item("item.completed", type="command_execution", command="true")
    ))
    assert block.text == "```bash\ntrue\n```"


def test_todo_list_started() -> None:
    block = _only_block(translate_event(_item(
        "item.started",
        type="todo_list",
        items=[
            {"text": "Task 1", "status": "completed"},
            {"text": "Task 2", "status": "pending"},
        ],
    )))
    assert "**Todo List:**" in block.text
    assert "1. [✓] Task 1" in block.text
    assert "2. [ ] Task 2" in block.text


def test_todo_list_updated() -> None:
    block = _only_block(translate_event(_item(
        "item.updated",
        type="todo_list",
        items=[{"text": "Task 1", "completed": True}],
    )))
    assert block.text.startswith("**Updated Todo List:**")
    assert "1. [✓] Task 1" in block.text


def test_todo_list_plain_strings() -> None:
    block = _only_block(translate_event(
        _item("item.started", type="todo_list", items=["Write tests"])
    ))
    assert "1. Write tests" in block.text


def test_file_change() -> None:
    block = _only_block(translate_event(_item(
        "item.completed",
        type="file_change",
        changes=[{"path": "src/app.py", "kind": "update"}, {"path": "README.md"}],
    )))
    assert "**File Changes:**" in block.text
    assert "Modified: src/app.py" in block.text
    assert "Modified: README.md" in block.text


def test_tool_use_item() -> None:
    block = _only_block(translate_event(_item(
        "item.started", type="tool_use", tool="read_file", input={"path": "/tmp/x"},
    )))
    assert isinstance(block, ToolUseBlock)
    assert block.name == "read_file"
    assert block.input == {"path": "/tmp/x"}


def test_tool_result_item() -> None:
    block = _only_block(translate_event(_item(
        "item.completed", type="tool_result", tool_use_id="call_1", output="42",
    )))
    assert isinstance(block, ToolResultBlock)
    assert block.tool_use_id == "call_1"
    assert block.content == "42"


def test_unknown_kind_with_text() -> None:
    block = _only_block(translate_event(
        _item("item.completed", type="web_search", text="searched")
    ))
    assert block.text == "searched"


def test_unknown_kind_without_text_renders_payload() -> None:
    block = _only_block(translate_event(
        _item("item.completed", type="web_search", query="python asyncio")
    ))
    assert json.loads(block.text) == {"type": "web_search", "query": "python asyncio"}


# ── normalize_item ──────────────────────────────────────────────


def test_normalize_phase_from_event_name() -> None:
    assert normalize_item("item.updated", {"type": "message"}).phase == "updated"


def test_normalize_output_prefers_aggregated() -> None:
    item = normalize_item("item.completed", {
        "type": "command_execution", "aggregated_output": "a", "output": "b",
    })
    assert item.output == "a"


def test_normalize_drops_non_list_entries() -> None:
    item = normalize_item("item.started", {"type": "todo_list", "items": "nope"})
    assert item.entries == []


def test_assistant_message_to_dict() -> None:
    message = translate_event(_item("item.completed", type="message", text="hi"))
    assert message.to_dict() == {
        "type": "assistant",
        "message": {"role": "assistant", "content": [{"text": "hi", "type": "text"}]},
    }
