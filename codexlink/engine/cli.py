"""CLI entry point for the Codex bridge.

Usage:
    codexlink status
    codexlink models
    codexlink query "Explain this repository" --cwd .
    codexlink mcp add /path/to/mcp-server.js --project .
    codexlink mcp remove --project .
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from .config import BridgeConfig
from .models import (
    AssistantMessage,
    ErrorMessage,
    FullStatus,
    QueryRequest,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from .providers import CodexCliDetector, CodexConfigManager, CodexProvider
from .yaml_config import apply_settings, load_settings

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codexlink",
        description="Run the OpenAI Codex CLI and manage its configuration",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="YAML settings file (default: ~/.codexlink/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Show installation and auth status")
    status.add_argument("--json", action="store_true", help="Print raw JSON")

    sub.add_parser("models", help="List supported Codex models")

    query = sub.add_parser("query", help="Run a prompt through codex exec")
    query.add_argument("prompt", help="The prompt to send")
    query.add_argument("--model", default=None, help="Model id (default: from config)")
    query.add_argument("--system", default=None, help="System prompt to prepend")
    query.add_argument("--cwd", default=".", help="Working directory for Codex")
    query.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Wall-clock budget for the run (default: 30000)",
    )

    mcp = sub.add_parser("mcp", help="Manage the codexlink MCP server entry")
    mcp_sub = mcp.add_subparsers(dest="mcp_command", required=True)
    add = mcp_sub.add_parser("add", help="Register the MCP tool server")
    add.add_argument("server_path", help="Path to the MCP server script")
    add.add_argument("--project", default=".", help="Project directory")
    remove = mcp_sub.add_parser("remove", help="Unregister the MCP tool server")
    remove.add_argument("--project", default=".", help="Project directory")

    return parser


def _render_status(console: Console, status: FullStatus) -> None:
    info = status.status
    table = Table(title="Codex CLI", show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")
    table.add_row("Status", info.status.value)
    table.add_row("Path", info.path or "-")
    table.add_row("Version", info.version or "-")
    table.add_row("Install method", info.method or "-")
    table.add_row(
        "Auth",
        f"{status.auth.method.value} ({'ok' if status.auth.authenticated else 'missing'})",
    )
    console.print(table)
    console.print(info.recommendation)
    if info.install_commands:
        for platform, command in info.install_commands.items():
            console.print(Text.assemble((f"  {platform}: ", "dim"), command))


def _render_message(console: Console, message: object) -> None:
    if isinstance(message, ErrorMessage):
        console.print(Text(f"error: {message.error}", style="bold red"))
        return
    if not isinstance(message, AssistantMessage):
        return
    for block in message.content:
        if isinstance(block, TextBlock):
            console.print(Markdown(block.text))
        elif isinstance(block, ThinkingBlock):
            console.print(Text(block.thinking, style="italic dim"))
        elif isinstance(block, ToolUseBlock):
            console.print(Text(f"▶ {block.name} {json.dumps(block.input)}", style="cyan"))
        elif isinstance(block, ToolResultBlock):
            console.print(Text(str(block.content), style="dim"))


async def _run_query(console: Console, provider: CodexProvider, args: argparse.Namespace) -> int:
    request = QueryRequest(
        prompt=args.prompt,
        cwd=os.path.abspath(args.cwd),
        model=args.model,
        system_prompt=args.system,
        timeout_ms=args.timeout_ms,
    )
    exit_code = 0
    async for message in provider.execute_query(request):
        if isinstance(message, ErrorMessage):
            exit_code = 1
        _render_message(console, message)
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    config = BridgeConfig.from_env()
    config = apply_settings(config, load_settings(args.settings))

    level = logging.DEBUG if args.verbose else getattr(
        logging, config.log_level.upper(), logging.INFO,
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    console = Console()

    if args.command == "status":
        status = CodexCliDetector(config).get_full_status()
        if args.json:
            console.print_json(data={
                "status": status.status.status.value,
                "installed": status.installation.installed,
                "path": status.installation.path,
                "version": status.installation.version,
                "authenticated": status.auth.authenticated,
                "auth_method": status.auth.method.value,
            })
        else:
            _render_status(console, status)
        return 0

    if args.command == "models":
        table = Table(title="Codex models")
        for column in ("id", "name", "vision", "default"):
            table.add_column(column)
        for model in CodexProvider(config).get_available_models():
            table.add_row(
                model.id, model.name,
                "yes" if model.supports_vision else "no",
                "*" if model.default else "",
            )
        console.print(table)
        return 0

    if args.command == "query":
        try:
            return asyncio.run(_run_query(console, CodexProvider(config), args))
        except KeyboardInterrupt:
            console.print("\nInterrupted.")
            return 130

    manager = CodexConfigManager(config)
    project = os.path.abspath(args.project)
    if args.mcp_command == "add":
        path = manager.configure_mcp_server(project, os.path.abspath(args.server_path))
        console.print(f"Registered MCP server in {path}")
    else:
        manager.remove_mcp_server(project)
        console.print("Removed MCP server entry (if present)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
