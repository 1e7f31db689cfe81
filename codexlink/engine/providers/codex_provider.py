"""OpenAI Codex CLI provider.

Runs ``codex exec --json`` once per query and translates its JSONL
event stream into normalized messages. Each invocation is stateless,
so prior turns are replayed into the prompt.

Query lifecycle: preflight auth -> spawn -> stream -> done | failed.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from ..config import API_KEY_ENV, BridgeConfig
from ..models import (
    AuthMethod,
    AuthStatus,
    ConversationTurn,
    ErrorMessage,
    InstallationStatus,
    ModelDefinition,
    NormalizedMessage,
    ProviderInstallation,
    QueryRequest,
    ResultMessage,
)
from ..subprocess_jsonl import SpawnFn, spawn_jsonl_process
from .base import Provider
from .codex_config import CodexConfigManager
from .codex_detector import CLI_NAME, CodexCliDetector
from .codex_events import translate_event

logger = logging.getLogger(__name__)

PROVIDER_ID = "openai-codex"
SYSTEM_PROMPT_SEPARATOR = "---"
NOT_AUTHENTICATED_MESSAGE = (
    "Codex CLI is not authenticated. Run 'codex login' or set "
    f"{API_KEY_ENV} to use Codex models."
)

# "thinking" is absent even though reasoning items become thinking blocks.
SUPPORTED_FEATURES = frozenset({"tools", "text", "vision", "mcp", "cli"})

_MODEL_CATALOG: list[dict[str, Any]] = [
    {
        "id": "gpt-5.2",
        "name": "GPT-5.2 (Codex)",
        "description": "Latest GPT-5.2 through the Codex CLI.",
        "tier": "premium",
        "supports_vision": True,
        "default": True,
    },
    {
        "id": "gpt-5.1-codex-max",
        "name": "GPT-5.1 Codex Max",
        "description": "Long-horizon agentic coding model.",
        "tier": "premium",
        "supports_vision": True,
    },
    {
        "id": "gpt-5.1-codex",
        "name": "GPT-5.1 Codex",
        "description": "GPT-5.1 tuned for agentic coding.",
        "tier": "standard",
        "supports_vision": True,
    },
    {
        "id": "gpt-5.1-codex-mini",
        "name": "GPT-5.1 Codex Mini",
        "description": "Smaller, faster Codex model.",
        "tier": "basic",
        "supports_vision": False,
    },
    {
        "id": "gpt-5.1",
        "name": "GPT-5.1",
        "description": "General-purpose GPT-5.1.",
        "tier": "standard",
        "supports_vision": True,
    },
]


def extract_prompt_text(prompt: str | list[dict[str, Any]]) -> str:
    """Join the text parts of a multi-part prompt; images are dropped."""
    if isinstance(prompt, str):
        return prompt
    parts = [
        str(part.get("text", ""))
        for part in prompt
        if isinstance(part, dict) and part.get("type") == "text"
    ]
    return "\n".join(parts)


def build_prompt(
    prompt: str | list[dict[str, Any]],
    *,
    system_prompt: str | None = None,
    conversation_history: list[ConversationTurn] | None = None,
) -> str:
    """Assemble the single prompt string handed to ``codex exec``."""
    current = extract_prompt_text(prompt)

    if conversation_history:
        lines = ["Previous conversation:", ""]
        for turn in conversation_history:
            speaker = "User" if turn.role == "user" else "Assistant"
            lines.append(f"{speaker}: {turn.content}")
            lines.append("")
        lines.append("Current request:")
        lines.append(current)
        current = "\n".join(lines)

    if system_prompt:
        return f"{system_prompt}\n\n{SYSTEM_PROMPT_SEPARATOR}\n\n{current}"
    return current


class CodexProvider(Provider):
    """Provider backed by the OpenAI Codex CLI.

    Auth: works with ``codex login`` tokens by default. When only an
    API key is available it is passed to the subprocess environment;
    it is never injected over a verified CLI login.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        detector: CodexCliDetector | None = None,
        config_manager: CodexConfigManager | None = None,
        spawn: SpawnFn | None = None,
    ) -> None:
        self._config = config or BridgeConfig.from_env()
        self._detector = detector or CodexCliDetector(self._config)
        self._config_manager = config_manager or CodexConfigManager(self._config)
        self._spawn = spawn or spawn_jsonl_process
        self._cli_path: str | None = None

    @property
    def name(self) -> str:
        return "codex"

    def set_config(self, *, cli_path: str | None = None) -> None:
        """Pin the executable used for subsequent queries."""
        self._cli_path = cli_path

    def _find_codex_path(self, installation: InstallationStatus) -> str:
        if self._cli_path:
            return self._cli_path
        if self._config.cli_path_override:
            return self._config.cli_path_override
        if installation.installed and installation.path:
            return installation.path
        return CLI_NAME

    async def _detect(self) -> tuple[InstallationStatus, AuthStatus]:
        """Run the blocking detector checks off the event loop, once each."""
        installation = await asyncio.to_thread(self._detector.detect_installation)
        auth = await asyncio.to_thread(self._detector.check_auth, installation)
        return installation, auth

    def _build_env(self, auth: AuthStatus) -> dict[str, str]:
        """Subprocess env overrides; the API key only when no CLI login exists."""
        env: dict[str, str] = {}
        if self._config.api_key and auth.method not in (
            AuthMethod.CLI_VERIFIED, AuthMethod.CLI_TOKENS,
        ):
            env[API_KEY_ENV] = self._config.api_key
        return env

    def _get_mcp_server_path(self) -> str | None:
        """Location of the bundled MCP tool server, if one is deployed."""
        return self._config.mcp_server_path

    async def execute_query(self, request: QueryRequest) -> AsyncIterator[NormalizedMessage]:
        """Run ``codex exec`` for *request* and stream normalized messages.

        Always ends with a ``result`` message after a clean exit, even
        when the CLI already reported ``thread.completed``. A failure
        while streaming yields one ``error`` message and nothing after.
        """
        installation, auth = await self._detect()
        command = self._find_codex_path(installation)
        if not auth.authenticated and not self._config.api_key:
            logger.warning("Codex query refused: no credentials found")
            yield ErrorMessage(error=NOT_AUTHENTICATED_MESSAGE)
            return

        if request.mcp_servers:
            server_path = self._get_mcp_server_path()
            if server_path:
                try:
                    await asyncio.to_thread(
                        self._config_manager.configure_mcp_server, request.cwd, server_path,
                    )
                except Exception as exc:
                    logger.warning("Could not register MCP server for %s: %s", request.cwd, exc)

        model = request.model or self._config.default_model
        prompt = build_prompt(
            request.prompt,
            system_prompt=request.system_prompt,
            conversation_history=request.conversation_history,
        )
        args = ["exec", "--model", model, "--json", "--full-auto", prompt]
        timeout_ms = request.timeout_ms if request.timeout_ms is not None else self._config.timeout_ms
        logger.info(
            "Running %s exec (model=%s, auth=%s, cwd=%s)",
            command, model, auth.method.value, request.cwd,
        )

        stream = self._spawn(
            command=command,
            args=args,
            cwd=request.cwd,
            env=self._build_env(auth),
            abort_event=request.abort_event,
            timeout_ms=timeout_ms,
        )
        try:
            async for event in stream:
                message = translate_event(event)
                if message is not None:
                    yield message
        except Exception as exc:
            logger.exception("Codex stream failed for %s", command)
            yield ErrorMessage(error=str(exc) or type(exc).__name__)
            return
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        yield ResultMessage(subtype="success")

    async def detect_installation(self) -> ProviderInstallation:
        installation, auth = await self._detect()
        return ProviderInstallation(
            installed=installation.installed,
            path=installation.path,
            version=installation.version,
            method=installation.method,
            has_api_key=auth.has_env_key or auth.authenticated,
            authenticated=auth.authenticated,
        )

    def get_available_models(self) -> list[ModelDefinition]:
        return [
            ModelDefinition(
                id=entry["id"],
                name=entry["name"],
                model_string=entry["id"],
                provider=PROVIDER_ID,
                description=entry["description"],
                context_window=256000,
                max_output_tokens=32000,
                supports_vision=entry["supports_vision"],
                supports_tools=True,
                tier=entry["tier"],
                default=entry.get("default", False),
            )
            for entry in _MODEL_CATALOG
        ]

    def supports_feature(self, feature: str) -> bool:
        return feature in SUPPORTED_FEATURES
