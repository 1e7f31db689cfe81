"""Abstract base for execution providers.

Each provider wraps an external agent runtime (currently the OpenAI
Codex CLI). Callers submit a QueryRequest to execute_query() and
consume a stream of normalized messages; the provider never raises
at that boundary.
"""
from __future__ import annotations

import abc
from collections.abc import AsyncIterator

from ..models import ModelDefinition, NormalizedMessage, ProviderInstallation, QueryRequest


class Provider(abc.ABC):
    """Abstract provider interface."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider name (e.g. 'codex')."""

    @abc.abstractmethod
    def execute_query(self, request: QueryRequest) -> AsyncIterator[NormalizedMessage]:
        """Run one query and stream normalized messages.

        Failures are reported as an ``ErrorMessage`` in the stream,
        never raised.
        """

    @abc.abstractmethod
    async def detect_installation(self) -> ProviderInstallation:
        """Report whether the runtime is installed and authenticated."""

    @abc.abstractmethod
    def get_available_models(self) -> list[ModelDefinition]:
        """Models this provider can run."""

    def supports_feature(self, feature: str) -> bool:
        """Whether the provider supports a named capability.

        Default: nothing. Override in providers with capabilities.
        """
        return False

    async def shutdown(self) -> None:
        """Clean up resources (e.g. kill subprocess).

        Default no-op. Override in providers that manage
        long-lived subprocesses.
        """
        return None
