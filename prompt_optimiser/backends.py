"""Analyse backends used by the session.

A session never talks to the model provider itself. It sends an
``AnalyseRequest`` through a backend and gets back the parsed JSON object.
Two backends ship:

- ``OrchestratorBackend``: runs the orchestrator in-process.
- ``HttpAnalyseBackend``: posts to a running service's ``/api/analyse``.

Both raise ``BackendError`` for every failure so the session can treat
them uniformly.

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

import httpx

from prompt_optimiser.errors import GENERIC_RETRY_ERROR, FailureCategory, OptimiserError
from prompt_optimiser.orchestrator import AnalyseRequest, RequestOrchestrator

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """An analyse call failed.

    Attributes:
        message: User-facing error text.
        category: Failure category reported by the service, when known.
    """

    def __init__(self, message: str, category: str | None = None):
        self.message = message
        self.category = category
        super().__init__(message)


class AnalyseBackend(ABC):
    """Opaque remote call for critique, optimise and generate."""

    @abstractmethod
    async def analyse(self, request: AnalyseRequest) -> dict[str, Any]:
        """Run one analyse call.

        Raises:
            BackendError: On any failure.
        """

    async def aclose(self) -> None:
        """Release resources held by the backend."""


class OrchestratorBackend(AnalyseBackend):
    """Calls a ``RequestOrchestrator`` directly.

    Args:
        orchestrator: Orchestrator to delegate to.
        headers: Headers presented for identity resolution.
    """

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        headers: Mapping[str, str] | None = None,
    ):
        self.orchestrator = orchestrator
        self.headers = dict(headers or {})

    async def analyse(self, request: AnalyseRequest) -> dict[str, Any]:
        try:
            return await self.orchestrator.handle(request, self.headers)
        except OptimiserError as e:
            raise BackendError(e.public_message, e.category.value) from e
        except Exception as e:
            logger.error(f"In-process analyse raised {type(e).__name__}")
            raise BackendError(GENERIC_RETRY_ERROR, FailureCategory.UPSTREAM_FAILURE.value) from e


class HttpAnalyseBackend(AnalyseBackend):
    """Posts analyse calls to a Prompt Optimiser service.

    Args:
        base_url: Service root, e.g. ``http://localhost:8000``.
        timeout: Request timeout in seconds.
        client: Pre-built ``httpx.AsyncClient`` (tests).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 90.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def analyse(self, request: AnalyseRequest) -> dict[str, Any]:
        try:
            response = await self._client.post("/api/analyse", json=request.to_wire())
        except httpx.HTTPError as e:
            logger.warning(f"Analyse call failed: {type(e).__name__}")
            raise BackendError(GENERIC_RETRY_ERROR, FailureCategory.UPSTREAM_FAILURE.value) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            message = GENERIC_RETRY_ERROR
            category = None
            if isinstance(data, dict):
                message = data.get("error") or message
                category = data.get("category")
            logger.warning(f"Analyse call rejected: status={response.status_code} category={category}")
            raise BackendError(message, category)

        if not isinstance(data, dict):
            raise BackendError(
                "Failed to parse response. Please try again.",
                FailureCategory.PARSE_FAILURE.value,
            )
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["BackendError", "AnalyseBackend", "OrchestratorBackend", "HttpAnalyseBackend"]
