"""Tests for the analyse backends.

Antagon Inc. | CAGE: 17E75
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from prompt_optimiser.backends import BackendError, HttpAnalyseBackend, OrchestratorBackend
from prompt_optimiser.orchestrator import AnalyseRequest, RequestOrchestrator

from conftest import CRITIQUE_PAYLOAD

REQUEST = AnalyseRequest(
    mode="critique",
    vendor="claude",
    model="Sonnet 4.5",
    input_text="A weekly newsletter",
    entry_mode="idea",
)


def make_backend(handler) -> HttpAnalyseBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return HttpAnalyseBackend("http://test", client=client)


class TestOrchestratorBackend:
    """Tests for the in-process backend."""

    @pytest.mark.asyncio
    async def test_success(self, orchestrator):
        backend = OrchestratorBackend(orchestrator, {"x-real-ip": "198.51.100.1"})
        assert await backend.analyse(REQUEST) == CRITIQUE_PAYLOAD

    @pytest.mark.asyncio
    async def test_errors_become_backend_errors(self, limiter, config):
        backend = OrchestratorBackend(RequestOrchestrator(None, limiter, config))

        with pytest.raises(BackendError) as exc_info:
            await backend.analyse(REQUEST)

        assert exc_info.value.category == "server-misconfiguration"
        assert exc_info.value.message == "Server configuration error. Please try again later."

    @pytest.mark.asyncio
    async def test_unexpected_errors_become_upstream_failures(self):
        orchestrator = MagicMock()
        orchestrator.handle = AsyncMock(side_effect=KeyError("boom"))
        backend = OrchestratorBackend(orchestrator)

        with pytest.raises(BackendError) as exc_info:
            await backend.analyse(REQUEST)

        assert exc_info.value.category == "upstream-failure"
        assert exc_info.value.message == "Failed to process request. Please try again."


class TestHttpAnalyseBackend:
    """Tests for the HTTP backend against a mock transport."""

    @pytest.mark.asyncio
    async def test_posts_camel_case_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=CRITIQUE_PAYLOAD)

        backend = make_backend(handler)
        result = await backend.analyse(REQUEST)

        assert result == CRITIQUE_PAYLOAD
        assert seen["path"] == "/api/analyse"
        assert seen["body"] == {
            "mode": "critique",
            "vendor": "claude",
            "model": "Sonnet 4.5",
            "inputText": "A weekly newsletter",
            "entryMode": "idea",
        }

    @pytest.mark.asyncio
    async def test_error_body_mapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                429,
                json={
                    "error": "Too many requests. Please wait a moment and try again.",
                    "category": "rate-limited",
                },
            )

        with pytest.raises(BackendError) as exc_info:
            await make_backend(handler).analyse(REQUEST)

        assert exc_info.value.category == "rate-limited"
        assert exc_info.value.message.startswith("Too many requests")

    @pytest.mark.asyncio
    async def test_error_without_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(BackendError) as exc_info:
            await make_backend(handler).analyse(REQUEST)

        assert exc_info.value.category is None
        assert exc_info.value.message == "Failed to process request. Please try again."

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BackendError) as exc_info:
            await make_backend(handler).analyse(REQUEST)

        assert exc_info.value.category == "upstream-failure"

    @pytest.mark.asyncio
    async def test_non_object_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[1, 2, 3])

        with pytest.raises(BackendError) as exc_info:
            await make_backend(handler).analyse(REQUEST)

        assert exc_info.value.category == "parse-failure"

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})),
            base_url="http://test",
        )
        backend = HttpAnalyseBackend("http://test", client=client)

        await backend.aclose()
        assert client.is_closed is False
        await client.aclose()
