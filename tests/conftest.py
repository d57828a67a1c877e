"""Shared fixtures for the Prompt Optimiser tests.

Antagon Inc. | CAGE: 17E75
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from prompt_optimiser.backends import AnalyseBackend, BackendError
from prompt_optimiser.config import OptimiserConfig
from prompt_optimiser.metrics import metrics
from prompt_optimiser.model_client import ModelClient
from prompt_optimiser.orchestrator import AnalyseRequest, RequestOrchestrator
from prompt_optimiser.rate_limiting import SlidingWindowRateLimiter

CRITIQUE_PAYLOAD = {
    "overallAssessment": "The audience is undefined.",
    "questions": [
        {"id": "q1", "question": "Who reads it?", "why": "Tone", "category": "audience"},
        {"id": "q2", "question": "How long?", "why": "Scope", "category": "scope"},
        {"id": "q3", "question": "What format?", "why": "Output", "category": "format"},
        {"id": "q4", "question": "How often?", "why": "Cadence", "category": "constraints"},
        {"id": "q5", "question": "Which sources?", "why": "Grounding", "category": "assumptions"},
    ],
    "concerns": ["No success criteria"],
}

GENERATE_PAYLOAD = {
    "generatedPrompt": "<role>You write newsletters.</role>",
    "assumptions": [{"assumption": "English", "reason": "Not stated"}],
    "structure": [{"section": "role", "purpose": "Sets voice"}],
    "suggestions": ["Add an example issue", "Name the sign-off"],
    "summary": "A newsletter prompt.",
}


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeModelClient(ModelClient):
    """Returns queued completions or raises queued errors."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def complete(self, system_prompt: str, user_message: str) -> str:
        self.calls.append((system_prompt, user_message))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return response

    async def aclose(self) -> None:
        self.closed = True


class FakeBackend(AnalyseBackend):
    """Scripted backend for session tests.

    Each queued item is a payload dict, an exception to raise, or an
    ``asyncio.Event`` to wait on before taking the next item.
    """

    def __init__(self, *items: Any):
        self.items = list(items)
        self.requests: list[AnalyseRequest] = []

    def push(self, *items: Any) -> None:
        self.items.extend(items)

    async def analyse(self, request: AnalyseRequest) -> dict[str, Any]:
        self.requests.append(request)
        item = self.items.pop(0)
        if isinstance(item, asyncio.Event):
            await item.wait()
            item = self.items.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return SlidingWindowRateLimiter(limit=20, window_ms=60_000, clock=clock)


@pytest.fixture
def config():
    return OptimiserConfig(anthropic_api_key="test-key", debounce_seconds=0.05)


@pytest.fixture
def model_client():
    return FakeModelClient(json.dumps(CRITIQUE_PAYLOAD))


@pytest.fixture
def orchestrator(model_client, limiter, config):
    return RequestOrchestrator(model_client, limiter, config)


@pytest.fixture
def backend_failure():
    return BackendError("Failed to process request. Please try again.", "upstream-failure")


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()
