"""Tests for the HTTP API.

Antagon Inc. | CAGE: 17E75
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from prompt_optimiser.api import create_app
from prompt_optimiser.config import OptimiserConfig
from prompt_optimiser.errors import UpstreamAuthError, UpstreamFailure
from prompt_optimiser.rate_limiting import SlidingWindowRateLimiter

from conftest import CRITIQUE_PAYLOAD, FakeModelClient

BODY = {
    "mode": "critique",
    "vendor": "claude",
    "model": "Sonnet 4.5",
    "inputText": "A weekly newsletter for the engineering team",
}
HEADERS = {"X-Forwarded-For": "203.0.113.7"}


def make_client(config, limiter, *responses) -> TestClient:
    model_client = FakeModelClient(*responses) if responses else None
    return TestClient(create_app(config, model_client=model_client, rate_limiter=limiter))


@pytest.fixture
def client(config, limiter):
    return make_client(config, limiter, json.dumps(CRITIQUE_PAYLOAD))


class TestAnalyseEndpoint:
    """Tests for POST /api/analyse."""

    def test_success(self, client):
        response = client.post("/api/analyse", json=BODY, headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == CRITIQUE_PAYLOAD

    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"vendor": "llama"}, "Invalid vendor"),
            ({"mode": "summarise"}, "Invalid mode"),
            ({"inputText": ""}, "Missing required fields"),
            ({"inputText": "x" * 50_001}, "Input too long (max 50,000 characters)"),
        ],
    )
    def test_validation_errors(self, client, overrides, reason):
        response = client.post("/api/analyse", json={**BODY, **overrides}, headers=HEADERS)

        assert response.status_code == 400
        assert response.json() == {"error": reason, "category": "invalid-request"}

    def test_missing_field(self, client):
        body = {k: v for k, v in BODY.items() if k != "model"}
        response = client.post("/api/analyse", json=body, headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields"

    def test_malformed_json(self, client):
        response = client.post(
            "/api/analyse",
            content=b"{not json",
            headers={**HEADERS, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body", "category": "invalid-request"}

    def test_wrong_field_type(self, client):
        response = client.post("/api/analyse", json={**BODY, "inputText": 42}, headers=HEADERS)
        assert response.status_code == 400

    def test_rate_limited(self, config, clock):
        limiter = SlidingWindowRateLimiter(limit=2, window_ms=60_000, clock=clock)
        client = make_client(config, limiter, json.dumps(CRITIQUE_PAYLOAD))

        for _ in range(2):
            assert client.post("/api/analyse", json=BODY, headers=HEADERS).status_code == 200

        response = client.post("/api/analyse", json=BODY, headers=HEADERS)
        assert response.status_code == 429
        assert response.json() == {
            "error": "Too many requests. Please wait a moment and try again.",
            "category": "rate-limited",
        }
        assert response.headers["Retry-After"] == "60"

        # A different client is unaffected
        other = client.post("/api/analyse", json=BODY, headers={"X-Forwarded-For": "203.0.113.8"})
        assert other.status_code == 200

    def test_not_configured(self, limiter):
        client = make_client(OptimiserConfig(), limiter)

        response = client.post("/api/analyse", json=BODY, headers=HEADERS)
        assert response.status_code == 500
        assert response.json() == {
            "error": "Server configuration error. Please try again later.",
            "category": "server-misconfiguration",
        }

    def test_upstream_auth_error(self, config, limiter):
        client = make_client(config, limiter, UpstreamAuthError())

        response = client.post("/api/analyse", json=BODY, headers=HEADERS)
        assert response.status_code == 500
        assert response.json()["category"] == "server-misconfiguration"

    def test_upstream_rate_limit(self, config, limiter):
        client = make_client(config, limiter, UpstreamFailure(status=429))

        response = client.post("/api/analyse", json=BODY, headers=HEADERS)
        assert response.status_code == 429
        assert response.json() == {
            "error": "API rate limit exceeded. Please try again in a few minutes.",
            "category": "upstream-failure",
        }

    def test_upstream_transport_failure(self, config, limiter):
        client = make_client(config, limiter, UpstreamFailure())

        response = client.post("/api/analyse", json=BODY, headers=HEADERS)
        assert response.status_code == 502
        assert response.json()["category"] == "upstream-failure"

    def test_parse_failure(self, config, limiter):
        client = make_client(config, limiter, "Sorry, no JSON here.")

        response = client.post("/api/analyse", json=BODY, headers=HEADERS)
        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to parse response. Please try again.",
            "category": "parse-failure",
        }

    def test_unexpected_client_error_is_upstream_failure(self, config, limiter):
        client = make_client(config, limiter, RuntimeError("internal detail"))

        response = client.post("/api/analyse", json=BODY, headers=HEADERS)
        assert response.status_code == 502
        assert response.json() == {
            "error": "Failed to process request. Please try again.",
            "category": "upstream-failure",
        }
        assert "internal detail" not in response.text

    def test_unexpected_error_is_generic(self, config, limiter):
        app = create_app(config, model_client=FakeModelClient("{}"), rate_limiter=limiter)
        app.state.orchestrator.handle = AsyncMock(side_effect=RuntimeError("internal detail"))

        response = TestClient(app).post("/api/analyse", json=BODY, headers=HEADERS)
        assert response.status_code == 500
        assert "internal detail" not in response.text


class TestHealthEndpoint:
    """Tests for GET /health."""

    def test_healthy(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["model_configured"] is True
        assert data["model_name"] == "claude-sonnet-4-20250514"
        assert data["uptime_seconds"] >= 0

    def test_degraded_without_model(self, limiter):
        data = make_client(OptimiserConfig(), limiter).get("/health").json()

        assert data["status"] == "degraded"
        assert data["model_configured"] is False

    def test_active_identities(self, client):
        client.post("/api/analyse", json=BODY, headers=HEADERS)
        assert client.get("/health").json()["active_identities"] == 1


class TestMetricsEndpoint:
    """Tests for GET /metrics."""

    def test_prometheus_format(self, client):
        client.post("/api/analyse", json=BODY, headers=HEADERS)

        response = client.get("/metrics")
        assert response.status_code == 200
        assert 'promptopt_requests_total{mode="critique",status="success"} 1' in response.text
        assert "# TYPE promptopt_request_latency_seconds histogram" in response.text
