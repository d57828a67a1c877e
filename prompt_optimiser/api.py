"""FastAPI server for the Prompt Optimiser.

Exposes the analyse pipeline over HTTP. Every failure is returned as
``{"error": ..., "category": ...}`` with the status code of its category.

Example:
    >>> uvicorn prompt_optimiser.api:app --host 0.0.0.0 --port 8000

    curl -X POST http://localhost:8000/api/analyse \
        -H "Content-Type: application/json" \
        -d '{"mode": "critique", "vendor": "claude", "model": "Sonnet 4.5",
             "inputText": "A weekly team newsletter"}'

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from prompt_optimiser import __version__
from prompt_optimiser.config import OptimiserConfig, load_config
from prompt_optimiser.errors import InvalidRequestError, OptimiserError
from prompt_optimiser.logging_config import LogContext, setup_from_env
from prompt_optimiser.metrics import metrics
from prompt_optimiser.model_client import AnthropicModelClient, ModelClient
from prompt_optimiser.orchestrator import AnalyseRequest, RequestOrchestrator
from prompt_optimiser.rate_limiting import SlidingWindowRateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(protected_namespaces=())

    status: str
    version: str
    model_configured: bool
    model_name: str
    active_identities: int
    uptime_seconds: float


def _error_response(error: OptimiserError) -> JSONResponse:
    headers = {}
    retry_after = getattr(error, "retry_after", 0)
    if retry_after:
        headers["Retry-After"] = str(max(1, round(retry_after)))
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


def create_app(
    config: OptimiserConfig | None = None,
    model_client: ModelClient | None = None,
    rate_limiter: SlidingWindowRateLimiter | None = None,
) -> FastAPI:
    """Build the HTTP application.

    Args:
        config: Service configuration; loaded from the environment if None.
        model_client: Completion client. Built from ``ANTHROPIC_API_KEY``
            when omitted; stays None (every request fails as misconfigured)
            when no key is set.
        rate_limiter: Limiter shared by all requests.

    Returns:
        Configured FastAPI app.
    """
    config = config or load_config()

    if model_client is None and config.model_configured:
        model_client = AnthropicModelClient(
            api_key=config.anthropic_api_key,
            model=config.anthropic_model,
            max_tokens=config.max_tokens,
            timeout=config.request_timeout,
        )
    if rate_limiter is None:
        rate_limiter = get_rate_limiter(config.rate_limit, config.rate_window_ms)

    orchestrator = RequestOrchestrator(model_client, rate_limiter, config)
    start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Prompt Optimiser API server...")
        if model_client is None:
            logger.warning("ANTHROPIC_API_KEY not set; analyse requests will fail")
        yield
        if model_client is not None:
            await model_client.aclose()
        logger.info("Shutting down Prompt Optimiser API server...")

    app = FastAPI(
        title="Prompt Optimiser API",
        description="Critique ideas and generate vendor-specific prompts",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests."""
        start = time.perf_counter()

        response = await call_next(request)

        latency = (time.perf_counter() - start) * 1000
        logger.debug(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Latency: {latency:.1f}ms"
        )
        return response

    @app.post("/api/analyse")
    async def analyse(request: Request) -> Any:
        """Critique, optimise or generate, depending on ``mode``."""
        try:
            body = await request.json()
            analyse_request = AnalyseRequest.model_validate(body)
        except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError):
            return _error_response(InvalidRequestError("Invalid request body"))

        with LogContext(path="/api/analyse"):
            try:
                return await orchestrator.handle(analyse_request, request.headers)
            except OptimiserError as e:
                return _error_response(e)
            except Exception as e:
                logger.error(f"Unhandled error in analyse: {type(e).__name__}")
                return _error_response(OptimiserError())

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Report liveness and whether the model provider is configured."""
        return HealthResponse(
            status="healthy" if model_client is not None else "degraded",
            version=__version__,
            model_configured=model_client is not None,
            model_name=config.anthropic_model,
            active_identities=rate_limiter.get_stats()["active_keys"],
            uptime_seconds=time.time() - start_time,
        )

    @app.get("/metrics", response_class=PlainTextResponse)
    async def prometheus_metrics() -> str:
        """Expose Prometheus metrics in text format."""
        return metrics.get_prometheus_metrics()

    return app


def _build_default_app() -> FastAPI:
    setup_from_env()
    return create_app(load_config(os.environ.get("PROMPTOPT_CONFIG")))


app = _build_default_app()
