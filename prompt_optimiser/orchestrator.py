# ================================================================
# Prompt Optimiser - Request Orchestrator
# Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
# ================================================================

"""
Request orchestration for the analyse endpoint.

One inbound request runs as a single sequential pipeline:

    identity -> rate limit -> configuration -> validation
             -> prompt composition -> model call -> JSON extraction

The orchestrator never retries the model call; transient failures
propagate to the caller, which owns retry policy. Logs carry failure
categories and status codes only, never request text or model output.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from prompt_optimiser.config import OptimiserConfig
from prompt_optimiser.errors import (
    InvalidRequestError,
    OptimiserError,
    RateLimitedError,
    ServerMisconfigurationError,
    UpstreamFailure,
)
from prompt_optimiser.extraction import extract_json
from prompt_optimiser.guidance import GUIDANCE, VendorGuidance, render_guidance
from prompt_optimiser.identity import resolve_client_identity
from prompt_optimiser.logging_config import LogContext
from prompt_optimiser.metrics import metrics, track_request
from prompt_optimiser.model_client import ModelClient
from prompt_optimiser.prompts import SUPPORTED_MODES, build_system_prompt, build_user_message
from prompt_optimiser.rate_limiting import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


class AnalyseRequest(BaseModel):
    """Inbound analyse call.

    Every field is optional at the schema level so that missing fields are
    reported by the orchestrator's own validation, with its own messages.
    Wire names are camelCase.
    """

    model_config = ConfigDict(populate_by_name=True)

    mode: Optional[str] = None
    vendor: Optional[str] = None
    model: Optional[str] = None
    input_text: Optional[str] = Field(default=None, alias="inputText")
    additional_context: Optional[str] = Field(default=None, alias="additionalContext")
    entry_mode: Optional[str] = Field(default=None, alias="entryMode")
    problem_context: Optional[str] = Field(default=None, alias="problemContext")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RequestOrchestrator:
    """Validates analyse requests and turns model output into JSON objects.

    Args:
        model_client: Completion client, or None when the service has no
            credentials (every request then fails as misconfigured).
        rate_limiter: Shared per-identity limiter.
        config: Service configuration.
        guidance: Vendor table; defaults to the built-in one.
    """

    def __init__(
        self,
        model_client: ModelClient | None,
        rate_limiter: SlidingWindowRateLimiter,
        config: OptimiserConfig | None = None,
        guidance: Mapping[str, VendorGuidance] | None = None,
    ):
        self.model_client = model_client
        self.rate_limiter = rate_limiter
        self.config = config or OptimiserConfig()
        self.guidance = guidance if guidance is not None else GUIDANCE

    def validate(self, request: AnalyseRequest) -> None:
        """Check an inbound request.

        Raises:
            InvalidRequestError: With the first violated rule as reason.
        """
        if not (request.mode and request.vendor and request.model and request.input_text):
            raise InvalidRequestError("Missing required fields")

        if request.vendor not in self.guidance:
            raise InvalidRequestError("Invalid vendor")

        if request.mode not in SUPPORTED_MODES:
            raise InvalidRequestError("Invalid mode")

        limit = self.config.max_input_chars
        if len(request.input_text) > limit:
            raise InvalidRequestError(f"Input too long (max {limit:,} characters)")

    def compose(self, request: AnalyseRequest) -> tuple[str, str]:
        """Build the (system prompt, user message) pair for a valid request."""
        vendor = self.guidance[request.vendor]
        guidance_text = render_guidance(vendor)
        entry_mode = request.entry_mode or "idea"

        system_prompt = build_system_prompt(
            request.mode,
            vendor_name=vendor.name,
            model=request.model,
            guidance=guidance_text,
            additional_context=request.additional_context or "",
            entry_mode=entry_mode,
            problem_context=request.problem_context or "",
        )
        user_message = build_user_message(
            request.mode,
            vendor_name=vendor.name,
            model=request.model,
            input_text=request.input_text,
            entry_mode=entry_mode,
        )
        return system_prompt, user_message

    async def _complete(self, system_prompt: str, user_message: str) -> str:
        """Run the model call; anything that is not an ``OptimiserError`` becomes ``UpstreamFailure``."""
        try:
            return await self.model_client.complete(system_prompt, user_message)
        except OptimiserError:
            raise
        except (asyncio.TimeoutError, TimeoutError) as e:
            logger.warning("Model call timed out")
            raise UpstreamFailure() from e
        except Exception as e:
            logger.error(f"Model client raised {type(e).__name__}")
            raise UpstreamFailure() from e

    async def handle(
        self,
        request: AnalyseRequest,
        headers: Mapping[str, str],
    ) -> dict[str, Any]:
        """Run the full pipeline for one request.

        Raises:
            RateLimitedError: Identity over budget.
            ServerMisconfigurationError: No model client configured.
            InvalidRequestError: Request failed validation.
            UpstreamAuthError / UpstreamFailure: Model call failed.
            ExtractionError: Completion held no parsable JSON object.
        """
        identity = resolve_client_identity(headers)
        mode_label = request.mode if request.mode in SUPPORTED_MODES else "unknown"

        with LogContext(client_id=identity, mode=mode_label, vendor=request.vendor), \
                track_request(mode_label):
            try:
                self.rate_limiter.check_or_raise(identity)
            except RateLimitedError:
                metrics.inc_rate_limited()
                logger.warning("Rate limit exceeded")
                raise

            if self.model_client is None:
                logger.error("ANTHROPIC_API_KEY not configured")
                raise ServerMisconfigurationError()

            try:
                self.validate(request)
            except InvalidRequestError as e:
                logger.info(f"Rejected request: {e.reason}")
                raise

            system_prompt, user_message = self.compose(request)
            logger.info(f"Analyse request: length={len(request.input_text)}")

            try:
                raw_text = await self._complete(system_prompt, user_message)
                return extract_json(raw_text)
            except OptimiserError as e:
                logger.warning(
                    f"Analyse failed: category={e.category.value} status={e.status_code}"
                )
                raise


__all__ = ["AnalyseRequest", "RequestOrchestrator"]
