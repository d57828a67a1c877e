"""Prompt Optimiser: critique an idea, answer the gaps, generate a prompt.

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

__version__ = "1.0.0"

from prompt_optimiser.errors import (
    ExtractionError,
    FailureCategory,
    InvalidRequestError,
    OptimiserError,
    RateLimitedError,
    ServerMisconfigurationError,
    UpstreamAuthError,
    UpstreamFailure,
    ValidationError,
)
from prompt_optimiser.extraction import extract_json
from prompt_optimiser.identity import resolve_client_identity
from prompt_optimiser.rate_limiting import SlidingWindowRateLimiter

__all__ = [
    "__version__",
    "ExtractionError",
    "FailureCategory",
    "InvalidRequestError",
    "OptimiserError",
    "RateLimitedError",
    "ServerMisconfigurationError",
    "UpstreamAuthError",
    "UpstreamFailure",
    "ValidationError",
    "extract_json",
    "resolve_client_identity",
    "SlidingWindowRateLimiter",
]
