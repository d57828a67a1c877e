"""Configuration management for the Prompt Optimiser service.

This module handles loading configuration from YAML files and environment
variables, with environment variables taking precedence over file values.

Example:
    >>> from prompt_optimiser.config import load_config
    >>> config = load_config("configs/production.yaml")
    >>> print(config.rate_limit)
    20

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:8080,http://127.0.0.1:3000"


@dataclass
class OptimiserConfig:
    """Complete service configuration.

    Attributes:
        rate_limit: Accepted requests per client identity per window.
        rate_window_ms: Sliding window length in milliseconds.
        max_input_chars: Hard ceiling on inbound input text.
        min_input_chars: Minimum trimmed input length for a critique.
        anthropic_model: Provider model used for every completion.
        max_tokens: Completion token budget.
        request_timeout: Seconds before an upstream call is abandoned.
        anthropic_api_key: Provider API key; None means misconfigured.
        cors_origins: Allowed browser origins for the HTTP surface.
        debounce_seconds: Quiet period before edited input invalidates a session.
        retry_threshold: Retry affordance is withheld at this many failures.
        host: Bind address for the HTTP server.
        port: Bind port for the HTTP server.
    """

    # Rate limiting
    rate_limit: int = 20
    rate_window_ms: int = 60_000

    # Request validation
    max_input_chars: int = 50_000
    min_input_chars: int = 5

    # Upstream model
    anthropic_model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    request_timeout: float = 60.0
    anthropic_api_key: str | None = None

    # Session behaviour
    debounce_seconds: float = 0.3
    retry_threshold: int = 3

    # Server
    cors_origins: list[str] = field(
        default_factory=lambda: DEFAULT_CORS_ORIGINS.split(",")
    )
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def model_configured(self) -> bool:
        """Whether an upstream API key is available."""
        return bool(self.anthropic_api_key)


_FIELD_NAMES = frozenset(f.name for f in fields(OptimiserConfig))


def _parse_yaml(yaml_path: Path) -> dict[str, Any]:
    """Parse a YAML configuration file.

    Raises:
        FileNotFoundError: If the YAML file doesn't exist.
        ValueError: If the YAML file is malformed.
    """
    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path) as f:
        try:
            config_dict = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {yaml_path}: {e}") from e

    if not isinstance(config_dict, dict):
        raise ValueError(f"Invalid YAML in {yaml_path}: expected a mapping")
    return config_dict


def _split_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def _apply_env_overrides(config: OptimiserConfig) -> OptimiserConfig:
    """Apply environment variable overrides to configuration.

    Supported variables:

    - PROMPTOPT_RATE_LIMIT: Requests per window
    - PROMPTOPT_RATE_WINDOW_MS: Window length in milliseconds
    - PROMPTOPT_MAX_INPUT_CHARS: Input length ceiling
    - PROMPTOPT_MODEL: Upstream model id
    - PROMPTOPT_MAX_TOKENS: Completion token budget
    - PROMPTOPT_TIMEOUT: Upstream timeout in seconds
    - PROMPTOPT_DEBOUNCE_SECONDS: Session edit debounce
    - PROMPTOPT_CORS_ORIGINS: Comma-separated allowed origins
    - PROMPTOPT_HOST / PROMPTOPT_PORT: Server bind address
    - ANTHROPIC_API_KEY: Upstream credentials
    """
    env_mappings = {
        "PROMPTOPT_RATE_LIMIT": ("rate_limit", int),
        "PROMPTOPT_RATE_WINDOW_MS": ("rate_window_ms", int),
        "PROMPTOPT_MAX_INPUT_CHARS": ("max_input_chars", int),
        "PROMPTOPT_MODEL": ("anthropic_model", str),
        "PROMPTOPT_MAX_TOKENS": ("max_tokens", int),
        "PROMPTOPT_TIMEOUT": ("request_timeout", float),
        "PROMPTOPT_DEBOUNCE_SECONDS": ("debounce_seconds", float),
        "PROMPTOPT_HOST": ("host", str),
        "PROMPTOPT_PORT": ("port", int),
    }

    for env_var, (attr, type_fn) in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            setattr(config, attr, type_fn(value))
            logger.debug(f"Override from {env_var}: {attr}={value}")

    origins = os.environ.get("PROMPTOPT_CORS_ORIGINS")
    if origins:
        config.cors_origins = _split_origins(origins)

    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if api_key:
        config.anthropic_api_key = api_key

    return config


def load_config(yaml_path: str | Path | None = None) -> OptimiserConfig:
    """Load configuration from a YAML file and environment variables.

    Precedence (highest first): environment variables, YAML values, defaults.
    Unknown YAML keys are ignored with a warning.

    Example:
        >>> config = load_config("configs/production.yaml")
        >>> config = load_config()  # defaults + env vars only
    """
    config = OptimiserConfig()

    if yaml_path is not None:
        yaml_path = Path(yaml_path)
        if yaml_path.exists():
            logger.info(f"Loading config from {yaml_path}")
            for key, value in _parse_yaml(yaml_path).items():
                if key == "cors_origins" and isinstance(value, str):
                    config.cors_origins = _split_origins(value)
                elif key == "anthropic_api_key":
                    # Credentials only come from the environment.
                    logger.warning("Ignoring anthropic_api_key in config file")
                elif key in _FIELD_NAMES:
                    setattr(config, key, value)
                else:
                    logger.warning(f"Unknown config key ignored: {key}")
        else:
            logger.warning(f"Config file not found: {yaml_path}, using defaults")

    return _apply_env_overrides(config)
