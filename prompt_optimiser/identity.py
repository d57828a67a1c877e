# ================================================================
# Prompt Optimiser - Client Identity Resolution
# Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
# ================================================================

"""
Client identity resolution for rate limiting.

Derives a stable-enough key for a caller from its request headers:

1. first entry of ``X-Forwarded-For``
2. ``X-Real-IP``
3. a fingerprint of ``User-Agent`` + ``Accept-Language``

A header value is only trusted if it looks like an IPv4 or IPv6 address.

SECURITY: every one of these headers is client-controlled and can be
spoofed. The identity is defense-in-depth for rate limiting, not a security
boundary; deploy behind a proxy that overwrites ``X-Forwarded-For``.
"""

from __future__ import annotations

import base64
import re
from collections.abc import Mapping

IPV4_PATTERN = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
IPV6_PATTERN = re.compile(r"^([0-9a-fA-F]{0,4}:){2,7}[0-9a-fA-F]{0,4}$")

FINGERPRINT_PREFIX = "anon_"
FINGERPRINT_LENGTH = 16


def is_ip_like(value: str) -> bool:
    """Basic IPv4 dotted-quad / IPv6 colon-segment shape check."""
    return bool(IPV4_PATTERN.match(value) or IPV6_PATTERN.match(value))


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        # Plain dicts are not case-insensitive like starlette Headers
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return value or ""


def fingerprint(headers: Mapping[str, str]) -> str:
    """Short, non-cryptographic identifier built from browser headers."""
    raw = _header(headers, "user-agent") + _header(headers, "accept-language")
    encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
    return f"{FINGERPRINT_PREFIX}{encoded[:FINGERPRINT_LENGTH]}"


def resolve_client_identity(headers: Mapping[str, str]) -> str:
    """Resolve the rate-limit identity for a request.

    Args:
        headers: Request headers (case-insensitive mapping or plain dict).

    Returns:
        An IP address string, or an ``anon_`` fingerprint.
    """
    forwarded_for = _header(headers, "x-forwarded-for")
    if forwarded_for:
        candidate = forwarded_for.split(",")[0].strip()
        if candidate and is_ip_like(candidate):
            return candidate

    real_ip = _header(headers, "x-real-ip").strip()
    if real_ip and is_ip_like(real_ip):
        return real_ip

    return fingerprint(headers)


__all__ = ["is_ip_like", "fingerprint", "resolve_client_identity"]
