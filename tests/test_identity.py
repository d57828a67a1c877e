"""Tests for client identity resolution.

Antagon Inc. | CAGE: 17E75
"""

import base64

import pytest

from prompt_optimiser.identity import fingerprint, is_ip_like, resolve_client_identity


class TestIsIpLike:
    """Tests for the address shape check."""

    @pytest.mark.parametrize(
        "value",
        ["203.0.113.7", "10.0.0.1", "2001:db8::1", "::1", "fe80:0:0:0:0:0:0:1"],
    )
    def test_accepts_addresses(self, value):
        assert is_ip_like(value) is True

    @pytest.mark.parametrize(
        "value",
        ["unknown", "203.0.113", "example.com", "1.2.3.4; DROP", "", "abcd"],
    )
    def test_rejects_non_addresses(self, value):
        assert is_ip_like(value) is False


class TestResolveClientIdentity:
    """Tests for the header preference order."""

    def test_forwarded_for_first_token(self):
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.2, 10.0.0.3"}
        assert resolve_client_identity(headers) == "203.0.113.7"

    def test_forwarded_for_preferred_over_real_ip(self):
        headers = {"x-forwarded-for": "203.0.113.7", "x-real-ip": "198.51.100.1"}
        assert resolve_client_identity(headers) == "203.0.113.7"

    def test_real_ip_used_without_forwarded_for(self):
        assert resolve_client_identity({"x-real-ip": "198.51.100.1"}) == "198.51.100.1"

    def test_invalid_forwarded_for_falls_through(self):
        headers = {"x-forwarded-for": "not-an-ip", "x-real-ip": "198.51.100.1"}
        assert resolve_client_identity(headers) == "198.51.100.1"

    def test_ipv6(self):
        assert resolve_client_identity({"x-forwarded-for": "2001:db8::1"}) == "2001:db8::1"

    def test_header_names_case_insensitive(self):
        assert resolve_client_identity({"X-Forwarded-For": "203.0.113.7"}) == "203.0.113.7"

    def test_fingerprint_fallback(self):
        headers = {
            "x-forwarded-for": "garbage",
            "user-agent": "Mozilla/5.0",
            "accept-language": "en-GB",
        }
        identity = resolve_client_identity(headers)

        expected = base64.b64encode(b"Mozilla/5.0en-GB").decode()[:16]
        assert identity == f"anon_{expected}"


class TestFingerprint:
    """Tests for the anonymous fingerprint."""

    def test_stable(self):
        headers = {"user-agent": "curl/8.0", "accept-language": "fr"}
        assert fingerprint(headers) == fingerprint(dict(headers))

    def test_length_capped(self):
        headers = {"user-agent": "x" * 200}
        value = fingerprint(headers)
        assert value.startswith("anon_")
        assert len(value) == len("anon_") + 16

    def test_no_headers(self):
        assert fingerprint({}) == "anon_"

    def test_differs_by_browser(self):
        first = fingerprint({"user-agent": "Mozilla/5.0 (X11)"})
        second = fingerprint({"user-agent": "curl/8.0"})
        assert first != second
