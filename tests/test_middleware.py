"""Tests for middleware and request-level dependencies."""

from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient

from chatrelay.api.deps import client_identifier


def _request(headers: dict[str, str] | None = None, host: str | None = "10.0.0.1") -> MagicMock:
    req = MagicMock()
    req.headers = headers or {}
    req.client = MagicMock(host=host) if host else None
    return req


class TestClientIdentifier:

    def test_uses_peer_address(self):
        assert client_identifier(_request()) == "ip:10.0.0.1"

    def test_prefers_first_forwarded_hop(self):
        req = _request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        assert client_identifier(req) == "ip:203.0.113.5"

    def test_unknown_without_client(self):
        assert client_identifier(_request(host=None)) == "ip:unknown"


@pytest.mark.asyncio
class TestSecurityHeaders:

    @pytest.mark.parametrize("header,expected_value", [
        ("x-content-type-options", "nosniff"),
        ("x-frame-options", "DENY"),
        ("referrer-policy", "strict-origin-when-cross-origin"),
    ])
    async def test_security_header_present(self, client: AsyncClient, header: str, expected_value: str):
        resp = await client.get("/health/live")
        assert resp.headers.get(header) == expected_value

    async def test_headers_on_error_responses(self, client: AsyncClient):
        resp = await client.post("/api/v1/chat", json={})
        assert resp.status_code == 422
        assert resp.headers.get("x-frame-options") == "DENY"

    async def test_404_returns_json(self, client: AsyncClient):
        resp = await client.get("/nonexistent-endpoint-xyz")
        assert resp.status_code == 404
        body = resp.json()
        assert "detail" in body or "error" in body
