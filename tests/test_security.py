"""Tests for bearer tokens and role checks."""

from __future__ import annotations

from gogrua_api.app.core.config import settings
from gogrua_api.app.core.security import create_access_token, decode_access_token


class TestTokens:
    def test_round_trip(self):
        token = create_access_token({"sub": "user-7", "role": "driver"})
        payload = decode_access_token(token)
        assert payload["sub"] == "user-7"
        assert payload["role"] == "driver"

    def test_tampered_token(self):
        token = create_access_token({"sub": "user-7", "role": "driver"})
        header, payload, signature = token.split(".")
        forged = create_access_token({"sub": "user-7", "role": "admin"}).split(".")[1]
        assert decode_access_token(f"{header}.{forged}.{signature}") is None

    def test_expired_token(self):
        token = create_access_token({"sub": "user-7", "role": "driver"}, expires_delta=-10)
        assert decode_access_token(token) is None

    def test_garbage(self):
        assert decode_access_token("not-a-token") is None
        assert decode_access_token("a.b.c") is None


class TestRoles:
    def test_invalid_token_is_rejected(self, client):
        response = client.get("/api/v1/events/", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid or expired token"}

    def test_unknown_role_is_rejected(self, client):
        token = create_access_token({"sub": "user-7", "role": "superuser"})
        response = client.get("/api/v1/events/", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_service_token_gets_configured_role(self, client, monkeypatch):
        monkeypatch.setattr(settings, "service_tokens", "n8n-worker-token, other")
        monkeypatch.setattr(settings, "service_token_role", "dispatcher")
        response = client.get("/api/v1/events/", headers={"Authorization": "Bearer n8n-worker-token"})
        assert response.status_code == 200

    def test_cors_preflight(self, client):
        response = client.options(
            "/api/v1/pricing/calculate",
            headers={
                "Origin": "https://gogrua.cl",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "x-n8n-signature",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "x-n8n-signature" in response.headers["access-control-allow-headers"]
