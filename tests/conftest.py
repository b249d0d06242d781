"""Shared fixtures for the GoGrúa API test suite.

Every test gets its own SQLite file with all migrations applied, the
gateway in simulation mode and no n8n signature secret.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Callable, Dict

import pytest
from fastapi.testclient import TestClient

from gogrua_api.app.core.config import settings
from gogrua_api.app.core.db import get_connection, init_db, new_id
from gogrua_api.app.core.security import create_access_token
from gogrua_api.app.main import create_app


def _insert(table: str, values: Dict[str, Any]) -> Dict[str, Any]:
    columns = ", ".join(values)
    placeholders = ", ".join("?" for _ in values)
    conn = get_connection()
    try:
        conn.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(values.values()))
        conn.commit()
    finally:
        conn.close()
    return values


@pytest.fixture(autouse=True)
def db_path(tmp_path, monkeypatch):
    """Point the app at a fresh database and reset environment‑driven settings."""
    path = tmp_path / "gogrua-test.db"
    monkeypatch.setattr(settings, "database_url", str(path))
    monkeypatch.setattr(settings, "webpay_env", "integration")
    monkeypatch.setattr(settings, "n8n_shared_secret", "")
    monkeypatch.setattr(settings, "service_tokens", "")
    init_db()
    return path


@pytest.fixture()
def client() -> TestClient:
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers() -> Callable[..., Dict[str, str]]:
    """Build an ``Authorization`` header for a user with the given role."""

    def _headers(role: str = "admin", sub: str = "user-1") -> Dict[str, str]:
        token = create_access_token({"sub": sub, "role": role})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def db() -> Callable[..., sqlite3.Row]:
    """Fetch a single row by primary key: ``db("services", service_id)``."""

    def _fetch(table: str, row_id: Any) -> sqlite3.Row:
        conn = get_connection()
        try:
            return conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
        finally:
            conn.close()

    return _fetch


@pytest.fixture()
def events() -> Callable[..., list]:
    """Event types logged for a request, oldest first."""

    def _events(request_id: str) -> list:
        conn = get_connection()
        try:
            rows = conn.execute(
                "SELECT event_type FROM event_log WHERE request_id = ? ORDER BY id",
                (request_id,),
            ).fetchall()
            return [row["event_type"] for row in rows]
        finally:
            conn.close()

    return _events


@pytest.fixture()
def make_provider() -> Callable[..., Dict[str, Any]]:
    def _make(**overrides: Any) -> Dict[str, Any]:
        values = {"id": new_id(), "name": "Grúas Andes", "zone": "santiago", "is_active": 1, "is_approved": 1}
        values.update(overrides)
        return _insert("providers", values)

    return _make


@pytest.fixture()
def make_driver() -> Callable[..., Dict[str, Any]]:
    def _make(provider_id: str, **overrides: Any) -> Dict[str, Any]:
        values = {"id": new_id(), "provider_id": provider_id, "full_name": "Pedro Soto", "vehicle_type": "auto"}
        values.update(overrides)
        return _insert("drivers", values)

    return _make


@pytest.fixture()
def make_service() -> Callable[..., Dict[str, Any]]:
    def _make(**overrides: Any) -> Dict[str, Any]:
        values = {
            "id": new_id(),
            "user_id": "user-1",
            "client_name": "Ana Pérez",
            "client_phone": "+56911112222",
            "vehicle_type": "auto",
            "request_status": "QUOTED",
            "status": "pending",
            "quote_final": 45000,
        }
        values.update(overrides)
        return _insert("services", values)

    return _make


@pytest.fixture()
def make_dispatch() -> Callable[..., Dict[str, Any]]:
    def _make(request_id: str, **overrides: Any) -> Dict[str, Any]:
        values = {"id": new_id(), "request_id": request_id, "status": "ASSIGNED"}
        values.update(overrides)
        return _insert("dispatch", values)

    return _make


@pytest.fixture()
def make_transaction() -> Callable[..., Dict[str, Any]]:
    def _make(service_id: str, **overrides: Any) -> Dict[str, Any]:
        values = {
            "id": new_id(),
            "service_id": service_id,
            "amount": 45000,
            "payment_status": "PAID",
            "status": "completed",
            "payment_method": "webpay",
        }
        values.update(overrides)
        return _insert("transactions", values)

    return _make


@pytest.fixture()
def configure_webhook() -> Callable[[str, str], None]:
    """Activate an outbound n8n webhook."""

    def _configure(name: str, url: str = "https://n8n.example.com/webhook/test") -> None:
        conn = get_connection()
        try:
            conn.execute(
                "UPDATE n8n_webhook_config SET webhook_url = ?, is_active = 1 WHERE webhook_name = ?",
                (url, name),
            )
            conn.commit()
        finally:
            conn.close()

    return _configure


@pytest.fixture()
def insert_row() -> Callable[[str, Dict[str, Any]], Dict[str, Any]]:
    return _insert
