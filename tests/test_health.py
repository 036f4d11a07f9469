"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' when the store answers, 'error' when it does not
  - No authentication required
"""

from __future__ import annotations

from sqlalchemy.exc import OperationalError


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _, _ = api_client
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "0.1.0"
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_no_auth_required(client):
    """Health endpoint is accessible without any authentication headers or cookies."""
    resp = client.get("/api/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_health_reports_database_error(client, store, monkeypatch):
    """An unreachable database degrades the component instead of failing the health check."""

    def broken_ping():
        raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    monkeypatch.setattr(store, "ping", broken_ping)
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["components"]["database"] == "error"
