"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against the test engine
  - degraded status when the database is unreachable
  - No authentication required
"""

from __future__ import annotations

from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from api.main import app


def test_health_returns_200_with_components(api_client):
    resp = api_client.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"]
    assert data["components"]["database"] == "ok"


def test_health_reports_database_failure(api_client, monkeypatch):
    broken = MagicMock()
    broken.connect.side_effect = OperationalError("SELECT 1", {}, Exception("database is down"))
    monkeypatch.setattr(app.state, "engine", broken)

    resp = api_client.client.get("/api/v1/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "unavailable"
    assert "down" not in resp.text


def test_health_no_auth_required(api_client):
    resp = api_client.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
