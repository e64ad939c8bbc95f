"""Tests covering security and hardening features."""

from __future__ import annotations

from pathlib import Path

from flask import Flask

from app import create_app
from config import Config


class _SecurityBaseConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = "security-test-secret-key-long-enough-for-hs256"


def _build_app(tmp_path: Path, **overrides) -> Flask:
    upload_dir = tmp_path / "uploads"

    class TestConfig(_SecurityBaseConfig):
        UPLOAD_DIR = str(upload_dir)

    for key, value in overrides.items():
        setattr(TestConfig, key, value)

    return create_app(TestConfig)


def test_cors_allows_configured_origin(tmp_path):
    app = _build_app(tmp_path, CORS_ORIGINS=["https://client.example"])
    client = app.test_client()

    response = client.get(
        "/health", headers={"Origin": "https://client.example"}
    )

    assert response.status_code == 200
    assert response.headers.get("Access-Control-Allow-Origin") == "https://client.example"
    assert response.headers.get("X-Request-ID")


def test_rate_limit_exceeded_returns_json(tmp_path):
    app = _build_app(tmp_path, RATE_LIMIT="2 per minute")
    client = app.test_client()

    client.get("/health")
    client.get("/health")
    response = client.get("/health")

    assert response.status_code == 429
    payload = response.get_json()
    assert payload["error"] == "Too Many Requests"
    assert "request_id" in payload


def test_missing_token_uses_json_error_shape(tmp_path):
    app = _build_app(tmp_path)
    client = app.test_client()

    response = client.get("/applications", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 401
    payload = response.get_json()
    assert payload["type"] == "NotAuthenticated"
    assert payload["error"] == "Unauthorized"
    assert payload["request_id"] == "req-123"
    assert response.headers["X-Request-ID"] == "req-123"


def test_invalid_token_is_rejected(tmp_path):
    app = _build_app(tmp_path)
    client = app.test_client()

    response = client.get(
        "/applications", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401
    assert response.get_json()["type"] == "NotAuthenticated"


def test_unknown_route_returns_json_404(tmp_path):
    app = _build_app(tmp_path)
    client = app.test_client()

    response = client.get("/does-not-exist")

    assert response.status_code == 404
    payload = response.get_json()
    assert payload["error"] == "Not Found"
    assert payload["type"] == "NotFound"
