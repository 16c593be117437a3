"""Tests for correlation ID middleware and error bodies.

Verifies:
- X-Request-ID header in responses
- Custom correlation ID echoing
- debug_id in error responses without internal details
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from appbuilder.main import app

pytestmark = pytest.mark.integration


def test_response_includes_correlation_id_header():
    client = TestClient(app)

    response = client.get("/api/health")

    uuid.UUID(response.headers["x-request-id"])


def test_custom_correlation_id_echoed():
    client = TestClient(app)

    response = client.get("/api/health", headers={"X-Request-ID": "custom-id-123"})

    assert response.headers["x-request-id"] == "custom-id-123"


def test_different_requests_get_different_ids():
    client = TestClient(app)

    first = client.get("/api/health").headers["x-request-id"]
    second = client.get("/api/health").headers["x-request-id"]

    assert first != second


def test_error_response_includes_debug_id():
    client = TestClient(app)

    # No bearer token -> 401 from require_auth
    response = client.get("/api/apps")

    assert response.status_code == 401
    body = response.json()
    uuid.UUID(body["debug_id"])
    assert "traceback" not in response.text.lower()
