"""Tests for the health check endpoint and application wiring."""

from __future__ import annotations

from fastapi.testclient import TestClient


class TestHealthCheck:
    """Tests for basic health check endpoint."""

    def test_health_check_returns_success(self, client: TestClient) -> None:
        """Test basic health check returns healthy status."""
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["status"] == "healthy"
        assert "DB Advisor" in data["data"]["message"]
        assert data["message"] == "Health check successful"

    def test_health_check_sets_correlation_header(self, client: TestClient) -> None:
        response = client.get("/api/v1/health")

        assert response.headers["X-Correlation-ID"]

    def test_unknown_route_uses_error_envelope(self, client: TestClient) -> None:
        response = client.get("/api/v1/nope")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["type"] == "http_error"


class TestCORSConfiguration:
    """The desktop client origin is allowed by default."""

    def test_preflight_from_desktop_origin(self, client: TestClient) -> None:
        response = client.options(
            "/api/v1/ai/db-advisor",
            headers={
                "Origin": "http://localhost:1420",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 200
        assert (
            response.headers["Access-Control-Allow-Origin"] == "http://localhost:1420"
        )
        assert response.headers["Access-Control-Allow-Credentials"] == "true"

    def test_disallowed_origin_gets_no_cors_headers(self, client: TestClient) -> None:
        response = client.get(
            "/api/v1/health", headers={"Origin": "https://evil.example.com"}
        )

        assert response.status_code == 200
        assert "Access-Control-Allow-Origin" not in response.headers
