"""Tests for security headers middleware.

Verifies that all required security headers are present on API responses.
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client():
    """Test client without lifespan (no background tasks)."""
    from app.main import app

    return TestClient(app)


class TestSecurityHeaders:
    """Tests for SecurityHeadersMiddleware."""

    def test_x_content_type_options_header(self, client):
        response = client.get("/health")
        assert response.headers.get("X-Content-Type-Options") == "nosniff"

    def test_x_frame_options_header(self, client):
        response = client.get("/health")
        assert response.headers.get("X-Frame-Options") == "DENY"

    def test_content_security_policy_header(self, client):
        """API responses forbid loading any content."""
        response = client.get("/health")
        assert response.headers.get("Content-Security-Policy") == (
            "default-src 'none'; frame-ancestors 'none'"
        )

    def test_responses_are_not_cached(self, client):
        response = client.get("/health")
        assert "no-store" in response.headers.get("Cache-Control", "")

    def test_referrer_policy_header(self, client):
        response = client.get("/health")
        assert response.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"

    def test_hsts_header_with_https(self, client):
        """HSTS is set when the proxy reports HTTPS."""
        response = client.get("/health", headers={"X-Forwarded-Proto": "https"})
        assert "max-age=31536000" in response.headers.get("Strict-Transport-Security", "")

    def test_no_hsts_over_plain_http(self, client):
        response = client.get("/health")
        assert "Strict-Transport-Security" not in response.headers

    def test_headers_on_error_responses(self, client):
        """Headers are present on 401s from the auth routes too."""
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.headers.get("X-Frame-Options") == "DENY"
