"""
Unit tests for the security headers middleware.
"""

from http import HTTPStatus

import pytest

from baseserver.http.response import HTTPResponse, ok
from baseserver.middleware.security import (
    DEFAULT_SECURITY_HEADERS,
    SecurityHeadersMiddleware,
)


class TestSecurityHeadersMiddleware:
    """Tests for SecurityHeadersMiddleware."""

    def test_adds_defaults(self, request_factory):
        response = SecurityHeadersMiddleware()(request_factory(), lambda r: ok("x"))

        for name, value in DEFAULT_SECURITY_HEADERS.items():
            assert response.headers[name] == value
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"

    def test_handler_value_kept(self, request_factory):
        def handler(request):
            return HTTPResponse(headers={"x-frame-options": "DENY"})

        response = SecurityHeadersMiddleware()(request_factory(), handler)

        assert response.get_header("X-Frame-Options") == "DENY"
        assert "X-Frame-Options" not in response.headers

    def test_powered_by_removed(self, request_factory):
        def handler(request):
            return HTTPResponse(headers={"X-Powered-By": "Express"})

        response = SecurityHeadersMiddleware()(request_factory(), handler)

        assert response.get_header("X-Powered-By") is None

    def test_overrides(self, request_factory):
        middleware = SecurityHeadersMiddleware(overrides={
            "Strict-Transport-Security": None,
            "X-Frame-Options": "DENY",
            "Permissions-Policy": "camera=()",
        })

        response = middleware(request_factory(), lambda r: ok())

        assert response.get_header("Strict-Transport-Security") is None
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Permissions-Policy"] == "camera=()"

    def test_defaults_not_mutated(self):
        SecurityHeadersMiddleware(overrides={"X-Frame-Options": None})
        assert "X-Frame-Options" in DEFAULT_SECURITY_HEADERS

    def test_errors_propagate_without_handler(self, request_factory):
        def failing(request):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            SecurityHeadersMiddleware()(request_factory(), failing)

    def test_error_handler_response_decorated(self, request_factory):
        seen = []

        def failing(request):
            raise RuntimeError("boom")

        def error_handler(request, exc):
            seen.append(type(exc))
            return HTTPResponse(status=HTTPStatus.SERVICE_UNAVAILABLE)

        middleware = SecurityHeadersMiddleware(error_handler=error_handler)
        response = middleware(request_factory(), failing)

        assert seen == [RuntimeError]
        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
