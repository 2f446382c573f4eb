"""
=============================================================================
HTTP MESSAGES AND ROUTES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST (request.py)                                                │
    │ ─────────────────────────────────────────────────────────────────── │
    │ Raw bytes → HTTPRequest; proxy-aware ip/ips/protocol                │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ RESPONSE (response.py)                                              │
    │ ─────────────────────────────────────────────────────────────────── │
    │ HTTPResponse, ResponseBuilder, fixed JSON error payloads           │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ ROUTER (router.py)                                                  │
    │ ─────────────────────────────────────────────────────────────────── │
    │ RouteKind (use/get/post), Route with :param and *wildcard paths    │
    └─────────────────────────────────────────────────────────────────────┘

Status codes come from the standard library's http.HTTPStatus.

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    not_found,
    internal_error,
    error_response,
    syntax_error,
    server_error,
    format_http_date,
)
from .router import Route, RouteKind, Handler, compile_pattern

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "ok",
    "not_found",
    "internal_error",
    "error_response",
    "syntax_error",
    "server_error",
    "format_http_date",
    "Route",
    "RouteKind",
    "Handler",
    "compile_pattern",
]
