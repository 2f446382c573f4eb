"""
=============================================================================
MIDDLEWARE
=============================================================================

The fixed bootstrap middleware, in pipeline order:

    CookieParserMiddleware      Cookie header → request.cookies
    SecurityHeadersMiddleware   browser security headers on every response
    BodyParserMiddleware        body → request.parsed_body by Content-Type
    ErrorHandlerMiddleware      forwarded exceptions → logged 503

Pipeline (base.py) holds them together with the caller's routes.

=============================================================================
"""

from .base import (
    Middleware,
    FunctionMiddleware,
    function_middleware,
    NextHandler,
    Pipeline,
)
from .cookies import CookieParserMiddleware, parse_cookie_header
from .security import SecurityHeadersMiddleware, DEFAULT_SECURITY_HEADERS
from .body_parser import BodyParserMiddleware, parse_form
from .errors import ErrorHandlerMiddleware

__all__ = [
    "Middleware",
    "FunctionMiddleware",
    "function_middleware",
    "NextHandler",
    "Pipeline",
    "CookieParserMiddleware",
    "parse_cookie_header",
    "SecurityHeadersMiddleware",
    "DEFAULT_SECURITY_HEADERS",
    "BodyParserMiddleware",
    "parse_form",
    "ErrorHandlerMiddleware",
]
