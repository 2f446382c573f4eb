"""
=============================================================================
SECURITY HEADERS MIDDLEWARE
=============================================================================

Adds a conservative set of browser security headers to every response
and strips headers that advertise the server stack.

=============================================================================
DEFAULT HEADERS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Header                              Value                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │ Content-Security-Policy             default-src 'self'; ...         │
    │ Cross-Origin-Opener-Policy          same-origin                     │
    │ Cross-Origin-Resource-Policy        same-origin                     │
    │ Origin-Agent-Cluster                ?1                              │
    │ Referrer-Policy                     no-referrer                     │
    │ Strict-Transport-Security           max-age=31536000;               │
    │                                     includeSubDomains               │
    │ X-Content-Type-Options              nosniff                         │
    │ X-DNS-Prefetch-Control              off                             │
    │ X-Download-Options                  noopen                          │
    │ X-Frame-Options                     SAMEORIGIN                      │
    │ X-Permitted-Cross-Domain-Policies   none                            │
    │ X-XSS-Protection                    0                               │
    └─────────────────────────────────────────────────────────────────────┘

A handler that sets one of these headers itself keeps its own value.

An exception from a layer below this one but above the error handler (the
body parser) would skip the header step on its way out. With an
error_handler set, it is answered here instead, and that answer gets the
headers like any other response.

X-XSS-Protection "0" switches off the legacy browser XSS auditor.

=============================================================================
"""

from typing import Dict, Iterable, Optional

from .base import ErrorHook, Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


CONTENT_SECURITY_POLICY = ";".join([
    "default-src 'self'",
    "base-uri 'self'",
    "font-src 'self' https: data:",
    "form-action 'self'",
    "frame-ancestors 'self'",
    "img-src 'self' data:",
    "object-src 'none'",
    "script-src 'self'",
    "script-src-attr 'none'",
    "style-src 'self' https: 'unsafe-inline'",
    "upgrade-insecure-requests",
])

DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

# Removed from every response
DISCLOSURE_HEADERS = ("X-Powered-By",)


class SecurityHeadersMiddleware(Middleware):
    """
    Sets DEFAULT_SECURITY_HEADERS on responses that do not already carry them.

    Args:
        overrides: Replace or add header values. A value of None drops that
            header from the defaults.
        remove: Header names stripped from every response.
        error_handler: Answers exceptions raised further down, so error
            responses carry the headers too. Without one they propagate.
    """

    def __init__(
        self,
        overrides: Optional[Dict[str, Optional[str]]] = None,
        remove: Iterable[str] = DISCLOSURE_HEADERS,
        error_handler: Optional[ErrorHook] = None
    ):
        headers = dict(DEFAULT_SECURITY_HEADERS)
        for name, value in (overrides or {}).items():
            if value is None:
                headers.pop(name, None)
            else:
                headers[name] = value
        self.headers = headers
        self.remove = tuple(remove)
        self.error_handler = error_handler

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        try:
            response = next(request)
        except Exception as exc:
            if self.error_handler is None:
                raise
            response = self.error_handler(request, exc)

        for name, value in self.headers.items():
            if response.get_header(name) is None:
                response.set_header(name, value)

        for name in self.remove:
            response.remove_header(name)

        return response
