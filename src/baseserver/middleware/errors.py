"""
=============================================================================
ERROR HANDLER MIDDLEWARE
=============================================================================

The single failure path for forwarded errors.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      WHAT HAPPENS ON ERROR                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   handler raises                                                    │
    │        │                                                             │
    │        ▼                                                             │
    │   ErrorHandlerMiddleware.handle_error(request, exc)                 │
    │        │                                                             │
    │        ├── ONE log record at ERROR:                                 │
    │        │     <timestamp> - ERROR - <path> - <ip> - <body> - <headers>│
    │        │     + traceback                                            │
    │        │                                                             │
    │        └── 503 {"error": "server_error",                            │
    │                 "error_description": "Service Unavailable"}         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The client never sees the exception text or a stack trace.

=============================================================================
"""

from datetime import datetime
from typing import Any
import json
import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, server_error

logger = logging.getLogger(__name__)


def _body_for_log(request: HTTPRequest) -> Any:
    """Best available view of the body: parsed if the parser ran, else text."""
    if request.parsed_body is not None:
        body = request.parsed_body
    else:
        body = request.body
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


class ErrorHandlerMiddleware(Middleware):
    """
    Catches every exception raised further down the pipeline.

    Also usable directly as the pipeline's error hook:

        pipeline = Pipeline(error_handler=error_mw.handle_error)
    """

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        try:
            return next(request)
        except Exception as exc:
            return self.handle_error(request, exc)

    def handle_error(self, request: HTTPRequest, exc: Exception) -> HTTPResponse:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        body = json.dumps(_body_for_log(request), default=str)
        headers = json.dumps(request.headers)

        logger.error(
            f"{timestamp} - ERROR - {request.path} - {request.ip} - {body} - {headers}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return server_error()
