"""
=============================================================================
BASESERVER
=============================================================================

A small HTTP/HTTPS server bootstrap. One configuration object decides
which opinionated middleware is mounted and which listeners are started;
callers add their own middleware and routes on top.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   config ──► BaseServer ──► pipeline:                               │
    │                               cookies, security headers,            │
    │                               body parser, error handler,           │
    │                               + your middleware and routes          │
    │                                                                      │
    │              start_server() ──► HTTP listener   (webserver.http)    │
    │                             └─► HTTPS listener  (webserver.https)   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    baseserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m baseserver)
    ├── server.py            # BaseServer
    ├── config.py            # ServerConfig dataclasses, env overrides
    ├── schema.py            # CONFIG_SCHEMA, SAMPLE_CONFIG, validation
    ├── errors.py            # Exception taxonomy
    ├── tls.py               # TLS material, options and context
    ├── core/                # Listener, Connection, ThreadPool
    ├── http/                # Request, Response, Route
    └── middleware/          # Pipeline and the built-in middleware

=============================================================================
QUICK START
=============================================================================

    from baseserver import BaseServer
    from baseserver.http import ok

    server = BaseServer({"webserver": {"http": {"port": 8080}}})

    @server.post("/echo")
    def echo(request):
        return ok(request.parsed_body)

    server.start_server()
    server.serve_forever()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .errors import (
    BaseServerError,
    BodyParseError,
    ConfigError,
    PipelineSealedError,
    TLSConfigError,
)
from .http import HTTPRequest, HTTPResponse, ResponseBuilder, RouteKind, ok
from .middleware import Middleware, Pipeline
from .schema import CONFIG_SCHEMA, SAMPLE_CONFIG, validate_config
from .server import BaseServer

__all__ = [
    "__version__",
    "BaseServer",
    "ServerConfig",
    "CONFIG_SCHEMA",
    "SAMPLE_CONFIG",
    "validate_config",
    "BaseServerError",
    "BodyParseError",
    "ConfigError",
    "PipelineSealedError",
    "TLSConfigError",
    "HTTPRequest",
    "HTTPResponse",
    "ResponseBuilder",
    "RouteKind",
    "ok",
    "Middleware",
    "Pipeline",
]
