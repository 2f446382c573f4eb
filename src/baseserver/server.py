"""
=============================================================================
BASE SERVER
=============================================================================

The bootstrap: builds the opinionated middleware pipeline from
configuration, takes the caller's middleware and routes, and starts a
plain HTTP listener, an HTTPS listener, or both.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                            BaseServer                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ┌──────────────────┐        ┌──────────────────┐                  │
    │   │  HTTP Listener   │        │  HTTPS Listener  │   0 or 1 each,   │
    │   │  webserver.http  │        │  webserver.https │   own port,      │
    │   └────────┬─────────┘        └────────┬─────────┘   own timeouts   │
    │            └─────────────┬─────────────┘                            │
    │                          ▼                                           │
    │                 ┌─────────────────┐                                  │
    │                 │   ThreadPool    │   shared workers                 │
    │                 └────────┬────────┘                                  │
    │                          ▼                                           │
    │                 BaseServer.handle(request)                           │
    │                          │                                           │
    │                          ▼                                           │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │ Pipeline                                                     │   │
    │   │  Cookies → Security headers → Body parser → Error handler   │   │
    │   │  → caller middleware and routes (registration order)        │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
USAGE
=============================================================================

    server = BaseServer({
        "webserver": {"http": {"port": 8080}},
    })

    @server.get("/users/:id")
    def get_user(request):
        return ok({"id": request.path_params["id"]})

    server.set_routes([
        {"type": "post", "routePath": "/users", "callback": create_user},
    ])

    server.start_server()
    server.serve_forever()

=============================================================================
"""

import logging
import threading
from http import HTTPStatus
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from .config import ServerConfig, WebServerConfig
from .core.listener import Listener, DEFAULT_HEADERS_TIMEOUT, DEFAULT_KEEP_ALIVE_TIMEOUT
from .core.thread_pool import ThreadPool
from .http.request import HTTPRequest, RequestParser
from .http.response import HTTPResponse, ResponseBuilder
from .http.router import Route, RouteKind
from .middleware.base import Middleware, Pipeline
from .middleware.body_parser import BodyParserMiddleware
from .middleware.cookies import CookieParserMiddleware
from .middleware.errors import ErrorHandlerMiddleware
from .middleware.security import SecurityHeadersMiddleware
from .tls import TLSMaterial, TLSOptions, create_tls_context

logger = logging.getLogger(__name__)


RouteSpec = Union[Mapping[str, Any], tuple]


class BaseServer:
    """
    HTTP/HTTPS server bootstrap.

    =========================================================================
    LIFECYCLE
    =========================================================================

        __init__          pipeline assembled from config.express
        use / add_route   caller registrations (pipeline still open)
        start_server()    pipeline sealed, pool started, listeners bound
        shutdown()        listeners closed, pool drained

    Registering anything after start_server() (or after the first request
    was dispatched) raises PipelineSealedError.

    =========================================================================
    """

    def __init__(self, config: Union[ServerConfig, Mapping[str, Any], None] = None):
        """
        Args:
            config: A ServerConfig, a raw mapping in the configuration file
                format (validated here), or None for an empty configuration.

        Raises:
            ConfigError: if the configuration is invalid.
        """
        if isinstance(config, ServerConfig):
            self.config = config
        else:
            self.config = ServerConfig.from_dict(config or {})
        self.config.validate()

        # Application settings recorded from config ("views", "trust proxy", ...)
        self.settings: Dict[str, Any] = {}

        self._error_handler = ErrorHandlerMiddleware()
        self._pipeline = Pipeline(error_handler=self._error_handler.handle_error)

        webserver = self.config.webserver
        self._thread_pool = ThreadPool(
            min_workers=min(4, webserver.workers),
            max_workers=webserver.workers,
        )
        self._parser = RequestParser(max_request_size=webserver.max_request_size)

        self._http_listener: Optional[Listener] = None
        self._https_listener: Optional[Listener] = None
        self._stopped = threading.Event()

        self._prepare_base_server()

    # =========================================================================
    # PIPELINE ASSEMBLY
    # =========================================================================

    def _prepare_base_server(self) -> None:
        express = self.config.express

        self.enable_cookie(True if express.cookie is None else express.cookie)
        self.enable_helmet(True if express.helmet is None else express.helmet)
        self._pipeline.add(BodyParserMiddleware())
        self._pipeline.add(self._error_handler)

        if express.views is not None:
            self.settings["views"] = express.views.path
            self.settings["view engine"] = express.views.engine or "ejs"

        if express.proxy is not None and express.proxy.trust:
            self.settings["trust proxy"] = express.proxy.trust

    def enable_cookie(self, flag: bool = True) -> None:
        """Mount the cookie parser when flag is truthy."""
        if flag:
            self._pipeline.add(CookieParserMiddleware())

    def enable_helmet(self, flag: bool = True) -> None:
        """Mount the security headers middleware when flag is truthy."""
        if flag:
            self._pipeline.add(SecurityHeadersMiddleware(error_handler=self._error_handler.handle_error))

    @property
    def pipeline(self) -> Pipeline:
        return self._pipeline

    @property
    def trust_proxy(self) -> bool:
        return bool(self.settings.get("trust proxy"))

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def use(self, middleware: Union[Middleware, Callable]) -> "BaseServer":
        """Append middleware: a Middleware or a (request, next) callable."""
        self._pipeline.add(middleware)
        return self

    def add_route(self, kind: Any, path: str, handler: Callable[..., HTTPResponse]) -> Optional[Route]:
        """
        Register one route.

        Args:
            kind: "use", "get" or "post" (any case) or a RouteKind.
            path: Route path; a prefix for "use".
            handler: handler(request) for get/post, handler(request, next)
                for use.

        Returns:
            The Route, or None when kind is not recognised (nothing is
            registered and nothing is raised).

        Raises:
            TypeError: if a known kind comes without a string path or a
                callable handler.
        """
        route_kind = RouteKind.parse(kind)
        if route_kind is None:
            logger.debug(f"Ignoring route {path!r} with unknown type {kind!r}")
            return None
        if not isinstance(path, str):
            raise TypeError(f"{route_kind.value} route needs a string path, got {path!r}")
        if not callable(handler):
            raise TypeError(f"{route_kind.value} route {path!r} needs a callable handler, got {handler!r}")
        return self._pipeline.add_route(Route(route_kind, path, handler))

    def set_routes(self, routes: Optional[Iterable[RouteSpec]] = None) -> None:
        """
        Register routes in order.

        Each entry is a mapping with "type", "routePath" and "callback"
        keys, or a (type, path, handler) tuple.

        Raises:
            TypeError: naming the first entry that cannot be registered.
        """
        for route in routes or ():
            if isinstance(route, Mapping):
                kind, path, handler = route.get("type"), route.get("routePath"), route.get("callback")
            else:
                kind, path, handler = route
            try:
                self.add_route(kind, path, handler)
            except TypeError as e:
                raise TypeError(f"Invalid route entry {route!r}: {e}") from None

    def get(self, path: str):
        """Decorator: register a GET route."""
        def decorator(handler):
            self.add_route(RouteKind.GET, path, handler)
            return handler
        return decorator

    def post(self, path: str):
        """Decorator: register a POST route."""
        def decorator(handler):
            self.add_route(RouteKind.POST, path, handler)
            return handler
        return decorator

    def mount(self, path: str):
        """Decorator: register a (request, next) handler for a path prefix."""
        def decorator(handler):
            self.add_route(RouteKind.USE, path, handler)
            return handler
        return decorator

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Dispatch one request through the pipeline.

        Both listeners call this from worker threads. Applies proxy trust
        to the request first. If even the error path fails, answers 500.
        """
        request.trust_proxy = self.trust_proxy
        try:
            return self._pipeline.handle(request)
        except Exception as e:
            logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
            return (ResponseBuilder()
                .status(HTTPStatus.INTERNAL_SERVER_ERROR)
                .json({"error": "Internal Server Error"})
                .build())

    # =========================================================================
    # LISTENERS
    # =========================================================================

    @property
    def http_listener(self) -> Optional[Listener]:
        return self._http_listener

    @property
    def https_listener(self) -> Optional[Listener]:
        return self._https_listener

    def _new_listener(self, name: str, port: int, **kwargs) -> Listener:
        webserver = self.config.webserver
        return Listener(
            name,
            webserver.host,
            port,
            pool=self._thread_pool,
            parser=self._parser,
            backlog=self.config.backlog,
            buffer_size=self.config.buffer_size,
            timeout=self.config.timeout,
            max_request_size=webserver.max_request_size,
            server_name=self.config.server_name,
            **kwargs,
        )

    def start_http(self, webserver: Optional[WebServerConfig] = None) -> Optional[Listener]:
        """
        Start the plain HTTP listener if webserver.http.port is set and non-zero.

        Raises:
            OSError: if the port cannot be bound.
        """
        webserver = webserver or self.config.webserver
        port = webserver.http.port if webserver.http else None
        if not port:
            logger.debug("No HTTP port configured, HTTP listener not started")
            return None

        self._ensure_started()
        listener = self._new_listener(
            "http",
            port,
            keep_alive_timeout=DEFAULT_KEEP_ALIVE_TIMEOUT,
            headers_timeout=DEFAULT_HEADERS_TIMEOUT,
        )
        listener.start(self.handle)
        self._http_listener = listener
        logger.info(f"Listening on port {listener.port}")
        return listener

    def start_https(self, webserver: Optional[WebServerConfig] = None) -> Optional[Listener]:
        """
        Start the HTTPS listener if webserver.https.enabled is truthy.

        The key, certificate and CA are read before anything is bound.

        Raises:
            OSError: if a TLS file cannot be read or the port cannot be bound.
            TLSConfigError: if the TLS material is rejected.
        """
        webserver = webserver or self.config.webserver
        https = webserver.https
        if not (https and https.enabled):
            logger.debug("HTTPS not enabled, HTTPS listener not started")
            return None

        material = TLSMaterial.load(https.ssl)
        context = create_tls_context(material, TLSOptions.from_config(https))

        self._ensure_started()
        # No port: the OS picks one
        listener = self._new_listener("https", https.port or 0, tls_context=context)
        listener.start(self.handle)
        self._https_listener = listener
        logger.info(f"Listening on port {listener.port}")

        # Milliseconds in config, seconds on the listener
        if https.keep_alive_timeout:
            listener.keep_alive_timeout = https.keep_alive_timeout / 1000.0
        if https.headers_timeout:
            listener.headers_timeout = https.headers_timeout / 1000.0
        return listener

    def start_server(self) -> None:
        """
        Seal the pipeline and start whichever listeners are configured.

        HTTP is started before HTTPS. If HTTPS fails, the HTTP listener
        that already started keeps running.
        """
        self._setup_logging()
        self._pipeline.seal()
        webserver = self.config.webserver
        self.start_http(webserver)
        self.start_https(webserver)
        if self._http_listener is None and self._https_listener is None:
            logger.warning("No listener configured: set webserver.http.port or enable webserver.https")

    def _ensure_started(self) -> None:
        self._pipeline.seal()
        self._stopped.clear()
        self._thread_pool.start()

    def serve_forever(self) -> None:
        """Block until shutdown() is called or Ctrl+C."""
        try:
            while not self._stopped.wait(0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Close both listeners and stop the worker pool. Idempotent."""
        for listener in (self._http_listener, self._https_listener):
            if listener is not None:
                listener.shutdown()
        self._thread_pool.shutdown(wait=True, timeout=5.0)
        self._stopped.set()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.logging.level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("baseserver").setLevel(level)

    def __enter__(self) -> "BaseServer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
