"""
=============================================================================
MIDDLEWARE INTERFACE AND PIPELINE
=============================================================================

Defines the middleware contract and the single ordered pipeline every
request of every listener goes through (Chain of Responsibility).

=============================================================================
ONE PIPELINE, ORDERED LAYERS
=============================================================================

Middleware and routes share one list. A request walks it from the top;
each layer either answers or hands the request to the rest of the list.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     PIPELINE LAYERS (in order)                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   0  CookieParserMiddleware      (unless express.cookie is False)   │
    │   1  SecurityHeadersMiddleware   (unless express.helmet is False)   │
    │   2  BodyParserMiddleware                                           │
    │   3  ErrorHandlerMiddleware      catches everything below it        │
    │   ─────────────────────────── caller registrations ───────────────  │
    │   4  use(timing_middleware)                                         │
    │   5  Route(USE,  "/api", api_mount)     prefix, (request, next)     │
    │   6  Route(GET,  "/users/:id", get_user)                            │
    │   7  Route(POST, "/users", create_user)                             │
    │   ─────────────────────────────────────────────────────────────────  │
    │      nothing answered → 404                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Middleware layers always run. Route layers are skipped when their method
or path does not match. A matching get/post route ends the walk; a
matching mount may continue it by calling next.

=============================================================================
ERROR CHANNEL
=============================================================================

Raising is forwarding. An exception from a layer below the error handler
is caught by ErrorHandlerMiddleware; one from a layer above it (cookie,
security or body parsing) escapes the walk and is passed to
Pipeline.error_handler, which the server points at the same
ErrorHandlerMiddleware. The security headers middleware hands body parser
errors to the same handler itself, so those 503s still get decorated.
Either way an error is handled, and logged, once.

=============================================================================
SEALING
=============================================================================

Once traffic starts the layer list is frozen (seal()). Worker threads
then read it without locks, and any late use()/add_route() raises
PipelineSealedError instead of silently racing with dispatch.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Union
import logging

from ..errors import PipelineSealedError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, not_found
from ..http.router import Route

logger = logging.getLogger(__name__)


# The rest of the pipeline, as seen by one layer
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class MyMiddleware(Middleware):
            def __call__(self, request, next):
                # before: inspect or decorate the request
                response = next(request)
                # after: decorate the response
                return response

    Returning without calling next short-circuits the rest of the pipeline.
    Raising an exception forwards it to the error handler.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class FunctionMiddleware(Middleware):
    """
    Wraps a plain (request, next) function as middleware.

        def add_header(request, next):
            response = next(request)
            response.set_header("X-Custom", "value")
            return response

        pipeline.add(FunctionMiddleware(add_header))
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, NextHandler], HTTPResponse],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or getattr(func, "__name__", func.__class__.__name__)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[HTTPRequest, NextHandler], HTTPResponse]
) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func)


Layer = Union[Middleware, Route]

# (request, exception) -> response
ErrorHook = Callable[[HTTPRequest, Exception], HTTPResponse]


class Pipeline:
    """
    Ordered middleware and routes, dispatched as one chain.

    =========================================================================
    USAGE
    =========================================================================

        pipeline = Pipeline()
        pipeline.add(CookieParserMiddleware())
        pipeline.add_route(Route(RouteKind.GET, "/health", health))

        response = pipeline.handle(request)   # seals on first use

    =========================================================================
    """

    def __init__(
        self,
        fallback: Optional[NextHandler] = None,
        error_handler: Optional[ErrorHook] = None
    ):
        self._layers: List[Layer] = []
        self._sealed = False
        # Answer for requests no layer handled
        self._fallback = fallback or (lambda request: not_found())
        # Receives exceptions that escape every layer
        self.error_handler = error_handler

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add(self, middleware: Union[Middleware, Callable]) -> "Pipeline":
        """
        Append middleware. Plain (request, next) callables are wrapped.

        Raises:
            PipelineSealedError: if the pipeline is already serving.
        """
        self._check_open()
        if not isinstance(middleware, Middleware):
            if not callable(middleware):
                raise TypeError(f"Middleware must be callable, got {type(middleware).__name__}")
            middleware = FunctionMiddleware(middleware)
        self._layers.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Union[Middleware, Callable]) -> "Pipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def add_route(self, route: Route) -> Route:
        """
        Append a route.

        Raises:
            PipelineSealedError: if the pipeline is already serving.
        """
        self._check_open()
        self._layers.append(route)
        logger.debug(f"Added route: {route.kind.value.upper()} {route.path}")
        return route

    def _check_open(self) -> None:
        if self._sealed:
            raise PipelineSealedError(
                "Cannot register middleware or routes after the server has started"
            )

    # =========================================================================
    # SEALING
    # =========================================================================

    def seal(self) -> None:
        """Freeze the layer list. Idempotent."""
        if not self._sealed:
            self._layers = tuple(self._layers)
            self._sealed = True
            logger.debug(f"Pipeline sealed with {len(self._layers)} layers")

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def layers(self) -> Sequence[Layer]:
        return tuple(self._layers)

    @property
    def routes(self) -> List[Route]:
        return [layer for layer in self._layers if isinstance(layer, Route)]

    @property
    def middleware(self) -> List[Middleware]:
        return [layer for layer in self._layers if isinstance(layer, Middleware)]

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self):
        return iter(self._layers)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run a request through every layer, sealing the pipeline first.

        An exception no layer handled goes to error_handler when one is
        set, and propagates otherwise.
        """
        self.seal()
        try:
            return self._dispatch(request, 0)
        except Exception as exc:
            if self.error_handler is None:
                raise
            return self.error_handler(request, exc)

    def _dispatch(self, request: HTTPRequest, start: int) -> HTTPResponse:
        """
        Walk the layers from `start`.

        =====================================================================
        HOW next IS BUILT
        =====================================================================

        Layer i receives next = "dispatch from i + 1", a closure over the
        index:

            layers:  [Cookies, Helmet, Body, Errors, GET /x]
            Cookies(request, next=dispatch(1))
              Helmet(request, next=dispatch(2))
                ...

        =====================================================================
        """
        layers = self._layers
        for index in range(start, len(layers)):
            layer = layers[index]
            next_handler = self._next_from(index + 1)

            if isinstance(layer, Route):
                params = layer.match(request.method, request.path)
                if params is None:
                    continue
                request.path_params = params
                if layer.is_mount:
                    return layer.handler(request, next_handler)
                return layer.handler(request)

            return layer(request, next_handler)

        return self._fallback(request)

    def _next_from(self, index: int) -> NextHandler:
        def next_handler(request: HTTPRequest) -> HTTPResponse:
            return self._dispatch(request, index)
        return next_handler
