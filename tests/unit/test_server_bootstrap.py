"""
Unit tests for BaseServer pipeline assembly and route registration.

Nothing here binds a socket; see tests/integration for listeners.
"""

import logging
from http import HTTPStatus

import pytest

from baseserver import BaseServer, ServerConfig
from baseserver.errors import ConfigError, PipelineSealedError
from baseserver.http.response import ok
from baseserver.http.router import Route, RouteKind
from baseserver.middleware import (
    BodyParserMiddleware,
    CookieParserMiddleware,
    ErrorHandlerMiddleware,
    SecurityHeadersMiddleware,
)


def layer_types(server):
    return [type(layer) for layer in server.pipeline.layers]


class TestPipelineAssembly:
    """Built-in middleware chosen from config.express."""

    def test_default_order(self):
        server = BaseServer()

        assert layer_types(server) == [
            CookieParserMiddleware,
            SecurityHeadersMiddleware,
            BodyParserMiddleware,
            ErrorHandlerMiddleware,
        ]

    def test_cookie_disabled(self):
        server = BaseServer({"express": {"cookie": False}})

        assert CookieParserMiddleware not in layer_types(server)
        assert layer_types(server)[0] is SecurityHeadersMiddleware

    def test_helmet_disabled(self):
        server = BaseServer({"express": {"helmet": False}})

        assert SecurityHeadersMiddleware not in layer_types(server)

    def test_cookie_none_means_enabled(self):
        config = ServerConfig()
        config.express.cookie = None

        assert CookieParserMiddleware in layer_types(BaseServer(config))

    def test_views_settings(self):
        server = BaseServer({"express": {"views": {"path": "templates", "engine": "ejs"}}})

        assert server.settings["views"] == "templates"
        assert server.settings["view engine"] == "ejs"

    def test_views_engine_default(self):
        server = BaseServer({"express": {"views": {"path": "templates"}}})
        assert server.settings["view engine"] == "ejs"

    def test_no_views_section(self):
        assert "views" not in BaseServer().settings

    def test_trust_proxy(self):
        server = BaseServer({"express": {"proxy": {"trust": True}}})

        assert server.settings["trust proxy"] is True
        assert server.trust_proxy

    def test_untrusted_proxy_not_recorded(self):
        server = BaseServer({"express": {"proxy": {"trust": False}}})

        assert "trust proxy" not in server.settings
        assert not server.trust_proxy

    def test_invalid_config(self):
        with pytest.raises(ConfigError):
            BaseServer({"express": {"helmet": "yes"}})


class TestRegistration:
    """use / add_route / set_routes."""

    def test_add_route_returns_route(self):
        server = BaseServer()
        handler = lambda request: ok("x")

        route = server.add_route("GET", "/x", handler)

        assert isinstance(route, Route)
        assert route.kind is RouteKind.GET
        assert server.pipeline.layers[-1] is route

    def test_unknown_kind_ignored(self):
        server = BaseServer()
        before = len(server.pipeline)

        assert server.add_route("delete", "/x", lambda request: ok()) is None
        assert len(server.pipeline) == before

    def test_set_routes_mappings_and_tuples(self):
        server = BaseServer()
        server.set_routes([
            {"type": "get", "routePath": "/a", "callback": lambda r: ok("a")},
            ("post", "/b", lambda r: ok("b")),
            {"type": "put", "routePath": "/c", "callback": lambda r: ok("c")},
            ("use", "/api", lambda r, next: next(r)),
        ])

        routes = server.pipeline.routes
        assert [(r.kind, r.path) for r in routes] == [
            (RouteKind.GET, "/a"),
            (RouteKind.POST, "/b"),
            (RouteKind.USE, "/api"),
        ]

    def test_set_routes_missing_path(self):
        server = BaseServer()

        with pytest.raises(TypeError) as exc_info:
            server.set_routes([{"type": "get", "callback": lambda r: ok()}])

        assert "Invalid route entry" in str(exc_info.value)
        assert "string path" in str(exc_info.value)
        assert server.pipeline.routes == []

    def test_set_routes_missing_callback(self):
        server = BaseServer()

        with pytest.raises(TypeError) as exc_info:
            server.set_routes([("post", "/items", None)])

        assert "/items" in str(exc_info.value)

    def test_unknown_kind_skips_path_check(self):
        server = BaseServer()
        server.set_routes([{"type": "put"}])
        assert server.pipeline.routes == []

    def test_set_routes_none(self):
        server = BaseServer()
        server.set_routes(None)
        assert server.pipeline.routes == []

    def test_decorators(self):
        server = BaseServer()

        @server.get("/g")
        def g(request):
            return ok("g")

        @server.post("/p")
        def p(request):
            return ok("p")

        @server.mount("/m")
        def m(request, next):
            return next(request)

        assert [r.kind for r in server.pipeline.routes] == [
            RouteKind.GET, RouteKind.POST, RouteKind.USE,
        ]
        assert callable(g) and callable(p) and callable(m)

    def test_use_after_builtins(self):
        server = BaseServer()
        server.use(lambda request, next: next(request))

        assert len(server.pipeline) == 5

    def test_registration_after_first_request(self, request_factory):
        server = BaseServer()
        server.handle(request_factory())

        with pytest.raises(PipelineSealedError):
            server.use(lambda request, next: next(request))
        with pytest.raises(PipelineSealedError):
            server.add_route("get", "/late", lambda request: ok())


class TestHandle:
    """BaseServer.handle through the assembled pipeline."""

    def test_route_with_builtins(self, request_factory):
        server = BaseServer()

        @server.post("/echo")
        def echo(request):
            return ok({"body": request.parsed_body, "cookies": request.cookies})

        response = server.handle(request_factory(
            "POST", "/echo", b'{"a": 1}',
            {"Content-Type": "application/json", "Cookie": "sid=s1"},
        ))

        assert response.json == {"body": {"a": 1}, "cookies": {"sid": "s1"}}
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_not_found_gets_security_headers(self, request_factory):
        response = BaseServer().handle(request_factory(path="/nothing"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert "Content-Security-Policy" in response.headers

    def test_handler_error_is_503(self, request_factory):
        server = BaseServer()

        @server.get("/boom")
        def boom(request):
            raise RuntimeError("boom")

        response = server.handle(request_factory(path="/boom"))

        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE
        assert response.json["error"] == "server_error"

    def test_body_parse_error_is_503(self, request_factory):
        """Errors from layers above the error handler reach it too."""
        server = BaseServer()
        server.add_route("post", "/text", lambda request: ok(request.parsed_body))

        response = server.handle(request_factory(
            "POST", "/text", b"\xff\xfe", {"Content-Type": "text/plain"},
        ))

        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE

    def test_body_parse_error_keeps_security_headers(self, request_factory):
        server = BaseServer()
        server.add_route("post", "/text", lambda request: ok(request.parsed_body))

        response = server.handle(request_factory(
            "POST", "/text", b"\xff\xfe", {"Content-Type": "text/plain"},
        ))

        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE
        assert response.json["error"] == "server_error"
        assert response.get_header("X-Content-Type-Options") == "nosniff"
        assert response.get_header("Content-Security-Policy") is not None

    def test_body_parse_error_logged_once(self, request_factory, caplog):
        server = BaseServer()

        with caplog.at_level(logging.ERROR, logger="baseserver"):
            server.handle(request_factory(
                "POST", "/text", b"\xff\xfe", {"Content-Type": "text/plain"},
            ))

        assert len([r for r in caplog.records if r.levelno >= logging.ERROR]) == 1

    def test_malformed_json_is_400(self, request_factory):
        server = BaseServer()
        server.add_route("post", "/j", lambda request: ok("unreachable"))

        response = server.handle(request_factory(
            "POST", "/j", b"{oops", {"Content-Type": "application/json"},
        ))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json["error"] == "syntax_error"

    def test_trust_proxy_applied(self, request_factory):
        server = BaseServer({"express": {"proxy": {"trust": True}}})
        server.add_route("get", "/ip", lambda request: ok({"ip": request.ip}))

        response = server.handle(request_factory(
            path="/ip", headers={"X-Forwarded-For": "198.51.100.4, 10.0.0.1"},
        ))

        assert response.json == {"ip": "198.51.100.4"}

    def test_proxy_not_trusted(self, request_factory):
        server = BaseServer()
        server.add_route("get", "/ip", lambda request: ok({"ip": request.ip}))

        response = server.handle(request_factory(
            path="/ip", headers={"X-Forwarded-For": "198.51.100.4"},
        ))

        assert response.json == {"ip": "10.0.0.1"}

    def test_error_hook_failure_is_500(self, request_factory):
        server = BaseServer({"express": {"helmet": False}})

        def broken_hook(request, exc):
            raise RuntimeError("hook failed")

        server.pipeline.error_handler = broken_hook

        response = server.handle(request_factory(
            "POST", "/text", b"\xff\xfe", {"Content-Type": "text/plain"},
        ))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.json == {"error": "Internal Server Error"}
