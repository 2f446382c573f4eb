"""
=============================================================================
ROUTE DESCRIPTORS
=============================================================================

Routes are not kept in a separate routing table. Each registered route is
a layer of the one pipeline, interleaved with middleware in registration
order, so a route registered before a middleware never sees that
middleware's work.

This module only knows how a single route decides whether it applies to
a request.

=============================================================================
ROUTE KINDS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          ROUTE KINDS                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   use    any method, PREFIX match                                   │
    │          handler(request, next) -> HTTPResponse                     │
    │          "/api" matches /api, /api/users, /api/users/1              │
    │          but not /apix                                              │
    │                                                                      │
    │   get    GET (and HEAD), FULL match                                 │
    │   post   POST only, FULL match                                      │
    │          handler(request) -> HTTPResponse                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PATH PATTERNS
=============================================================================

    /users              static, exact
    /users/:id          one segment   → path_params["id"]
    /static/*filepath   the rest      → path_params["filepath"]

    Pattern:  /users/:id/posts/:post_id
    Regex:    ^/users/(?P<id>[^/]+)/posts/(?P<post_id>[^/]+)$

Mount routes drop the "$" anchor and require the match to end on a
segment boundary instead.

A mount handler sees the FULL request.path: the mount prefix is not
stripped, so "/api" mounted code matches on "/api/users", not "/users".
Path parameters in the prefix still land in path_params.

A HEAD request is answered by the matching GET route; the listener sends
the headers (Content-Length included) and drops the body.

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import re

from .request import HTTPRequest
from .response import HTTPResponse


# Handler for get/post routes
Handler = Callable[[HTTPRequest], HTTPResponse]


class RouteKind(Enum):
    USE = "use"
    GET = "get"
    POST = "post"

    @classmethod
    def parse(cls, value: Any) -> Optional["RouteKind"]:
        """
        Case-insensitive lookup; None for anything that is not a known kind.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def method(self) -> Optional[str]:
        """HTTP method this kind is restricted to (None = any)."""
        return None if self is RouteKind.USE else self.value.upper()


def compile_pattern(path: str, prefix: bool = False) -> tuple[re.Pattern, List[str]]:
    """
    Compile a route path into a regex.

    Args:
        path: Route path ("/users/:id", "/static/*filepath").
        prefix: Match the path as a prefix ending on a segment boundary.

    Returns:
        Tuple of (compiled regex, parameter names in order).
    """
    param_names: List[str] = []
    regex_parts = ["^"]

    for segment in path.split("/"):
        if not segment:
            continue

        regex_parts.append("/")

        if segment.startswith(":"):
            name = segment[1:]
            param_names.append(name)
            regex_parts.append(f"(?P<{name}>[^/]+)")
        elif segment.startswith("*"):
            name = segment[1:] or "wildcard"
            param_names.append(name)
            regex_parts.append(f"(?P<{name}>.*)")
            break  # wildcard consumes everything
        else:
            regex_parts.append(re.escape(segment))

    if prefix:
        # "/" alone must match every path
        if len(regex_parts) == 1:
            return re.compile("^"), param_names
        regex_parts.append("(?=/|$)")
    else:
        if len(regex_parts) == 1:
            regex_parts.append("/")
        # tolerate a single trailing slash
        regex_parts.append("/?$")

    return re.compile("".join(regex_parts)), param_names


@dataclass
class Route:
    """
    A registered route.

        Route(RouteKind.GET, "/users/:id", get_user)
        Route(RouteKind.USE, "/api", api_middleware)
    """

    kind: RouteKind
    path: str
    handler: Callable[..., HTTPResponse]

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.path.startswith("/"):
            self.path = "/" + self.path
        self._pattern, self._param_names = compile_pattern(
            self.path, prefix=self.kind is RouteKind.USE
        )

    @property
    def method(self) -> Optional[str]:
        return self.kind.method

    @property
    def is_mount(self) -> bool:
        return self.kind is RouteKind.USE

    def match(self, method: str, path: str) -> Optional[Dict[str, str]]:
        """
        Check whether this route applies.

        Returns:
            Extracted path parameters ({} for static paths) or None.
        """
        method = method.upper()
        if self.method is not None and self.method != method:
            if not (method == "HEAD" and self.method == "GET"):
                return None
        match = self._pattern.match(path)
        if match is None:
            return None
        return match.groupdict()
