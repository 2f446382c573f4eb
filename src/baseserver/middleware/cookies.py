"""
=============================================================================
COOKIE PARSER MIDDLEWARE
=============================================================================

Parses the Cookie request header into request.cookies.

    Cookie: sid=abc123; theme=dark; cart=j%3A%7B%22items%22%3A2%7D
                         │
                         ▼
    request.cookies == {"sid": "abc123",
                        "theme": "dark",
                        "cart": {"items": 2}}

=============================================================================
PARSING RULES
=============================================================================

1. Pairs are separated by ";", name and value by the FIRST "=".
2. Surrounding whitespace is trimmed; a double-quoted value is unquoted.
3. Values are percent-decoded.
4. The first occurrence of a name wins (browsers send the most specific
   cookie first).
5. A value of the form "j:<json>" is decoded as JSON. If the JSON is
   invalid the raw string is kept.
6. Pairs without "=" are skipped.

=============================================================================
"""

from typing import Any, Dict
from urllib.parse import unquote
import json
import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)


JSON_COOKIE_PREFIX = "j:"


def parse_cookie_header(header: str) -> Dict[str, Any]:
    """Parse a Cookie header value into a dict."""
    cookies: Dict[str, Any] = {}

    for pair in header.split(";"):
        name, sep, value = pair.partition("=")
        if not sep:
            continue

        name = name.strip()
        if not name or name in cookies:
            continue

        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]

        cookies[name] = decode_cookie_value(unquote(value))

    return cookies


def decode_cookie_value(value: str) -> Any:
    """Decode "j:" JSON cookies, return anything else unchanged."""
    if not value.startswith(JSON_COOKIE_PREFIX):
        return value
    try:
        return json.loads(value[len(JSON_COOKIE_PREFIX):])
    except ValueError:
        return value


class CookieParserMiddleware(Middleware):
    """
    Populates request.cookies from the Cookie header.

    Requests without the header get an empty dict, so handlers can always
    call request.cookies.get(...).
    """

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        header = request.headers.get("cookie")
        if header:
            request.cookies = parse_cookie_header(header)
            logger.debug(f"Parsed {len(request.cookies)} cookies for {request.path}")
        else:
            request.cookies = {}
        return next(request)
