"""
=============================================================================
BODY PARSER MIDDLEWARE
=============================================================================

Decodes the request body into request.parsed_body, choosing the decoder
from the Content-Type header. Exactly one decoder runs per request.

=============================================================================
DISPATCH TABLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Content-Type                       parsed_body                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │ application/json, */*+json         dict or list (strict JSON)      │
    │                                    + raw_body = decoded text        │
    │ text/plain, text/html              str                              │
    │ application/octet-stream           bytes                            │
    │ application/x-www-form-urlencoded  nested dict                      │
    │ anything else, or no body          {}                               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FAILURES
=============================================================================

    JSON body malformed        → 400 syntax_error, answered HERE
    (bad syntax, bad charset,    (logged at WARNING, never reaches the
     scalar top level)            error handler)

    text/form undecodable      → BodyParseError raised, answered by the
    (bad bytes, unknown          error handler with 503
     charset)

=============================================================================
NESTED FORM KEYS
=============================================================================

    a=1&a=2            {"a": ["1", "2"]}
    user[name]=ann     {"user": {"name": "ann"}}
    tags[]=x&tags[]=y  {"tags": ["x", "y"]}
    ids[0]=5&ids[1]=6  {"ids": ["5", "6"]}

=============================================================================
"""

from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl
import json
import logging
import re

from .base import Middleware, NextHandler
from ..errors import BodyParseError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, syntax_error

logger = logging.getLogger(__name__)


JSON_TYPES = ("application/json",)
TEXT_TYPES = ("text/plain", "text/html")
RAW_TYPES = ("application/octet-stream",)
FORM_TYPES = ("application/x-www-form-urlencoded",)

# Charsets a JSON body may declare (RFC 8259 allows only Unicode)
JSON_CHARSETS = ("utf-8", "utf8", "utf-16", "utf-16le", "utf-16be",
                 "utf-32", "utf-32le", "utf-32be")

# Deepest bracket nesting honoured in form keys; the rest stays literal
MAX_FORM_DEPTH = 5

FORM_KEY_PATTERN = re.compile(r"^([^\[\]]*)((?:\[[^\[\]]*\])*)$")
BRACKET_PATTERN = re.compile(r"\[([^\[\]]*)\]")


def is_json_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    return content_type in JSON_TYPES or content_type.endswith("+json")


class BodyParserMiddleware(Middleware):
    """
    Content-type dispatched body decoding.

    Handlers read request.parsed_body; request.body keeps the raw bytes.
    """

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        content_type = request.content_type

        if not request.body:
            request.parsed_body = {}
            return next(request)

        if is_json_type(content_type):
            try:
                request.parsed_body = self._parse_json(request)
            except ValueError as e:
                logger.warning(
                    f"Malformed JSON body on {request.method} {request.path} "
                    f"from {request.ip}: {e}"
                )
                return syntax_error()
        elif content_type in TEXT_TYPES:
            request.parsed_body = self._decode_text(request)
        elif content_type in RAW_TYPES:
            request.parsed_body = request.body
        elif content_type in FORM_TYPES:
            request.parsed_body = parse_form(self._decode_text(request))
        else:
            request.parsed_body = {}

        return next(request)

    def _parse_json(self, request: HTTPRequest) -> Any:
        """
        Strict JSON: only an object or array is accepted at the top level.

        Raises:
            ValueError: on any decoding or syntax problem.
        """
        charset = request.charset or "utf-8"
        if charset not in JSON_CHARSETS:
            raise ValueError(f"Unsupported JSON charset: {charset}")

        # UnicodeDecodeError is a ValueError
        text = request.body.decode(charset)
        request.raw_body = text

        stripped = text.lstrip(" \t\r\n\ufeff")
        if not stripped.startswith(("{", "[")):
            raise ValueError("JSON body must be an object or an array")

        return json.loads(stripped)

    def _decode_text(self, request: HTTPRequest) -> str:
        charset = request.charset or "utf-8"
        try:
            return request.body.decode(charset)
        except LookupError:
            raise BodyParseError(
                f"Unsupported charset: {charset}", request.content_type
            ) from None
        except UnicodeDecodeError as e:
            raise BodyParseError(
                f"Body is not valid {charset}", request.content_type
            ) from e


# =============================================================================
# URL-ENCODED FORMS
# =============================================================================

def parse_form(text: str) -> Dict[str, Any]:
    """Parse an application/x-www-form-urlencoded body with nested keys."""
    result: Dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        _assign(result, _split_key(key), value)
    return {key: _compact(value) for key, value in result.items()}


def _split_key(key: str) -> List[str]:
    """
    "user[address][city]" → ["user", "address", "city"]
    "tags[]"              → ["tags", ""]
    """
    match = FORM_KEY_PATTERN.match(key)
    if not match or not match.group(1):
        return [key]
    segments = [match.group(1)] + BRACKET_PATTERN.findall(match.group(2))
    if len(segments) > MAX_FORM_DEPTH + 1:
        rest = "".join(f"[{s}]" for s in segments[MAX_FORM_DEPTH + 1:])
        segments = segments[:MAX_FORM_DEPTH + 1]
        segments[-1] += rest
    return segments


def _assign(target: Dict[str, Any], segments: List[str], value: str) -> None:
    key = segments[0]
    if key == "":
        # "[]" appends: numbered after whatever is already there
        key = _next_index(target)

    if len(segments) == 1:
        existing = target.get(key)
        if existing is None:
            target[key] = value
        elif isinstance(existing, dict):
            existing[_next_index(existing)] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            target[key] = [existing, value]
        return

    child = target.get(key)
    if child is None:
        child = {}
        target[key] = child
    elif not isinstance(child, dict):
        # "a=1&a[]=2": earlier plain values become the first indices
        values = child if isinstance(child, list) else [child]
        child = {str(i): v for i, v in enumerate(values)}
        target[key] = child
    _assign(child, segments[1:], value)


def _next_index(node: Dict[str, Any]) -> str:
    return str(sum(1 for k in node if k.isdigit()))


def _compact(node: Any) -> Any:
    """Turn dicts keyed 0..n-1 into lists, depth first."""
    if not isinstance(node, dict):
        return node
    node = {k: _compact(v) for k, v in node.items()}
    if node and all(k.isdigit() for k in node):
        indices = sorted(int(k) for k in node)
        if indices == list(range(len(indices))):
            return [node[str(i)] for i in indices]
    return node
