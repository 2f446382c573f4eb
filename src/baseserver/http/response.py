"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

HTTPResponse is the value every handler and middleware returns;
ResponseBuilder is the fluent way to make one.

    response = (ResponseBuilder()
        .status(HTTPStatus.CREATED)
        .header("Location", "/users/1")
        .json({"id": 1})
        .build())

=============================================================================
FIXED ERROR PAYLOADS
=============================================================================

Clients only ever see one of two error bodies from the bootstrap itself,
never a stack trace:

    400  {"error": "syntax_error",
          "error_description": "The request could not be understood by
                                the server due to malformed syntax."}

    503  {"error": "server_error",
          "error_description": "Service Unavailable"}

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Optional, Dict, Any, Union
import json


SYNTAX_ERROR = "syntax_error"
SYNTAX_ERROR_DESCRIPTION = (
    "The request could not be understood by the server due to malformed syntax."
)

SERVER_ERROR = "server_error"
SERVER_ERROR_DESCRIPTION = "Service Unavailable"


@dataclass
class HTTPResponse:
    """
    An HTTP response to be serialized onto a connection.

    Content-Length, Date and Server are filled in by to_bytes() when the
    handler did not set them.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {self.status.value} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive lookup (response header names keep their case)."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def remove_header(self, name: str) -> "HTTPResponse":
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            del self.headers[key]
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    @property
    def json(self) -> Any:
        """Decode a JSON body (mostly useful in tests)."""
        return json.loads(self.body.decode("utf-8")) if self.body else None

    def to_bytes(self, server_name: str = "baseserver/1.0", include_body: bool = True) -> bytes:
        """
        Serialize for socket.sendall().

        include_body=False (HEAD) keeps Content-Length of the full body
        but sends no body bytes.

            HTTP/1.1 200 OK\\r\\n
            Content-Type: application/json\\r\\n
            Content-Length: 27\\r\\n
            Date: Wed, 01 Jan 2026 12:00:00 GMT\\r\\n
            Server: baseserver/1.0\\r\\n
            \\r\\n
            {"message": "Hello"}
        """
        response_headers = dict(self.headers)

        if self.get_header("Content-Length") is None:
            response_headers["Content-Length"] = str(len(self.body))
        if self.get_header("Date") is None:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if self.get_header("Server") is None:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + (self.body if include_body else b"")


class ResponseBuilder:
    """Fluent builder for HTTPResponse."""

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, "text/html; charset=utf-8")

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always GMT.

    Example: Wed, 01 Jan 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK. dict/list become JSON, str becomes text, bytes are sent as is.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)
    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)
    return builder.build()


def error_response(status: Union[HTTPStatus, int], error: str, description: str) -> HTTPResponse:
    """JSON error body in the {"error", "error_description"} shape."""
    return (ResponseBuilder()
        .status(status)
        .json({"error": error, "error_description": description})
        .build())


def syntax_error() -> HTTPResponse:
    """400 for request bodies that could not be parsed."""
    return error_response(HTTPStatus.BAD_REQUEST, SYNTAX_ERROR, SYNTAX_ERROR_DESCRIPTION)


def server_error() -> HTTPResponse:
    """503 for errors forwarded to the error handler."""
    return error_response(HTTPStatus.SERVICE_UNAVAILABLE, SERVER_ERROR, SERVER_ERROR_DESCRIPTION)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).json({"error": message}).build()


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR).json({"error": message}).build()
