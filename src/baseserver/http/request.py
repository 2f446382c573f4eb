"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into HTTPRequest objects (RFC 7230) and
carries everything the bootstrap middleware attaches on the way through
the pipeline.

=============================================================================
WHAT THE PIPELINE ADDS TO A REQUEST
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                 REQUEST FIELDS BY PRODUCER                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   RequestParser        method, path, version, headers,              │
    │                        query_params, body (raw bytes)               │
    │                                                                      │
    │   Listener/server      client_address, scheme, trust_proxy          │
    │                                                                      │
    │   CookieParser         cookies                                      │
    │                                                                      │
    │   BodyParser           parsed_body, raw_body (JSON only)            │
    │                                                                      │
    │   Router               path_params                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CLIENT ADDRESS RESOLUTION
=============================================================================

Behind a reverse proxy every connection comes from the proxy itself.
When the server is configured to trust the proxy, request.ip is the
leftmost X-Forwarded-For entry (the original client); otherwise it is the
socket peer address and X-Forwarded-For is ignored, since any client can
send that header.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from urllib.parse import parse_qs, urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code to return to the client:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Headers are stored with LOWERCASE keys (they are case-insensitive per
    RFC 7230), so lookups never need .lower() at the call site.

    `body` is always the raw bytes off the wire. The decoded form produced
    by the body parser lives in `parsed_body`.
    """

    # Request line
    method: str
    path: str
    version: str = "HTTP/1.1"

    # Parsed components
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    # Filled in by the router
    path_params: Dict[str, str] = field(default_factory=dict)

    # Connection metadata
    client_address: tuple[str, int] = ("", 0)
    scheme: str = "http"
    trust_proxy: bool = False
    raw: bytes = field(default=b"", repr=False)

    # Filled in by middleware
    cookies: Dict[str, Any] = field(default_factory=dict)
    parsed_body: Any = None
    raw_body: Optional[str] = field(default=None, repr=False)

    # =========================================================================
    # HEADER-DERIVED PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters, lowercased ("application/json")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def charset(self) -> Optional[str]:
        """The charset parameter of Content-Type, if any."""
        for param in self.headers.get("content-type", "").split(";")[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "charset":
                return value.strip().strip('"').lower() or None
        return None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after this request.

        HTTP/1.1 keeps alive unless "Connection: close".
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # PROXY-AWARE PROPERTIES
    # =========================================================================

    @property
    def ips(self) -> List[str]:
        """
        Addresses from X-Forwarded-For, client first.

        Empty unless the proxy is trusted.
        """
        if not self.trust_proxy:
            return []
        forwarded = self.headers.get("x-forwarded-for", "")
        return [addr.strip() for addr in forwarded.split(",") if addr.strip()]

    @property
    def ip(self) -> str:
        """Client address, honouring X-Forwarded-For only behind a trusted proxy."""
        forwarded = self.ips
        if forwarded:
            return forwarded[0]
        return self.client_address[0]

    @property
    def protocol(self) -> str:
        """
        "http" or "https" as seen by the client.

        Behind a trusted proxy the TLS terminator reports the original
        scheme in X-Forwarded-Proto.
        """
        if self.trust_proxy:
            proto = self.headers.get("x-forwarded-proto", "")
            if proto:
                return proto.split(",")[0].strip().lower()
        return self.scheme

    @property
    def secure(self) -> bool:
        return self.protocol == "https"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def get_cookie(self, name: str, default: Any = None) -> Any:
        return self.cookies.get(name, default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    The parser is stateless apart from its size limit, so one instance is
    shared by every worker thread.

    Parsing steps:
        1. Enforce the size limit (413)
        2. Split header block from body at the first CRLF CRLF
        3. Parse the request line (method, target, version)
        4. Parse header lines into a lowercase-keyed dict
        5. Cut the body to Content-Length
    """

    # Standard methods (RFC 7231 + PATCH). Anything else is a 405.
    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data.

        Args:
            data: Raw request bytes (one complete request).
            client_address: Peer (ip, port) of the connection.

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header") from None
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, List[str]], str]:
        """Parse "METHOD SP REQUEST-URI SP HTTP-VERSION"."""
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        # Directory traversal
        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse header lines.

        - Names are lowercased.
        - Repeated headers are joined with ", ".
        - Obsolete line folding (leading whitespace) continues the previous
          header.
        - Malformed lines are skipped (lenient parsing).
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
