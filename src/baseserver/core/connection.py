"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: optional TLS handshake, buffered reads
of one HTTP request at a time, response writes and a graceful close.

=============================================================================
TIMEOUTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     TIMEOUTS ON ONE CONNECTION                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  accept   first byte          \r\n\r\n        body        response  │
    │    │──────────│──────────────────│──────────────│────────────│      │
    │    │  timeout │  headers_timeout │   timeout    │            │      │
    │    │ (socket) │ (whole header    │ (per recv)   │            │      │
    │    │          │   block)         │              │            │      │
    │                                                                      │
    │  next request on the same connection:                               │
    │    │─────────────────│──────────── ...                              │
    │    keep_alive_timeout                                               │
    │    (idle wait; expiry closes quietly)                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    timeout              first request did not arrive   → TimeoutError (408)
    headers_timeout      header block took too long     → HeadersTimeoutError (408)
    keep_alive_timeout   no next request                → read_request() returns None

A keep_alive_timeout or headers_timeout of 0 or None disables that limit.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns arbitrary chunks. Bytes are buffered until the header
terminator is seen, then Content-Length more bytes are read. Anything
beyond the current request stays in the buffer for the next one
(pipelining).

=============================================================================
"""

import socket
import ssl
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

logger = logging.getLogger(__name__)


class HeadersTimeoutError(TimeoutError):
    """The complete header block did not arrive within headers_timeout."""


class RequestTooLargeError(ValueError):
    """The buffered request exceeded max_request_size."""


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket (replaced by an SSLSocket after start_tls).
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        requests_handled: Number of requests read so far.
    """

    socket: socket.socket
    address: tuple[str, int]
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: Optional[float] = 5.0
    headers_timeout: Optional[float] = 60.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    # =========================================================================
    # TLS
    # =========================================================================

    def start_tls(self, context: ssl.SSLContext) -> None:
        """
        Perform the server side of the TLS handshake.

        Runs in the worker thread, bounded by the connection timeout, so a
        slow client never stalls the accept loop.

        Raises:
            ssl.SSLError, OSError: if the handshake fails.
        """
        self.socket = context.wrap_socket(self.socket, server_side=True)
        logger.debug(f"[{self.id}] TLS established ({self.socket.version()})")

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        Returns:
            Request bytes, or None if the client closed the connection or a
            keep-alive connection went idle.

        Raises:
            TimeoutError: first request did not arrive in time.
            HeadersTimeoutError: header block exceeded headers_timeout.
            RequestTooLargeError: request exceeded max_request_size.
        """
        self.state = ConnectionState.READING
        waiting_for_next = self.requests_handled > 0
        deadline = self._headers_deadline() if self._buffer else None

        try:
            while b"\r\n\r\n" not in self._buffer:
                self._set_wait_timeout(deadline, waiting_for_next)
                try:
                    chunk = self._recv()
                except socket.timeout:
                    if deadline is not None and time.time() >= deadline:
                        raise HeadersTimeoutError("Request headers timeout") from None
                    if deadline is None and waiting_for_next:
                        logger.debug(f"[{self.id}] Keep-alive timeout")
                        return None
                    raise TimeoutError("Request read timeout") from None

                if not chunk:
                    return None
                self._buffer += chunk
                if deadline is None:
                    deadline = self._headers_deadline()
                self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            self.socket.settimeout(self.timeout)
            while len(self._buffer) - body_start < content_length:
                try:
                    chunk = self._recv()
                except socket.timeout:
                    raise TimeoutError("Request body read timeout") from None
                if not chunk:
                    break
                self._buffer += chunk
                self._check_size()

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]
            self.requests_handled += 1
            return request_data
        finally:
            try:
                self.socket.settimeout(self.timeout)
            except OSError:
                pass

    def _headers_deadline(self) -> Optional[float]:
        if not self.headers_timeout:
            return None
        return time.time() + self.headers_timeout

    def _set_wait_timeout(self, deadline: Optional[float], waiting_for_next: bool) -> None:
        if deadline is not None:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise HeadersTimeoutError("Request headers timeout")
            wait = remaining if self.timeout is None else min(remaining, self.timeout)
        elif waiting_for_next:
            wait = self.keep_alive_timeout or None
        else:
            wait = self.timeout
        self.socket.settimeout(wait)

    def _check_size(self) -> None:
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLargeError(f"Request too large: {len(self._buffer)} bytes")

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Content-Length from the raw header block.

        Needed before the request can be parsed, so it is a plain line scan.
        """
        header_str = headers.decode("utf-8", errors="replace").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(int(line.split(":", 1)[1].strip()), 0)
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING AND CLOSING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes with sendall().

        Returns:
            True on success, False if the connection was lost.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def close(self):
        """
        Close gracefully: shutdown(SHUT_WR) sends FIN, drain what the client
        still sends, then release the descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING
        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
