"""
=============================================================================
TCP LISTENER
=============================================================================

One bound socket, its accept loop and the per-connection HTTP loop. The
server owns up to two listeners (plain HTTP and HTTPS); they differ only
in port, timeouts and whether a TLS context is attached.

=============================================================================
LISTENER LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   start(handler)                                                    │
    │     ├── socket(), SO_REUSEADDR, TCP_NODELAY                         │
    │     ├── bind((host, port))        ← errors raise HERE, in caller    │
    │     ├── listen(backlog)                                             │
    │     ├── record bound port         ← port 0 → kernel-chosen port    │
    │     └── accept loop in a daemon thread                              │
    │              │                                                       │
    │              ▼                                                       │
    │         accept() → Connection → pool.submit(_process_connection)    │
    │                                                                      │
    │   shutdown()                                                        │
    │     └── stop the loop, close the socket, join the thread            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PER-CONNECTION LOOP (worker thread)
=============================================================================

    [TLS handshake]  (HTTPS only)
    loop:
        read request   → None: client gone / keep-alive idle → close
        parse          → HTTPParseError: error response, close
        handler(request)
        Connection / Keep-Alive headers
        send
        not keep-alive → close

keep_alive_timeout and headers_timeout are plain attributes, read each
time a connection is accepted, so they can be changed after start().

=============================================================================
"""

import socket
import ssl
import logging
import threading
from http import HTTPStatus
from typing import Callable, Optional

from .connection import Connection, HeadersTimeoutError, RequestTooLargeError
from .thread_pool import ThreadPool
from ..http.request import HTTPParseError, HTTPRequest, RequestParser
from ..http.response import HTTPResponse, ResponseBuilder

logger = logging.getLogger(__name__)


RequestHandler = Callable[[HTTPRequest], HTTPResponse]

DEFAULT_KEEP_ALIVE_TIMEOUT = 5.0
DEFAULT_HEADERS_TIMEOUT = 60.0


class Listener:
    """
    A TCP listener feeding connections to a shared ThreadPool.

    Usage:
        listener = Listener("http", "0.0.0.0", 8080, pool=pool)
        listener.start(server.handle)
        ...
        listener.shutdown()
    """

    def __init__(
        self,
        name: str,
        host: str,
        port: int,
        pool: ThreadPool,
        tls_context: Optional[ssl.SSLContext] = None,
        parser: Optional[RequestParser] = None,
        backlog: int = 128,
        buffer_size: int = 8192,
        timeout: Optional[float] = 30.0,
        keep_alive_timeout: Optional[float] = DEFAULT_KEEP_ALIVE_TIMEOUT,
        headers_timeout: Optional[float] = DEFAULT_HEADERS_TIMEOUT,
        max_request_size: int = 10 * 1024 * 1024,
        server_name: str = "baseserver/1.0",
    ):
        self.name = name
        self.host = host
        self.port = port
        self.pool = pool
        self.tls_context = tls_context
        self.parser = parser or RequestParser(max_request_size=max_request_size)
        self.backlog = backlog
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.keep_alive_timeout = keep_alive_timeout
        self.headers_timeout = headers_timeout
        self.max_request_size = max_request_size
        self.server_name = server_name

        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._handler: Optional[RequestHandler] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def scheme(self) -> str:
        return "https" if self.tls_context is not None else "http"

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, self.port)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        # accept() wakes up every second to check the running flag
        sock.settimeout(1.0)
        return sock

    def start(self, handler: RequestHandler) -> None:
        """
        Bind, listen and start accepting in a background thread.

        Raises:
            OSError: if the address cannot be bound.
        """
        self._handler = handler
        sock = self._create_socket()
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind {self.name} listener to {self.host}:{self.port}: {e}")
            raise

        sock.listen(self.backlog)
        self.port = sock.getsockname()[1]
        self._socket = sock
        self._running = True

        self._thread = threading.Thread(
            target=self._accept_loop,
            name=f"{self.name}-listener",
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"{self.name} listener accepting on {self.host}:{self.port}")

    def shutdown(self, timeout: float = 2.0) -> None:
        """Stop accepting. Idempotent."""
        if not self._running:
            return
        self._running = False
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        logger.info(f"{self.name} listener on port {self.port} stopped")

    def _accept_loop(self) -> None:
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"{self.name} accept error: {e}")
                break

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.buffer_size,
                timeout=self.timeout,
                keep_alive_timeout=self.keep_alive_timeout,
                headers_timeout=self.headers_timeout,
                max_request_size=self.max_request_size,
            )
            self._dispatch_connection(conn)

    def _dispatch_connection(self, conn: Connection) -> None:
        try:
            submitted = self.pool.submit(self._process_connection, args=(conn,))
        except RuntimeError:
            conn.close()
            return

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            # Nothing can be said in plaintext on a TLS port
            if self.tls_context is None:
                self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    # =========================================================================
    # REQUEST HANDLING (worker thread)
    # =========================================================================

    def _process_connection(self, conn: Connection) -> None:
        with conn:
            if self.tls_context is not None:
                try:
                    conn.start_tls(self.tls_context)
                except (ssl.SSLError, OSError) as e:
                    logger.debug(f"[{conn.id}] TLS handshake failed: {e}")
                    return

            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self.parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        self._send_error(conn, e.status_code, str(e))
                        break

                    request.scheme = self.scheme
                    response = self._handler(request)

                    keep_alive = request.is_keep_alive and self._running
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        if self.keep_alive_timeout:
                            response.headers.setdefault(
                                "Keep-Alive", f"timeout={int(self.keep_alive_timeout)}"
                            )
                    else:
                        response.headers["Connection"] = "close"

                    # HEAD: headers only
                    data = response.to_bytes(self.server_name, include_body=request.method != "HEAD")
                    if not conn.send_response(data):
                        break
                    if not keep_alive:
                        break
                    conn.set_keep_alive()

                except HeadersTimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request headers timeout")
                    break
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except RequestTooLargeError as e:
                    self._send_error(conn, HTTPStatus.REQUEST_ENTITY_TOO_LARGE, str(e))
                    break
                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        """Error response for failures outside the pipeline (parse, timeouts)."""
        response = (ResponseBuilder()
            .status(status)
            .json({"error": message})
            .close_connection()
            .build())
        conn.send_response(response.to_bytes(self.server_name))
