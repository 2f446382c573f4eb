"""
=============================================================================
NETWORK CORE
=============================================================================

    listener.py     bound socket + accept loop + per-connection HTTP loop
    connection.py   buffered client socket, timeouts, TLS handshake
    thread_pool.py  workers shared by every listener

=============================================================================
"""

from .connection import Connection, ConnectionState, HeadersTimeoutError, RequestTooLargeError
from .listener import Listener, DEFAULT_KEEP_ALIVE_TIMEOUT, DEFAULT_HEADERS_TIMEOUT
from .thread_pool import ThreadPool

__all__ = [
    "Connection",
    "ConnectionState",
    "HeadersTimeoutError",
    "RequestTooLargeError",
    "Listener",
    "DEFAULT_KEEP_ALIVE_TIMEOUT",
    "DEFAULT_HEADERS_TIMEOUT",
    "ThreadPool",
]
