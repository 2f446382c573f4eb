"""
pytest configuration and fixtures.
"""

import shutil
import socket
import subprocess
import time
from typing import Dict, Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from baseserver import BaseServer, ServerConfig
from baseserver.http import HTTPRequest, HTTPResponse, ResponseBuilder, RequestParser


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + b"Content-Length: %d\r\n" % len(body)
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


def make_request(
    method: str = "GET",
    path: str = "/",
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
    client_address: tuple = ("10.0.0.1", 50000),
) -> HTTPRequest:
    """Build an HTTPRequest the way the listener would, through the parser."""
    headers = dict(headers or {})
    if body:
        headers.setdefault("Content-Length", str(len(body)))
    lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
    lines += [f"{name}: {value}" for name, value in headers.items()]
    raw = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8") + body
    return RequestParser().parse(raw, client_address)


@pytest.fixture
def request_factory():
    """Factory fixture around make_request."""
    return make_request


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def tls_files(tmp_path: Path) -> Dict[str, str]:
    """Self-signed key, certificate and CA bundle written to tmp_path."""
    if shutil.which("openssl") is None:
        pytest.skip("openssl not available")

    cert_file = tmp_path / "cert.pem"
    key_file = tmp_path / "key.pem"
    subprocess.run(
        [
            "openssl", "req", "-x509",
            "-newkey", "rsa:2048",
            "-nodes",
            "-sha256",
            "-days", "1",
            "-subj", "/CN=localhost",
            "-keyout", str(key_file),
            "-out", str(cert_file),
        ],
        check=True,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    # Self-signed: the certificate is its own CA
    ca_file = tmp_path / "ca.pem"
    ca_file.write_bytes(cert_file.read_bytes())
    return {"key": str(key_file), "cert": str(cert_file), "ca": str(ca_file)}


def wait_for_port(port: int, timeout: float = 5.0) -> None:
    """Block until something accepts on 127.0.0.1:port."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=0.5):
                return
        except OSError:
            time.sleep(0.05)
    raise RuntimeError(f"Nothing listening on port {port}")


def recv_http_response(sock: socket.socket) -> bytes:
    """Read one full response (headers + Content-Length body)."""
    buffer = b""
    while b"\r\n\r\n" not in buffer:
        chunk = sock.recv(4096)
        if not chunk:
            return buffer
        buffer += chunk

    header_end = buffer.find(b"\r\n\r\n")
    content_length = 0
    for line in buffer[:header_end].split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            content_length = int(value.strip())

    body = buffer[header_end + 4:]
    while len(body) < content_length:
        chunk = sock.recv(4096)
        if not chunk:
            break
        body += chunk
    return buffer[:header_end + 4] + body


@pytest.fixture
def running_server(free_port: int) -> Generator[BaseServer, None, None]:
    """A BaseServer with an HTTP listener on a free port and a few routes."""
    server = BaseServer(ServerConfig.from_dict({
        "webserver": {
            "host": "127.0.0.1",
            "workers": 4,
            "http": {"port": free_port},
        },
        "logging": {"level": "WARNING"},
    }))

    @server.get("/test")
    def test_route(request: HTTPRequest) -> HTTPResponse:
        return ResponseBuilder().json({"status": "ok"}).build()

    @server.post("/echo")
    def echo_route(request: HTTPRequest) -> HTTPResponse:
        return ResponseBuilder().json({"received": request.parsed_body}).build()

    @server.get("/boom")
    def boom(request: HTTPRequest) -> HTTPResponse:
        raise RuntimeError("boom")

    server.start_server()
    wait_for_port(free_port)

    yield server

    server.shutdown()
