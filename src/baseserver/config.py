"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Typed configuration for the bootstrap. A raw mapping (usually a JSON file
shaped like SAMPLE_CONFIG) is validated ONCE against CONFIG_SCHEMA and then
turned into these dataclasses. Every field has its default here, so the
rest of the code never needs "x.get(y, default)" chains.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m baseserver --http-port 3000                     │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── BASESERVER_HTTP_PORT=3000 python -m baseserver            │
    │                                                                      │
    │   3. Configuration file                                             │
    │      └── python -m baseserver --config server.json                 │
    │                                                                      │
    │   4. Default values (in these dataclasses)                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FILE FORMAT vs ATTRIBUTE NAMES
=============================================================================

Files use the camelCase keys of the schema (honorCipherOrder,
keepAliveTimeout, headersTimeout, maxRequestSize). The dataclasses use
snake_case. Timeouts stay in MILLISECONDS in both places; the listener
converts them to seconds when it applies them.

=============================================================================
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import ConfigError
from .schema import CONFIG_SCHEMA, validate_config


logger = logging.getLogger(__name__)


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# EXPRESS SECTION (pipeline features)
# =============================================================================

@dataclass
class ViewsConfig:
    """Template settings. Only recorded; rendering is left to the caller."""

    path: Optional[str] = None
    engine: str = "ejs"


@dataclass
class ProxyConfig:
    """Reverse-proxy trust. Affects how request.ip is resolved."""

    trust: bool = False


@dataclass
class ExpressConfig:
    """
    Which built-in middleware to mount.

    cookie and helmet default to enabled: only an explicit False turns
    them off. views and proxy are None when their section is absent.
    """

    cookie: bool = True
    helmet: bool = True
    views: Optional[ViewsConfig] = None
    proxy: Optional[ProxyConfig] = None


# =============================================================================
# WEBSERVER SECTION (listeners)
# =============================================================================

@dataclass
class HTTPListenerConfig:
    # None or 0 means "no plain HTTP listener"
    port: Optional[int] = None


@dataclass
class SSLFilesConfig:
    """Paths of the three PEM files read at HTTPS startup."""

    key: str = ""
    cert: str = ""
    ca: str = ""


@dataclass
class HTTPSListenerConfig:
    enabled: bool = False
    ssl: SSLFilesConfig = field(default_factory=SSLFilesConfig)
    ciphers: Union[str, List[str], None] = None
    honor_cipher_order: Optional[bool] = None
    port: Optional[int] = None
    keep_alive_timeout: Optional[float] = None  # milliseconds
    headers_timeout: Optional[float] = None     # milliseconds


@dataclass
class WebServerConfig:
    host: str = "0.0.0.0"
    workers: int = 16
    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    http: HTTPListenerConfig = field(default_factory=HTTPListenerConfig)
    https: HTTPSListenerConfig = field(default_factory=HTTPSListenerConfig)


@dataclass
class LoggingConfig:
    level: str = "INFO"


# =============================================================================
# ROOT
# =============================================================================

@dataclass
class ServerConfig:
    """
    Complete bootstrap configuration.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    express     cookie / helmet flags, views, proxy trust
    webserver   host, worker count, HTTP listener, HTTPS listener
    logging     log level

    Socket-level knobs that are not part of the file format (backlog,
    buffer size, idle socket timeout) live directly on this class.

    =========================================================================
    USAGE
    =========================================================================

        config = ServerConfig.from_dict({
            "webserver": {"http": {"port": 8080}},
        })

        config = ServerConfig.from_file("server.json")
        config = ServerConfig.from_env(config)

    =========================================================================
    """

    express: ExpressConfig = field(default_factory=ExpressConfig)
    webserver: WebServerConfig = field(default_factory=WebServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    backlog: int = 128
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    server_name: str = "baseserver/1.0"

    # ─────────────────────────────────────────────────────────────────────
    # CONSTRUCTORS
    # ─────────────────────────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ServerConfig":
        """
        Validate a raw mapping and build the typed configuration.

        Raises:
            ConfigError: if the mapping does not match CONFIG_SCHEMA.
        """
        data = data or {}
        validate_config(data, CONFIG_SCHEMA)

        express = data.get("express", {})
        webserver = data.get("webserver", {})
        https = webserver.get("https", {})

        views = None
        if "views" in express:
            raw_views = express["views"]
            views = ViewsConfig(
                path=raw_views.get("path"),
                engine=raw_views.get("engine", "ejs"),
            )

        proxy = None
        if "proxy" in express:
            proxy = ProxyConfig(trust=express["proxy"].get("trust", False))

        config = cls(
            express=ExpressConfig(
                cookie=express.get("cookie", True),
                helmet=express.get("helmet", True),
                views=views,
                proxy=proxy,
            ),
            webserver=WebServerConfig(
                host=webserver.get("host", "0.0.0.0"),
                workers=int(webserver.get("workers", 16)),
                max_request_size=int(webserver.get("maxRequestSize", 10 * 1024 * 1024)),
                http=HTTPListenerConfig(
                    port=_as_port(webserver.get("http", {}).get("port")),
                ),
                https=HTTPSListenerConfig(
                    enabled=https.get("enabled", False),
                    ssl=SSLFilesConfig(**https.get("ssl", {})),
                    ciphers=_as_ciphers(https.get("ciphers")),
                    honor_cipher_order=https.get("honorCipherOrder"),
                    port=_as_port(https.get("port")),
                    keep_alive_timeout=https.get("keepAliveTimeout"),
                    headers_timeout=https.get("headersTimeout"),
                ),
            ),
            logging=LoggingConfig(**data.get("logging", {})),
        )
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ServerConfig":
        """Load a JSON configuration file."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError([f"{path}: not valid JSON ({e})"]) from e
        logger.debug(f"Loaded configuration from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Apply environment variable overrides.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        BASESERVER_HOST         Bind address for both listeners
        BASESERVER_HTTP_PORT    Plain HTTP port (0 disables the listener)
        BASESERVER_HTTPS_PORT   HTTPS port (HTTPS must still be enabled)
        BASESERVER_LOG_LEVEL    DEBUG, INFO, WARNING, ERROR, CRITICAL

        =====================================================================
        """
        config = base or cls()

        host = os.getenv("BASESERVER_HOST")
        if host:
            config.webserver.host = host

        http_port = os.getenv("BASESERVER_HTTP_PORT")
        if http_port is not None:
            config.webserver.http.port = _env_int("BASESERVER_HTTP_PORT", http_port)

        https_port = os.getenv("BASESERVER_HTTPS_PORT")
        if https_port is not None:
            config.webserver.https.port = _env_int("BASESERVER_HTTPS_PORT", https_port)

        log_level = os.getenv("BASESERVER_LOG_LEVEL")
        if log_level:
            config.logging.level = log_level.upper()

        config.validate()
        return config

    # ─────────────────────────────────────────────────────────────────────
    # VALIDATION
    # ─────────────────────────────────────────────────────────────────────

    def validate(self) -> None:
        """
        Check runtime invariants the schema cannot express.

        Fail fast: called from every constructor and again by BaseServer.
        """
        problems: List[str] = []

        for name, port in (
            ("webserver.http.port", self.webserver.http.port),
            ("webserver.https.port", self.webserver.https.port),
        ):
            if port is not None and not 0 <= port < 65536:
                problems.append(f"{name}: invalid port {port}, must be 0-65535")

        if self.webserver.workers < 1:
            problems.append("webserver.workers: must be >= 1")

        if self.webserver.max_request_size < 1024:
            problems.append("webserver.maxRequestSize: must be >= 1024")

        for name, value in (
            ("webserver.https.keepAliveTimeout", self.webserver.https.keep_alive_timeout),
            ("webserver.https.headersTimeout", self.webserver.https.headers_timeout),
        ):
            if value is not None and value < 0:
                problems.append(f"{name}: must be >= 0")

        if self.logging.level.upper() not in LOG_LEVELS:
            problems.append(f"logging.level: unknown level {self.logging.level!r}")

        if self.buffer_size < 1024:
            problems.append("buffer_size: must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            problems.append("timeout: must be > 0")

        if problems:
            raise ConfigError(problems)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view of the effective configuration (for --check output)."""
        return asdict(self)


def _as_port(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


def _as_ciphers(value: Any) -> Union[str, List[str], None]:
    if isinstance(value, (list, tuple)):
        return list(value)
    # Empty string (as in the sample config) means "library defaults"
    return value or None


def _env_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ConfigError([f"{name}: expected an integer, got {raw!r}"]) from None
