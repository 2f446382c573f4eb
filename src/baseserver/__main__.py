"""
=============================================================================
BASESERVER CLI ENTRY POINT
=============================================================================

    # Sample configuration (HTTP on 1901)
    python -m baseserver --print-sample-config > server.json
    python -m baseserver --config server.json

    # Override the HTTP port
    python -m baseserver --config server.json --http-port 3000

    # Validate a configuration file and print the effective settings
    python -m baseserver --config server.json --check

Environment overrides (BASESERVER_HTTP_PORT, ...) are applied after the
file and before command-line flags.

=============================================================================
"""

import argparse
import json
import sys

from . import __version__
from .config import LOG_LEVELS, ServerConfig
from .errors import BaseServerError
from .http.response import ok
from .schema import SAMPLE_CONFIG
from .server import BaseServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m baseserver",
        description="HTTP/HTTPS server bootstrap with a fixed middleware pipeline",
    )

    parser.add_argument(
        "--config", "-c",
        default=None,
        help="JSON configuration file (default: built-in defaults, no listener)"
    )

    parser.add_argument(
        "--http-port", "-p",
        type=int,
        default=None,
        help="Plain HTTP port, overrides webserver.http.port (0 disables it)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default=None,
        help="Logging level, overrides logging.level"
    )

    # ─────────────────────────────────────────────────────────────────────
    # ONE-SHOT COMMANDS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--print-sample-config",
        action="store_true",
        help="Print the sample configuration and exit"
    )

    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the configuration, print the effective settings and exit"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"baseserver {__version__}"
    )

    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """File, then environment, then flags."""
    config = ServerConfig.from_file(args.config) if args.config else ServerConfig()
    config = ServerConfig.from_env(config)

    if args.http_port is not None:
        config.webserver.http.port = args.http_port
    if args.log_level:
        config.logging.level = args.log_level

    config.validate()
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.print_sample_config:
        print(json.dumps(SAMPLE_CONFIG, indent=2))
        return 0

    try:
        config = load_config(args)
    except (BaseServerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.check:
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    server = BaseServer(config)

    @server.get("/health")
    def health(request):
        return ok({"status": "ok", "version": __version__})

    try:
        server.start_server()
    except (BaseServerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        server.shutdown()
        return 1

    server.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
