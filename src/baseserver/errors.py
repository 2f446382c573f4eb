"""
=============================================================================
EXCEPTION TAXONOMY
=============================================================================

Every error the bootstrap raises on purpose derives from BaseServerError,
so callers can catch "anything from baseserver" in one place.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       ERROR CLASSES                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   BaseServerError                                                    │
    │   ├── ConfigError          Bad configuration (startup, fail-fast)   │
    │   ├── PipelineSealedError  Registration after traffic began         │
    │   ├── BodyParseError       Undecodable non-JSON request body        │
    │   └── TLSConfigError       Unusable key / certificate material      │
    │                                                                      │
    │   HTTPParseError (http.request)  Malformed request on the wire      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Unreadable TLS files are NOT wrapped: the OSError from open() propagates
unchanged and aborts startup.

=============================================================================
"""

from typing import List, Optional


class BaseServerError(Exception):
    """Root of all baseserver errors."""


class ConfigError(BaseServerError, ValueError):
    """
    Raised when configuration fails validation.

    Carries every problem found in the validation pass, not just the first,
    so an operator can fix a config file in one edit.
    """

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        if len(self.problems) == 1:
            message = f"Invalid configuration: {self.problems[0]}"
        else:
            listed = "\n  - ".join(self.problems)
            message = f"Invalid configuration ({len(self.problems)} problems):\n  - {listed}"
        super().__init__(message)


class PipelineSealedError(BaseServerError, RuntimeError):
    """Raised when middleware or routes are registered after the pipeline is sealed."""


class BodyParseError(BaseServerError):
    """
    Raised by the body parser for text or form bodies it cannot decode.

    JSON failures never raise this: they are answered inline with a 400.
    """

    def __init__(self, message: str, content_type: Optional[str] = None):
        super().__init__(message)
        self.content_type = content_type


class TLSConfigError(BaseServerError):
    """Raised when key/certificate material cannot be loaded into a TLS context."""
