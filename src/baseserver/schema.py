"""
=============================================================================
CONFIGURATION SCHEMA
=============================================================================

Declarative description of the configuration tree plus the single
validation pass that checks a raw mapping against it.

=============================================================================
SCHEMA FORMAT
=============================================================================

The schema is a nested dict mirroring the configuration:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        SCHEMA NODES                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   dict                → a section, validated recursively            │
    │                                                                      │
    │   "boolean"           → shorthand for Field("boolean")              │
    │                         (optional, any value of that type)          │
    │                                                                      │
    │   Field(type,         → type: "boolean" | "string" | "number" |     │
    │         allowed,                "array" or a tuple of those         │
    │         required)       allowed: permitted values (empty = any)     │
    │                         required: must be present when the          │
    │                                   enclosing section is present      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Example:

    "engine": Field("string", ("ejs",))     # string, only "ejs" allowed
    "port": Field("number", required=True)  # number, must be given

=============================================================================
VALIDATION RULES
=============================================================================

1. Unknown keys are rejected (typos surface at startup, not at first use).
2. Types are strict: True is not a number, 1 is not a boolean.
3. Values outside an allowed list are rejected.
4. Required fields are only required inside sections that are present.
   An absent section means "feature not configured", which is legal.
5. ALL problems are collected and reported together in one ConfigError.

=============================================================================
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple, Union

from .errors import ConfigError


@dataclass(frozen=True)
class Field:
    """A leaf in the configuration schema."""

    type: Union[str, Tuple[str, ...]]
    allowed: Tuple[Any, ...] = ()
    required: bool = False

    @property
    def types(self) -> Tuple[str, ...]:
        return (self.type,) if isinstance(self.type, str) else tuple(self.type)


# =============================================================================
# THE SCHEMA
# =============================================================================

CONFIG_SCHEMA: Dict[str, Any] = {
    "express": {
        "cookie": "boolean",
        "helmet": "boolean",
        "views": {
            "path": "string",
            "engine": Field("string", ("ejs",)),
        },
        "proxy": {
            "trust": "boolean",
        },
    },
    "webserver": {
        "host": "string",
        "workers": "number",
        "maxRequestSize": "number",
        "http": {
            "port": Field("number", required=True),
        },
        "https": {
            "enabled": "boolean",
            "ssl": {
                "key": "string",
                "cert": "string",
                "ca": "string",
            },
            # A list is joined with ":" into an OpenSSL cipher string
            "ciphers": Field(("string", "array")),
            "honorCipherOrder": "boolean",
            "port": "number",
            "keepAliveTimeout": "number",
            "headersTimeout": "number",
        },
    },
    "logging": {
        "level": Field("string", ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")),
    },
}


SAMPLE_CONFIG: Dict[str, Any] = {
    "express": {
        "cookie": True,
        "helmet": True,
        "views": {
            "path": "views",
            "engine": "ejs",
        },
        "proxy": {
            "trust": True,
        },
    },
    "webserver": {
        "http": {
            "port": 1901,
        },
        "https": {
            "enabled": False,
            "ssl": {
                "key": "",
                "cert": "",
                "ca": "",
            },
            "ciphers": "",
            "honorCipherOrder": True,
            "port": 1900,
            "keepAliveTimeout": 4800,
            "headersTimeout": 4800,
        },
    },
}


# =============================================================================
# VALIDATION
# =============================================================================

def _matches_type(value: Any, type_name: str) -> bool:
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "number":
        # bool is a subclass of int; reject it explicitly
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "array":
        return isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value)
    raise ValueError(f"Unknown schema type: {type_name}")


def _check_field(path: str, value: Any, spec: Field, problems: List[str]) -> None:
    if not any(_matches_type(value, t) for t in spec.types):
        expected = " or ".join(spec.types)
        problems.append(f"{path}: expected {expected}, got {type(value).__name__}")
        return
    if spec.allowed and value not in spec.allowed:
        allowed = ", ".join(repr(a) for a in spec.allowed)
        problems.append(f"{path}: {value!r} is not one of {allowed}")


def _walk(data: Mapping[str, Any], schema: Mapping[str, Any], prefix: str, problems: List[str]) -> None:
    for key, value in data.items():
        path = f"{prefix}{key}"
        if key not in schema:
            problems.append(f"{path}: unknown key")
            continue

        node = schema[key]
        if isinstance(node, dict):
            if not isinstance(value, Mapping):
                problems.append(f"{path}: expected a section, got {type(value).__name__}")
                continue
            _walk(value, node, f"{path}.", problems)
        else:
            spec = node if isinstance(node, Field) else Field(node)
            _check_field(path, value, spec, problems)

    for key, node in schema.items():
        if isinstance(node, Field) and node.required and key not in data:
            problems.append(f"{prefix}{key}: required field is missing")


def validate_config(data: Mapping[str, Any], schema: Mapping[str, Any] = CONFIG_SCHEMA) -> None:
    """
    Validate a raw configuration mapping against a schema.

    Args:
        data: Parsed configuration (e.g. from a JSON file).
        schema: Schema tree, CONFIG_SCHEMA by default.

    Raises:
        ConfigError: listing every problem found.
    """
    if not isinstance(data, Mapping):
        raise ConfigError([f"configuration must be a mapping, got {type(data).__name__}"])

    problems: List[str] = []
    _walk(data, schema, "", problems)
    if problems:
        raise ConfigError(problems)
