"""
=============================================================================
TLS SETUP FOR THE HTTPS LISTENER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       HTTPS STARTUP ORDER                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. TLSMaterial.load(ssl)     read key, cert, ca (in that order)   │
    │                                OSError → startup aborts, no bind    │
    │                                                                      │
    │   2. TLSOptions.from_config    ciphers list → "A:B:C"               │
    │                                honorCipherOrder → True unless False │
    │                                                                      │
    │   3. create_tls_context        SSLContext(PROTOCOL_TLS_SERVER)      │
    │                                bad material → TLSConfigError        │
    │                                                                      │
    │   4. Listener(tls_context=…)   handshake per connection, in the     │
    │                                worker thread                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The ssl module only loads certificates and keys from files, so the PEM
text is written to a private temporary directory for the duration of
load_cert_chain() and removed right after.

=============================================================================
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union
import logging
import os
import ssl
import tempfile

from .config import HTTPSListenerConfig, SSLFilesConfig
from .errors import TLSConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TLSMaterial:
    """PEM text of the private key, the certificate and the CA bundle."""

    key: str
    cert: str
    ca: str

    @classmethod
    def load(cls, files: SSLFilesConfig) -> "TLSMaterial":
        """
        Read the three PEM files as UTF-8 text.

        Raises:
            OSError: if any file cannot be read. Not wrapped.
        """
        key = _read_text(files.key)
        cert = _read_text(files.cert)
        ca = _read_text(files.ca)
        logger.debug(f"Loaded TLS material: key={files.key} cert={files.cert} ca={files.ca}")
        return cls(key=key, cert=cert, ca=ca)


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


def join_ciphers(ciphers: Union[str, List[str], None]) -> Optional[str]:
    """
    ["A", "B"] → "A:B"; a string is kept as is; empty → None.
    """
    if ciphers is None:
        return None
    if isinstance(ciphers, (list, tuple)):
        joined = ":".join(ciphers)
    else:
        joined = str(ciphers)
    return joined or None


@dataclass(frozen=True)
class TLSOptions:
    ciphers: Optional[str] = None
    honor_cipher_order: bool = True

    @classmethod
    def from_config(cls, https: HTTPSListenerConfig) -> "TLSOptions":
        # Only an explicit False turns server cipher preference off
        return cls(
            ciphers=join_ciphers(https.ciphers),
            honor_cipher_order=https.honor_cipher_order is not False,
        )


def create_tls_context(material: TLSMaterial, options: Optional[TLSOptions] = None) -> ssl.SSLContext:
    """
    Build a server-side SSLContext.

    Raises:
        TLSConfigError: if the key, certificate, CA or cipher string is
            rejected by OpenSSL.
    """
    options = options or TLSOptions()
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)

    try:
        with tempfile.TemporaryDirectory(prefix="baseserver-tls-") as tmp:
            cert_file = Path(tmp) / "cert.pem"
            key_file = Path(tmp) / "key.pem"
            cert_file.write_text(material.cert, encoding="utf-8")
            key_file.write_text(material.key, encoding="utf-8")
            os.chmod(key_file, 0o600)
            context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
    except ssl.SSLError as e:
        raise TLSConfigError(f"Invalid TLS key or certificate: {e}") from e

    if material.ca.strip():
        try:
            context.load_verify_locations(cadata=material.ca)
        except (ssl.SSLError, ValueError) as e:
            raise TLSConfigError(f"Invalid TLS CA bundle: {e}") from e

    if options.ciphers:
        try:
            context.set_ciphers(options.ciphers)
        except ssl.SSLError as e:
            raise TLSConfigError(f"Invalid cipher list {options.ciphers!r}: {e}") from e

    if options.honor_cipher_order:
        context.options |= ssl.OP_CIPHER_SERVER_PREFERENCE
    else:
        context.options &= ~ssl.OP_CIPHER_SERVER_PREFERENCE

    return context
