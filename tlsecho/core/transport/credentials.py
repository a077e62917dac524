"""
TLS credential loading for tlsecho.

Identity bundles (PKCS#12) and trusted roots (PEM) are parsed with
``cryptography`` so malformed material is rejected when it is loaded, not when
the first peer shows up. The parsed objects then produce the ``ssl`` contexts
the TLS transport hands to asyncio.
"""

from __future__ import annotations

import secrets
import ssl
import tempfile
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import pkcs12

from .interfaces import IdentityError, TrustError


@dataclass(frozen=True, slots=True)
class ServerIdentity:
    """Private key and certificate chain the server proves itself with."""

    private_key: PrivateKeyTypes
    certificate: x509.Certificate
    chain: tuple[x509.Certificate, ...] = ()

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()

    def create_ssl_context(self) -> ssl.SSLContext:
        """Build the server-side handshake acceptor.

        ``ssl`` only loads key material from files, so the chain and an
        encrypted copy of the key are written to a private temporary
        directory that is removed as soon as the context holds them.

        Raises:
            IdentityError: If OpenSSL rejects the key/certificate pair
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        password = secrets.token_hex(16).encode("ascii")

        with tempfile.TemporaryDirectory(prefix="tlsecho-") as tmp:
            cert_path = Path(tmp) / "chain.pem"
            key_path = Path(tmp) / "key.pem"
            cert_path.write_bytes(
                b"".join(
                    cert.public_bytes(serialization.Encoding.PEM)
                    for cert in (self.certificate, *self.chain)
                )
            )
            key_path.write_bytes(
                self.private_key.private_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PrivateFormat.PKCS8,
                    encryption_algorithm=serialization.BestAvailableEncryption(
                        password
                    ),
                )
            )
            try:
                context.load_cert_chain(cert_path, key_path, password=password)
            except ssl.SSLError as e:
                raise IdentityError(
                    f"Failed to create identity for {self.subject}: {e}"
                ) from e

        return context


@dataclass(frozen=True, slots=True)
class TrustStore:
    """Root certificates used to verify the server a client connects to."""

    certificates: tuple[x509.Certificate, ...]

    def create_ssl_context(self) -> ssl.SSLContext:
        """Build a client context that trusts only these roots."""
        cadata = "".join(
            cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
            for cert in self.certificates
        )
        return ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cadata=cadata)


def load_identity(path: str | Path, password: str) -> ServerIdentity:
    """Parse a PKCS#12 identity bundle.

    Raises:
        IdentityError: If the file is unreadable, the password is wrong or the
            bundle lacks a key or certificate
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise IdentityError(f"Failed to read identity bundle {path}: {e}") from e

    try:
        key, cert, additional = pkcs12.load_key_and_certificates(
            data, password.encode("utf-8")
        )
    except ValueError as e:
        raise IdentityError(f"Failed to parse identity bundle {path}: {e}") from e

    if key is None or cert is None:
        raise IdentityError(
            f"Failed to parse identity bundle {path}: "
            "bundle must hold a private key and a certificate"
        )

    return ServerIdentity(private_key=key, certificate=cert, chain=tuple(additional))


def load_trust_store(path: str | Path) -> TrustStore:
    """Parse one or more PEM root certificates.

    Raises:
        TrustError: If the file is unreadable or holds no valid certificate
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise TrustError(f"Failed to read trust store {path}: {e}") from e

    try:
        certificates = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise TrustError(f"Failed to parse trust store {path}: {e}") from e

    return TrustStore(certificates=tuple(certificates))
