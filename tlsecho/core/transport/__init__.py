"""
tlsecho Transport Layer Abstraction

One capability (bind, accept, connect) with two variants: plaintext TCP and
TLS over TCP. Code written against ``Transport`` and ``ByteStream`` runs
unmodified over either.

Example Usage:
    transport = TransportFactory.create("tcp")
    listener = await transport.bind("127.0.0.1:2334")

    client = await transport.connect("127.0.0.1:2334")
    stream, peer = await transport.accept(listener)

    await client.write_all(b"Hello, World!")
    data = await stream.read(2048)
"""

from .credentials import ServerIdentity, TrustStore, load_identity, load_trust_store
from .factory import TransportFactory, TransportKind, create_transport
from .interfaces import (
    AcceptError,
    BindError,
    ByteStream,
    ConfigError,
    ConnectError,
    HandshakeError,
    IdentityError,
    ListeningHandle,
    PeerAddress,
    StreamIOError,
    Transport,
    TransportError,
    TrustError,
    UnknownModeError,
    UnknownTransportError,
    VerificationError,
    parse_address,
)
from .tcp_transport import SocketListener, SocketStream, TcpTransport
from .tls_transport import TlsListener, TlsStream, TlsTransport

__all__ = [
    "Transport",
    "ByteStream",
    "ListeningHandle",
    "PeerAddress",
    "TransportFactory",
    "create_transport",
    "TransportKind",
    "TcpTransport",
    "SocketListener",
    "SocketStream",
    "TlsTransport",
    "TlsListener",
    "TlsStream",
    "ServerIdentity",
    "TrustStore",
    "load_identity",
    "load_trust_store",
    "parse_address",
    "TransportError",
    "ConfigError",
    "IdentityError",
    "TrustError",
    "BindError",
    "AcceptError",
    "HandshakeError",
    "ConnectError",
    "VerificationError",
    "StreamIOError",
    "UnknownTransportError",
    "UnknownModeError",
]
