"""
Core transport interfaces and types for tlsecho.

This module defines the single capability every transport variant implements
(bind, accept, connect) together with the stream contract all consumers are
written against. Nothing outside a transport implementation needs to know
whether the bytes travel in the clear or inside a TLS session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import Protocol, Self, runtime_checkable

type PeerAddress = tuple[str, int]


class TransportError(Exception):
    """Base exception for transport-related errors."""

    pass


class ConfigError(TransportError):
    """Raised when a credential required by the active role is not configured."""

    pass


class IdentityError(TransportError):
    """Raised when the server identity bundle cannot be read or parsed."""

    pass


class TrustError(TransportError):
    """Raised when the trusted root material cannot be read or parsed."""

    pass


class BindError(TransportError):
    """Raised when a listening endpoint cannot be created."""

    pass


class AcceptError(TransportError):
    """Raised when accepting an inbound connection fails.

    ``fatal`` separates conditions that only cost one connection from a
    listener that can no longer accept anything.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal


class HandshakeError(TransportError):
    """Raised when the server-side TLS handshake of one connection fails."""

    pass


class ConnectError(TransportError):
    """Raised when an outbound connection cannot be established."""

    pass


class VerificationError(ConnectError):
    """Raised when the peer certificate chain or hostname does not verify."""

    pass


class StreamIOError(TransportError):
    """Raised when reading from or writing to a connected stream fails."""

    pass


class UnknownTransportError(TransportError):
    """Raised for a transport selector that names no known variant."""

    pass


class UnknownModeError(TransportError):
    """Raised for a run mode that is neither serve nor client."""

    pass


@runtime_checkable
class ByteStream(Protocol):
    """Ordered, reliable, bidirectional byte channel.

    ``read`` returns ``b""`` once the peer has closed its side.
    """

    @property
    def peer(self) -> PeerAddress: ...

    async def read(self, max_bytes: int) -> bytes: ...

    async def write_all(self, data: bytes) -> None: ...

    async def close(self) -> None: ...

    async def __aenter__(self) -> Self: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None: ...


@runtime_checkable
class ListeningHandle(Protocol):
    """Server-side resource that is ready to accept connections."""

    @property
    def host(self) -> str: ...

    @property
    def port(self) -> int: ...

    @property
    def closed(self) -> bool: ...

    async def close(self) -> None: ...


class Transport[ListenerT: ListeningHandle, StreamT: ByteStream](ABC):
    """Capability shared by every transport variant.

    Each variant chooses its own listening handle and stream types. Consumers
    stay generic over both and only ever use the ``ByteStream`` contract.

    Example Usage:
        listener = await transport.bind("127.0.0.1:2334")
        stream, peer = await transport.accept(listener)
        async with stream:
            data = await stream.read(2048)
    """

    name: str = "transport"

    @abstractmethod
    async def bind(self, address: str) -> ListenerT:
        """Bind a listening endpoint at ``host:port``.

        Raises:
            BindError: If the address is unparsable or cannot be bound
        """
        pass

    @abstractmethod
    async def accept(self, listener: ListenerT) -> tuple[StreamT, PeerAddress]:
        """Accept the next inbound connection.

        Raises:
            AcceptError: If no connection could be taken from the listener
        """
        pass

    @abstractmethod
    async def connect(self, address: str) -> StreamT:
        """Open a connection to ``host:port``.

        Raises:
            ConnectError: If the connection cannot be established
        """
        pass


def parse_address(address: str) -> PeerAddress:
    """Split ``host:port`` (or ``[v6host]:port``) into its parts.

    Raises:
        ValueError: If the string is not a usable endpoint
    """
    host, sep, port_text = address.rpartition(":")
    if not sep or not host:
        raise ValueError(f"expected host:port, got {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"invalid port in {address!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range in {address!r}")
    return host, port
