"""
Plaintext TCP transport for tlsecho.

Bytes are exchanged directly over the TCP connection with no framing: what one
side writes is what the other side reads, possibly split or coalesced into
different read sizes.

The listener is built on ``asyncio.start_server`` over a socket bound by
``bind_socket``. Connections the server hands over are parked in an accept
queue so ``accept`` can pull them one at a time.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
from types import TracebackType
from typing import Self

from loguru import logger

from .defaults import DEFAULT_LISTEN_BACKLOG, DEFAULT_READ_BUFFER_SIZE
from .interfaces import (
    AcceptError,
    BindError,
    ConnectError,
    PeerAddress,
    StreamIOError,
    Transport,
    parse_address,
)

type _PendingConnection = tuple[asyncio.StreamReader, asyncio.StreamWriter]


async def bind_socket(
    address: str, *, backlog: int = DEFAULT_LISTEN_BACKLOG
) -> socket.socket:
    """Bind one non-blocking listening socket at ``host:port``.

    Only one of the addresses ``host`` resolves to is bound (the first that
    accepts the bind), so a listener always has exactly one port, also when
    ``port`` is 0 and ``host`` resolves to both IPv4 and IPv6.

    Raises:
        BindError: If the address is unparsable, in use or not bindable
    """
    try:
        host, port = parse_address(address)
    except ValueError as e:
        raise BindError(f"Failed to bind {address!r}: {e}") from e

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(
            host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
        )
    except OSError as e:
        raise BindError(f"Failed to bind {address}: {e}") from e

    error: OSError | None = None
    for family, sock_type, proto, _, sockaddr in infos:
        sock = socket.socket(family, sock_type, proto)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
            sock.listen(backlog)
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            error = e
            continue
        return sock

    raise BindError(f"Failed to bind {address}: {error}") from error


def peer_address(writer: asyncio.StreamWriter) -> PeerAddress:
    peername = writer.get_extra_info("peername")
    if not peername:
        return ("unknown", 0)
    # IPv6 peernames carry flowinfo and scope id as well
    return (str(peername[0]), int(peername[1]))


class SocketStream:
    """Connected byte stream over a TCP connection."""

    def __init__(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._peer = peer_address(writer)
        self._closed = False

    @property
    def peer(self) -> PeerAddress:
        return self._peer

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, max_bytes: int) -> bytes:
        """Read up to ``max_bytes``; ``b""`` means the peer closed."""
        if self._closed:
            raise StreamIOError("stream is closed")
        try:
            return await self._reader.read(max_bytes)
        except OSError as e:
            raise StreamIOError(f"read from {self._peer} failed: {e}") from e

    async def write_all(self, data: bytes) -> None:
        """Write every byte of ``data`` and wait for the buffer to drain."""
        if self._closed:
            raise StreamIOError("stream is closed")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            raise StreamIOError(f"write to {self._peer} failed: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        # Peer may already be gone; the stream is released either way
        with contextlib.suppress(OSError):
            await self._writer.wait_closed()
        logger.debug("Closed stream to {}", self._peer)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class SocketListener:
    """Bound TCP listening socket with an accept queue."""

    def __init__(
        self,
        server: asyncio.Server,
        queue: asyncio.Queue[_PendingConnection | None],
    ) -> None:
        self._server = server
        self._queue = queue
        self._closed = False
        sockname = server.sockets[0].getsockname()
        self._host = str(sockname[0])
        self._port = int(sockname[1])

    @classmethod
    async def open(
        cls,
        sock: socket.socket,
        *,
        backlog: int = DEFAULT_LISTEN_BACKLOG,
    ) -> SocketListener:
        """Start queueing inbound connections on a bound socket.

        The listener owns ``sock`` from here on, also when this fails.

        Raises:
            OSError: If the server cannot start on ``sock``
        """
        queue: asyncio.Queue[_PendingConnection | None] = asyncio.Queue()

        async def _enqueue(
            reader: asyncio.StreamReader, writer: asyncio.StreamWriter
        ) -> None:
            await queue.put((reader, writer))

        try:
            server = await asyncio.start_server(
                _enqueue,
                sock=sock,
                backlog=backlog,
                limit=DEFAULT_READ_BUFFER_SIZE,
            )
        except BaseException:
            sock.close()
            raise
        return cls(server, queue)

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def closed(self) -> bool:
        return self._closed

    async def next_connection(self) -> _PendingConnection:
        """Wait for the next queued connection.

        Raises:
            AcceptError: Fatal, once the listener has been closed
        """
        if self._closed:
            raise AcceptError("listener is closed", fatal=True)
        pending = await self._queue.get()
        if pending is None:
            raise AcceptError("listener is closed", fatal=True)
        return pending

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._server.close()

        # Connections that were never accepted have no owner to close them
        while not self._queue.empty():
            pending = self._queue.get_nowait()
            if pending is not None:
                pending[1].close()
        # Wake up a pending accept
        self._queue.put_nowait(None)

        await self._server.wait_closed()
        logger.debug("Closed listener on {}:{}", self._host, self._port)


class TcpTransport(Transport[SocketListener, SocketStream]):
    """Plaintext transport: connected streams are raw TCP connections."""

    name = "tcp"

    async def bind(self, address: str) -> SocketListener:
        listener = await open_listener(address)
        logger.info(
            "[{}] listening on {}:{}", self.name, listener.host, listener.port
        )
        return listener

    async def accept(
        self, listener: SocketListener
    ) -> tuple[SocketStream, PeerAddress]:
        reader, writer = await listener.next_connection()
        if writer.is_closing():
            raise AcceptError("connection closed before it was accepted")
        stream = SocketStream(reader, writer)
        return stream, stream.peer

    async def connect(self, address: str) -> SocketStream:
        reader, writer = await open_raw_connection(address)
        return SocketStream(reader, writer)


async def open_listener(address: str) -> SocketListener:
    """Bind a plain TCP listener at ``host:port``.

    Raises:
        BindError: If the address is unparsable, in use or not bindable
    """
    sock = await bind_socket(address)
    try:
        return await SocketListener.open(sock)
    except OSError as e:
        raise BindError(f"Failed to bind {address}: {e}") from e


async def open_raw_connection(
    address: str,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a plain TCP connection to ``host:port``.

    Raises:
        ConnectError: If the address is unparsable or the connection fails
    """
    try:
        host, port = parse_address(address)
    except ValueError as e:
        raise ConnectError(f"Failed to connect to {address!r}: {e}") from e

    try:
        return await asyncio.open_connection(
            host, port, limit=DEFAULT_READ_BUFFER_SIZE
        )
    except OSError as e:
        raise ConnectError(f"Failed to connect to {address}: {e}") from e
