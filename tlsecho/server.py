"""
Echo server for tlsecho.

The handler and the accept loop only see ``Transport`` and ``ByteStream``; the
same code serves plaintext and TLS clients.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from .core.transport.defaults import DEFAULT_SERVE_ADDRESS, ECHO_BUFFER_SIZE
from .core.transport.interfaces import (
    AcceptError,
    ByteStream,
    HandshakeError,
    ListeningHandle,
    PeerAddress,
    Transport,
    TransportError,
)


async def handle_connection(
    stream: ByteStream,
    *,
    buffer_size: int = ECHO_BUFFER_SIZE,
    full_buffer: bool = False,
) -> int:
    """Echo everything read from ``stream`` until the peer closes.

    Each read of up to ``buffer_size`` bytes is written straight back. With
    ``full_buffer`` the whole fixed-size buffer is written instead, stale bytes
    from earlier reads included; that reproduces the historical wire behavior
    and exists for compatibility testing only.

    The stream is closed on every exit path.

    Returns:
        Number of payload bytes read from the peer

    Raises:
        StreamIOError: If a read or write fails
    """
    buffer = bytearray(buffer_size)
    received = 0

    async with stream:
        while True:
            data = await stream.read(buffer_size)
            if not data:
                return received
            received += len(data)

            if full_buffer:
                buffer[: len(data)] = data
                await stream.write_all(bytes(buffer))
            else:
                await stream.write_all(data)


class EchoServer[ListenerT: ListeningHandle, StreamT: ByteStream]:
    """Accept loop dispatching every connection to its own echo task.

    Args:
        transport: Transport variant to serve on
        address: ``host:port`` to bind
        max_connections: Cap on concurrently served connections; ``None``
            accepts without limit
        full_buffer: Echo the whole read buffer (see ``handle_connection``)

    Example Usage:
        server = EchoServer(TcpTransport(), "127.0.0.1:0")
        listener = await server.start()
        task = asyncio.create_task(server.serve_forever())
        ...
        await server.stop()
        await task
    """

    def __init__(
        self,
        transport: Transport[ListenerT, StreamT],
        address: str = DEFAULT_SERVE_ADDRESS,
        *,
        max_connections: int | None = None,
        full_buffer: bool = False,
    ) -> None:
        if max_connections is not None and max_connections < 1:
            raise ValueError("max_connections must be at least 1")

        self.transport = transport
        self.address = address
        self.max_connections = max_connections
        self.full_buffer = full_buffer
        self.listener: ListenerT | None = None

        self.connections_accepted = 0
        self.connections_failed = 0
        self.handshakes_failed = 0
        self._stopping = False

        self._slots = (
            asyncio.Semaphore(max_connections) if max_connections is not None else None
        )
        # Running handlers and the stream each one owns
        self._handlers: dict[asyncio.Task[None], StreamT] = {}

    @property
    def active_connections(self) -> int:
        return len(self._handlers)

    async def start(self) -> ListenerT:
        """Bind the listening endpoint if that has not happened yet.

        Raises:
            BindError: If the address cannot be bound
            ConfigError: If the transport lacks credentials for serving
            IdentityError: If the identity bundle cannot be parsed
        """
        if self.listener is None:
            self.listener = await self.transport.bind(self.address)
        return self.listener

    async def serve_forever(self) -> None:
        """Accept connections until the listener dies or the task is cancelled.

        Transient accept failures and failed handshakes cost only the
        connection they happened on. A fatal accept failure ends the loop.
        """
        listener = await self.start()
        name = self.transport.name
        try:
            while True:
                if self._slots is not None:
                    await self._slots.acquire()

                try:
                    stream, peer = await self.transport.accept(listener)
                except HandshakeError as e:
                    self._release_slot()
                    self.handshakes_failed += 1
                    logger.warning("[{}] dropping connection: {}", name, e)
                    continue
                except AcceptError as e:
                    self._release_slot()
                    if e.fatal:
                        logger.info("[{}] accept loop ending: {}", name, e)
                        return
                    logger.warning("[{}] accept failed: {}", name, e)
                    continue

                if self._stopping:
                    self._release_slot()
                    await stream.close()
                    return

                self.connections_accepted += 1
                logger.info("[{}] incoming connection from {}:{}", name, *peer)
                self._dispatch(stream, peer)
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Stop serving: cancel running handlers and close the listener."""
        await self._shutdown()

    def _dispatch(self, stream: StreamT, peer: PeerAddress) -> None:
        task = asyncio.create_task(
            self._run_handler(stream, peer), name=f"echo-{peer[0]}:{peer[1]}"
        )
        self._handlers[task] = stream
        task.add_done_callback(self._forget_handler)

    def _forget_handler(self, task: asyncio.Task[None]) -> None:
        self._handlers.pop(task, None)

    async def _run_handler(self, stream: StreamT, peer: PeerAddress) -> None:
        try:
            received = await handle_connection(stream, full_buffer=self.full_buffer)
            logger.debug(
                "Connection from {}:{} closed after {} bytes", *peer, received
            )
        except TransportError as e:
            self.connections_failed += 1
            logger.warning("Connection from {}:{} failed: {}", *peer, e)
        finally:
            self._release_slot()

    def _release_slot(self) -> None:
        if self._slots is not None:
            self._slots.release()

    async def _shutdown(self) -> None:
        self._stopping = True
        handlers = dict(self._handlers)
        for task in handlers:
            task.cancel()
        if handlers:
            await asyncio.gather(*handlers, return_exceptions=True)
        # A handler cancelled before its first step never closed its stream
        for stream in handlers.values():
            await stream.close()

        if self.listener is not None:
            await self.listener.close()


async def serve_echo[ListenerT: ListeningHandle, StreamT: ByteStream](
    transport: Transport[ListenerT, StreamT],
    address: str = DEFAULT_SERVE_ADDRESS,
    *,
    max_connections: int | None = None,
    full_buffer: bool = False,
) -> None:
    """Bind ``address`` and echo for every client until the listener dies."""
    server = EchoServer(
        transport,
        address,
        max_connections=max_connections,
        full_buffer=full_buffer,
    )
    await server.serve_forever()
