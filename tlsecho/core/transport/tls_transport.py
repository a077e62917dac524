"""
TLS transport for tlsecho.

The TLS listener owns a plain listening socket and runs the server handshake
for every accepted connection in its own task, straight on the raw socket via
``loop.connect_accepted_socket``. Nothing reads from a connection before the
handshake does, and a client that never finishes its handshake holds up no one
but itself. Each connection ends up in the accept queue either as a ready
``TlsStream`` or as the ``HandshakeError`` that ``accept`` then raises, so a
failed handshake stays tied to the one connection it happened on.

Credential material is parsed once: the trust store when the transport is
constructed, the identity bundle when ``bind`` is called and before any socket
is opened. Both are read-only afterwards and shared by every connection.
"""

from __future__ import annotations

import asyncio
import socket
import ssl

from loguru import logger

from ..config import TlsConfig
from .credentials import TrustStore, load_identity, load_trust_store
from .defaults import (
    DEFAULT_ACCEPT_RETRY_DELAY,
    DEFAULT_READ_BUFFER_SIZE,
    DEFAULT_TLS_HANDSHAKE_TIMEOUT,
)
from .interfaces import (
    AcceptError,
    ConfigError,
    ConnectError,
    HandshakeError,
    PeerAddress,
    Transport,
    TransportError,
    VerificationError,
    parse_address,
)
from .tcp_transport import SocketStream, bind_socket

type _AcceptOutcome = TlsStream | TransportError | None


class TlsStream(SocketStream):
    """TCP connection wrapped by a completed TLS handshake."""

    @property
    def tls_version(self) -> str | None:
        ssl_object = self._writer.get_extra_info("ssl_object")
        return ssl_object.version() if ssl_object else None

    @property
    def cipher(self) -> str | None:
        cipher = self._writer.get_extra_info("cipher")
        return cipher[0] if cipher else None


class TlsListener:
    """Listening socket that hands out connections only after their handshake."""

    def __init__(
        self,
        sock: socket.socket,
        acceptor: ssl.SSLContext,
        *,
        handshake_timeout: float = DEFAULT_TLS_HANDSHAKE_TIMEOUT,
    ) -> None:
        self._sock = sock
        self.acceptor = acceptor
        self.handshake_timeout = handshake_timeout
        self._queue: asyncio.Queue[_AcceptOutcome] = asyncio.Queue()
        self._handshakes: set[asyncio.Task[None]] = set()
        self._closed = False

        sockname = sock.getsockname()
        self._host = str(sockname[0])
        self._port = int(sockname[1])
        self._accept_task = asyncio.create_task(
            self._accept_loop(), name=f"tls-accept-{self._port}"
        )

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_handshakes(self) -> int:
        return len(self._handshakes)

    async def next_connection(self) -> TlsStream:
        """Wait for the next connection whose handshake has finished.

        Raises:
            HandshakeError: If the handshake of the next connection failed
            AcceptError: Transient when the socket accept failed, fatal once
                the listener has been closed
        """
        if self._closed:
            raise AcceptError("listener is closed", fatal=True)
        outcome = await self._queue.get()
        if outcome is None:
            raise AcceptError("listener is closed", fatal=True)
        if isinstance(outcome, TransportError):
            raise outcome
        return outcome

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        self._accept_task.cancel()
        handshakes = list(self._handshakes)
        for task in handshakes:
            task.cancel()
        await asyncio.gather(self._accept_task, *handshakes, return_exceptions=True)
        self._sock.close()

        # Finished handshakes nobody accepted
        while not self._queue.empty():
            outcome = self._queue.get_nowait()
            if isinstance(outcome, TlsStream):
                await outcome.close()
        # Wake up a pending accept
        self._queue.put_nowait(None)
        logger.debug("Closed TLS listener on {}:{}", self._host, self._port)

    async def _accept_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                conn, addr = await loop.sock_accept(self._sock)
            except OSError as e:
                self._queue.put_nowait(AcceptError(f"accept failed: {e}"))
                await asyncio.sleep(DEFAULT_ACCEPT_RETRY_DELAY)
                continue

            peer = (str(addr[0]), int(addr[1]))
            task = asyncio.create_task(
                self._handshake(conn, peer), name=f"tls-handshake-{peer[0]}:{peer[1]}"
            )
            self._handshakes.add(task)
            task.add_done_callback(self._handshakes.discard)

    async def _handshake(self, conn: socket.socket, peer: PeerAddress) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=DEFAULT_READ_BUFFER_SIZE, loop=loop)
        protocol = asyncio.StreamReaderProtocol(reader, loop=loop)

        try:
            transport, _ = await loop.connect_accepted_socket(
                lambda: protocol,
                conn,
                ssl=self.acceptor,
                ssl_handshake_timeout=self.handshake_timeout,
            )
        except OSError as e:
            conn.close()
            self._queue.put_nowait(
                HandshakeError(f"TLS handshake with {peer} failed: {e}")
            )
            return
        except BaseException:
            conn.close()
            raise

        writer = asyncio.StreamWriter(transport, protocol, reader, loop)
        stream = TlsStream(reader, writer)
        logger.debug(
            "[tls] handshake with {} complete ({}, {})",
            peer,
            stream.tls_version,
            stream.cipher,
        )
        self._queue.put_nowait(stream)


class TlsTransport(Transport[TlsListener, TlsStream]):
    """TLS transport.

    Args:
        config: Credential locations; the trusted root, when present, is
            parsed immediately

    Raises:
        TrustError: If the configured trusted root cannot be parsed
    """

    name = "tls"

    def __init__(self, config: TlsConfig) -> None:
        self.config = config
        self.trust_store: TrustStore | None = None
        self._connector: ssl.SSLContext | None = None

        if config.trusted_root is not None:
            self.trust_store = load_trust_store(config.trusted_root)
            self._connector = self.trust_store.create_ssl_context()
            logger.debug(
                "[tls] trusting {} root certificate(s) from {}",
                len(self.trust_store.certificates),
                config.trusted_root,
            )

    def _create_acceptor(self) -> ssl.SSLContext:
        if self.config.pkcs12 is None:
            raise ConfigError("TLS server requires an identity bundle (pkcs12)")
        if self.config.pkcs12_password is None:
            raise ConfigError(
                f"TLS server requires the passphrase for {self.config.pkcs12}"
            )

        identity = load_identity(self.config.pkcs12, self.config.pkcs12_password)
        acceptor = identity.create_ssl_context()
        logger.info("[tls] loaded identity {}", identity.subject)
        return acceptor

    async def bind(self, address: str) -> TlsListener:
        acceptor = self._create_acceptor()
        listener = TlsListener(await bind_socket(address), acceptor)
        logger.info(
            "[{}] listening on {}:{}", self.name, listener.host, listener.port
        )
        return listener

    async def accept(self, listener: TlsListener) -> tuple[TlsStream, PeerAddress]:
        stream = await listener.next_connection()
        return stream, stream.peer

    async def connect(self, address: str) -> TlsStream:
        if self._connector is None:
            raise ConfigError("TLS client requires a trusted root certificate")

        try:
            host, port = parse_address(address)
        except ValueError as e:
            raise ConnectError(f"Failed to connect to {address!r}: {e}") from e
        server_hostname = self.config.hostname or host

        try:
            reader, writer = await asyncio.open_connection(
                host,
                port,
                ssl=self._connector,
                server_hostname=server_hostname,
                ssl_handshake_timeout=DEFAULT_TLS_HANDSHAKE_TIMEOUT,
                limit=DEFAULT_READ_BUFFER_SIZE,
            )
        except ssl.SSLCertVerificationError as e:
            raise VerificationError(
                f"Failed to verify {server_hostname!r} at {address}: "
                f"{e.verify_message}"
            ) from e
        except OSError as e:
            raise ConnectError(f"Failed to connect to {address}: {e}") from e

        return TlsStream(reader, writer)
