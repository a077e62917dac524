"""
Tests for the plaintext TCP transport.

Covers address parsing, binding, accept/connect, stream semantics and the
transport factory.
"""

import asyncio

import pytest

from tlsecho.core.config import SecurityMode, TlsConfig, TransportConfig
from tlsecho.core.transport import (
    AcceptError,
    BindError,
    ByteStream,
    ConfigError,
    ConnectError,
    ListeningHandle,
    SocketStream,
    StreamIOError,
    TcpTransport,
    TlsTransport,
    TransportFactory,
    TransportKind,
    UnknownTransportError,
    create_transport,
    parse_address,
)

from .test_helpers import read_exactly


class TestParseAddress:
    def test_host_and_port(self):
        assert parse_address("127.0.0.1:2334") == ("127.0.0.1", 2334)

    def test_hostname(self):
        assert parse_address("localhost:80") == ("localhost", 80)

    def test_bracketed_ipv6(self):
        assert parse_address("[::1]:2334") == ("::1", 2334)

    @pytest.mark.parametrize(
        "address",
        ["", "2334", ":2334", "localhost", "localhost:http", "localhost:70000"],
    )
    def test_invalid(self, address):
        with pytest.raises(ValueError):
            parse_address(address)


class TestTcpTransport:
    @pytest.mark.asyncio
    async def test_bind_ephemeral_port(self, tcp_transport):
        listener = await tcp_transport.bind("127.0.0.1:0")
        try:
            assert isinstance(listener, ListeningHandle)
            assert listener.host == "127.0.0.1"
            assert listener.port > 0
            assert not listener.closed
        finally:
            await listener.close()
        assert listener.closed

    @pytest.mark.asyncio
    async def test_bind_address_in_use(self, tcp_transport):
        listener = await tcp_transport.bind("127.0.0.1:0")
        try:
            with pytest.raises(BindError):
                await tcp_transport.bind(f"127.0.0.1:{listener.port}")
        finally:
            await listener.close()

    @pytest.mark.asyncio
    async def test_bind_name_resolving_to_several_addresses(self, tcp_transport):
        listener = await tcp_transport.bind("localhost:0")
        try:
            client = await tcp_transport.connect(f"localhost:{listener.port}")
            server, _ = await asyncio.wait_for(
                tcp_transport.accept(listener), timeout=2.0
            )
            async with client, server:
                await client.write_all(b"one port")
                assert await read_exactly(server, 8) == b"one port"
        finally:
            await listener.close()

    @pytest.mark.asyncio
    async def test_bind_unparsable_address(self, tcp_transport):
        with pytest.raises(BindError):
            await tcp_transport.bind("not-an-address")

    @pytest.mark.asyncio
    async def test_basic_communication(self, tcp_transport):
        listener = await tcp_transport.bind("127.0.0.1:0")
        try:
            client = await tcp_transport.connect(f"127.0.0.1:{listener.port}")
            server, peer = await asyncio.wait_for(
                tcp_transport.accept(listener), timeout=2.0
            )

            assert isinstance(client, SocketStream)
            assert isinstance(server, ByteStream)
            assert peer[0] == "127.0.0.1"
            assert server.peer == peer

            # Client -> Server
            await client.write_all(b"Hello, TCP World!")
            assert await read_exactly(server, 17) == b"Hello, TCP World!"

            # Server -> Client
            await server.write_all(b"Hello, TCP Client!")
            assert await read_exactly(client, 18) == b"Hello, TCP Client!"

            await client.close()
            assert await server.read(2048) == b""
            await server.close()
        finally:
            await listener.close()

    @pytest.mark.asyncio
    async def test_raw_bytes_are_not_framed(self, tcp_transport):
        listener = await tcp_transport.bind("127.0.0.1:0")
        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", listener.port)
            server, _ = await asyncio.wait_for(
                tcp_transport.accept(listener), timeout=2.0
            )

            writer.write(b"raw")
            await writer.drain()
            assert await read_exactly(server, 3) == b"raw"

            await server.write_all(b"back")
            assert await reader.readexactly(4) == b"back"

            writer.close()
            await writer.wait_closed()
            await server.close()
        finally:
            await listener.close()

    @pytest.mark.asyncio
    async def test_connect_refused(self, tcp_transport):
        listener = await tcp_transport.bind("127.0.0.1:0")
        port = listener.port
        await listener.close()

        with pytest.raises(ConnectError):
            await tcp_transport.connect(f"127.0.0.1:{port}")

    @pytest.mark.asyncio
    async def test_connect_unparsable_address(self, tcp_transport):
        with pytest.raises(ConnectError):
            await tcp_transport.connect("nowhere")

    @pytest.mark.asyncio
    async def test_accept_after_close_is_fatal(self, tcp_transport):
        listener = await tcp_transport.bind("127.0.0.1:0")
        await listener.close()

        with pytest.raises(AcceptError) as excinfo:
            await tcp_transport.accept(listener)
        assert excinfo.value.fatal

    @pytest.mark.asyncio
    async def test_close_wakes_pending_accept(self, tcp_transport):
        listener = await tcp_transport.bind("127.0.0.1:0")
        accept_task = asyncio.create_task(tcp_transport.accept(listener))
        await asyncio.sleep(0)

        await listener.close()
        with pytest.raises(AcceptError) as excinfo:
            await asyncio.wait_for(accept_task, timeout=2.0)
        assert excinfo.value.fatal

    @pytest.mark.asyncio
    async def test_closed_stream_rejects_io(self, tcp_transport):
        listener = await tcp_transport.bind("127.0.0.1:0")
        try:
            client = await tcp_transport.connect(f"127.0.0.1:{listener.port}")
            server, _ = await tcp_transport.accept(listener)

            async with client:
                pass
            assert client.closed
            # Closing twice is harmless
            await client.close()

            with pytest.raises(StreamIOError):
                await client.read(10)
            with pytest.raises(StreamIOError):
                await client.write_all(b"late")

            await server.close()
        finally:
            await listener.close()


class TestTransportFactory:
    def test_create_tcp(self):
        transport = TransportFactory.create("tcp")
        assert isinstance(transport, TcpTransport)
        assert transport.name == "tcp"

    def test_create_transport_helper(self):
        assert isinstance(create_transport(TransportKind.TCP), TcpTransport)

    def test_selector_is_case_insensitive(self):
        assert TransportKind.parse("TCP") is TransportKind.TCP

    def test_create_tls(self, tls_config):
        transport = TransportFactory.create(
            TransportKind.TLS, TransportConfig(tls=tls_config)
        )
        assert isinstance(transport, TlsTransport)
        assert transport.trust_store is not None

    def test_tls_requires_config(self):
        with pytest.raises(ConfigError):
            TransportFactory.create("tls")

    def test_unknown_transport(self):
        with pytest.raises(UnknownTransportError):
            TransportFactory.create("udp")

    def test_config_for_only_attaches_tls_when_selected(self):
        tls = TlsConfig(trusted_root="ca-cert.pem")
        assert TransportFactory.config_for("tcp", tls).tls is None
        assert TransportFactory.config_for("tls", tls).tls == tls

    def test_security_mode_follows_config(self):
        tls = TlsConfig(trusted_root="ca-cert.pem")
        assert TransportFactory.config_for("tcp", tls).security is SecurityMode.NONE
        assert TransportFactory.config_for("tls", tls).security is SecurityMode.TLS

    def test_list_supported_transports(self):
        assert TransportFactory.list_supported_transports() == ["tcp", "tls"]
