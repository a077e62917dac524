"""Pytest configuration and fixtures for tlsecho testing.

Servers are started on ephemeral loopback ports and always stopped again, so
tests never collide on a fixed port or leave listeners behind.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from loguru import logger

from tests.test_helpers import CredentialFiles, write_test_credentials
from tlsecho.core.config import TlsConfig
from tlsecho.core.transport import TcpTransport, TlsTransport, Transport
from tlsecho.server import EchoServer

type ServerFactory = Callable[..., Awaitable[tuple[EchoServer[Any, Any], str]]]


@pytest.fixture(scope="session")
def credentials(tmp_path_factory: pytest.TempPathFactory) -> CredentialFiles:
    """Generated CA, unrelated CA and PKCS#12 server identity."""
    return write_test_credentials(tmp_path_factory.mktemp("tls"))


@pytest.fixture
def tls_config(credentials: CredentialFiles) -> TlsConfig:
    return TlsConfig(
        trusted_root=str(credentials.ca_pem),
        pkcs12=str(credentials.identity),
        pkcs12_password=credentials.password,
    )


@pytest.fixture
def tcp_transport() -> TcpTransport:
    return TcpTransport()


@pytest.fixture
def tls_transport(tls_config: TlsConfig) -> TlsTransport:
    return TlsTransport(tls_config)


@pytest.fixture(params=["tcp", "tls"])
def transport(
    request: pytest.FixtureRequest, tls_config: TlsConfig
) -> Transport[Any, Any]:
    """Each transport variant in turn."""
    if request.param == "tls":
        return TlsTransport(tls_config)
    return TcpTransport()


@pytest_asyncio.fixture
async def echo_server_factory() -> AsyncGenerator[ServerFactory, None]:
    """Start echo servers on 127.0.0.1 with an ephemeral port.

    Example Usage:
        async def test_echo(echo_server_factory, transport):
            server, address = await echo_server_factory(transport)
            stream = await transport.connect(address)
    """
    started: list[tuple[EchoServer[Any, Any], asyncio.Task[None]]] = []

    async def _start(
        transport: Transport[Any, Any], **kwargs: Any
    ) -> tuple[EchoServer[Any, Any], str]:
        server = EchoServer(transport, "127.0.0.1:0", **kwargs)
        listener = await server.start()
        task = asyncio.create_task(server.serve_forever())
        started.append((server, task))
        return server, f"127.0.0.1:{listener.port}"

    yield _start

    for server, task in started:
        await server.stop()
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except TimeoutError:
            logger.warning("Echo server did not stop in time")
            task.cancel()
