import asyncio
from enum import Enum
from typing import Any, Literal

from jsonargparse import CLI
from loguru import logger

from tlsecho.client import send_hello
from tlsecho.config import TlsSettings
from tlsecho.core.logging import configure_logging
from tlsecho.core.transport import (
    Transport,
    TransportError,
    TransportFactory,
    TransportKind,
    UnknownModeError,
)
from tlsecho.core.transport.defaults import (
    DEFAULT_CONNECT_ADDRESS,
    DEFAULT_SERVE_ADDRESS,
)
from tlsecho.server import serve_echo

LogLevel = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"]


class Mode(Enum):
    """What the process does once its transport is built."""

    SERVE = "serve"
    CLIENT = "client"

    @classmethod
    def parse(cls, value: str) -> "Mode":
        try:
            return cls(value.lower())
        except ValueError:
            raise UnknownModeError(
                f"Unknown mode {value!r} (expected serve or client)"
            ) from None


async def run(
    transport: Transport[Any, Any],
    mode: Mode,
    address: str | None = None,
    *,
    max_connections: int | None = None,
    full_buffer: bool = False,
) -> None:
    """Run the echo server or the client probe over ``transport``."""
    match mode:
        case Mode.SERVE:
            await serve_echo(
                transport,
                address or DEFAULT_SERVE_ADDRESS,
                max_connections=max_connections,
                full_buffer=full_buffer,
            )
        case Mode.CLIENT:
            await send_hello(transport, address or DEFAULT_CONNECT_ADDRESS)


def echo(
    transport: str,
    mode: str,
    address: str | None = None,
    log_level: LogLevel = "INFO",
    debug_scopes: list[str] | None = None,
    max_connections: int | None = None,
    full_buffer: bool = False,
) -> None:
    """Run the echo service or its client probe over TCP or TLS.

    TLS credentials come from TLSECHO_TRUSTED_ROOT, TLSECHO_PKCS12,
    TLSECHO_PKCS12_PASSWORD and TLSECHO_HOSTNAME (or a .env file) and default
    to ca-cert.pem, identity.pfx and 1234 in the working directory.

    Args:
        transport: Transport variant: tcp or tls.
        mode: serve to run the echo server, client to send a greeting.
        address: host:port to bind (serve) or connect to (client).
        log_level: Minimum level for log output.
        debug_scopes: Modules to log at DEBUG regardless of log_level, e.g.
            core.transport or server.
        max_connections: Cap on concurrently served connections.
        full_buffer: Echo the whole 2048-byte read buffer on every read.
    """
    configure_logging(log_level, debug_scopes=debug_scopes or ())

    try:
        # Both selectors are validated before any credential is read
        selected_mode = Mode.parse(mode)
        kind = TransportKind.parse(transport)

        config = TransportFactory.config_for(kind, TlsSettings().to_tls_config())
        instance = TransportFactory.create(kind, config)
        asyncio.run(
            run(
                instance,
                selected_mode,
                address,
                max_connections=max_connections,
                full_buffer=full_buffer,
            )
        )
    except TransportError as e:
        logger.error("{}", e)
        raise SystemExit(1) from e
    except KeyboardInterrupt:
        logger.info("Interrupted")


def main(argv: list[str] | None = None) -> None:
    CLI(echo, args=argv)  # type: ignore[no-untyped-call]


if __name__ == "__main__":
    main()
