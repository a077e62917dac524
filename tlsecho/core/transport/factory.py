"""
Transport factory for tlsecho.

This is the only place a transport selector is turned into a concrete variant.
Everything downstream receives a ``Transport`` and stays generic over it.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any

from ..config import TlsConfig, TransportConfig
from .interfaces import ConfigError, Transport, UnknownTransportError
from .tcp_transport import TcpTransport
from .tls_transport import TlsTransport

type AnyTransport = Transport[Any, Any]


class TransportKind(Enum):
    """Supported transport variants."""

    TCP = "tcp"
    TLS = "tls"

    @classmethod
    def parse(cls, value: str | TransportKind) -> TransportKind:
        """Resolve a selector string.

        Raises:
            UnknownTransportError: If ``value`` names no variant
        """
        if isinstance(value, TransportKind):
            return value
        try:
            return cls(value.lower())
        except ValueError:
            choices = ", ".join(kind.value for kind in cls)
            raise UnknownTransportError(
                f"Unknown transport {value!r} (expected one of: {choices})"
            ) from None


def _create_tcp(config: TransportConfig) -> AnyTransport:
    return TcpTransport()


def _create_tls(config: TransportConfig) -> AnyTransport:
    if config.tls is None:
        raise ConfigError("TLS transport requires a TLS configuration")
    return TlsTransport(config.tls)


_builders: dict[TransportKind, Callable[[TransportConfig], AnyTransport]] = {
    TransportKind.TCP: _create_tcp,
    TransportKind.TLS: _create_tls,
}


class TransportFactory:
    """Factory for creating transport instances."""

    @staticmethod
    def create(
        kind: str | TransportKind, config: TransportConfig | None = None
    ) -> AnyTransport:
        """Create the transport variant for ``kind``.

        Args:
            kind: Transport selector (``tcp`` or ``tls``)
            config: Transport configuration; required for ``tls``

        Raises:
            UnknownTransportError: If ``kind`` is not supported
            ConfigError: If ``tls`` is selected without TLS settings
            TrustError: If the configured trusted root cannot be parsed
        """
        kind = TransportKind.parse(kind)
        if config is None:
            config = TransportConfig()
        return _builders[kind](config)

    @staticmethod
    def config_for(kind: str | TransportKind, tls: TlsConfig) -> TransportConfig:
        """Build the process configuration for a selector.

        The TLS settings are only attached when the TLS variant is selected.
        """
        if TransportKind.parse(kind) is TransportKind.TLS:
            return TransportConfig(tls=tls)
        return TransportConfig()

    @staticmethod
    def list_supported_transports() -> list[str]:
        return [kind.value for kind in _builders]


def create_transport(
    kind: str | TransportKind, config: TransportConfig | None = None
) -> AnyTransport:
    """Convenience function to create a transport."""
    return TransportFactory.create(kind, config)
