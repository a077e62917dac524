"""
tlsecho Core Module

Configuration, logging and the transport layer the echo service runs on.
"""

from .config import SecurityMode, TlsConfig, TransportConfig
from .logging import configure_logging

__all__ = [
    "SecurityMode",
    "TlsConfig",
    "TransportConfig",
    "configure_logging",
]
