from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SecurityMode(Enum):
    """Security mode a transport runs in."""

    NONE = "none"
    TLS = "tls"


@dataclass(frozen=True, slots=True)
class TlsConfig:
    """TLS credential locations.

    Every field is optional: a client only needs trust material and a server
    only needs identity material. The TLS transport rejects a missing field
    when the role that needs it is exercised.
    """

    trusted_root: str | None = None
    pkcs12: str | None = None
    pkcs12_password: str | None = None
    hostname: str | None = None


@dataclass(frozen=True, slots=True)
class TransportConfig:
    """Process-wide transport selection."""

    tls: TlsConfig | None = None

    @property
    def security(self) -> SecurityMode:
        return SecurityMode.TLS if self.tls is not None else SecurityMode.NONE
