from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tlsecho.core.config import TlsConfig
from tlsecho.core.transport.defaults import (
    DEFAULT_PKCS12_PASSWORD,
    DEFAULT_PKCS12_PATH,
    DEFAULT_TRUSTED_ROOT,
)


class TlsSettings(BaseSettings):
    """TLS credential settings, overridable through ``TLSECHO_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="TLSECHO_", env_file=".env", extra="ignore"
    )

    trusted_root: str | None = Field(
        DEFAULT_TRUSTED_ROOT,
        description="PEM file with the root certificate clients trust.",
    )
    pkcs12: str | None = Field(
        DEFAULT_PKCS12_PATH,
        description="PKCS#12 bundle holding the server key and certificate.",
    )
    pkcs12_password: str | None = Field(
        DEFAULT_PKCS12_PASSWORD,
        description="Passphrase protecting the PKCS#12 bundle.",
    )
    hostname: str | None = Field(
        None,
        description=(
            "Name to verify the server certificate against instead of the "
            "connect address."
        ),
    )

    @field_validator("*", mode="before")
    @classmethod
    def _empty_is_unset(cls, value: object) -> object:
        # TLSECHO_HOSTNAME= clears a value instead of setting ""
        if isinstance(value, str) and not value:
            return None
        return value

    def to_tls_config(self) -> TlsConfig:
        return TlsConfig(
            trusted_root=self.trusted_root,
            pkcs12=self.pkcs12,
            pkcs12_password=self.pkcs12_password,
            hostname=self.hostname,
        )
