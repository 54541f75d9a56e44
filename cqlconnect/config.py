"""Immutable connection configuration models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Mapping, Union

from cassandra.auth import AuthProvider, PlainTextAuthProvider
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    SerializationInfo,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from .errors import ConfigurationError
from .settings import config_kwargs

DEFAULT_PORT = 9042


class ConfigModel(BaseModel):
    """Base for config models: frozen, strict about unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid {type(self).__name__}: {exc}") from exc


def _reveal(value: SecretStr | None, info: SerializationInfo) -> str | None:
    # secrets are written out only on request; otherwise they are left out as null
    if value is None or not (info.context and info.context.get("reveal_secrets")):
        return None
    return value.get_secret_value()


class CompressionMode(str, Enum):
    """Frame compression codecs understood by the driver."""

    NONE = "none"
    LZ4 = "lz4"
    SNAPPY = "snappy"

    @property
    def driver_value(self) -> bool | str:
        if self is CompressionMode.NONE:
            return False
        return self.value


class NoAuthConfig(ConfigModel):
    """Performs no authentication. Use with `AllowAllAuthenticator` on the server."""

    kind: Literal["none"] = "none"

    def auth_provider(self) -> AuthProvider | None:
        return None


class PasswordAuthConfig(ConfigModel):
    """Username/password authentication via `PasswordAuthenticator`."""

    kind: Literal["password"] = "password"
    username: str
    password: SecretStr

    def auth_provider(self) -> AuthProvider | None:
        return PlainTextAuthProvider(
            username=self.username,
            password=self.password.get_secret_value(),
        )

    @field_serializer("password", when_used="json")
    def _dump_password(self, value: SecretStr, info: SerializationInfo) -> str | None:
        return _reveal(value, info)


AuthConfig = Annotated[Union[NoAuthConfig, PasswordAuthConfig], Field(discriminator="kind")]


class TLSConfig(ConfigModel):
    """Transport security settings for cluster connections."""

    enabled: bool = False
    trust_store_path: Path | None = None
    trust_store_type: str = "PKCS12"
    trust_store_password: SecretStr | None = None
    protocol: str = "TLS"
    enabled_cipher_suites: tuple[str, ...] = ()
    check_hostname: bool = True

    @field_validator("trust_store_type")
    @classmethod
    def _normalize_store_type(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("enabled_cipher_suites")
    @classmethod
    def _strip_cipher_suites(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(name.strip() for name in value if name.strip())

    @field_serializer("trust_store_password", when_used="json")
    def _dump_password(self, value: SecretStr | None, info: SerializationInfo) -> str | None:
        return _reveal(value, info)


class ConnectionConfig(ConfigModel):
    """Everything needed to open a connection to the cluster.

    Instances are never mutated; build a new one (or use ``model_copy``) for
    each connection attempt.
    """

    hosts: tuple[str, ...]
    port: int = Field(default=DEFAULT_PORT, gt=0, le=65535)
    connect_timeout_ms: int = Field(default=5000, ge=0)
    read_timeout_ms: int = Field(default=120000, ge=0)
    query_retry_count: int = Field(default=10, ge=0)
    min_reconnection_delay_ms: int = Field(default=1000, ge=0)
    max_reconnection_delay_ms: int = Field(default=60000, ge=0)
    local_dc: str | None = None
    auth: AuthConfig = Field(default_factory=NoAuthConfig)
    compression: CompressionMode = CompressionMode.NONE
    tls: TLSConfig = Field(default_factory=TLSConfig)

    @field_validator("hosts", mode="before")
    @classmethod
    def _split_hosts(cls, value: object) -> object:
        if isinstance(value, str):
            return tuple(part for part in value.split(","))
        return value

    @field_validator("hosts")
    @classmethod
    def _dedupe_hosts(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        hosts = tuple(dict.fromkeys(host.strip() for host in value if host.strip()))
        if not hosts:
            raise ValueError("at least one contact host is required")
        return hosts

    @field_validator("local_dc")
    @classmethod
    def _blank_dc_is_unset(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_reconnection_bounds(self) -> ConnectionConfig:
        if self.min_reconnection_delay_ms > self.max_reconnection_delay_ms:
            raise ValueError(
                "min_reconnection_delay_ms "
                f"({self.min_reconnection_delay_ms}) must not exceed "
                f"max_reconnection_delay_ms ({self.max_reconnection_delay_ms})"
            )
        return self

    @classmethod
    def from_settings(cls, settings: Mapping[str, object]) -> ConnectionConfig:
        """Build a config from flat dotted option names (see `cqlconnect.settings`)."""

        return cls(**config_kwargs(settings))


__all__ = [
    "AuthConfig",
    "CompressionMode",
    "ConnectionConfig",
    "DEFAULT_PORT",
    "NoAuthConfig",
    "PasswordAuthConfig",
    "TLSConfig",
]
