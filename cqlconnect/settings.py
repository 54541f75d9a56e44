"""Process-wide settings: option catalogue, TOML loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import tomllib

from typing import Iterable, Mapping

from .errors import ConfigurationError

SETTINGS_FILE = Path.home() / ".config" / "cqlconnect" / "settings.toml"
ROOT_TABLE = "cassandra"

CONNECTION_SECTION = "Cassandra Connection Parameters"
AUTH_SECTION = "Cassandra Authentication Parameters"
SSL_SECTION = "Cassandra SSL Connection Options"


@dataclass(frozen=True, slots=True)
class ConfigParameter:
    """Declares a recognised option name with its default and documentation."""

    name: str
    section: str
    default: object
    description: str


HOST_PARAM = ConfigParameter(
    name="connection.host",
    section=CONNECTION_SECTION,
    default="localhost",
    description="Comma-separated contact points used to bootstrap the connection.",
)
PORT_PARAM = ConfigParameter(
    name="connection.port",
    section=CONNECTION_SECTION,
    default=9042,
    description="Native protocol port shared by all contact points.",
)
LOCAL_DC_PARAM = ConfigParameter(
    name="connection.local_dc",
    section=CONNECTION_SECTION,
    default=None,
    description="Preferred datacenter; inferred from the contact points when unset.",
)
CONNECT_TIMEOUT_PARAM = ConfigParameter(
    name="connection.timeout_ms",
    section=CONNECTION_SECTION,
    default=5000,
    description="Maximum period of time to attempt connecting to a node.",
)
READ_TIMEOUT_PARAM = ConfigParameter(
    name="read.timeout_ms",
    section=CONNECTION_SECTION,
    default=120000,
    description="Maximum period of time to wait for a read to return.",
)
RETRY_COUNT_PARAM = ConfigParameter(
    name="query.retry.count",
    section=CONNECTION_SECTION,
    default=10,
    description="Number of times to retry a timed-out query.",
)
MIN_RECONNECT_PARAM = ConfigParameter(
    name="connection.reconnection_delay_ms.min",
    section=CONNECTION_SECTION,
    default=1000,
    description="Minimum period of time to wait before reconnecting to a dead node.",
)
MAX_RECONNECT_PARAM = ConfigParameter(
    name="connection.reconnection_delay_ms.max",
    section=CONNECTION_SECTION,
    default=60000,
    description="Maximum period of time to wait before reconnecting to a dead node.",
)
COMPRESSION_PARAM = ConfigParameter(
    name="connection.compression",
    section=CONNECTION_SECTION,
    default="none",
    description="Compression to use (none, lz4 or snappy).",
)
USERNAME_PARAM = ConfigParameter(
    name="auth.username",
    section=AUTH_SECTION,
    default=None,
    description="Login name for password authentication.",
)
PASSWORD_PARAM = ConfigParameter(
    name="auth.password",
    section=AUTH_SECTION,
    default=None,
    description="Password for password authentication.",
)
SSL_ENABLED_PARAM = ConfigParameter(
    name="connection.ssl.enabled",
    section=SSL_SECTION,
    default=False,
    description="Enable secure connection to the cluster.",
)
TRUST_STORE_PATH_PARAM = ConfigParameter(
    name="connection.ssl.trust_store.path",
    section=SSL_SECTION,
    default=None,
    description="Path for the trust store being used; system trust applies when unset.",
)
TRUST_STORE_TYPE_PARAM = ConfigParameter(
    name="connection.ssl.trust_store.type",
    section=SSL_SECTION,
    default="PKCS12",
    description="Trust store format (PKCS12, PEM or DER).",
)
TRUST_STORE_PASSWORD_PARAM = ConfigParameter(
    name="connection.ssl.trust_store.password",
    section=SSL_SECTION,
    default=None,
    description="Trust store password.",
)
PROTOCOL_PARAM = ConfigParameter(
    name="connection.ssl.protocol",
    section=SSL_SECTION,
    default="TLS",
    description="SSL protocol (TLS, TLSv1.2 or TLSv1.3).",
)
ENABLED_ALGORITHMS_PARAM = ConfigParameter(
    name="connection.ssl.enabled_algorithms",
    section=SSL_SECTION,
    default=(),
    description="Comma-separated OpenSSL cipher suite names; library defaults when empty.",
)
CHECK_HOSTNAME_PARAM = ConfigParameter(
    name="connection.ssl.check_hostname",
    section=SSL_SECTION,
    default=True,
    description="Verify that node certificates match the node address.",
)
FACTORY_PARAM = ConfigParameter(
    name="connection.factory",
    section=CONNECTION_SECTION,
    default="default",
    description="Registered name of the connection factory providing cluster connections.",
)

PARAMETERS: tuple[ConfigParameter, ...] = (
    HOST_PARAM,
    PORT_PARAM,
    LOCAL_DC_PARAM,
    CONNECT_TIMEOUT_PARAM,
    READ_TIMEOUT_PARAM,
    RETRY_COUNT_PARAM,
    MIN_RECONNECT_PARAM,
    MAX_RECONNECT_PARAM,
    COMPRESSION_PARAM,
    USERNAME_PARAM,
    PASSWORD_PARAM,
    SSL_ENABLED_PARAM,
    TRUST_STORE_PATH_PARAM,
    TRUST_STORE_TYPE_PARAM,
    TRUST_STORE_PASSWORD_PARAM,
    PROTOCOL_PARAM,
    ENABLED_ALGORITHMS_PARAM,
    CHECK_HOSTNAME_PARAM,
    FACTORY_PARAM,
)
PARAMETER_NAMES = frozenset(param.name for param in PARAMETERS)

_CONFIG_FIELDS: Mapping[str, str] = {
    PORT_PARAM.name: "port",
    LOCAL_DC_PARAM.name: "local_dc",
    CONNECT_TIMEOUT_PARAM.name: "connect_timeout_ms",
    READ_TIMEOUT_PARAM.name: "read_timeout_ms",
    RETRY_COUNT_PARAM.name: "query_retry_count",
    MIN_RECONNECT_PARAM.name: "min_reconnection_delay_ms",
    MAX_RECONNECT_PARAM.name: "max_reconnection_delay_ms",
}

_TLS_FIELDS: Mapping[str, str] = {
    SSL_ENABLED_PARAM.name: "enabled",
    TRUST_STORE_PATH_PARAM.name: "trust_store_path",
    TRUST_STORE_TYPE_PARAM.name: "trust_store_type",
    TRUST_STORE_PASSWORD_PARAM.name: "trust_store_password",
    PROTOCOL_PARAM.name: "protocol",
    CHECK_HOSTNAME_PARAM.name: "check_hostname",
}


def load_settings(path: Path | None = None) -> dict[str, object]:
    """Read flat dotted settings from a TOML file; missing file yields no settings."""

    target = path or SETTINGS_FILE
    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Malformed settings file '{target}': {exc}") from exc
    root = raw.get(ROOT_TABLE, {})
    if not isinstance(root, dict):
        raise ConfigurationError(f"Settings file '{target}' must define a [{ROOT_TABLE}] table")
    return _flatten(root)


def validate_settings(settings: Mapping[str, object], extra_allowed: Iterable[str] = ()) -> None:
    """Reject option names that neither the catalogue nor the factory recognise."""

    allowed = PARAMETER_NAMES | frozenset(extra_allowed)
    unknown = sorted(name for name in settings if name not in allowed)
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")


def config_kwargs(settings: Mapping[str, object]) -> dict[str, object]:
    """Translate flat option names into `ConnectionConfig` keyword arguments."""

    kwargs: dict[str, object] = {"hosts": _as_list(settings.get(HOST_PARAM.name, HOST_PARAM.default))}
    for name, field in _CONFIG_FIELDS.items():
        if name in settings:
            kwargs[field] = settings[name]
    compression = settings.get(COMPRESSION_PARAM.name)
    if compression is not None:
        kwargs["compression"] = str(compression).strip().lower()
    username = settings.get(USERNAME_PARAM.name)
    if not username and settings.get(PASSWORD_PARAM.name):
        raise ConfigurationError(f"'{PASSWORD_PARAM.name}' is set but '{USERNAME_PARAM.name}' is not")
    if username:
        kwargs["auth"] = {
            "kind": "password",
            "username": username,
            "password": settings.get(PASSWORD_PARAM.name) or "",
        }
    tls: dict[str, object] = {
        field: settings[name] for name, field in _TLS_FIELDS.items() if name in settings
    }
    if ENABLED_ALGORITHMS_PARAM.name in settings:
        tls["enabled_cipher_suites"] = _as_list(settings[ENABLED_ALGORITHMS_PARAM.name])
    if tls:
        kwargs["tls"] = tls
    return kwargs


def _as_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(item) for item in value]
    return [str(value)]


def _flatten(table: Mapping[str, object], prefix: str = "") -> dict[str, object]:
    flat: dict[str, object] = {}
    for key, value in table.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{name}."))
        else:
            flat[name] = value
    return flat


__all__ = [
    "ConfigParameter",
    "FACTORY_PARAM",
    "PARAMETERS",
    "PARAMETER_NAMES",
    "SETTINGS_FILE",
    "config_kwargs",
    "load_settings",
    "validate_settings",
]
