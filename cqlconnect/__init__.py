"""Pluggable connection factories for Cassandra-compatible clusters."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import (
    AuthConfig,
    CompressionMode,
    ConnectionConfig,
    NoAuthConfig,
    PasswordAuthConfig,
    TLSConfig,
)
from .errors import ClusterConnectionError, ConfigurationError, CqlConnectError, SecurityConfigError
from .factory import ClusterBuilder, ConnectionFactory, DefaultConnectionFactory, EstablishedConnection
from .registry import (
    ConnectionFactoryRegistry,
    ConnectionRequest,
    connect_from_settings,
    default_registry,
    factory_from_settings,
)
from .settings import load_settings, validate_settings
from .tls import SecurityOptions, build_security_options

__all__ = [
    "AuthConfig",
    "ClusterBuilder",
    "ClusterConnectionError",
    "CompressionMode",
    "ConfigurationError",
    "ConnectionConfig",
    "ConnectionFactory",
    "ConnectionFactoryRegistry",
    "ConnectionRequest",
    "CqlConnectError",
    "DefaultConnectionFactory",
    "EstablishedConnection",
    "NoAuthConfig",
    "PasswordAuthConfig",
    "SecurityConfigError",
    "SecurityOptions",
    "TLSConfig",
    "build_security_options",
    "connect_from_settings",
    "default_registry",
    "factory_from_settings",
    "load_settings",
    "validate_settings",
    "__version__",
]
