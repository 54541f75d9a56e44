"""Connection factories turning a `ConnectionConfig` into a live cluster connection.

The package provides `DefaultConnectionFactory`. Other factories can be plugged
in through the registry and selected with the ``connection.factory`` option.
"""

from __future__ import annotations

import abc
import logging
import ssl
from dataclasses import dataclass
from typing import Any, Mapping

from cassandra import AuthenticationFailed, DriverException
from cassandra.auth import AuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, NoHostAvailable, Session
from cassandra.policies import LoadBalancingPolicy, ReconnectionPolicy, RetryPolicy

from .config import ConnectionConfig, TLSConfig
from .errors import ClusterConnectionError
from .policies import (
    DEFAULT_POOLING,
    LocalDCFirstLoadBalancingPolicy,
    MultipleRetryPolicy,
    PoolingOptions,
    reconnection_policy,
)
from .tls import SecurityOptions, build_security_options, default_security_options

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SocketOptions:
    """Per-node socket timeouts in milliseconds."""

    connect_timeout_ms: int
    read_timeout_ms: int


class EstablishedConnection:
    """Live cluster connection owned by the caller.

    The factory that created it keeps no reference; call `shutdown` (or use
    the connection as a context manager) to release sockets and background
    threads.
    """

    def __init__(self, cluster: Cluster, session: Session) -> None:
        self.cluster = cluster
        self.session = session
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.session.shutdown()
        self.cluster.shutdown()

    def __enter__(self) -> EstablishedConnection:
        return self

    def __exit__(self, *_: object) -> None:
        self.shutdown()


@dataclass(slots=True)
class ClusterBuilder:
    """Intermediate builder state collected before the driver `Cluster` exists."""

    contact_points: tuple[str, ...]
    port: int
    socket_options: SocketOptions
    pooling: PoolingOptions
    retry_policy: RetryPolicy
    reconnection_policy: ReconnectionPolicy
    load_balancing_policy: LoadBalancingPolicy
    auth_provider: AuthProvider | None
    compression: bool | str
    security: SecurityOptions | None = None

    def with_ssl(self, tls: TLSConfig, options: SecurityOptions | None = None) -> ClusterBuilder:
        """Attach custom security options, or system-trust options when none are given."""

        self.security = options if options is not None else default_security_options(tls)
        return self

    @property
    def ssl_enabled(self) -> bool:
        return self.security is not None

    def cluster_kwargs(self) -> dict[str, Any]:
        profile = ExecutionProfile(
            load_balancing_policy=self.load_balancing_policy,
            retry_policy=self.retry_policy,
            request_timeout=_seconds(self.socket_options.read_timeout_ms),
        )
        kwargs: dict[str, Any] = {
            "contact_points": list(self.contact_points),
            "port": self.port,
            "connect_timeout": _seconds(self.socket_options.connect_timeout_ms),
            "reconnection_policy": self.reconnection_policy,
            "auth_provider": self.auth_provider,
            "compression": self.compression,
            "execution_profiles": {EXEC_PROFILE_DEFAULT: profile},
        }
        if self.security is not None:
            kwargs["ssl_context"] = self.security.ssl_context
        return kwargs

    def build(self) -> Cluster:
        """Create the (not yet connected) driver cluster."""

        cluster = Cluster(**self.cluster_kwargs())
        self.pooling.apply_to(cluster)
        return cluster


class ConnectionFactory(abc.ABC):
    """Creates configured cluster connections."""

    @abc.abstractmethod
    def create_cluster(self, config: ConnectionConfig) -> EstablishedConnection:
        """Create and connect a cluster described by ``config``."""

    @property
    def properties(self) -> frozenset[str]:
        """Custom option names this factory reads from the settings."""

        return frozenset()


class DefaultConnectionFactory(ConnectionFactory):
    """Factory applying the standard socket, pooling, policy and TLS setup."""

    def cluster_builder(self, config: ConnectionConfig) -> ClusterBuilder:
        """Return the builder used to set up the `Cluster` instance."""

        builder = ClusterBuilder(
            contact_points=config.hosts,
            port=config.port,
            socket_options=SocketOptions(
                connect_timeout_ms=config.connect_timeout_ms,
                read_timeout_ms=config.read_timeout_ms,
            ),
            pooling=DEFAULT_POOLING,
            retry_policy=MultipleRetryPolicy(config.query_retry_count),
            reconnection_policy=reconnection_policy(
                config.min_reconnection_delay_ms, config.max_reconnection_delay_ms
            ),
            load_balancing_policy=LocalDCFirstLoadBalancingPolicy(config.hosts, config.local_dc),
            auth_provider=config.auth.auth_provider(),
            compression=config.compression.driver_value,
        )
        if config.tls.enabled:
            builder.with_ssl(config.tls, build_security_options(config.tls))
        LOG.debug(
            "Configured cluster builder",
            extra={
                "hosts": config.hosts,
                "port": config.port,
                "local_dc": config.local_dc,
                "ssl": builder.ssl_enabled,
            },
        )
        return builder

    def create_cluster(self, config: ConnectionConfig) -> EstablishedConnection:
        builder = self.cluster_builder(config)
        try:
            cluster = builder.build()
        except (DriverException, OSError) as exc:
            raise _connection_error(exc, config) from exc
        try:
            session = cluster.connect()
        except (NoHostAvailable, DriverException, OSError) as exc:
            cluster.shutdown()
            raise _connection_error(exc, config) from exc
        LOG.info(
            "Connected to cluster",
            extra={"hosts": config.hosts, "port": config.port, "ssl": config.tls.enabled},
        )
        return EstablishedConnection(cluster, session)


def _seconds(millis: int) -> float | None:
    # 0 means no timeout
    return millis / 1000.0 if millis else None


def _connection_error(exc: Exception, config: ConnectionConfig) -> ClusterConnectionError:
    errors: Mapping[Any, Exception] = getattr(exc, "errors", None) or {}
    hosts = tuple(str(host) for host in errors) or config.hosts
    causes = list(errors.values()) or [exc]
    if any(isinstance(cause, AuthenticationFailed) for cause in causes):
        phase = "authenticate"
    elif any(isinstance(cause, ssl.SSLError) for cause in causes):
        phase = "tls_handshake"
    else:
        phase = "connect"
    return ClusterConnectionError(f"Unable to connect to cluster on port {config.port}: {exc}", hosts=hosts, phase=phase)


__all__ = [
    "ClusterBuilder",
    "ConnectionFactory",
    "DefaultConnectionFactory",
    "EstablishedConnection",
    "SocketOptions",
]
