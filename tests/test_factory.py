"""Tests for the default connection factory."""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from typing import Any

import pytest
from cassandra import AuthenticationFailed, ConsistencyLevel, UnresolvableContactPoints
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, NoHostAvailable
from cassandra.policies import ExponentialReconnectionPolicy, RetryPolicy

from cqlconnect.config import ConnectionConfig
from cqlconnect.errors import ClusterConnectionError, SecurityConfigError
from cqlconnect.factory import DefaultConnectionFactory, EstablishedConnection
from cqlconnect.policies import DEFAULT_POOLING, LocalDCFirstLoadBalancingPolicy, MultipleRetryPolicy
from cqlconnect.tls import SecurityOptions


class _FakeSession:
    def __init__(self) -> None:
        self.shutdown_calls = 0

    def shutdown(self) -> None:
        self.shutdown_calls += 1


class _FakeCluster:
    connect_error: Exception | None = None

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.protocol_version = None
        self.shutdown_calls = 0

    def connect(self) -> _FakeSession:
        if self.connect_error is not None:
            raise self.connect_error
        return _FakeSession()

    def shutdown(self) -> None:
        self.shutdown_calls += 1


@dataclass(frozen=True)
class _Host:
    address: str
    datacenter: str


@pytest.fixture
def clusters(monkeypatch: pytest.MonkeyPatch) -> list[_FakeCluster]:
    """Swap the driver cluster for a recording fake."""

    created: list[_FakeCluster] = []

    def _factory(**kwargs: Any) -> _FakeCluster:
        cluster = _FakeCluster(**kwargs)
        created.append(cluster)
        return cluster

    monkeypatch.setattr("cqlconnect.factory.Cluster", _factory)
    return created


def _config(**overrides: Any) -> ConnectionConfig:
    data: dict[str, Any] = {
        "hosts": ["10.0.0.1", "10.0.0.2"],
        "port": 9042,
        "local_dc": "dc1",
        "query_retry_count": 3,
        "min_reconnection_delay_ms": 1000,
        "max_reconnection_delay_ms": 60000,
    }
    data.update(overrides)
    return ConnectionConfig(**data)


def test_create_cluster_end_to_end(clusters: list[_FakeCluster]) -> None:
    factory = DefaultConnectionFactory()

    connection = factory.create_cluster(_config())

    assert isinstance(connection, EstablishedConnection)
    kwargs = connection.cluster.kwargs
    assert kwargs["contact_points"] == ["10.0.0.1", "10.0.0.2"]
    assert kwargs["port"] == 9042
    assert "ssl_context" not in kwargs
    profile = kwargs["execution_profiles"][EXEC_PROFILE_DEFAULT]

    balancer = profile.load_balancing_policy
    assert isinstance(balancer, LocalDCFirstLoadBalancingPolicy)
    assert balancer.local_dc == "dc1"
    local, remote = _Host("10.0.0.1", "dc1"), _Host("10.9.0.1", "dc2")
    balancer.populate(None, [remote, local])
    assert list(balancer.make_query_plan()) == [local]

    retry = profile.retry_policy
    assert isinstance(retry, MultipleRetryPolicy)
    assert retry.max_retries == 3
    assert retry.on_read_timeout(None, ConsistencyLevel.ONE, 1, 0, False, 2)[0] == RetryPolicy.RETRY
    assert retry.on_read_timeout(None, ConsistencyLevel.ONE, 1, 0, False, 3)[0] == RetryPolicy.RETHROW

    reconnection = kwargs["reconnection_policy"]
    assert isinstance(reconnection, ExponentialReconnectionPolicy)
    assert (reconnection.base_delay, reconnection.max_delay) == (1.0, 60.0)


def test_socket_options_compression_and_auth_are_applied(clusters: list[_FakeCluster]) -> None:
    config = _config(
        connect_timeout_ms=2500,
        read_timeout_ms=30000,
        compression="lz4",
        auth={"kind": "password", "username": "app", "password": "pw"},
    )

    builder = DefaultConnectionFactory().cluster_builder(config)
    kwargs = builder.cluster_kwargs()

    assert builder.socket_options.connect_timeout_ms == 2500
    assert kwargs["connect_timeout"] == 2.5
    assert kwargs["execution_profiles"][EXEC_PROFILE_DEFAULT].request_timeout == 30.0
    assert kwargs["compression"] == "lz4"
    assert isinstance(kwargs["auth_provider"], PlainTextAuthProvider)


def test_zero_timeouts_disable_socket_and_request_timeouts(clusters: list[_FakeCluster]) -> None:
    kwargs = DefaultConnectionFactory().cluster_builder(_config(connect_timeout_ms=0, read_timeout_ms=0)).cluster_kwargs()

    assert kwargs["connect_timeout"] is None
    assert kwargs["execution_profiles"][EXEC_PROFILE_DEFAULT].request_timeout is None


def test_no_auth_and_no_compression_pass_driver_defaults(clusters: list[_FakeCluster]) -> None:
    kwargs = DefaultConnectionFactory().cluster_builder(_config()).cluster_kwargs()

    assert kwargs["auth_provider"] is None
    assert kwargs["compression"] is False


def test_pooling_constants_ignore_config(clusters: list[_FakeCluster]) -> None:
    builder = DefaultConnectionFactory().cluster_builder(
        _config(connect_timeout_ms=1, read_timeout_ms=1, query_retry_count=0)
    )

    assert builder.pooling is DEFAULT_POOLING
    assert builder.pooling.local_max_connections == 10
    assert builder.pooling.remote_max_connections == 2048
    assert builder.pooling.max_requests_per_local_connection == 16536


def test_tls_without_trust_store_uses_default_trust(clusters: list[_FakeCluster]) -> None:
    connection = DefaultConnectionFactory().create_cluster(_config(tls={"enabled": True}))

    context = connection.cluster.kwargs["ssl_context"]
    assert isinstance(context, ssl.SSLContext)
    assert context.verify_mode == ssl.CERT_REQUIRED


def test_tls_with_trust_store_attaches_custom_options(
    clusters: list[_FakeCluster], monkeypatch: pytest.MonkeyPatch
) -> None:
    custom = SecurityOptions(ssl_context=ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT), cipher_suites=("A",))
    seen: list[Any] = []

    def _fake_build(tls: Any) -> SecurityOptions:
        seen.append(tls)
        return custom

    monkeypatch.setattr("cqlconnect.factory.build_security_options", _fake_build)
    config = _config(tls={"enabled": True, "trust_store_path": "/tmp/store.p12"})

    builder = DefaultConnectionFactory().cluster_builder(config)

    assert seen == [config.tls]
    assert builder.security is custom
    assert builder.cluster_kwargs()["ssl_context"] is custom.ssl_context


def test_tls_disabled_skips_provisioner(clusters: list[_FakeCluster], monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(tls: Any) -> None:
        raise AssertionError("provisioner should not run")

    monkeypatch.setattr("cqlconnect.factory.build_security_options", _fail)

    builder = DefaultConnectionFactory().cluster_builder(_config(tls={"enabled": False, "trust_store_path": "/x"}))

    assert builder.ssl_enabled is False


def test_security_errors_abort_before_connecting(
    clusters: list[_FakeCluster], monkeypatch: pytest.MonkeyPatch
) -> None:
    def _broken(tls: Any) -> None:
        raise SecurityConfigError("bad password")

    monkeypatch.setattr("cqlconnect.factory.build_security_options", _broken)

    with pytest.raises(SecurityConfigError):
        DefaultConnectionFactory().create_cluster(_config(tls={"enabled": True, "trust_store_path": "/x"}))
    assert clusters == []


@pytest.mark.parametrize(
    ("cause", "phase"),
    [
        (ConnectionRefusedError(111, "refused"), "connect"),
        (AuthenticationFailed("bad credentials"), "authenticate"),
        (ssl.SSLError(1, "handshake failure"), "tls_handshake"),
    ],
)
def test_connection_failures_are_translated(
    clusters: list[_FakeCluster],
    monkeypatch: pytest.MonkeyPatch,
    cause: Exception,
    phase: str,
) -> None:
    monkeypatch.setattr(
        _FakeCluster,
        "connect_error",
        NoHostAvailable("Unable to connect to any servers", {"10.0.0.1:9042": cause}),
    )

    with pytest.raises(ClusterConnectionError) as excinfo:
        DefaultConnectionFactory().create_cluster(_config())

    error = excinfo.value
    assert error.phase == phase
    assert error.hosts == ("10.0.0.1:9042",)
    assert isinstance(error, ConnectionError)
    assert isinstance(error.__cause__, NoHostAvailable)
    assert clusters[0].shutdown_calls == 1


def test_plain_socket_errors_are_translated(clusters: list[_FakeCluster], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(_FakeCluster, "connect_error", OSError("network unreachable"))

    with pytest.raises(ClusterConnectionError) as excinfo:
        DefaultConnectionFactory().create_cluster(_config())

    assert excinfo.value.hosts == ("10.0.0.1", "10.0.0.2")
    assert "phase=connect" in str(excinfo.value)


def test_unresolvable_contact_points_are_translated(monkeypatch: pytest.MonkeyPatch) -> None:
    def _unresolvable(**kwargs: Any) -> _FakeCluster:
        raise UnresolvableContactPoints({})

    monkeypatch.setattr("cqlconnect.factory.Cluster", _unresolvable)

    with pytest.raises(ClusterConnectionError) as excinfo:
        DefaultConnectionFactory().create_cluster(_config(hosts=["no-such-node.invalid"]))

    assert excinfo.value.phase == "connect"
    assert excinfo.value.hosts == ("no-such-node.invalid",)
    assert isinstance(excinfo.value.__cause__, UnresolvableContactPoints)


def test_established_connection_shutdown_is_idempotent(clusters: list[_FakeCluster]) -> None:
    with DefaultConnectionFactory().create_cluster(_config()) as connection:
        assert not connection.is_closed

    connection.shutdown()

    assert connection.is_closed
    assert connection.session.shutdown_calls == 1
    assert connection.cluster.shutdown_calls == 1


def test_default_factory_is_stateless_and_has_no_properties(clusters: list[_FakeCluster]) -> None:
    factory = DefaultConnectionFactory()

    factory.create_cluster(_config())
    factory.create_cluster(_config(hosts=["10.2.0.1"]))

    assert factory.properties == frozenset()
    assert vars(factory) == {}
    assert len(clusters) == 2
