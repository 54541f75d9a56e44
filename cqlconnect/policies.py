"""Driver policies configured by the default connection factory."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from threading import Lock
from typing import Any, Iterable, Iterator

from cassandra.policies import ExponentialReconnectionPolicy, HostDistance, LoadBalancingPolicy, RetryPolicy

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PoolingOptions:
    """Per-host connection pool sizing."""

    local_core_connections: int
    local_max_connections: int
    remote_core_connections: int
    remote_max_connections: int
    max_requests_per_local_connection: int

    def apply_to(self, cluster: Any) -> None:
        """Push pool sizes into a cluster whose protocol supports per-host pools."""

        version = getattr(cluster, "protocol_version", None)
        if version is None or version >= 3:
            LOG.debug(
                "Protocol manages a single connection per host; pool sizes are advisory",
                extra={"protocol_version": version},
            )
            return
        cluster.set_core_connections_per_host(HostDistance.LOCAL, self.local_core_connections)
        cluster.set_max_connections_per_host(HostDistance.LOCAL, self.local_max_connections)
        cluster.set_core_connections_per_host(HostDistance.REMOTE, self.remote_core_connections)
        cluster.set_max_connections_per_host(HostDistance.REMOTE, self.remote_max_connections)


DEFAULT_POOLING = PoolingOptions(
    local_core_connections=2,
    local_max_connections=10,
    remote_core_connections=2,
    remote_max_connections=2048,
    max_requests_per_local_connection=16536,
)


def reconnection_policy(min_delay_ms: int, max_delay_ms: int) -> ExponentialReconnectionPolicy:
    """Unbounded exponential backoff between the given delays."""

    return ExponentialReconnectionPolicy(
        base_delay=min_delay_ms / 1000.0,
        max_delay=max_delay_ms / 1000.0,
        max_attempts=None,
    )


class MultipleRetryPolicy(RetryPolicy):
    """Retries timed-out and unavailable queries up to ``max_retries`` times."""

    def __init__(self, max_retries: int) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries

    def _decide(self, retry_num: int, consistency: Any, decision: int) -> tuple[int, Any]:
        if retry_num < self.max_retries:
            return decision, consistency
        return self.RETHROW, None

    def on_read_timeout(
        self,
        query: Any,
        consistency: Any,
        required_responses: int,
        received_responses: int,
        data_retrieved: bool,
        retry_num: int,
    ) -> tuple[int, Any]:
        return self._decide(retry_num, consistency, self.RETRY)

    def on_write_timeout(
        self,
        query: Any,
        consistency: Any,
        write_type: Any,
        required_responses: int,
        received_responses: int,
        retry_num: int,
    ) -> tuple[int, Any]:
        return self._decide(retry_num, consistency, self.RETRY)

    def on_unavailable(
        self,
        query: Any,
        consistency: Any,
        required_replicas: int,
        alive_replicas: int,
        retry_num: int,
    ) -> tuple[int, Any]:
        return self._decide(retry_num, consistency, self.RETRY)

    def on_request_error(self, query: Any, consistency: Any, error: Exception, retry_num: int) -> tuple[int, Any]:
        return self._decide(retry_num, consistency, self.RETRY_NEXT_HOST)


class LocalDCFirstLoadBalancingPolicy(LoadBalancingPolicy):
    """Routes queries to the local datacenter, using remote nodes only when it is down.

    Nodes within a datacenter are equally preferred and visited round-robin.
    When ``local_dc`` is not given it is taken from the contact points once the
    cluster reports their datacenters.
    """

    def __init__(self, contact_points: Iterable[str], local_dc: str | None = None) -> None:
        super().__init__()
        self.contact_points = tuple(contact_points)
        self.local_dc = local_dc
        self._lock = Lock()
        self._live_hosts: list[Any] = []
        self._position = 0

    def populate(self, cluster: Any, hosts: Iterable[Any]) -> None:
        with self._lock:
            self._live_hosts = list(hosts)
            if self.local_dc is None:
                self.local_dc = self._infer_local_dc(self._live_hosts)
            self._position = 0
        LOG.debug(
            "Load balancing populated",
            extra={"local_dc": self.local_dc, "hosts": len(self._live_hosts)},
        )

    def distance(self, host: Any) -> int:
        if self.is_local(host):
            return HostDistance.LOCAL
        return HostDistance.REMOTE

    def is_local(self, host: Any) -> bool:
        return self.local_dc is None or getattr(host, "datacenter", None) == self.local_dc

    def make_query_plan(self, working_keyspace: str | None = None, query: Any = None) -> Iterator[Any]:
        with self._lock:
            position = self._position
            self._position += 1
            local = [host for host in self._live_hosts if self.is_local(host)]
            remote = [host for host in self._live_hosts if not self.is_local(host)]
        candidates = local or remote
        if not candidates:
            return iter(())
        start = position % len(candidates)
        return iter(candidates[start:] + candidates[:start])

    def on_up(self, host: Any) -> None:
        with self._lock:
            if host not in self._live_hosts:
                self._live_hosts.append(host)

    def on_down(self, host: Any) -> None:
        with self._lock:
            if host in self._live_hosts:
                self._live_hosts.remove(host)

    def on_add(self, host: Any) -> None:
        self.on_up(host)

    def on_remove(self, host: Any) -> None:
        self.on_down(host)

    def _infer_local_dc(self, hosts: list[Any]) -> str | None:
        contacts = set(self.contact_points)
        dcs = [
            host.datacenter
            for host in hosts
            if getattr(host, "datacenter", None) and _host_address(host) in contacts
        ]
        if not dcs:
            LOG.warning(
                "Could not determine local datacenter from contact points; treating all nodes as local",
                extra={"contact_points": self.contact_points},
            )
            return None
        counts = Counter(dcs)
        if len(counts) > 1:
            LOG.warning(
                "Contact points span several datacenters; choosing the most common",
                extra={"datacenters": sorted(counts)},
            )
        return counts.most_common(1)[0][0]


def _host_address(host: Any) -> str:
    endpoint = getattr(host, "endpoint", None)
    address = getattr(endpoint, "address", None) or getattr(host, "address", None)
    return str(address)


__all__ = [
    "DEFAULT_POOLING",
    "LocalDCFirstLoadBalancingPolicy",
    "MultipleRetryPolicy",
    "PoolingOptions",
    "reconnection_policy",
]
