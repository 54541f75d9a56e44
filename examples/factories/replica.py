"""Sample third-party factory declaring its own option, used by the registry tests."""

from __future__ import annotations

from cqlconnect import ConnectionConfig, DefaultConnectionFactory, EstablishedConnection


class ReadOnlyReplicaFactory(DefaultConnectionFactory):
    """Connects like the default factory but pins a replica datacenter."""

    REPLICA_DC = "replica.datacenter"

    def __init__(self, replica_dc: str = "analytics") -> None:
        self.replica_dc = replica_dc
        self.created: list[ConnectionConfig] = []

    @property
    def properties(self) -> frozenset[str]:
        return frozenset({self.REPLICA_DC})

    def create_cluster(self, config: ConnectionConfig) -> EstablishedConnection:
        pinned = config.model_copy(update={"local_dc": self.replica_dc})
        self.created.append(pinned)
        return super().create_cluster(pinned)
