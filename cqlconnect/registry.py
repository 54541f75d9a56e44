"""Factory registry: selecting a connection factory by configured name."""

from __future__ import annotations

import importlib.metadata as metadata
import inspect
import logging
from typing import Mapping

from pydantic import ValidationError

from .config import ConfigModel, ConnectionConfig
from .errors import ConfigurationError
from .factory import ConnectionFactory, DefaultConnectionFactory, EstablishedConnection
from .settings import FACTORY_PARAM, validate_settings

LOG = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "cqlconnect.factories"
DEFAULT_FACTORY_NAME = FACTORY_PARAM.default


class ConnectionFactoryRegistry:
    """Maps factory names to factory instances."""

    def __init__(self) -> None:
        self._factories: dict[str, ConnectionFactory] = {}

    def register(self, name: str, factory: ConnectionFactory, *, replace: bool = False) -> None:
        """Register a factory under ``name``."""

        if not isinstance(factory, ConnectionFactory):
            raise TypeError(f"Factory '{name}' must implement ConnectionFactory")
        if name in self._factories and not replace:
            raise ValueError(f"Connection factory '{name}' is already registered")
        self._factories[name] = factory

    def get(self, name: str) -> ConnectionFactory:
        try:
            return self._factories[name]
        except KeyError:
            known = ", ".join(sorted(self._factories)) or "none"
            raise ConfigurationError(f"Unknown connection factory '{name}' (registered: {known})") from None

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def discover(self, group: str = ENTRY_POINT_GROUP) -> list[str]:
        """Register factories advertised by installed distributions.

        Entry points may reference a factory class or instance. Names already
        registered win over discovered ones.
        """

        added: list[str] = []
        for entry_point in sorted(metadata.entry_points().select(group=group), key=lambda ep: ep.name):
            if entry_point.name in self._factories:
                LOG.debug("Skipping already registered factory", extra={"factory": entry_point.name})
                continue
            obj = entry_point.load()
            factory = obj() if inspect.isclass(obj) else obj
            self.register(entry_point.name, factory)
            added.append(entry_point.name)
        return added


def _build_default_registry() -> ConnectionFactoryRegistry:
    registry = ConnectionFactoryRegistry()
    registry.register(DEFAULT_FACTORY_NAME, DefaultConnectionFactory())
    return registry


_DEFAULT_REGISTRY = _build_default_registry()


def default_registry() -> ConnectionFactoryRegistry:
    """Process-wide registry, pre-populated with the default factory."""

    return _DEFAULT_REGISTRY


def factory_from_settings(
    settings: Mapping[str, object],
    registry: ConnectionFactoryRegistry | None = None,
) -> ConnectionFactory:
    """Return the factory named by ``connection.factory``, or the default one."""

    registry = registry or default_registry()
    name = settings.get(FACTORY_PARAM.name)
    if name is None or not str(name).strip():
        return registry.get(DEFAULT_FACTORY_NAME)
    return registry.get(str(name).strip())


def connect_from_settings(
    settings: Mapping[str, object],
    registry: ConnectionFactoryRegistry | None = None,
) -> EstablishedConnection:
    """Validate settings, build the config and connect with the selected factory."""

    factory = factory_from_settings(settings, registry)
    validate_settings(settings, factory.properties)
    config = ConnectionConfig.from_settings(settings)
    return factory.create_cluster(config)


class ConnectionRequest(ConfigModel):
    """Wire-friendly pairing of a factory name with the config it should use.

    Worker processes receive the JSON form and resolve the factory from their
    own registry instead of receiving a factory object.
    """

    factory: str = DEFAULT_FACTORY_NAME
    config: ConnectionConfig

    def to_json(self) -> str:
        """Serialize for another process, secrets included."""

        return self.model_dump_json(context={"reveal_secrets": True})

    @classmethod
    def from_json(cls, payload: str | bytes) -> ConnectionRequest:
        try:
            return cls.model_validate_json(payload)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid connection request: {exc}") from exc

    def resolve(self, registry: ConnectionFactoryRegistry | None = None) -> ConnectionFactory:
        return (registry or default_registry()).get(self.factory)

    def open(self, registry: ConnectionFactoryRegistry | None = None) -> EstablishedConnection:
        return self.resolve(registry).create_cluster(self.config)


__all__ = [
    "ConnectionFactoryRegistry",
    "ConnectionRequest",
    "DEFAULT_FACTORY_NAME",
    "ENTRY_POINT_GROUP",
    "connect_from_settings",
    "default_registry",
    "factory_from_settings",
]
