"""Error taxonomy shared by the configuration, TLS and factory layers."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable


class CqlConnectError(RuntimeError):
    """Base error for connection factory failures."""


class ConfigurationError(CqlConnectError, ValueError):
    """Raised when settings are invalid, contradictory or unknown."""


class SecurityConfigError(CqlConnectError):
    """Raised when transport security options cannot be built."""

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ClusterConnectionError(CqlConnectError, ConnectionError):
    """Raised when no usable connection to the cluster could be established."""

    def __init__(
        self,
        message: str,
        *,
        hosts: Iterable[str] = (),
        phase: str = "connect",
    ) -> None:
        super().__init__(message)
        self.hosts = tuple(hosts)
        self.phase = phase

    def __str__(self) -> str:
        base = super().__str__()
        if not self.hosts:
            return f"{base} (phase={self.phase})"
        return f"{base} (phase={self.phase}, hosts={', '.join(self.hosts)})"


__all__ = [
    "ClusterConnectionError",
    "ConfigurationError",
    "CqlConnectError",
    "SecurityConfigError",
]
