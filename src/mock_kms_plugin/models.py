"""Value objects shared by the configuration layer and the plugin service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

from mock_kms_plugin.exceptions import InvalidLatencyBoundsError

_ZERO = timedelta(0)


def grpc_target(socket_path: str) -> str:
    """Address in the form understood by ``grpc`` servers and channels.

    ``@name`` is a Linux abstract socket.
    """
    if socket_path.startswith("@"):
        return f"unix-abstract:{socket_path[1:]}"
    return f"unix:{socket_path}"


class ServiceState(str, Enum):
    """Lifecycle of a single ``PluginService`` instance."""

    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class LatencyWindow:
    """Inclusive lower / exclusive upper bound for an injected delay."""

    min: timedelta = _ZERO
    max: timedelta = _ZERO

    def __post_init__(self) -> None:
        validate_bounds(self.min, self.max)

    @property
    def is_zero(self) -> bool:
        return self.max == _ZERO


def validate_bounds(minimum: timedelta, maximum: timedelta) -> None:
    """Raise ``InvalidLatencyBoundsError`` unless ``0 <= minimum <= maximum``."""
    if minimum < _ZERO or maximum < _ZERO:
        raise InvalidLatencyBoundsError(
            f"latency bounds must be non-negative (min={minimum}, max={maximum})"
        )
    if minimum > maximum:
        raise InvalidLatencyBoundsError(
            f"minimum duration cannot be greater than maximum duration (min={minimum}, max={maximum})"
        )


@dataclass(frozen=True)
class ServiceConfig:
    """Immutable configuration consumed by ``PluginService``.

    ``socket_path`` is the filesystem path of the Unix socket, or ``@name``
    for a Linux abstract socket.
    """

    socket_path: str
    timeout: timedelta = timedelta(seconds=5)
    encrypt: LatencyWindow = field(default_factory=LatencyWindow)
    decrypt: LatencyWindow = field(default_factory=LatencyWindow)

    @property
    def is_abstract(self) -> bool:
        return self.socket_path.startswith("@")

    @property
    def grpc_target(self) -> str:
        return grpc_target(self.socket_path)

    @property
    def shutdown_grace(self) -> timedelta:
        """Longest an in-flight RPC can take: the largest delay plus the connection timeout."""
        return max(self.encrypt.max, self.decrypt.max) + self.timeout
