"""Mock KMS plugin for exercising envelope-encryption integrations.

Serves the ``v1beta1`` KMS plugin gRPC contract over a Unix socket and
echoes payloads back unchanged, optionally after an artificial delay.
"""

from mock_kms_plugin.exceptions import (
    BindError,
    ConfigurationError,
    InvalidEndpointError,
    InvalidLatencyBoundsError,
    KMSPluginError,
    ServeError,
    ServiceAlreadyRunningError,
)
from mock_kms_plugin.latency import PING_SENTINEL, LatencySimulator, is_health_check
from mock_kms_plugin.models import LatencyWindow, ServiceConfig, ServiceState
from mock_kms_plugin.service import PluginService

__version__ = "0.0.1"

__all__ = [
    "BindError",
    "ConfigurationError",
    "InvalidEndpointError",
    "InvalidLatencyBoundsError",
    "KMSPluginError",
    "LatencySimulator",
    "LatencyWindow",
    "PING_SENTINEL",
    "PluginService",
    "ServeError",
    "ServiceAlreadyRunningError",
    "ServiceConfig",
    "ServiceState",
    "is_health_check",
]
