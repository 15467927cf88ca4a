"""Plugin-level exceptions.

These are domain errors, not gRPC status codes. The CLI translates them
into a diagnostic log line and a non-zero exit status.
"""


class KMSPluginError(Exception):
    """Base class for all errors raised by the mock KMS plugin."""


class ConfigurationError(KMSPluginError, ValueError):
    """Raised when the plugin configuration is invalid. Serving must not start."""


class InvalidLatencyBoundsError(ConfigurationError):
    """Raised when a latency window has ``min > max`` or a negative bound."""


class InvalidEndpointError(ConfigurationError):
    """Raised when the listen address is empty or not a ``unix://`` endpoint."""


class BindError(KMSPluginError, OSError):
    """Raised when the listener cannot be bound to the configured address."""


class ServiceAlreadyRunningError(KMSPluginError, RuntimeError):
    """Raised by ``start()`` when the service already owns a running server."""


class ServeError(KMSPluginError, RuntimeError):
    """Raised when serving ends for any reason other than an explicit stop."""
