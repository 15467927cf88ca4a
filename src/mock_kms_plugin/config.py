"""Configuration for the mock KMS plugin using pydantic-settings.

Values come from (highest priority first) CLI flags, ``MOCK_KMS_*``
environment variables and a ``.env`` file in the working directory.
"""

from __future__ import annotations

import re
from datetime import timedelta
from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mock_kms_plugin.exceptions import ConfigurationError, InvalidEndpointError
from mock_kms_plugin.models import LatencyWindow, ServiceConfig

UNIX_SCHEME = "unix"

# unit -> seconds
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse a Go-style duration string such as ``"300ms"`` or ``"1m30s"``.

    A bare ``"0"`` is accepted; any other value needs a unit on every part.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)

    seconds = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ValueError(f"invalid duration {value!r}")
        number, unit = match.groups()
        seconds += _DURATION_UNITS[unit] * float(number)
        pos = match.end()
    return timedelta(seconds=seconds * sign)


def format_duration(value: timedelta) -> str:
    """Render a ``timedelta`` compactly for logs, e.g. ``150ms`` or ``2.5s``."""
    seconds = value.total_seconds()
    if seconds == 0:
        return "0s"
    if abs(seconds) < 1:
        return f"{seconds * 1000:g}ms"
    return f"{seconds:g}s"


def parse_endpoint(endpoint: str) -> str:
    """Return the socket path of a ``unix://`` endpoint.

    Paths starting with ``/@`` name a Linux abstract socket and are
    returned as ``@name``.
    """
    if not endpoint:
        raise InvalidEndpointError("remote KMS provider can't use empty string as endpoint")

    try:
        url = urlparse(endpoint)
    except ValueError as e:
        raise InvalidEndpointError(f"invalid endpoint {endpoint!r} for remote KMS provider, error: {e}") from e

    if url.scheme != UNIX_SCHEME:
        raise InvalidEndpointError(f"unsupported scheme {url.scheme!r} for remote KMS provider")

    # unix://relative/path parses the first segment as the host
    path = f"{url.netloc}{url.path}"
    if not path:
        raise InvalidEndpointError(f"endpoint {endpoint!r} has no socket path")
    if path.startswith("/@"):
        return path[1:]
    return path


class Settings(BaseSettings):
    """All plugin settings, loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="MOCK_KMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Listener
    # ------------------------------------------------------------------
    listen_addr: str = "unix:///tmp/kms.socket"
    timeout: timedelta = timedelta(seconds=5)

    # ------------------------------------------------------------------
    # Latency injection (delay bounds per operation)
    # ------------------------------------------------------------------
    decryption_latency_min: timedelta = timedelta(0)
    decryption_latency_max: timedelta = timedelta(0)
    encryption_latency_min: timedelta = timedelta(0)
    encryption_latency_max: timedelta = timedelta(0)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator(
        "timeout",
        "decryption_latency_min",
        "decryption_latency_max",
        "encryption_latency_min",
        "encryption_latency_max",
        mode="before",
    )
    @classmethod
    def _parse_go_duration(cls, value):
        if not isinstance(value, str):
            return value
        stripped = value.strip()
        # Plain numbers are seconds.
        try:
            return timedelta(seconds=float(stripped))
        except (ValueError, OverflowError):
            pass
        try:
            return parse_duration(stripped)
        except ValueError:
            # Not Go syntax; let pydantic try ISO 8601.
            return value

    @field_validator(
        "timeout",
        "decryption_latency_min",
        "decryption_latency_max",
        "encryption_latency_min",
        "encryption_latency_max",
    )
    @classmethod
    def _non_negative(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError("duration must not be negative")
        return value

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------
    def to_service_config(self) -> ServiceConfig:
        """Validate the endpoint and latency windows and build a ``ServiceConfig``.

        Call this at startup (not at import time) so that tests can
        override settings before validation runs.

        Raises:
            ConfigurationError: on an invalid endpoint or latency window.
        """
        socket_path = parse_endpoint(self.listen_addr)
        try:
            encrypt = LatencyWindow(self.encryption_latency_min, self.encryption_latency_max)
            decrypt = LatencyWindow(self.decryption_latency_min, self.decryption_latency_max)
        except ConfigurationError as e:
            raise type(e)(f"invalid latency configuration: {e}") from e

        return ServiceConfig(
            socket_path=socket_path,
            timeout=self.timeout,
            encrypt=encrypt,
            decrypt=decrypt,
        )
