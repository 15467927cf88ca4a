"""Latency simulation for the mock KMS plugin.

The ``LatencySimulator`` picks the artificial delay applied to Encrypt and
Decrypt so the plugin behaves like a KMS backend with realistic response
times. It is stateless apart from its random source, so one instance can
be shared by every in-flight RPC.

Usage:
    simulator = LatencySimulator(rng=random.Random(42))
    delay = simulator.sample(timedelta(milliseconds=100), timedelta(milliseconds=200))
    await asyncio.sleep(delay.total_seconds())
"""

from __future__ import annotations

import random
from datetime import timedelta

from mock_kms_plugin.models import LatencyWindow, validate_bounds
from mock_kms_plugin.protocols import RandomSource

# Payload sent by orchestrator health checks; never delayed.
PING_SENTINEL = b"ping"

_RESOLUTION = timedelta(microseconds=1)


def is_health_check(payload: bytes) -> bool:
    """Return True if ``payload`` is the health-check sentinel."""
    return bytes(payload) == PING_SENTINEL


class LatencySimulator:
    """Draws delays uniformly from a ``[min, max)`` window."""

    def __init__(self, rng: RandomSource | None = None) -> None:
        """Initialize the simulator.

        Args:
            rng: Random source (default: a new ``random.Random`` seeded from
                 system entropy). Inject a seeded ``random.Random`` for
                 reproducible delays.
        """
        self._rng = rng if rng is not None else random.Random()

    def sample(self, minimum: timedelta, maximum: timedelta) -> timedelta:
        """Return a delay drawn uniformly from ``[minimum, maximum)``.

        Returns ``minimum`` exactly when both bounds are equal.

        Raises:
            InvalidLatencyBoundsError: if ``minimum > maximum`` or a bound is negative.
        """
        validate_bounds(minimum, maximum)

        span = (maximum - minimum) // _RESOLUTION
        if span == 0:
            return minimum
        return minimum + self._rng.randrange(span) * _RESOLUTION

    def sample_window(self, window: LatencyWindow) -> timedelta:
        return self.sample(window.min, window.max)
