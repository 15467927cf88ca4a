"""Service protocols (interfaces) for dependency inversion."""

from __future__ import annotations

from typing import Awaitable, Protocol, runtime_checkable


@runtime_checkable
class RandomSource(Protocol):
    """Source of uniformly distributed integers.

    Implementations: ``random.Random`` (default), seeded ``random.Random``
    or scripted stubs in tests.
    """

    def randrange(self, stop: int) -> int:
        """Return an integer drawn uniformly from ``[0, stop)``."""
        ...


@runtime_checkable
class Sleeper(Protocol):
    """Suspends the calling coroutine for ``seconds``. ``asyncio.sleep`` satisfies it."""

    def __call__(self, seconds: float) -> Awaitable[None]: ...
