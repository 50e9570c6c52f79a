"""
Rate-limit store port: per-key attempt counters with a decay window.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class RateLimitStore(Protocol):
    async def attempts(self, key: str) -> int: ...

    async def hit(self, key: str, *, amount: int = 1, decay_seconds: int = 60) -> int:
        """Atomically add `amount` and (re)start the decay window; returns the new count."""
        ...

    async def clear(self, key: str) -> None: ...
