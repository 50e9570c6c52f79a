"""限流计数存储实现

键格式为 ``{namespace}:{key}``，每次 hit 都会刷新过期时间（滑动窗口）。
Redis 版本用 MULTI 管道保证 INCRBY 与 EXPIRE 原子执行；
内存版本仅适用于单进程（本地开发与测试）。
"""
from __future__ import annotations

import asyncio
import time
from typing import Optional

from redis import asyncio as aioredis

from application.ports.rate_limiter import RateLimitStore


class RedisRateLimitStore(RateLimitStore):
    """基于Redis的限流计数"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def attempts(self, key: str) -> int:
        value = await self._client.get(self._format_key(key))
        return int(value) if value is not None else 0

    async def hit(self, key: str, *, amount: int = 1, decay_seconds: int = 60) -> int:
        formatted_key = self._format_key(key)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incrby(formatted_key, amount)
            pipe.expire(formatted_key, decay_seconds)
            value, _ = await pipe.execute()
        return int(value)

    async def clear(self, key: str) -> None:
        await self._client.delete(self._format_key(key))


class InMemoryRateLimitStore(RateLimitStore):
    """进程内限流计数，未配置Redis时使用"""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        # key -> (count, expires_at)
        self._buckets: dict[str, tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[tuple[int, float]]:
        bucket = self._buckets.get(key)
        if bucket is None:
            return None
        if bucket[1] <= self._clock():
            self._buckets.pop(key, None)
            return None
        return bucket

    async def attempts(self, key: str) -> int:
        async with self._lock:
            bucket = self._live(key)
            return bucket[0] if bucket else 0

    async def hit(self, key: str, *, amount: int = 1, decay_seconds: int = 60) -> int:
        async with self._lock:
            bucket = self._live(key)
            count = (bucket[0] if bucket else 0) + amount
            self._buckets[key] = (count, self._clock() + decay_seconds)
            return count

    async def clear(self, key: str) -> None:
        async with self._lock:
            self._buckets.pop(key, None)
