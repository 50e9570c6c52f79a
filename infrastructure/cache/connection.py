"""Redis连接生命周期管理"""
from __future__ import annotations

import asyncio
from typing import Optional

from redis import asyncio as aioredis

from core.config import settings


_redis_client: Optional[aioredis.Redis] = None
_lock = asyncio.Lock()


async def init_redis_client(url: Optional[str] = None) -> aioredis.Redis:
    """初始化全局Redis客户端（幂等）"""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    async with _lock:
        if _redis_client is not None:
            return _redis_client

        redis_url = url or settings.redis.url
        if not redis_url:
            raise RuntimeError("redis.url 未配置，无法初始化Redis客户端")

        _redis_client = aioredis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )
        return _redis_client


def get_redis_client() -> Optional[aioredis.Redis]:
    """获取已初始化的Redis客户端；未初始化时返回None"""
    return _redis_client


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
