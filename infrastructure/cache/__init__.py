"""缓存层对外暴露的接口"""
from .connection import (
    init_redis_client,
    get_redis_client,
    shutdown_redis_client,
)
from .rate_limit import InMemoryRateLimitStore, RedisRateLimitStore

__all__ = [
    "init_redis_client",
    "get_redis_client",
    "shutdown_redis_client",
    "InMemoryRateLimitStore",
    "RedisRateLimitStore",
]
