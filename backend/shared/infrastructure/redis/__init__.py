"""
Redis infrastructure: connection pool and key layout.
"""

from shared.infrastructure.redis.pool import (
    get_redis_sync_client,
    close_redis_sync_client,
)

__all__ = [
    "get_redis_sync_client",
    "close_redis_sync_client",
]
