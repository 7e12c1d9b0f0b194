"""
Infrastructure module: Database, Redis and request correlation.

Provides:
- Database sessions and transactions (db.py)
- Redis connection pool and key layout (redis/)
- Correlation IDs for logs (correlation.py)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db,
    get_db_context,
    safe_commit,
    transaction,
    utcnow,
)
from shared.infrastructure.redis import (
    get_redis_sync_client,
    close_redis_sync_client,
)

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "safe_commit",
    "transaction",
    "utcnow",
    # redis
    "get_redis_sync_client",
    "close_redis_sync_client",
]
