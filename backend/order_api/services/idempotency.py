"""
Idempotency coordinator.

Deduplicates mutating requests that carry a client-supplied request ID:

1. A deterministic key is derived from (user, restaurant, request ID, endpoint, method).
2. A committed result for the key is returned immediately (durable lookup first,
   then the Redis result cache).
3. Otherwise an exclusive, expiring Redis lock is taken (SET NX EX). While another
   request holds it we back off exponentially and re-check for a result, up to a
   bounded number of attempts, then fail with a retryable LockTimeoutError.
4. The lock holder re-checks, executes the operation once, stores the result and
   releases the lock (compare-and-delete) in every case.

Requests without a request ID bypass the coordinator.
"""

from __future__ import annotations

import hashlib
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, Mapping, TypeVar

import redis

from shared.config.constants import Headers
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.db import transaction, utcnow
from shared.infrastructure.redis.constants import (
    get_idempotency_lock_key,
    get_idempotency_result_key,
)
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import ExternalServiceError, LockTimeoutError

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class IdempotencyContext:
    request_id: str | None
    endpoint: str
    method: str
    user_id: str | None = None
    restaurant_id: str | None = None


@dataclass(frozen=True)
class IdempotencyResult(Generic[T]):
    data: T
    is_from_cache: bool
    request_id: str | None


class DuplicateRequest(Exception):
    """
    Raised by an operation that discovers its request was already committed
    (e.g. a unique violation on the request ID). Not an error: the coordinator
    answers with ``data`` as a cached result.
    """

    def __init__(self, data: Any):
        self.data = data
        super().__init__("Request already processed")


def generate_idempotency_key(context: IdempotencyContext) -> str:
    raw = ":".join(
        (
            context.user_id or "anonymous",
            context.restaurant_id or "no-restaurant",
            context.request_id or "",
            context.endpoint,
            context.method.upper(),
        )
    )
    return hashlib.sha256(raw.encode()).hexdigest()


def request_id_from_headers(headers: Mapping[str, str]) -> str | None:
    """Idempotency-Key, falling back to X-Idempotency-Key."""
    value = headers.get(Headers.IDEMPOTENCY_KEY) or headers.get(Headers.IDEMPOTENCY_KEY_ALT)
    if value:
        value = value.strip()
    return value or None


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


_MISSING = object()


class IdempotencyCoordinator:
    """
    Usage:
        coordinator = IdempotencyCoordinator(get_redis_sync_client())
        result = coordinator.execute_idempotent(
            IdempotencyContext(request_id, "/api/orders", "POST", user_id, restaurant_id),
            lambda: service.place(...),
            lookup=lambda: find_committed(request_id),
        )
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        *,
        key_ttl: int | None = None,
        lock_ttl: int | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._redis = redis_client
        self.key_ttl = key_ttl if key_ttl is not None else settings.idempotency_key_ttl_seconds
        self.lock_ttl = lock_ttl if lock_ttl is not None else settings.idempotency_lock_ttl_seconds
        self.max_retries = max_retries if max_retries is not None else settings.idempotency_max_retries
        self.retry_delay = retry_delay if retry_delay is not None else settings.idempotency_retry_delay
        self._sleep = sleep

    # =========================================================================
    # Result store
    # =========================================================================

    def _find_result(
        self,
        key: str,
        lookup: Callable[[], T | None] | None,
        decode: Callable[[str], T],
    ) -> Any:
        if lookup is not None:
            found = lookup()
            if found is not None:
                return found

        try:
            raw = self._redis.get(get_idempotency_result_key(key))
        except redis.RedisError as e:
            raise ExternalServiceError("redis", is_unavailable=True, retry_after=1, error=str(e)) from e
        if raw is None:
            return _MISSING
        return decode(_as_str(raw))

    def _store_result(self, key: str, data: Any, encode: Callable[[Any], str]) -> None:
        try:
            self._redis.set(get_idempotency_result_key(key), encode(data), ex=self.key_ttl)
        except redis.RedisError as e:
            # The operation already committed; a durable lookup still finds it
            logger.error("Failed to cache idempotent result", key=key[:12], error=str(e))

    # =========================================================================
    # Lock
    # =========================================================================

    def _acquire(self, lock_key: str, token: str) -> bool:
        try:
            return bool(self._redis.set(lock_key, token, nx=True, ex=self.lock_ttl))
        except redis.RedisError as e:
            raise ExternalServiceError("redis", is_unavailable=True, retry_after=1, error=str(e)) from e

    def _release(self, lock_key: str, token: str) -> None:
        """Delete the lock only if this holder still owns it."""
        try:
            with self._redis.pipeline() as pipe:
                pipe.watch(lock_key)
                if _as_str(pipe.get(lock_key)) == token:
                    pipe.multi()
                    pipe.delete(lock_key)
                    pipe.execute()
                else:
                    pipe.unwatch()
                    logger.warning("Idempotency lock expired before release", lock_key=lock_key[:20])
        except redis.WatchError:
            logger.warning("Idempotency lock changed during release", lock_key=lock_key[:20])
        except redis.RedisError as e:
            # Lock expires on its own after lock_ttl
            logger.error("Failed to release idempotency lock", lock_key=lock_key[:20], error=str(e))

    # =========================================================================
    # Public API
    # =========================================================================

    def execute_idempotent(
        self,
        context: IdempotencyContext,
        operation: Callable[[], T],
        *,
        lookup: Callable[[], T | None] | None = None,
        encode: Callable[[Any], str] = json.dumps,
        decode: Callable[[str], T] = json.loads,
    ) -> IdempotencyResult[T]:
        request_id = context.request_id
        if not request_id:
            return IdempotencyResult(operation(), False, None)

        key = generate_idempotency_key(context)
        lock_key = get_idempotency_lock_key(key)

        cached = self._find_result(key, lookup, decode)
        if cached is not _MISSING:
            logger.info("Idempotent replay", endpoint=context.endpoint, key=key[:12])
            return IdempotencyResult(cached, True, request_id)

        token = uuid.uuid4().hex
        attempt = 0
        while not self._acquire(lock_key, token):
            if attempt >= self.max_retries:
                logger.warning(
                    "Idempotency lock wait exhausted",
                    endpoint=context.endpoint,
                    key=key[:12],
                    attempts=attempt,
                )
                raise LockTimeoutError(request_id, retry_after=max(1, int(self.lock_ttl / 10)))

            self._sleep(self.retry_delay * (2 ** attempt))
            attempt += 1

            cached = self._find_result(key, lookup, decode)
            if cached is not _MISSING:
                logger.info("Idempotent replay after wait", endpoint=context.endpoint, key=key[:12])
                return IdempotencyResult(cached, True, request_id)

        try:
            # A holder may have finished between our last check and our acquire
            cached = self._find_result(key, lookup, decode)
            if cached is not _MISSING:
                return IdempotencyResult(cached, True, request_id)

            try:
                data = operation()
            except DuplicateRequest as dup:
                self._store_result(key, dup.data, encode)
                return IdempotencyResult(dup.data, True, request_id)

            self._store_result(key, data, encode)
            return IdempotencyResult(data, False, request_id)
        finally:
            self._release(lock_key, token)


# =============================================================================
# Maintenance
# =============================================================================


def cleanup_expired_keys(db, ttl_seconds: int | None = None, now: datetime | None = None) -> int:
    """
    Release request IDs of orders older than the key TTL so clients may reuse
    them. Runs with a system context across all restaurants.

    Returns the number of orders updated.
    """
    # Import here to avoid circular imports
    from order_api.services.gateway import TenantScopedGateway
    from order_api.services.permissions import EntityKind

    ttl = ttl_seconds if ttl_seconds is not None else settings.idempotency_key_ttl_seconds
    cutoff = (now or utcnow()) - timedelta(seconds=ttl)

    gateway = TenantScopedGateway(db, TenantContext.system())
    with transaction(db):
        cleared = gateway.update_many(
            EntityKind.ORDER,
            where={"request_id__isnull": False, "placed_at__lt": cutoff},
            data={"request_id": None},
        )
    logger.info("Expired idempotency keys cleared", orders=cleared, cutoff=cutoff.isoformat())
    return cleared
