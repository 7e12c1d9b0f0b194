"""
Health check endpoints.
"""

import redis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.infrastructure.db import get_db

from order_api.core.dependencies import get_redis

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check(
    db: Session = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis),
):
    """
    Verifies connectivity to the database and the Redis store.
    Returns 503 if either is down.
    """
    checks = {
        "service": "order-api",
        "environment": settings.environment,
        "dependencies": {},
    }
    all_healthy = True

    try:
        db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
    except SQLAlchemyError as e:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

    try:
        redis_client.ping()
        checks["dependencies"]["redis"] = {"status": "healthy"}
    except redis.RedisError as e:
        checks["dependencies"]["redis"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

    checks["status"] = "healthy" if all_healthy else "degraded"
    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)
    return checks
