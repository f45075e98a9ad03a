"""
Health check endpoint.
GET /health - Returns 200 if the database and Redis answer, 503 otherwise.
"""

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Response, status
from redis import Redis, RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from apps.api.config import get_settings
from apps.api.db import get_db
from apps.api.redis_client import get_redis

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(
    response: Response,
    db: Session = Depends(get_db),
    redis_client: Redis = Depends(get_redis),
) -> dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        200 + {"status": "ok", ...} if all checks pass
        503 + {"status": "degraded", ...} if any check fails
    """
    result: dict[str, Any] = {
        "status": "ok",
        "version": get_settings().app_version,
        "api": "ok",
        "db": "ok",
        "redis": "ok",
    }
    all_healthy = True

    # --- Database (SELECT 1) ---
    try:
        start = time.perf_counter()
        db.execute(text("SELECT 1"))
        result["db_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
    except SQLAlchemyError as e:
        logger.warning(f"Health check: database unavailable: {e}")
        result["db"] = "fail"
        all_healthy = False

    # --- Redis (PING) ---
    try:
        start = time.perf_counter()
        redis_client.ping()
        result["redis_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
    except RedisError as e:
        logger.warning(f"Health check: redis unavailable: {e}")
        result["redis"] = "fail"
        all_healthy = False

    if not all_healthy:
        result["status"] = "degraded"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return result
