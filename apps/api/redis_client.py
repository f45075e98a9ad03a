"""
Redis client setup (sync redis-py).
"""

from collections.abc import Generator
from typing import Any

import redis

from apps.api.config import get_settings


# --- Dependency ---
def get_redis() -> Generator[Any, None, None]:
    """Yield a Redis client with 1s timeouts. Use as FastAPI dependency."""
    client = redis.from_url(
        get_settings().redis_url,
        socket_timeout=1,
        socket_connect_timeout=1,
    )
    try:
        yield client
    finally:
        client.close()
