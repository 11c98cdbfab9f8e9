"""
limiter.py
~~~~~~~~~~
Per-caller rate limits (slowapi).
Authenticated requests are counted per user id from the bearer token;
anything else is counted per client address.
"""
import logging

import redis
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from docutrain_admin.core.config import settings
from docutrain_admin.core.session import user_id_from_token

logger = logging.getLogger(__name__)

# Endpoint-specific limits (importable constants)
RETRAIN_LIMIT = "10/minute"
UPLOAD_LIMIT = "20/minute"
STATUS_LIMIT = "120/minute"
QUIZ_LIMIT = "10/minute"


def rate_limit_key(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        user_id = user_id_from_token(auth_header.removeprefix("Bearer ").strip())
        if user_id:
            return f"user:{user_id}"
    return get_remote_address(request)


def _storage_uri() -> str:
    if not settings.REDIS_URL:
        return "memory://"
    try:
        redis.from_url(settings.REDIS_URL, socket_connect_timeout=1).ping()
    except redis.RedisError as e:
        logger.warning(f"Rate limiter: Redis not available ({e}). Counting in memory.")
        return "memory://"
    logger.info(f"Rate limiter counting in Redis at {settings.REDIS_URL}")
    return settings.REDIS_URL


limiter = Limiter(
    key_func=rate_limit_key,
    enabled=settings.RATE_LIMIT_ENABLED,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=_storage_uri(),
)

logger.info(f"Rate limiting {'ENABLED' if settings.RATE_LIMIT_ENABLED else 'DISABLED'}")
