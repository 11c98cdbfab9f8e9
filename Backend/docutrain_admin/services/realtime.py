"""
Realtime change feed for user documents (Redis Pub/Sub).

A database webhook on ``user_documents`` posts row changes to the console,
which republishes them on ``user_documents:{user_id}``. Listeners only use
the events as a hint to refresh early; polling remains the source of truth,
so a missing Redis degrades to polling-only.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import redis
import redis.asyncio as aioredis

from docutrain_admin.core.config import settings

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "user_documents"

_publisher: Optional[redis.Redis] = None


def channel_for_user(user_id: str) -> str:
    return f"{CHANNEL_PREFIX}:{user_id}"


def changed_record_id(payload: Dict[str, Any]) -> Optional[str]:
    """Id of the row a change event refers to (``record`` for inserts/updates, ``old_record`` for deletes)."""
    for key in ("record", "old_record", "new", "old"):
        row = payload.get(key)
        if isinstance(row, dict) and row.get("id"):
            return str(row["id"])
    return None


def get_publisher() -> Optional[redis.Redis]:
    global _publisher
    if _publisher is None and settings.REDIS_URL:
        try:
            client = redis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=1)
            client.ping()
            _publisher = client
            logger.info(f"Connected to Redis for Pub/Sub at {settings.REDIS_URL}")
        except Exception as e:
            logger.warning(f"Redis not available ({e}). Realtime updates disabled; pollers keep working.")
    return _publisher


def publish_document_change(user_id: str, payload: Dict[str, Any]) -> bool:
    """Publish a row-change event to the user's channel. Returns False when nothing was sent."""
    client = get_publisher()
    if client is None:
        return False
    try:
        client.publish(channel_for_user(user_id), json.dumps(payload, default=str))
        return True
    except redis.RedisError as e:
        logger.error(f"Redis publish failed: {e}")
        return False


class RealtimeListener:
    """Subscribes to one channel and forwards decoded events to ``on_event``."""

    def __init__(self, channel: str, on_event: Optional[Callable[[Dict[str, Any]], None]] = None,
                 client: Optional[aioredis.Redis] = None):
        self.channel = channel
        self.on_event = on_event
        self._client = client
        self._owns_client = client is None
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None
        self.subscribed = False

    async def start(self) -> bool:
        if self._task is not None:
            return self.subscribed
        try:
            if self._client is None:
                self._client = aioredis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=1)
            self._pubsub = self._client.pubsub()
            await self._pubsub.subscribe(self.channel)
        except Exception as e:
            logger.warning(f"Realtime subscription to {self.channel} failed ({e}). Falling back to polling.")
            await self._release()
            return False

        self.subscribed = True
        self._task = asyncio.create_task(self._listen())
        logger.info(f"Realtime subscribed to {self.channel}")
        return True

    async def _listen(self) -> None:
        while self.subscribed:
            try:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except Exception as e:
                logger.warning(f"Realtime connection on {self.channel} lost ({e}). Falling back to polling.")
                self.subscribed = False
                break

            if not message or message.get("type") != "message":
                continue
            try:
                payload = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed realtime message on {self.channel}")
                continue
            if self.on_event:
                try:
                    self.on_event(payload)
                except Exception as e:
                    logger.error(f"Realtime handler for {self.channel} failed: {e}")

    async def close(self) -> None:
        self.subscribed = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._release()

    async def _release(self) -> None:
        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self.channel)
                await self._pubsub.aclose()
            except Exception as e:
                logger.debug(f"Ignoring error while closing pubsub for {self.channel}: {e}")
            self._pubsub = None
        if self._client is not None and self._owns_client:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.debug(f"Ignoring error while closing Redis client: {e}")
            self._client = None
