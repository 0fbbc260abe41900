import json
import logging
from typing import Optional
import redis.asyncio as redis
from redis.exceptions import RedisError
from .config import REDIS_URL, ACTIVE_ORDER_KEY_PREFIX

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Redis connection for order events and the active order marker.

    Without REDIS_URL the marker is kept in process memory and events are
    dropped, so sessions keep working in demo mode.
    """

    def __init__(self):
        self.redis: redis.Redis = None
        self._local_markers = {}

    async def connect(self):
        """Connect to Redis"""
        if not REDIS_URL:
            logger.info("REDIS_URL not set, active order marker kept in memory")
            return
        self.redis = redis.from_url(REDIS_URL, decode_responses=True)
        try:
            await self.redis.ping()
        except RedisError:
            self.redis = None
            raise
        logger.info("Connected to Redis")

    async def close(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis connection closed")

    async def publish(self, channel: str, message: dict):
        """Publish message to channel"""
        if not self.redis:
            return
        await self.redis.publish(channel, json.dumps(message, default=str))

    # ============ Active Order Marker ============

    async def get_active_order(self, client_id: str) -> Optional[str]:
        key = ACTIVE_ORDER_KEY_PREFIX + client_id
        if not self.redis:
            return self._local_markers.get(key)
        return await self.redis.get(key)

    async def set_active_order(self, client_id: str, order_id: str):
        key = ACTIVE_ORDER_KEY_PREFIX + client_id
        if not self.redis:
            self._local_markers[key] = order_id
            return
        await self.redis.set(key, order_id)

    async def clear_active_order(self, client_id: str):
        key = ACTIVE_ORDER_KEY_PREFIX + client_id
        if not self.redis:
            self._local_markers.pop(key, None)
            return
        await self.redis.delete(key)


class ActiveOrderMarker:
    """The durable "active order id" record of one client"""

    def __init__(self, client_id: str, manager: RedisManager = None):
        self.client_id = client_id
        self.manager = manager or redis_manager

    async def get(self) -> Optional[str]:
        return await self.manager.get_active_order(self.client_id)

    async def set(self, order_id: str):
        await self.manager.set_active_order(self.client_id, order_id)

    async def clear(self):
        await self.manager.clear_active_order(self.client_id)


redis_manager = RedisManager()
