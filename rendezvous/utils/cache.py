"""Redis cache utilities for the Rendezvous engine.

The cache is optional: when Redis is not configured or unreachable every
call degrades to a miss and the services read from the database. All
calls go through `redis.asyncio`, so a slow Redis never stalls the loop.
"""

import json
from typing import Any, Dict, Optional, Type, TypeVar, Union

import redis.asyncio as aioredis
import sentry_sdk
from pydantic import BaseModel
from redis.exceptions import RedisError

from rendezvous.config import settings
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_EXPIRATION = 3600


class RedisClient:
    """
    Singleton holder for the Redis cache client.

    A failed initialisation is remembered so that a missing Redis is only
    reported once per process.
    """

    _instance: Optional[aioredis.Redis] = None
    _failed: bool = False

    @classmethod
    def get_client(cls) -> Optional[aioredis.Redis]:
        """
        Get or create the Redis client. Connections are opened lazily on first use.

        Returns:
            Optional[aioredis.Redis]: Redis client instance or None if caching is unavailable.
        """
        if cls._failed:
            return None

        if cls._instance is None:
            if not settings.REDIS_URL:
                logger.warning("No Redis configuration found, caching will be disabled")
                cls._failed = True
                return None
            try:
                pool = aioredis.ConnectionPool.from_url(
                    settings.REDIS_URL,
                    max_connections=10,
                    decode_responses=True,
                )
                cls._instance = aioredis.Redis(connection_pool=pool)
                logger.info("Redis client initialized")
            except Exception as e:
                logger.warning("Failed to initialize Redis client, caching will be disabled", error=str(e))
                cls._failed = True
                return None
        return cls._instance

    @classmethod
    async def close(cls) -> None:
        """Release the client's connections."""
        if cls._instance is not None:
            await cls._instance.aclose()
            cls._instance = None
            logger.info("Redis client closed")

    @classmethod
    def reset(cls) -> None:
        """Forget the current client and any previous failure."""
        cls._instance = None
        cls._failed = False


def _serialize(value: Union[str, Dict[str, Any], BaseModel]) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


async def set_cache(
    key: str, value: Union[str, Dict[str, Any], BaseModel], expiration: int = DEFAULT_EXPIRATION
) -> None:
    """
    Set a value in the Redis cache.

    Args:
        key (str): Cache key.
        value (Union[str, Dict[str, Any], BaseModel]): Value to cache; models and dicts are stored as JSON.
        expiration (int): Expiration in seconds. Non-positive values fall back to the default.
    """
    with sentry_sdk.start_span(op="cache.set", name=key) as span:
        client = RedisClient.get_client()
        if client is None:
            span.set_data("status", "disabled")
            return

        if expiration <= 0:
            logger.warning("Cache set without expiration, forcing default", key=key)
            expiration = DEFAULT_EXPIRATION

        try:
            await client.set(key, _serialize(value), ex=expiration)
            span.set_data("status", "success")
        except (RedisError, OSError) as e:
            logger.warning("Failed to set cache, continuing without cache", key=key, error=str(e))
            span.set_status("internal_error")


async def get_cache(key: str, extend_ttl: Optional[int] = None) -> Optional[str]:
    """
    Get a string value from the Redis cache.

    Args:
        key (str): Cache key.
        extend_ttl (Optional[int]): Seconds to extend the TTL on a hit (sliding expiration).

    Returns:
        Optional[str]: Cached value or None on a miss or when Redis is unavailable.
    """
    with sentry_sdk.start_span(op="cache.get", name=key) as span:
        client = RedisClient.get_client()
        if client is None:
            span.set_data("status", "disabled")
            return None

        try:
            value: Optional[str] = await client.get(key)
        except (RedisError, OSError) as e:
            logger.warning("Failed to get cache", key=key, error=str(e))
            span.set_status("internal_error")
            return None

        if not value:
            span.set_data("status", "miss")
            return None

        span.set_data("status", "hit")
        if extend_ttl:
            try:
                await client.expire(key, extend_ttl)
            except (RedisError, OSError) as e:
                logger.debug("Could not extend cache TTL", key=key, error=str(e))
        return value


async def get_cache_model(key: str, model_class: Type[T], extend_ttl: Optional[int] = None) -> Optional[T]:
    """Get a Pydantic model from the Redis cache; an unreadable entry is dropped and counts as a miss."""
    value = await get_cache(key, extend_ttl=extend_ttl)
    if not value:
        return None

    try:
        return model_class.model_validate_json(value)
    except ValueError as e:
        logger.error("Failed to parse cached model", key=key, model=model_class.__name__, error=str(e))
        await delete_cache(key)
        return None


async def delete_cache(key: str) -> None:
    """Delete a value from the Redis cache."""
    with sentry_sdk.start_span(op="cache.delete", name=key) as span:
        client = RedisClient.get_client()
        if client is None:
            span.set_data("status", "disabled")
            return

        try:
            await client.delete(key)
            span.set_data("status", "success")
        except (RedisError, OSError) as e:
            logger.warning("Failed to delete cache, continuing without cache", key=key, error=str(e))
            span.set_status("internal_error")
