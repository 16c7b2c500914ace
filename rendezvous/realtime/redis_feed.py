"""Change feed backed by Redis pub/sub."""

import asyncio
from typing import Dict, List, Optional, Tuple

import pydantic
import redis.asyncio as aioredis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from rendezvous.realtime.events import ChangeEvent, FeedScope
from rendezvous.realtime.feed import ChangeFeed, Subscription
from rendezvous.utils.errors import SubscriptionError, TransportError
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)


class RedisChangeFeed(ChangeFeed):
    """
    Change feed over Redis pub/sub.

    Events travel as JSON on one channel per scope. Each subscription owns a
    PubSub connection and a listener task; a dropped connection moves the
    subscription to ERROR.
    """

    def __init__(self, url: str, client: Optional[aioredis.Redis] = None) -> None:
        self._url = url
        self._client = client
        self._listeners: Dict[Subscription, Tuple[PubSub, asyncio.Task]] = {}

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis.from_url(self._url, decode_responses=True)
            logger.info("Redis change feed connected")
        return self._client

    async def _publish(self, scopes: List[FeedScope], event: ChangeEvent) -> None:
        payload = event.model_dump_json()
        try:
            for scope in scopes:
                await self.client.publish(scope.channel, payload)
        except (RedisError, OSError) as e:
            logger.warning("Failed to publish change event", match_id=event.match_id, error=str(e))
            raise TransportError("Failed to publish change event", service="redis", details={"error": str(e)}) from e

    async def _attach(self, subscription: Subscription) -> None:
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(subscription.scope.channel)
        task = asyncio.create_task(self._listen(subscription, pubsub), name=f"feed:{subscription.scope.channel}")
        self._listeners[subscription] = (pubsub, task)

    async def _listen(self, subscription: Subscription, pubsub: PubSub) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    event = ChangeEvent.model_validate_json(message["data"])
                except pydantic.ValidationError as e:
                    logger.warning("Dropping malformed change event", channel=subscription.scope.channel, error=str(e))
                    continue
                await subscription.deliver(event)
        except (RedisError, OSError) as e:
            await subscription.fail(
                SubscriptionError("Redis subscription lost", details={"channel": subscription.scope.channel, "error": str(e)})
            )

    async def _detach(self, subscription: Subscription) -> None:
        entry = self._listeners.pop(subscription, None)
        if entry is None:
            return

        pubsub, task = entry
        if task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            await pubsub.unsubscribe()
            await pubsub.aclose()
        except (RedisError, OSError) as e:
            logger.debug("Ignoring error while releasing subscription", channel=subscription.scope.channel, error=str(e))

    async def close(self) -> None:
        for subscription in list(self._listeners):
            await subscription.close()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Redis change feed closed")
