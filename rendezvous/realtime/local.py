"""In-process change feed, used when Redis is not configured."""

from collections import defaultdict
from typing import Dict, List, Optional

from rendezvous.realtime.events import ChangeEvent, FeedScope
from rendezvous.realtime.feed import ChangeFeed, Subscription
from rendezvous.utils.errors import SubscriptionError
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)


class LocalChangeFeed(ChangeFeed):
    """
    Change feed that delivers events inside the current process.

    `publish` awaits each subscriber in turn, so by the time it returns every
    active subscriber has seen the event.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)

    def subscriber_count(self, scope: Optional[FeedScope] = None) -> int:
        """Number of attached subscriptions, on one scope or overall."""
        if scope is not None:
            return len(self._subscribers.get(scope.channel, []))
        return sum(len(subs) for subs in self._subscribers.values())

    async def _publish(self, scopes: List[FeedScope], event: ChangeEvent) -> None:
        for scope in scopes:
            for subscription in list(self._subscribers.get(scope.channel, [])):
                await subscription.deliver(event)

    async def _attach(self, subscription: Subscription) -> None:
        channel = subscription.scope.channel
        if subscription not in self._subscribers[channel]:
            self._subscribers[channel].append(subscription)

    async def _detach(self, subscription: Subscription) -> None:
        channel = subscription.scope.channel
        subscribers = self._subscribers.get(channel)
        if subscribers and subscription in subscribers:
            subscribers.remove(subscription)
            if not subscribers:
                del self._subscribers[channel]

    async def interrupt(self, scope: Optional[FeedScope] = None) -> None:
        """Drop attached subscriptions as a lost connection would."""
        channels = [scope.channel] if scope is not None else list(self._subscribers)
        for channel in channels:
            for subscription in list(self._subscribers.get(channel, [])):
                await subscription.fail(SubscriptionError("Connection lost", details={"channel": channel}))

    async def close(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                await subscription.close()
        self._subscribers.clear()
        logger.info("Local change feed closed")
