"""Realtime change feed for message inserts, updates and deletes."""

from typing import Optional

from rendezvous.config import settings
from rendezvous.realtime.events import ChangeEvent, ChangeType, FeedScope
from rendezvous.realtime.feed import ChangeFeed, Subscription, SubscriptionState
from rendezvous.realtime.local import LocalChangeFeed
from rendezvous.realtime.redis_feed import RedisChangeFeed
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)

_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """Get the process-wide change feed, creating it from settings on first use."""
    global _feed
    if _feed is None:
        if settings.REDIS_URL:
            _feed = RedisChangeFeed(settings.REDIS_URL)
        else:
            logger.warning("No Redis configuration found, using in-process change feed")
            _feed = LocalChangeFeed()
    return _feed


def set_change_feed(feed: Optional[ChangeFeed]) -> None:
    """Replace the process-wide change feed (None resets to settings on next use)."""
    global _feed
    _feed = feed


__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeType",
    "FeedScope",
    "LocalChangeFeed",
    "RedisChangeFeed",
    "Subscription",
    "SubscriptionState",
    "get_change_feed",
    "set_change_feed",
]
