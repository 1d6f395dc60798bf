"""In-process change feed.

Topic based pub/sub used by the ledger to announce writes. Topics are
plain strings:

    trades.<owner_id>
    prices
    baseline.<owner_id>

Callbacks run synchronously on the publishing thread. A failing callback
is logged and does not stop delivery to the others.
"""

import itertools
import logging
import threading
from collections import defaultdict
from typing import Callable

logger = logging.getLogger(__name__)

PRICES_TOPIC = "prices"


def trades_topic(owner_id: str) -> str:
    return f"trades.{owner_id}"


def baseline_topic(owner_id: str) -> str:
    return f"baseline.{owner_id}"


class FeedSubscription:
    """Handle returned by ``ChangeFeed.subscribe``."""

    def __init__(self, feed: "ChangeFeed", topic: str, subscription_id: int):
        self._feed = feed
        self.topic = topic
        self.subscription_id = subscription_id
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self.topic, self.subscription_id)
            self.active = False


class ChangeFeed:
    def __init__(self):
        self._subscribers: dict[str, dict[int, Callable[[], None]]] = defaultdict(dict)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Callable[[], None]) -> FeedSubscription:
        with self._lock:
            subscription_id = next(self._ids)
            self._subscribers[topic][subscription_id] = callback
        logger.debug(f"Subscribed {subscription_id} to {topic}")
        return FeedSubscription(self, topic, subscription_id)

    def publish(self, topic: str) -> int:
        """Notify every subscriber of ``topic``. Returns the number notified."""
        with self._lock:
            callbacks = list(self._subscribers.get(topic, {}).values())
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Change callback for {topic} failed: {e}", exc_info=True)
        return len(callbacks)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, {}))

    def _remove(self, topic: str, subscription_id: int) -> None:
        with self._lock:
            subscribers = self._subscribers.get(topic)
            if subscribers is None:
                return
            subscribers.pop(subscription_id, None)
            if not subscribers:
                del self._subscribers[topic]
        logger.debug(f"Unsubscribed {subscription_id} from {topic}")


# Process-wide feed shared by the ledger, the price watcher and the controllers
change_feed = ChangeFeed()
