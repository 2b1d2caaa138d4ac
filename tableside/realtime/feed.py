import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable


logger = logging.getLogger("tableside.feed")

SnapshotCallback = Callable[[Any], Awaitable[None]]


class Subscription:
    """Disposal handle returned by ``ChangeFeed.subscribe``."""

    def __init__(self, feed: "ChangeFeed", topic: str, callback: SnapshotCallback) -> None:
        self._feed = feed
        self.topic = topic
        self.callback = callback
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed._remove(self)


class ChangeFeed:
    """In-process fan-out of collection snapshots keyed by topic."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, topic: str, callback: SnapshotCallback) -> Subscription:
        subscription = Subscription(self, topic, callback)
        self._subscribers[topic].append(subscription)
        logger.debug("Feed subscribe topic=%s total=%s", topic, len(self._subscribers[topic]))
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        topic = subscription.topic
        if topic not in self._subscribers:
            return
        self._subscribers[topic] = [s for s in self._subscribers[topic] if s is not subscription]
        if not self._subscribers[topic]:
            self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str | None = None) -> int:
        if topic is not None:
            return len(self._subscribers.get(topic, []))
        return sum(len(subs) for subs in self._subscribers.values())

    async def publish(self, topic: str, snapshot: Any) -> None:
        if topic not in self._subscribers:
            return

        to_remove: list[Subscription] = []
        for subscription in list(self._subscribers[topic]):
            if subscription.closed:
                continue
            try:
                await subscription.callback(snapshot)
            except Exception:
                logger.exception("Feed delivery failed topic=%s", topic)
                to_remove.append(subscription)

        for subscription in to_remove:
            subscription.close()
        if to_remove:
            logger.info("Feed pruned topic=%s total=%s", topic, self.subscriber_count(topic))


feed = ChangeFeed()
