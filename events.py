# events.py
import asyncio
import logging
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)

DEVICE_SCAN = "device_scan"
DEVICE_BLOCKED = "deviceBlocked"
DEVICE_UNBLOCKED = "deviceUnblocked"
NEW_DEVICE_ATTEMPT = "newDeviceAttempt"
DEVICE_APPROVED = "deviceApproved"
GUEST_ADDED = "guestAdded"
GUEST_REMOVED = "guestRemoved"


class Subscription:
    """One subscriber's view of the event stream: a bounded, ordered mailbox."""

    def __init__(self, max_pending: int):
        self.queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=max_pending)
        self.dropped = 0

    def offer(self, message: Dict[str, Any]) -> bool:
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> Dict[str, Any]:
        return await self.queue.get()


class EventBroadcaster:
    """Fan-out publish/subscribe with no durability and no replay.

    A subscriber that falls behind by more than ``max_pending`` messages misses
    the overflow; nothing is buffered for subscribers that have gone away.
    """

    def __init__(self, max_pending: int = 100):
        self.max_pending = max_pending
        self._subscribers: Set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self.max_pending)
        self._subscribers.add(subscription)
        logger.debug(f"Subscriber added ({len(self._subscribers)} connected)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)
        logger.debug(f"Subscriber removed ({len(self._subscribers)} connected)")

    def publish(self, event_type: str, data: Any) -> int:
        """Delivers ``{type, data}`` to every subscriber; returns how many accepted it."""
        message = {"type": event_type, "data": data}
        delivered = 0
        for subscription in list(self._subscribers):
            if subscription.offer(message):
                delivered += 1
            else:
                logger.debug(f"Dropped {event_type} for a slow subscriber")
        return delivered
