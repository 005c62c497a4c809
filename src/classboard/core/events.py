"""Live update channel: notify-then-refetch fan-out per class.

Subscribers never receive leaderboard data over this channel, only a marker
that the class changed. Each subscription holds at most one pending marker;
further publishes while it is pending coalesce into it.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Dict, Optional, Set
from uuid import UUID

logger = logging.getLogger(__name__)

_CLOSED = object()


class BrokerClosed(Exception):
    """Raised when subscribing to a broker that has been shut down."""


class Subscription:
    """One open connection's view of a class topic."""

    def __init__(self, class_id: UUID, loop: asyncio.AbstractEventLoop) -> None:
        self.class_id = class_id
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.closed = False

    def _offer(self, item: object) -> None:
        # runs on the subscriber's event loop
        if item is _CLOSED:
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(item)
            return
        if self._queue.full():
            return
        self._queue.put_nowait(item)

    def notify(self, item: object) -> None:
        self._loop.call_soon_threadsafe(self._offer, item)

    async def wait(self, timeout: Optional[float] = None) -> Optional[UUID]:
        """Wait for the next change notification.

        Returns the class id on a notification, None on timeout, and raises
        ``BrokerClosed`` once the broker shuts down.
        """
        if self.closed:
            raise BrokerClosed("subscription is closed")
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            self.closed = True
            raise BrokerClosed("broker shut down")
        return item


class LeaderboardBroker:
    """Process-local registry of subscriptions keyed by class id."""

    def __init__(self) -> None:
        self._subscriptions: Dict[UUID, Set[Subscription]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self, class_id: UUID) -> Subscription:
        """Open a subscription bound to the running event loop."""
        loop = asyncio.get_running_loop()
        subscription = Subscription(class_id, loop)
        with self._lock:
            if self._closed:
                raise BrokerClosed("broker shut down")
            self._subscriptions.setdefault(class_id, set()).add(subscription)
        logger.debug("subscribed to class %s", class_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            bucket = self._subscriptions.get(subscription.class_id)
            if bucket is None:
                return
            bucket.discard(subscription)
            if not bucket:
                del self._subscriptions[subscription.class_id]
        logger.debug("unsubscribed from class %s", subscription.class_id)

    def publish(self, class_id: UUID) -> int:
        """Notify every subscription of ``class_id``; safe from any thread."""
        with self._lock:
            targets = list(self._subscriptions.get(class_id, ()))
        delivered = 0
        for subscription in targets:
            try:
                subscription.notify(class_id)
            except RuntimeError:
                # the subscriber's loop is gone; drop it
                self.unsubscribe(subscription)
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, class_id: Optional[UUID] = None) -> int:
        with self._lock:
            if class_id is not None:
                return len(self._subscriptions.get(class_id, ()))
            return sum(len(bucket) for bucket in self._subscriptions.values())

    def close(self) -> None:
        """Wake every open subscription with end-of-stream and refuse new ones."""
        with self._lock:
            self._closed = True
            subscriptions = [sub for bucket in self._subscriptions.values() for sub in bucket]
            self._subscriptions.clear()
        for subscription in subscriptions:
            try:
                subscription.notify(_CLOSED)
            except RuntimeError:
                continue
        logger.info("leaderboard broker closed (%d open streams)", len(subscriptions))
