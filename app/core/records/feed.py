"""
In-process change feed.

Stores publish one event per created or deleted record; subscribers register
a collection, an equality filter and a callback. Delivery is serialized per
feed so every subscriber sees events in publication order.
"""
import asyncio
import enum
import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

from app.utils import get_logger


log = get_logger(__name__)


class ChangeType(str, enum.Enum):
    """Kind of change carried by a feed event."""
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class ChangeEvent(BaseModel):
    """
    One change to one record.

    `data` is the full record after the change (before it, for removals), so
    applying an event replaces whatever was cached for `id`.
    `is_pending_local_write` is set per subscriber: it is true when the event
    was produced by a writer sharing the subscriber's origin.
    """
    model_config = ConfigDict(frozen=True)

    type: ChangeType
    collection: str
    id: str
    data: dict[str, Any] = Field(default_factory=dict)
    is_pending_local_write: bool = False
    origin: str | None = None
    sequence: int = 0


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


def matches_filter(data: Mapping[str, Any], filter: Mapping[str, Any] | None) -> bool:
    """Equality match of every filter field against the record."""
    if not filter:
        return True
    return all(data.get(key) == value for key, value in filter.items())


class Subscription:
    """Handle returned by ChangeFeed.subscribe."""

    def __init__(
        self,
        feed: "ChangeFeed",
        collection: str,
        filter: Mapping[str, Any] | None,
        callback: ChangeCallback,
        origin: str | None,
    ):
        self._feed = feed
        self.collection = collection
        self.filter = dict(filter or {})
        self.callback = callback
        self.origin = origin
        self.active = True

    def wants(self, event: ChangeEvent) -> bool:
        return (
            self.active
            and event.collection == self.collection
            and matches_filter(event.data, self.filter)
        )

    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once and from inside a callback."""
        if not self.active:
            return
        self.active = False
        self._feed._remove(self)

    def __repr__(self) -> str:
        return f"<Subscription(collection={self.collection!r}, filter={self.filter}, active={self.active})>"


class ChangeFeed:
    """
    Publish/subscribe hub for record changes.

    Usage:
        feed = ChangeFeed()
        sub = feed.subscribe("job_permissions", {"job_id": "7"}, on_change, origin="admin-1")
        ...
        sub.unsubscribe()
    """

    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self._pending: deque[tuple[ChangeEvent, asyncio.Future | None]] = deque()
        self._drainer: asyncio.Task | None = None
        self._sequence = 0

    def subscribe(
        self,
        collection: str,
        filter: Mapping[str, Any] | None,
        callback: ChangeCallback,
        origin: str | None = None,
    ) -> Subscription:
        subscription = Subscription(self, collection, filter, callback, origin)
        self._subscriptions.append(subscription)
        log.debug("Subscribed %r", subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass
        log.debug("Unsubscribed %r", subscription)

    async def publish(self, event: ChangeEvent) -> None:
        """
        Deliver an event to every matching, still-active subscription.

        Events are delivered one at a time in publication order. An event
        published from inside a callback is queued behind the one being
        delivered; any other publisher waits until its event is delivered.
        """
        self._sequence += 1
        event = event.model_copy(update={"sequence": self._sequence})

        if self._drainer is not None:
            if self._drainer is asyncio.current_task():
                self._pending.append((event, None))
                return
            delivered = asyncio.get_running_loop().create_future()
            self._pending.append((event, delivered))
            await delivered
            return

        self._pending.append((event, None))
        self._drainer = asyncio.current_task()
        try:
            while self._pending:
                queued, delivered = self._pending.popleft()
                await self._deliver(queued)
                if delivered is not None and not delivered.done():
                    delivered.set_result(None)
        finally:
            self._drainer = None
            if self._pending:
                log.warning("Delivery interrupted; dropping %d queued event(s)", len(self._pending))
                for _, delivered in self._pending:
                    if delivered is not None and not delivered.done():
                        delivered.cancel()
                self._pending.clear()

    async def _deliver(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            # re-checked per subscriber: an earlier callback may have unsubscribed it
            if not subscription.wants(event):
                continue
            delivered = event.model_copy(update={
                "is_pending_local_write": (
                    event.origin is not None and event.origin == subscription.origin
                ),
            })
            try:
                result = subscription.callback(delivered)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception(
                    "Change callback failed for %s %s:%s",
                    event.type.value, event.collection, event.id,
                )

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)
