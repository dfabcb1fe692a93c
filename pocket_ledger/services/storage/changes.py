"""
Change Feed

Storage backends publish a ChangeEvent after every successful write.
Callers subscribe per owner and topic, and on each event refetch the
full snapshot and re-run the aggregation. The aggregator itself never
knows when or why it is called.

A Subscription is an explicit handle: whoever subscribes holds it and
cancels it on teardown (e.g. logout). A subscription may also name a
holder object; once the holder is garbage collected the subscription is
dropped, so sessions that vanish without logging out do not leak.
"""

import weakref
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field

from pocket_ledger.models.transaction import utc_now


class ChangeTopic(str, Enum):
    """What kind of record changed."""
    TRANSACTIONS = "transactions"
    LOAN_ACCOUNTS = "loan_accounts"


class ChangeAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """A single "changed" notification."""
    model_config = ConfigDict(frozen=True)

    owner_id: str
    topic: ChangeTopic
    action: ChangeAction
    entity_id: Optional[str] = None
    occurred_at: datetime = Field(default_factory=utc_now)


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by ChangeFeed.subscribe()."""

    def __init__(
        self,
        feed: "ChangeFeed",
        owner_id: str,
        topic: ChangeTopic,
        callback: ChangeCallback,
        holder: Any = None,
    ):
        self.id: UUID = uuid4()
        self.owner_id = owner_id
        self.topic = topic
        self.callback = callback
        self._feed = feed
        self._holder = None
        if holder is not None:
            self._holder = weakref.ref(holder, lambda _ref: self.unsubscribe())

    @property
    def active(self) -> bool:
        return self._feed.is_subscribed(self)

    @property
    def orphaned(self) -> bool:
        """True once the holder this subscription was tied to is gone."""
        return self._holder is not None and self._holder() is None

    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        self._feed.remove(self)


class ChangeFeed:
    """
    In-process fan-out of change events.

    A failing subscriber is logged and skipped; it never breaks the
    write that triggered the event or the other subscribers.
    """

    def __init__(self):
        self._subscriptions: dict[UUID, Subscription] = {}
        self._logger = structlog.get_logger(__name__)

    def subscribe(
        self,
        owner_id: str,
        topic: ChangeTopic,
        callback: ChangeCallback,
        holder: Any = None,
    ) -> Subscription:
        """
        Register a callback for one owner's changes on one topic.

        With a `holder`, the subscription lives only as long as the holder
        does.
        """
        subscription = Subscription(self, owner_id, topic, callback, holder=holder)
        self._subscriptions[subscription.id] = subscription
        return subscription

    def remove(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription.id in self._subscriptions

    def _reap(self) -> None:
        for subscription in list(self._subscriptions.values()):
            if subscription.orphaned:
                self.remove(subscription)

    def subscriber_count(self, owner_id: Optional[str] = None) -> int:
        self._reap()
        if owner_id is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions.values() if s.owner_id == owner_id)

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every matching subscriber.

        Returns the number of subscribers that handled it without error.
        """
        self._reap()
        delivered = 0
        # Copy: callbacks may unsubscribe while we iterate
        for subscription in list(self._subscriptions.values()):
            if subscription.owner_id != event.owner_id or subscription.topic != event.topic:
                continue
            try:
                subscription.callback(event)
                delivered += 1
            except Exception as e:
                self._logger.error(
                    "change_subscriber_failed",
                    error=str(e),
                    topic=event.topic.value,
                    owner_id=event.owner_id,
                )
        return delivered
