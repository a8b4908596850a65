"""
costsheets/events.py

In-process change feed for row-level store events.

Writers publish a ChangeEvent after their transaction commits; readers subscribe with
an EventFilter and consume a stream of events. Delivery is at-least-once: the same event
may arrive twice, so consumers must react idempotently (refetch the read model rather
than patching state from the payload).
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    action: str
    row_id: Optional[int]
    payload: Dict[str, Any] = field(default_factory=dict)
    sheet_id: Optional[int] = None
    user_id: Optional[int] = None


@dataclass(frozen=True)
class EventFilter:
    """None matches anything."""

    table: Optional[str] = None
    action: Optional[str] = None
    sheet_id: Optional[int] = None
    user_id: Optional[int] = None

    def matches(self, event: ChangeEvent) -> bool:
        if self.table is not None and event.table != self.table:
            return False
        if self.action is not None and event.action != self.action:
            return False
        if self.sheet_id is not None and event.sheet_id != self.sheet_id:
            return False
        if self.user_id is not None and event.user_id != self.user_id:
            return False
        return True


# Per-subscription backlog; a slow consumer loses its oldest events, never blocks writers.
MAX_PENDING = 1000


class Subscription:
    """A filtered stream of events. Iterate, or poll with get()/drain()."""

    def __init__(self, bus: "EventBus", event_filter: EventFilter, max_pending: int = MAX_PENDING):
        self._bus = bus
        self.filter = event_filter
        self._queue: "queue.Queue[Optional[ChangeEvent]]" = queue.Queue(maxsize=max_pending)
        self._put_lock = threading.Lock()
        self.closed = False
        self.dropped = 0

    def _put(self, item: Optional[ChangeEvent]) -> None:
        with self._put_lock:
            while True:
                try:
                    self._queue.put_nowait(item)
                    return
                except queue.Full:
                    pass
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    continue
                self.dropped += 1
                if self.dropped == 1 or self.dropped % 100 == 0:
                    logger.warning("Subscription %s is behind; %d event(s) dropped", self.filter, self.dropped)

    def _deliver(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        self._put(event)

    def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next event, or None on timeout / after close."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[ChangeEvent]:
        """All events currently queued, without blocking."""
        events = []
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return events
            if event is not None:
                events.append(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bus.unsubscribe(self)
        self._put(None)

    def __iter__(self) -> Iterator[ChangeEvent]:
        while True:
            event = self._queue.get()
            if event is None:
                return
            yield event

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class EventBus:
    """Thread-safe fan-out of ChangeEvents to matching subscriptions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(self, event_filter: Optional[EventFilter] = None, max_pending: int = MAX_PENDING) -> Subscription:
        subscription = Subscription(self, event_filter or EventFilter(), max_pending=max_pending)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver to every matching subscription. Returns the number of deliveries."""
        with self._lock:
            targets = [s for s in self._subscriptions if s.filter.matches(event)]
        for subscription in targets:
            subscription._deliver(event)
        logger.debug("Published %s %s #%s to %d subscriber(s)", event.action, event.table, event.row_id, len(targets))
        return len(targets)


def _is_final_approval(event: ChangeEvent) -> bool:
    return (
        event.table == "cost_sheet_items"
        and event.action == UPDATE
        and event.payload.get("approval_status") == "approved_both"
    )


class ApprovalWatcher:
    """
    Estimator-side watcher for one cost sheet.

    On every item reaching final approval: refetch the sheet and raise an alert.
    Duplicate deliveries refetch again (harmless) but alert only once per item.
    """

    def __init__(
        self,
        bus: EventBus,
        sheet_id: int,
        refetch: Callable[[], Any],
        alert: Optional[Callable[[ChangeEvent], Any]] = None,
    ):
        self.sheet_id = sheet_id
        self.refetch = refetch
        self.alert = alert
        self.alerted_item_ids: set[int] = set()
        self.subscription = bus.subscribe(
            EventFilter(table="cost_sheet_items", action=UPDATE, sheet_id=sheet_id)
        )

    def handle(self, event: ChangeEvent) -> bool:
        """Process one event. Returns True when it triggered a refetch."""
        if not _is_final_approval(event):
            return False
        self.refetch()
        if event.row_id not in self.alerted_item_ids:
            self.alerted_item_ids.add(event.row_id)
            logger.info("Item #%s on sheet #%s approved", event.row_id, self.sheet_id)
            if self.alert is not None:
                self.alert(event)
        return True

    def poll(self) -> int:
        """Handle everything queued so far; returns how many refetches ran."""
        return sum(1 for event in self.subscription.drain() if self.handle(event))

    def close(self) -> None:
        self.subscription.close()


class LedgerWatcher:
    """Global watcher for the approved ledger: refetch on any final approval."""

    def __init__(self, bus: EventBus, refetch: Callable[[], Any]):
        self.refetch = refetch
        self.subscription = bus.subscribe(EventFilter(table="cost_sheet_items", action=UPDATE))

    def poll(self) -> int:
        count = 0
        for event in self.subscription.drain():
            if _is_final_approval(event):
                self.refetch()
                count += 1
        return count

    def close(self) -> None:
        self.subscription.close()
