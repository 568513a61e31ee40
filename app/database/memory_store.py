import asyncio
import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from app.database.store import (
    ChangeEvent, ChangeHandler, Filters, Row, StoreError, Subscription, matches_filters,
)

logger = logging.getLogger(__name__)


class _Subscriber:
    def __init__(self, table, filters, events, handler, loop, subscription):
        self.table = table
        self.filters = dict(filters or {})
        self.events = {e.upper() for e in events}
        self.handler = handler
        self.loop = loop
        self.subscription = subscription

    def wants(self, event: ChangeEvent) -> bool:
        return (
            self.subscription.active
            and event.table == self.table
            and event.event_type in self.events
            and matches_filters(event.record, self.filters)
        )

    def deliver(self, event: ChangeEvent):
        # Runs on the subscriber's loop; re-check so a handler closed in the meantime stays silent.
        if not self.subscription.active:
            return
        result = self.handler(event)
        if asyncio.iscoroutine(result):
            self.loop.create_task(result)


class MemoryStore:
    """In-process PersistentStore for local development and tests.

    Rows get a generated ``id`` and ``created_at`` when missing. Change events
    are delivered on the event loop that opened the subscription.
    """

    def __init__(self):
        self._tables: Dict[str, List[Row]] = {}
        self._subscribers: List[_Subscriber] = []
        self._lock = threading.RLock()

    def rows(self, table: str) -> List[Row]:
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        *,
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        with self._lock:
            found = [r for r in self._tables.get(table, []) if matches_filters(r, filters)]
            if order_by:
                found.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or ""), reverse=descending)
            if limit is not None:
                found = found[:limit]
            found = copy.deepcopy(found)
        if columns != "*":
            wanted = [c.strip() for c in columns.split(",")]
            found = [{c: r.get(c) for c in wanted} for r in found]
        return found

    def insert(self, table: str, row: Row) -> Row:
        with self._lock:
            stored = dict(row)
            stored.setdefault("id", str(uuid4()))
            stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            self._tables.setdefault(table, []).append(stored)
            result = copy.deepcopy(stored)
        self._publish(ChangeEvent(table=table, event_type="INSERT", record=copy.deepcopy(stored)))
        return result

    def update(self, table: str, filters: Filters, patch: Row) -> List[Row]:
        if not filters:
            raise StoreError("Refusing to update without filters")
        changed = []
        with self._lock:
            for stored in self._tables.get(table, []):
                if matches_filters(stored, filters):
                    old = copy.deepcopy(stored)
                    stored.update(patch)
                    changed.append((old, copy.deepcopy(stored)))
        for old, new in changed:
            self._publish(ChangeEvent(table=table, event_type="UPDATE", record=new, old_record=old))
        return [new for _, new in changed]

    def upsert(self, table: str, row: Row, on_conflict: str = "id") -> Row:
        keys = [k.strip() for k in on_conflict.split(",")]
        with self._lock:
            if all(k in row for k in keys):
                existing = self.select(table, {k: row[k] for k in keys}, limit=1)
                if existing:
                    return self.update(table, {k: row[k] for k in keys}, row)[0]
            return self.insert(table, row)

    async def subscribe(
        self,
        table: str,
        filters: Optional[Filters],
        on_event: ChangeHandler,
        *,
        events: Iterable[str] = ("INSERT",),
        channel_name: Optional[str] = None,
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        name = channel_name or f"{table}-changes-{uuid4().hex[:8]}"
        subscriber = None

        def _close():
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        subscription = Subscription(name, on_close=_close)
        subscriber = _Subscriber(table, filters, events, on_event, loop, subscription)
        with self._lock:
            self._subscribers.append(subscriber)
        return subscription

    def _publish(self, event: ChangeEvent):
        with self._lock:
            targets = [s for s in self._subscribers if s.wants(event)]
        for subscriber in targets:
            if subscriber.loop.is_closed():
                continue
            subscriber.loop.call_soon_threadsafe(subscriber.deliver, copy.deepcopy(event))
