"""
Persistent store contract shared by the Supabase and in-memory backends.

Filters are a mapping of column -> value. A list, tuple or set value means
"column IN values"; anything else is an equality match.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Filters = Mapping[str, Any]

MISSING_TABLE_CODE = "42P01"


class StoreError(Exception):
    """Raised by a store backend when a query or write fails."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def missing_table(self) -> bool:
        return self.code == MISSING_TABLE_CODE

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


@dataclass
class ChangeEvent:
    table: str
    event_type: str  # INSERT | UPDATE | DELETE
    record: Row = field(default_factory=dict)
    old_record: Row = field(default_factory=dict)


ChangeHandler = Callable[[ChangeEvent], Any]


class Subscription:
    """Handle for a change-feed subscription.

    unsubscribe() is synchronous: once it returns the handler will not be
    called again, even for events already queued by the backend.
    """

    def __init__(self, channel_name: str, on_close: Optional[Callable[[], None]] = None):
        self.channel_name = channel_name
        self._on_close = on_close
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        if self._on_close:
            try:
                self._on_close()
            except Exception as e:
                logger.error(f"Error closing channel {self.channel_name}: {e}")


class PersistentStore(Protocol):
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
        ...

    def insert(self, table: str, row: Row) -> Row:
        ...

    def update(self, table: str, filters: Filters, patch: Row) -> List[Row]:
        ...

    def upsert(self, table: str, row: Row, on_conflict: str = "id") -> Row:
        ...

    async def subscribe(
        self,
        table: str,
        filters: Optional[Filters],
        on_event: ChangeHandler,
        *,
        events: Iterable[str] = ("INSERT",),
        channel_name: Optional[str] = None,
    ) -> Subscription:
        ...


def is_multi_value(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def matches_filters(row: Row, filters: Optional[Filters]) -> bool:
    """True if the row satisfies every equality / IN filter."""
    if not filters:
        return True
    for column, expected in filters.items():
        actual = row.get(column)
        if is_multi_value(expected):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True
