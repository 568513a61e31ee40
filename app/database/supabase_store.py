import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from app.database.store import (
    ChangeEvent, ChangeHandler, Filters, Row, StoreError, Subscription,
    is_multi_value, matches_filters,
)
from app.database.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


def _apply_filters(query, filters: Optional[Filters]):
    for column, value in (filters or {}).items():
        if is_multi_value(value):
            query = query.in_(column, list(value))
        else:
            query = query.eq(column, value)
    return query


def _realtime_filter(filters: Optional[Filters]) -> Optional[str]:
    """Realtime accepts a single server-side filter; the first equality filter is pushed down."""
    for column, value in (filters or {}).items():
        if not is_multi_value(value):
            return f"{column}=eq.{value}"
    return None


def _change_event(table: str, payload: Dict[str, Any]) -> ChangeEvent:
    data = payload.get("data", payload)
    return ChangeEvent(
        table=data.get("table", table),
        event_type=(data.get("type") or data.get("eventType") or "").upper(),
        record=data.get("record") or data.get("new") or {},
        old_record=data.get("old_record") or data.get("old") or {},
    )


class SupabaseStore:
    """PersistentStore backed by Supabase tables and realtime channels."""

    def __init__(self, client: Optional[Client] = None):
        self.client = client or SupabaseClient.get_service_client()

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except APIError as e:
            logger.error(f"Supabase {action} failed: {e.message}")
            raise StoreError(e.message or str(e), code=e.code) from e
        except httpx.HTTPError as e:
            logger.error(f"Supabase {action} failed: {e}")
            raise StoreError(f"Store unreachable: {e}") from e

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
        query = _apply_filters(self.client.table(table).select(columns), filters)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        result = self._execute(query, f"select on {table}")
        return result.data or []

    def insert(self, table: str, row: Row) -> Row:
        result = self._execute(self.client.table(table).insert(row), f"insert on {table}")
        if not result.data:
            raise StoreError(f"Insert into {table} returned no row")
        return result.data[0]

    def update(self, table: str, filters: Filters, patch: Row) -> List[Row]:
        query = _apply_filters(self.client.table(table).update(patch), filters)
        result = self._execute(query, f"update on {table}")
        return result.data or []

    def upsert(self, table: str, row: Row, on_conflict: str = "id") -> Row:
        query = self.client.table(table).upsert(row, on_conflict=on_conflict)
        result = self._execute(query, f"upsert on {table}")
        if not result.data:
            raise StoreError(f"Upsert into {table} returned no row")
        return result.data[0]

    async def subscribe(
        self,
        table: str,
        filters: Optional[Filters],
        on_event: ChangeHandler,
        *,
        events: Iterable[str] = ("INSERT",),
        channel_name: Optional[str] = None,
    ) -> Subscription:
        async_client = await SupabaseClient.get_async_client()
        name = channel_name or f"{table}-changes-{uuid4().hex[:8]}"
        channel = async_client.channel(name)
        loop = asyncio.get_running_loop()

        def _close():
            loop.create_task(async_client.remove_channel(channel))

        subscription = Subscription(name, on_close=_close)

        def _callback(payload: Dict[str, Any]):
            if not subscription.active:
                return
            event = _change_event(table, payload)
            if not matches_filters(event.record, filters):
                return
            result = on_event(event)
            if asyncio.iscoroutine(result):
                loop.create_task(result)

        server_filter = _realtime_filter(filters)
        for event_type in events:
            channel.on_postgres_changes(
                event_type,
                callback=_callback,
                table=table,
                schema="public",
                filter=server_filter,
            )
        try:
            await channel.subscribe()
        except Exception as e:
            raise StoreError(f"Could not subscribe to {table}: {e}") from e
        logger.info(f"Subscribed to {table} changes on channel {name}")
        return subscription
