"""
Stream catalog store backed by a Supabase table.

The Supabase SDK is synchronous, so each call runs in a worker thread.
Row-level security may silently filter rows out of update results instead
of raising; callers that care must verify by reading back.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, NamedTuple

from supabase import Client

from apps.api import settings
from apps.api.errors import CatalogError
from apps.api.supabase_client import get_write_client

LOGGER = logging.getLogger("dataplug.catalog")


class UpdateResult(NamedTuple):
  """Rows an update returned, plus the store's count of rows it matched."""
  rows: list[dict[str, Any]]
  # None when the store did not report a count.
  matched: int | None = None


class StreamCatalog:
  """Async facade over the `streams` and `click_events` tables."""

  def __init__(
    self,
    client: Client | None = None,
    table: str = settings.STREAMS_TABLE,
    events_table: str = settings.CLICK_EVENTS_TABLE,
  ):
    self._client = client
    self.table = table
    self.events_table = events_table

  @property
  def client(self) -> Client:
    """Supabase client, resolved on first use (raises ConfigurationError)."""
    if self._client is None:
      self._client = get_write_client()
    return self._client

  async def _run(self, action: str, blocking_call: Callable[[Client], Any]) -> Any:
    client = self.client
    try:
      return await asyncio.to_thread(blocking_call, client)
    except Exception as exc:
      LOGGER.error("Catalog %s failed: %s", action, exc)
      raise CatalogError(f"Catalog {action} failed: {exc}") from exc

  async def fetch(
    self,
    limit: int | None = None,
    columns: str = "*",
    order: str | None = None,
  ) -> list[dict[str, Any]]:
    """Select rows in store order (or ordered by `order` ascending)."""
    def blocking_call(client: Client):
      query = client.table(self.table).select(columns)
      if order:
        query = query.order(order)
      if limit is not None:
        query = query.limit(limit)
      return query.execute()

    result = await self._run("select", blocking_call)
    return list(result.data or [])

  async def get(self, stream_id: str, columns: str = "*") -> dict[str, Any] | None:
    """Fetch a single row by id, or None when it does not exist."""
    def blocking_call(client: Client):
      return client.table(self.table)\
        .select(columns)\
        .eq("id", stream_id)\
        .limit(1)\
        .execute()

    result = await self._run("get", blocking_call)
    rows = result.data or []
    return rows[0] if rows else None

  async def count(self) -> int:
    """Exact number of rows in the catalog."""
    def blocking_call(client: Client):
      return client.table(self.table)\
        .select("id", count="exact")\
        .limit(1)\
        .execute()

    result = await self._run("count", blocking_call)
    return int(result.count or 0)

  async def update(
    self,
    stream_id: str,
    fields: dict[str, Any],
    expected: dict[str, Any] | None = None,
  ) -> UpdateResult:
    """
    Update a row by id, optionally conditioned on current column values.

    `rows` may be empty even when the write applied, if a policy hides the
    row from the result; `matched` is the store's own count of updated rows.
    """
    def blocking_call(client: Client):
      query = client.table(self.table).update(fields, count="exact").eq("id", stream_id)
      for column, value in (expected or {}).items():
        if value is None:
          query = query.is_(column, "null")
        else:
          query = query.eq(column, value)
      return query.execute()

    result = await self._run("update", blocking_call)
    return UpdateResult(rows=list(result.data or []), matched=result.count)

  async def insert(self, fields: dict[str, Any]) -> dict[str, Any]:
    """Insert a stream row and return it as stored."""
    def blocking_call(client: Client):
      return client.table(self.table).insert(fields).execute()

    result = await self._run("insert", blocking_call)
    rows = result.data or []
    if not rows:
      raise CatalogError("Insert returned no row")
    return rows[0]

  async def insert_event(self, event: dict[str, Any]) -> None:
    """Append a click event to the audit table."""
    def blocking_call(client: Client):
      return client.table(self.events_table).insert(event).execute()

    await self._run("event insert", blocking_call)

  async def rpc(self, function: str, params: dict[str, Any]) -> Any:
    """Call a stored procedure and return its data payload."""
    def blocking_call(client: Client):
      return client.rpc(function, params).execute()

    result = await self._run(f"rpc {function}", blocking_call)
    return result.data
