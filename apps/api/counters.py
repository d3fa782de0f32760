"""
Usage counters for catalog entries.

Increments either run as a stored procedure (`counter = counter + 1`
evaluated in the store) or as an optimistic read / conditional write loop.
A plain read-modify-write by id would lose updates under concurrent clicks.

Click events are written to an audit table by detached tasks. Their
failures are logged and never reach the caller.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from apps.api import settings
from apps.api.catalog import StreamCatalog
from apps.api.errors import (
  AccessDeniedError,
  CounterConflictError,
  InvalidCounterError,
  NotFoundError,
  ValidationError,
)
from apps.api.schemas import COUNTER_COLUMNS, COUNTER_TYPES

LOGGER = logging.getLogger("dataplug.counters")


class UsageCounterService:
  """Increments per-stream usage counters."""

  def __init__(
    self,
    catalog: StreamCatalog,
    rpc: str | None = settings.COUNTER_RPC,
    max_attempts: int = settings.COUNTER_MAX_ATTEMPTS,
    track_events: bool = settings.TRACK_CLICK_EVENTS,
  ):
    self.catalog = catalog
    self.rpc = rpc
    self.max_attempts = max(1, max_attempts)
    self.track_events = track_events
    self._pending: set[asyncio.Task] = set()

  async def increment(self, stream_id: str | None, counter: str | None) -> int | None:
    """
    Add one to the counter bucket of a stream.

    Args:
      stream_id: Stream identifier
      counter: One of "node", "python" or "vibe"

    Returns:
      The new counter value, or None for buckets without a column

    Raises:
      ValidationError: id or counter missing
      InvalidCounterError: counter not recognized
      NotFoundError: no such stream
      AccessDeniedError: the store acknowledged but did not apply the write
      CatalogError: store or transport fault
    """
    if not stream_id or not counter:
      raise ValidationError("Missing id or type")
    if counter not in COUNTER_TYPES:
      raise InvalidCounterError(f"Invalid type: {counter}")

    column = COUNTER_COLUMNS.get(counter)
    if column is None:
      if await self.catalog.get(stream_id, columns="id") is None:
        raise NotFoundError(f"Stream {stream_id} not found")
      self._record_event(stream_id, counter)
      return None

    if self.rpc:
      new_value = await self._increment_atomic(stream_id, column)
    else:
      new_value = await self._increment_optimistic(stream_id, column)

    LOGGER.info("Incremented %s for stream %s -> %s", column, stream_id, new_value)
    self._record_event(stream_id, counter)
    return new_value

  async def _increment_atomic(self, stream_id: str, column: str) -> int:
    data = await self.catalog.rpc(self.rpc, {"p_stream_id": stream_id, "p_column": column})
    new_value = _rpc_value(data, column)
    if new_value is not None:
      return new_value

    # No value came back: either the id is unknown or a policy kept the
    # procedure from updating the row. Its return value is not row-filtered.
    if await self.catalog.get(stream_id, columns="id") is None:
      raise NotFoundError(f"Stream {stream_id} not found")
    raise AccessDeniedError("Update blocked by row level security")

  async def _increment_optimistic(self, stream_id: str, column: str) -> int:
    for attempt in range(1, self.max_attempts + 1):
      row = await self.catalog.get(stream_id, columns=column)
      if row is None:
        raise NotFoundError(f"Stream {stream_id} not found")

      raw_current = row.get(column)
      current = raw_current or 0
      new_value = current + 1

      updated = await self.catalog.update(
        stream_id,
        {column: new_value},
        expected={column: raw_current},
      )
      if updated.rows:
        return new_value

      # Empty update result: the write was hidden from the result, dropped
      # by a policy, or lost a race. Re-read to tell them apart.
      verify = await self.catalog.get(stream_id, columns=column)
      if verify is None:
        raise NotFoundError(f"Stream {stream_id} not found")
      observed = verify.get(column) or 0
      if observed == current:
        LOGGER.error("Update on %s.%s did not apply; row level security likely blocking", stream_id, column)
        raise AccessDeniedError("Update blocked by row level security")

      # A reported match count settles it; without one, trust the read-back.
      if updated.matched or (updated.matched is None and observed == new_value):
        LOGGER.debug("Update on %s.%s applied but hidden from the result", stream_id, column)
        return new_value

      LOGGER.debug(
        "Concurrent update on %s.%s (attempt %s/%s, saw %s)",
        stream_id,
        column,
        attempt,
        self.max_attempts,
        observed,
      )

    raise CounterConflictError(
      f"Counter {column} on stream {stream_id} changed on every attempt"
    )

  def _record_event(self, stream_id: str, counter: str) -> None:
    if not self.track_events:
      return
    task = asyncio.create_task(
      self._insert_event(stream_id, counter),
      name=f"click-event:{stream_id}",
    )
    self._pending.add(task)
    task.add_done_callback(self._pending.discard)

  async def _insert_event(self, stream_id: str, counter: str) -> None:
    try:
      await self.catalog.insert_event({
        "stream_id": stream_id,
        "type": counter,
        "created_at": datetime.now(tz=timezone.utc).isoformat(),
      })
    except Exception as exc:
      LOGGER.warning("Click event for %s (%s) not recorded: %s", stream_id, counter, exc)

  async def flush_events(self) -> None:
    """Wait for outstanding click-event inserts."""
    if self._pending:
      await asyncio.gather(*list(self._pending), return_exceptions=True)


def _rpc_value(data: Any, column: str) -> int | None:
  """Extract the new counter value from a stored-procedure payload."""
  if isinstance(data, list):
    data = data[0] if data else None
  if isinstance(data, dict):
    data = data.get(column, next(iter(data.values()), None))
  if data is None:
    return None
  return int(data)
