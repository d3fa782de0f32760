"""
Shared fixtures: an in-memory stream catalog and account provider that
stand in for the Supabase tables and auth API.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from apps.api.catalog import UpdateResult
from apps.api.errors import CatalogError
from apps.api.schemas import Account, Identity

ADMIN_EMAIL = "admin@dataplug.dev"
USER_EMAIL = "visitor@example.com"
ADMIN_TOKEN = "admin-token"
USER_TOKEN = "user-token"


def _project(row: dict[str, Any], columns: str) -> dict[str, Any]:
  if columns.strip() == "*":
    return dict(row)
  wanted = [c.strip() for c in columns.split(",")]
  return {c: row[c] for c in wanted if c in row}


class MemoryCatalog:
  """Dict-backed catalog with the same async surface as StreamCatalog.

  Every call yields to the event loop first so concurrent callers interleave
  between a read and the following write.
  """

  def __init__(self, rows: list[dict[str, Any]] | None = None):
    self.rows = [dict(r) for r in rows or []]
    self.events: list[dict[str, Any]] = []
    self.rpc_calls: list[tuple[str, dict[str, Any]]] = []
    self.fail = False
    # Row-level policy that acknowledges writes but never applies them.
    self.drop_updates = False
    # Policy that applies writes but filters the row out of the update result;
    # `hidden_count` is what the store reports as matched (None: no count).
    self.hide_updates = False
    self.hidden_count = None
    self.fail_events = False
    self._next_id = max((int(r["id"]) for r in self.rows), default=0) + 1

  async def _tick(self, action: str) -> None:
    await asyncio.sleep(0)
    if self.fail:
      raise CatalogError(f"Catalog {action} failed: store unavailable")

  def _find(self, stream_id: str) -> dict[str, Any] | None:
    for row in self.rows:
      if str(row["id"]) == str(stream_id):
        return row
    return None

  def row(self, stream_id: str) -> dict[str, Any]:
    return self._find(stream_id)

  async def fetch(self, limit=None, columns="*", order=None):
    await self._tick("select")
    rows = self.rows
    if order:
      rows = sorted(rows, key=lambda r: r.get(order) or "")
    if limit is not None:
      rows = rows[:limit]
    return [_project(r, columns) for r in rows]

  async def get(self, stream_id, columns="*"):
    await self._tick("get")
    row = self._find(stream_id)
    return _project(row, columns) if row is not None else None

  async def count(self):
    await self._tick("count")
    return len(self.rows)

  async def update(self, stream_id, fields, expected=None):
    await self._tick("update")
    row = self._find(stream_id)
    if row is None:
      return UpdateResult([], 0)
    if any(row.get(c) != v for c, v in (expected or {}).items()):
      return UpdateResult([], 0)
    if self.drop_updates:
      return UpdateResult([], 0)
    row.update(fields)
    if self.hide_updates:
      return UpdateResult([], self.hidden_count)
    return UpdateResult([dict(row)], 1)

  async def insert(self, fields):
    await self._tick("insert")
    row = {
      "id": self._next_id,
      "created_at": datetime.now(tz=timezone.utc).isoformat(),
      **fields,
    }
    self._next_id += 1
    self.rows.append(row)
    return dict(row)

  async def insert_event(self, event):
    await self._tick("event insert")
    if self.fail_events:
      raise CatalogError("Catalog event insert failed: permission denied")
    self.events.append(dict(event))

  async def rpc(self, function, params):
    await self._tick(f"rpc {function}")
    self.rpc_calls.append((function, dict(params)))
    row = self._find(params["p_stream_id"])
    if row is None or self.drop_updates:
      return None
    column = params["p_column"]
    row[column] = (row.get(column) or 0) + 1
    return row[column]


class FakeAccounts:
  """Account provider resolving a fixed token table."""

  def __init__(self, tokens: dict[str, Identity], accounts: list[Account] | None = None):
    self.tokens = tokens
    self.accounts = accounts or []
    self.listed = 0

  async def resolve_token(self, token):
    return self.tokens.get(token)

  async def list_accounts(self):
    self.listed += 1
    return list(self.accounts)


SAMPLE_STREAMS = [
  {
    "id": 1,
    "name": "Binance BTC Trades",
    "endpoint": "wss://stream.binance.com:9443/ws/btcusdt@trade",
    "description": "Real-time BTC/USDT trade prints",
    "tags": ["crypto", "binance"],
    "clicks_node": 3,
    "clicks_python": 1,
  },
  {
    "id": 2,
    "name": "Coinbase Ticker",
    "endpoint": "wss://ws-feed.exchange.coinbase.com",
    "description": "Level 1 ticker for every product",
    "tags": ["crypto"],
    "clicks_node": 10,
    "clicks_python": 5,
  },
  {
    "id": 3,
    "name": "Solana RPC",
    "endpoint": "wss://api.mainnet-beta.solana.com",
    "description": "Account and slot subscriptions",
    "tags": ["Solana", "rpc"],
    "clicks_node": 0,
    "clicks_python": None,
  },
]


@pytest.fixture
def catalog():
  return MemoryCatalog(SAMPLE_STREAMS)


@pytest.fixture
def accounts():
  return FakeAccounts(
    tokens={
      ADMIN_TOKEN: Identity(id="u-admin", email=ADMIN_EMAIL),
      USER_TOKEN: Identity(id="u-visitor", email=USER_EMAIL),
    },
    accounts=[
      Account(id="u-admin", email=ADMIN_EMAIL, created_at="2025-01-02T10:00:00+00:00"),
      Account(id="u-visitor", email=USER_EMAIL, created_at="2025-03-04T12:30:00+00:00"),
    ],
  )
