"""
Admin aggregation: account listing, usage totals and catalog diagnostics.

Access is gated by an allow-list of account emails injected at
construction. Membership is exact and case-sensitive.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

from apps.api import settings
from apps.api.catalog import StreamCatalog
from apps.api.errors import ForbiddenError, UnauthorizedError
from apps.api.schemas import Account, EndpointCheck, Identity, Stream, StreamStats
from connectors.probe import check_endpoints

LOGGER = logging.getLogger("dataplug.admin")


class AccountProvider(Protocol):
  async def resolve_token(self, token: str) -> Identity | None: ...

  async def list_accounts(self) -> list[Account]: ...


def bearer_token(authorization: str | None) -> str | None:
  """Extract the token from an `Authorization: Bearer ...` header."""
  if not authorization:
    return None
  token = authorization.replace("Bearer ", "", 1).strip()
  return token or None


def _normalize(value: str | None) -> str:
  return (value or "").strip().lower()


def _summary(row: dict[str, Any]) -> dict[str, Any]:
  return {"id": row.get("id"), "name": row.get("name"), "endpoint": row.get("endpoint")}


def _group(rows: list[dict[str, Any]], key) -> dict[Any, list[dict[str, Any]]]:
  groups: dict[Any, list[dict[str, Any]]] = {}
  for row in rows:
    groups.setdefault(key(row), []).append(row)
  return groups


def build_duplicate_report(rows: list[dict[str, Any]]) -> dict[str, Any]:
  """Group streams by normalized name, endpoint and both."""
  if not rows:
    return {"total": 0, "duplicates": [], "message": "No streams found"}

  by_name = _group(rows, lambda r: _normalize(r.get("name")))
  by_endpoint = _group(rows, lambda r: _normalize(r.get("endpoint")))
  exact = _group(rows, lambda r: (_normalize(r.get("name")), _normalize(r.get("endpoint"))))

  duplicates_by_name = [
    {"name": name, "count": len(members), "streams": [_summary(m) for m in members]}
    for name, members in by_name.items()
    if len(members) > 1
  ]
  duplicates_by_endpoint = [
    {"endpoint": endpoint, "count": len(members), "streams": [_summary(m) for m in members]}
    for endpoint, members in by_endpoint.items()
    if len(members) > 1
  ]
  duplicates_exact = [
    {
      "name": name,
      "endpoint": endpoint,
      "count": len(members),
      "streams": [_summary(m) for m in members],
    }
    for (name, endpoint), members in exact.items()
    if len(members) > 1
  ]

  return {
    "total": len(rows),
    "unique_by_name": len(by_name),
    "unique_by_endpoint": len(by_endpoint),
    "unique_exact": len(exact),
    "duplicates_by_name": duplicates_by_name,
    "duplicates_by_endpoint": duplicates_by_endpoint,
    "duplicates_exact": duplicates_exact,
    "has_duplicates": bool(duplicates_by_name or duplicates_by_endpoint or duplicates_exact),
  }


class AdminService:
  """Aggregate views restricted to allow-listed accounts."""

  def __init__(
    self,
    catalog: StreamCatalog,
    accounts: AccountProvider,
    allowlist: Iterable[str] = settings.ADMIN_EMAILS,
  ):
    self.catalog = catalog
    self.accounts = accounts
    self.allowlist = frozenset(allowlist)

  def is_admin(self, identity: Identity | None) -> bool:
    return bool(identity and identity.email and identity.email in self.allowlist)

  async def identify(self, token: str | None) -> Identity:
    """Resolve a session token to an identity, admin or not."""
    if not token:
      raise UnauthorizedError("Unauthorized")
    identity = await self.accounts.resolve_token(token)
    if identity is None:
      raise UnauthorizedError("Invalid or expired token")
    return identity

  async def authorize(self, token: str | None) -> Identity:
    """
    Resolve a session token and require allow-list membership.

    Raises:
      UnauthorizedError: no token presented
      ForbiddenError: token invalid or email not allow-listed
    """
    if not token:
      raise UnauthorizedError("Unauthorized")

    identity = await self.accounts.resolve_token(token)
    if not self.is_admin(identity):
      LOGGER.warning(
        "Admin access denied for %s",
        identity.email if identity else "unresolved token",
      )
      raise ForbiddenError("Forbidden")
    return identity

  def _require(self, identity: Identity | None) -> None:
    if not self.is_admin(identity):
      raise ForbiddenError("Forbidden")

  async def list_accounts(self, identity: Identity | None) -> list[Account]:
    """All registered accounts, via the elevated credential."""
    self._require(identity)
    return await self.accounts.list_accounts()

  async def list_stream_stats(self, identity: Identity | None) -> list[StreamStats]:
    """Usage totals per stream, highest total first."""
    self._require(identity)
    rows = await self.catalog.fetch(columns="id, name, endpoint, clicks_node, clicks_python")
    stats = [StreamStats.from_stream(Stream(**row)) for row in rows]
    stats.sort(key=lambda s: s.total, reverse=True)
    return stats

  async def duplicate_report(self) -> dict[str, Any]:
    """Diagnostic grouping of streams that look like duplicates."""
    rows = await self.catalog.fetch(columns="id, name, endpoint, description", order="name")
    return build_duplicate_report(rows)

  async def check_streams(
    self,
    identity: Identity | None,
    timeout_sec: float = settings.CHECK_TIMEOUT_SEC,
    delay_sec: float = settings.CHECK_DELAY_SEC,
  ) -> list[EndpointCheck]:
    """Probe every catalog endpoint and report which ones are broken."""
    self._require(identity)
    rows = await self.catalog.fetch(columns="id, name, endpoint", order="name")
    streams = [Stream(**row) for row in rows]
    LOGGER.info("Checking %s stream endpoints", len(streams))
    return await check_endpoints(streams, timeout_sec=timeout_sec, delay_sec=delay_sec)
