"""
Tests for the admin gate, usage totals and duplicate report.
"""
import pytest

from apps.api.admin import AdminService, bearer_token, build_duplicate_report
from apps.api.errors import ForbiddenError, UnauthorizedError
from apps.api.schemas import EndpointCheck, Identity, ProbeResult
from connectors import probe as probe_module
from conftest import ADMIN_EMAIL, ADMIN_TOKEN, USER_TOKEN, MemoryCatalog

ADMIN = Identity(id="u-admin", email=ADMIN_EMAIL)


def make_admin(catalog, accounts):
  return AdminService(catalog, accounts, allowlist=[ADMIN_EMAIL])


@pytest.mark.asyncio
async def test_authorize_requires_token(catalog, accounts):
  admin = make_admin(catalog, accounts)

  with pytest.raises(UnauthorizedError) as excinfo:
    await admin.authorize(None)

  assert excinfo.value.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["bogus", USER_TOKEN])
async def test_authorize_rejects_non_admins(catalog, accounts, token):
  """Unresolvable tokens and non-allow-listed accounts are both forbidden."""
  admin = make_admin(catalog, accounts)

  with pytest.raises(ForbiddenError) as excinfo:
    await admin.authorize(token)

  assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_authorize_accepts_admin(catalog, accounts):
  admin = make_admin(catalog, accounts)

  identity = await admin.authorize(ADMIN_TOKEN)

  assert identity.email == ADMIN_EMAIL


def test_allowlist_is_exact_and_case_sensitive(catalog, accounts):
  admin = make_admin(catalog, accounts)

  assert admin.is_admin(ADMIN)
  assert not admin.is_admin(Identity(id="x", email=ADMIN_EMAIL.upper()))
  assert not admin.is_admin(Identity(id="x", email=f" {ADMIN_EMAIL}"))
  assert not admin.is_admin(Identity(id="x", email=None))
  assert not admin.is_admin(None)


@pytest.mark.asyncio
async def test_identify(catalog, accounts):
  """Any valid session resolves, admin or not."""
  admin = make_admin(catalog, accounts)

  identity = await admin.identify(USER_TOKEN)
  assert identity.id == "u-visitor"
  assert not admin.is_admin(identity)

  with pytest.raises(UnauthorizedError):
    await admin.identify("expired")
  with pytest.raises(UnauthorizedError):
    await admin.identify("")


@pytest.mark.asyncio
async def test_list_accounts_for_admin(catalog, accounts):
  admin = make_admin(catalog, accounts)

  users = await admin.list_accounts(ADMIN)

  assert [u.email for u in users] == [ADMIN_EMAIL, "visitor@example.com"]


@pytest.mark.asyncio
@pytest.mark.parametrize("identity", [
  None,
  Identity(id="u1", email="visitor@example.com"),
  Identity(id="u2", email=ADMIN_EMAIL.title()),
  Identity(id="u3", email=None),
])
async def test_non_admin_gets_no_account_data(catalog, accounts, identity):
  """Every identity outside the allow-list is refused before any lookup."""
  admin = make_admin(catalog, accounts)

  with pytest.raises(ForbiddenError):
    await admin.list_accounts(identity)
  with pytest.raises(ForbiddenError):
    await admin.list_stream_stats(identity)

  assert accounts.listed == 0


@pytest.mark.asyncio
async def test_injected_allowlist(catalog, accounts):
  admin = AdminService(catalog, accounts, allowlist=["visitor@example.com"])

  identity = await admin.authorize(USER_TOKEN)
  assert identity.email == "visitor@example.com"
  with pytest.raises(ForbiddenError):
    await admin.authorize(ADMIN_TOKEN)


@pytest.mark.asyncio
async def test_stream_stats_sorted_by_total(catalog, accounts):
  admin = make_admin(catalog, accounts)

  stats = await admin.list_stream_stats(ADMIN)

  assert [(s.id, s.total) for s in stats] == [("2", 15), ("1", 4), ("3", 0)]
  assert stats[2].clicks_python == 0


@pytest.mark.asyncio
async def test_stream_stats_ties_keep_store_order(accounts):
  catalog = MemoryCatalog([
    {"id": 1, "name": "A", "endpoint": "wss://A.example", "clicks_node": 1, "clicks_python": 1},
    {"id": 2, "name": "B", "endpoint": "wss://B.example", "clicks_node": 5, "clicks_python": 0},
    {"id": 3, "name": "C", "endpoint": "wss://C.example", "clicks_node": 0, "clicks_python": 2},
  ])
  admin = make_admin(catalog, accounts)

  stats = await admin.list_stream_stats(ADMIN)

  assert [s.id for s in stats] == ["2", "1", "3"]


def test_bearer_token():
  assert bearer_token("Bearer abc") == "abc"
  assert bearer_token("abc") == "abc"
  assert bearer_token("Bearer ") is None
  assert bearer_token(None) is None


def test_duplicate_report_empty():
  assert build_duplicate_report([]) == {"total": 0, "duplicates": [], "message": "No streams found"}


def test_duplicate_report_groups_normalized_values():
  """Names and endpoints are compared trimmed and lower-cased."""
  rows = [
    {"id": 1, "name": "Binance BTC", "endpoint": "wss://a.example/ws"},
    {"id": 2, "name": " binance btc ", "endpoint": "WSS://A.EXAMPLE/WS"},
    {"id": 3, "name": "Binance BTC", "endpoint": "wss://b.example/ws"},
    {"id": 4, "name": "Kraken", "endpoint": "wss://b.example/ws"},
    {"id": 5, "name": "Unique", "endpoint": "wss://c.example/ws"},
  ]

  report = build_duplicate_report(rows)

  assert report["total"] == 5
  assert report["unique_by_name"] == 3
  assert report["unique_by_endpoint"] == 3
  assert report["unique_exact"] == 4
  assert report["has_duplicates"] is True

  by_name = report["duplicates_by_name"]
  assert len(by_name) == 1
  assert by_name[0]["name"] == "binance btc"
  assert [s["id"] for s in by_name[0]["streams"]] == [1, 2, 3]

  assert sorted(g["endpoint"] for g in report["duplicates_by_endpoint"]) == [
    "wss://a.example/ws",
    "wss://b.example/ws",
  ]
  assert report["duplicates_exact"] == [{
    "name": "binance btc",
    "endpoint": "wss://a.example/ws",
    "count": 2,
    "streams": [
      {"id": 1, "name": "Binance BTC", "endpoint": "wss://a.example/ws"},
      {"id": 2, "name": " binance btc ", "endpoint": "WSS://A.EXAMPLE/WS"},
    ],
  }]


@pytest.mark.asyncio
async def test_duplicate_report_from_catalog(catalog, accounts):
  admin = make_admin(catalog, accounts)

  report = await admin.duplicate_report()

  assert report["total"] == 3
  assert report["has_duplicates"] is False


@pytest.mark.asyncio
async def test_check_streams_reports_broken_first(catalog, accounts, monkeypatch):
  admin = make_admin(catalog, accounts)
  probed = []

  async def fake_probe(endpoint, timeout_sec=None, transport=None):
    probed.append(endpoint)
    if "coinbase" in endpoint:
      return ProbeResult(reachable=False, latency_ms=int(timeout_sec * 1000), error="Timeout")
    return ProbeResult(reachable=True, latency_ms=12)

  monkeypatch.setattr(probe_module, "probe", fake_probe)

  results = await admin.check_streams(ADMIN, timeout_sec=0.5, delay_sec=0)

  assert len(probed) == 3
  assert all(isinstance(r, EndpointCheck) for r in results)
  assert [(r.id, r.status) for r in results] == [("2", "broken"), ("3", "works"), ("1", "works")]
  assert results[0].latency_ms is None
  assert results[0].error == "Timeout"

  with pytest.raises(ForbiddenError):
    await admin.check_streams(None)
