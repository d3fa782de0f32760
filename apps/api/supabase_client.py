"""
Supabase client factories and the account/session provider.

Two credential tiers are used: the public (anon) key for ordinary reads and
token resolution, and the service-role key for writes and account listing.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from supabase import Client, create_client

from apps.api import settings
from apps.api.errors import ConfigurationError, DataPlugError
from apps.api.schemas import Account, Identity

LOGGER = logging.getLogger("dataplug.supabase")

_public_client: Client | None = None
_service_client: Client | None = None


def get_public_client() -> Client:
  """Client authenticated with the anon key."""
  global _public_client
  if _public_client is None:
    if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
      raise ConfigurationError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
    _public_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
  return _public_client


def get_service_client() -> Client | None:
  """Client authenticated with the service-role key, or None if unset."""
  global _service_client
  if _service_client is None:
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
      return None
    _service_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
  return _service_client


def get_write_client() -> Client:
  """Service-role client when configured, anon client otherwise."""
  return get_service_client() or get_public_client()


class SupabaseAuth:
  """Resolves session tokens and lists registered accounts."""

  def __init__(self, public_client: Client | None = None, service_client: Client | None = None):
    self._public_client = public_client
    self._service_client = service_client

  @property
  def public_client(self) -> Client:
    if self._public_client is None:
      self._public_client = get_public_client()
    return self._public_client

  @property
  def service_client(self) -> Client | None:
    if self._service_client is None:
      self._service_client = get_service_client()
    return self._service_client

  async def resolve_token(self, token: str) -> Identity | None:
    """Map a bearer session token to an identity, or None if invalid."""
    client = self.public_client

    def blocking_call() -> Any:
      return client.auth.get_user(token)

    try:
      response = await asyncio.to_thread(blocking_call)
    except Exception as exc:
      LOGGER.warning("Session token rejected: %s", exc)
      return None

    user = getattr(response, "user", None)
    if not user:
      return None
    return Identity(id=str(user.id), email=user.email)

  async def list_accounts(self) -> list[Account]:
    """Enumerate every registered account (service-role only)."""
    if self.service_client is None:
      raise ConfigurationError("Service role key not configured")

    client = self.service_client

    def blocking_call() -> Any:
      return client.auth.admin.list_users()

    try:
      users = await asyncio.to_thread(blocking_call)
    except Exception as exc:
      LOGGER.exception("Failed to list accounts")
      raise DataPlugError(f"Failed to list accounts: {exc}") from exc

    # Older SDK releases wrap the list in a response object.
    if hasattr(users, "users"):
      users = users.users

    return [
      Account(
        id=str(user.id),
        email=user.email or "No email",
        created_at=user.created_at,
      )
      for user in users or []
    ]
