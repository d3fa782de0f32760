"""
Directory queries over the stream catalog.

Search filters a fixed candidate window in-process rather than relying on
the store's full-text or array operators. Catalogs larger than the window
can miss matches.
"""
from __future__ import annotations

import logging

from pydantic import ValidationError as RowValidationError

from apps.api import settings
from apps.api.catalog import StreamCatalog
from apps.api.errors import CatalogError, NotFoundError, ValidationError
from apps.api.schemas import Stream

LOGGER = logging.getLogger("dataplug.directory")


def parse_tags(raw: str | None) -> list[str]:
  """Split a comma-separated tag string, dropping blanks."""
  if not raw:
    return []
  return [tag.strip() for tag in raw.split(",") if tag.strip()]


def _streams(rows: list[dict]):
  """Yield a Stream per row, skipping rows that cannot be read as one."""
  for row in rows:
    try:
      yield Stream(**row)
    except RowValidationError as exc:
      LOGGER.warning("Skipping malformed stream row %r: %s", row.get("id"), exc)


class DirectoryService:
  """Search, lookup and submission of catalog entries."""

  def __init__(
    self,
    catalog: StreamCatalog,
    result_limit: int = settings.SEARCH_RESULT_LIMIT,
    candidate_limit: int = settings.SEARCH_CANDIDATE_LIMIT,
  ):
    self.catalog = catalog
    self.result_limit = result_limit
    self.candidate_limit = candidate_limit

  async def search(self, term: str | None) -> list[Stream]:
    """
    Return at most `result_limit` streams matching `term`.

    An empty or whitespace-only term returns the first streams in store
    order. Store failures degrade to an empty list.
    """
    term = (term or "").strip()
    try:
      if not term:
        rows = await self.catalog.fetch(limit=self.result_limit)
        return list(_streams(rows))

      rows = await self.catalog.fetch(limit=self.candidate_limit)
    except CatalogError as exc:
      LOGGER.error("Search failed for %r: %s", term, exc)
      return []

    matches: list[Stream] = []
    for stream in _streams(rows):
      if stream.matches(term):
        matches.append(stream)
        if len(matches) >= self.result_limit:
          break
    return matches

  async def count(self) -> int | None:
    """Total catalog size, or None if the store is unavailable."""
    try:
      return await self.catalog.count()
    except CatalogError as exc:
      LOGGER.error("Stream count failed: %s", exc)
      return None

  async def get(self, stream_id: str) -> Stream:
    row = await self.catalog.get(stream_id)
    if row is None:
      raise NotFoundError(f"Stream {stream_id} not found")
    return Stream(**row)

  async def add(
    self,
    name: str | None,
    endpoint: str | None,
    description: str | None,
    tags: str | None = None,
  ) -> Stream:
    """Insert a new catalog entry with zeroed counters."""
    name = (name or "").strip()
    endpoint = (endpoint or "").strip()
    description = (description or "").strip()
    if not name or not endpoint or not description:
      raise ValidationError("Name, endpoint, and description are required")

    tag_list = parse_tags(tags)
    row = await self.catalog.insert({
      "name": name,
      "endpoint": endpoint,
      "description": description,
      "tags": tag_list or None,
      "clicks_node": 0,
      "clicks_python": 0,
    })
    LOGGER.info("Added stream %s (%s)", row.get("id"), name)
    return Stream(**row)
