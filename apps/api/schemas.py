"""
Pydantic models for catalog records and service results.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


COUNTER_COLUMNS = {
  "node": "clicks_node",
  "python": "clicks_python",
}
# "vibe" has no column; it is only recorded as a click event.
COUNTER_TYPES = ("node", "python", "vibe")


class Stream(BaseModel):
  """A cataloged real-time data feed."""
  id: str
  name: str = ""
  endpoint: str = ""
  description: str | None = None
  tags: list[str] | None = None
  clicks_node: int = 0
  clicks_python: int = 0
  created_at: datetime | None = None

  @field_validator("id", mode="before")
  @classmethod
  def _coerce_id(cls, value: Any) -> str:
    return str(value)

  @field_validator("name", "endpoint", mode="before")
  @classmethod
  def _blank_text(cls, value: Any) -> Any:
    return "" if value is None else value

  @field_validator("tags", mode="before")
  @classmethod
  def _string_tags(cls, value: Any) -> Any:
    if isinstance(value, list):
      return [tag for tag in value if isinstance(tag, str)]
    return value

  @field_validator("clicks_node", "clicks_python", mode="before")
  @classmethod
  def _default_counter(cls, value: Any) -> int:
    return value or 0

  def matches(self, term: str) -> bool:
    """Case-insensitive substring match against name, description and tags."""
    needle = term.lower()
    if needle in (self.name or "").lower():
      return True
    if needle in (self.description or "").lower():
      return True
    return any(needle in tag.lower() for tag in self.tags or [])


class Identity(BaseModel):
  """Authenticated principal resolved from a session token."""
  id: str
  email: str | None = None


class Account(BaseModel):
  """Registered account as shown to admins."""
  id: str
  email: str = "No email"
  created_at: datetime | str | None = None


class StreamStats(BaseModel):
  """Per-stream usage totals."""
  id: str
  name: str
  endpoint: str = ""
  clicks_node: int = 0
  clicks_python: int = 0
  total: int = 0

  @classmethod
  def from_stream(cls, stream: Stream) -> "StreamStats":
    return cls(
      id=stream.id,
      name=stream.name,
      endpoint=stream.endpoint,
      clicks_node=stream.clicks_node,
      clicks_python=stream.clicks_python,
      total=stream.clicks_node + stream.clicks_python,
    )


class ProbeResult(BaseModel):
  """Outcome of a bounded connectivity check."""
  reachable: bool
  latency_ms: int | None = None
  error: str | None = None


class PreviewResult(BaseModel):
  """First message (or lack of one) seen on a live endpoint."""
  status: Literal["message", "connected", "error"]
  message: str | None = None
  latency_ms: int | None = None


class EndpointCheck(BaseModel):
  """One row of the admin bulk connectivity test."""
  id: str
  name: str
  endpoint: str
  status: Literal["works", "broken"]
  latency_ms: int | None = None
  error: str | None = None


class ClickRequest(BaseModel):
  """Usage counter increment request."""
  id: str | None = None
  type: str | None = None

  @field_validator("id", mode="before")
  @classmethod
  def _coerce_id(cls, value: Any) -> str | None:
    return None if value is None else str(value)


class AddStreamRequest(BaseModel):
  """New catalog entry submitted by a visitor."""
  name: str | None = None
  endpoint: str | None = None
  description: str | None = None
  tags: str | None = Field(None, description="Comma-separated tags")
