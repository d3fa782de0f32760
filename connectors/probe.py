"""
Connectivity checks against third-party stream endpoints.

Every check is bounded in time, closes whatever it opened, and reports
its outcome as a result model instead of raising.
"""
import asyncio
import contextlib
import logging
import time
from typing import Any, Iterable, Optional

import httpx
import websockets

from apps.api import settings
from apps.api.schemas import EndpointCheck, PreviewResult, ProbeResult, Stream

LOGGER = logging.getLogger("dataplug.probe")

USER_AGENT = "DataPlug-Ping/1.0"
WAITING_NOTE = "Connected - waiting for subscription (normal for RPC nodes)"


def _elapsed_ms(started: float) -> int:
  return int((time.monotonic() - started) * 1000)


def _is_websocket(endpoint: str) -> bool:
  return endpoint.lower().startswith(("ws://", "wss://"))


async def probe_websocket(endpoint: str, timeout_sec: float = settings.PROBE_TIMEOUT_SEC) -> ProbeResult:
  """Time the WebSocket opening handshake, then close immediately."""
  started = time.monotonic()
  ws = None
  try:
    ws = await asyncio.wait_for(
      websockets.connect(endpoint, open_timeout=None, close_timeout=1),
      timeout=timeout_sec,
    )
    return ProbeResult(reachable=True, latency_ms=_elapsed_ms(started))
  except asyncio.TimeoutError:
    return ProbeResult(reachable=False, latency_ms=int(timeout_sec * 1000), error="Timeout")
  except Exception as exc:
    LOGGER.debug("WebSocket probe of %s failed: %s", endpoint, exc)
    return ProbeResult(reachable=False, error=f"Connection failed: {exc}")
  finally:
    if ws is not None:
      with contextlib.suppress(Exception):
        await ws.close()


async def probe_http(
  endpoint: str,
  timeout_sec: float = settings.PROBE_TIMEOUT_SEC,
  transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProbeResult:
  """Time a HEAD request against an HTTP endpoint."""
  started = time.monotonic()
  try:
    async with httpx.AsyncClient(
      timeout=timeout_sec,
      transport=transport,
      headers={"User-Agent": USER_AGENT},
      follow_redirects=True,
    ) as client:
      response = await asyncio.wait_for(client.head(endpoint), timeout=timeout_sec)
  except (asyncio.TimeoutError, httpx.TimeoutException):
    return ProbeResult(reachable=False, latency_ms=int(timeout_sec * 1000), error="Timeout")
  except Exception as exc:
    LOGGER.debug("HTTP probe of %s failed: %s", endpoint, exc)
    return ProbeResult(reachable=False, error=f"Connection failed: {exc}")

  latency = _elapsed_ms(started)
  if response.is_success:
    return ProbeResult(reachable=True, latency_ms=latency)
  return ProbeResult(reachable=False, latency_ms=latency, error="Request failed")


async def probe(
  endpoint: str,
  timeout_sec: float = settings.PROBE_TIMEOUT_SEC,
  transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProbeResult:
  """
  Check whether an endpoint answers within `timeout_sec`.

  WebSocket URLs are probed with an opening handshake, anything else with
  an HTTP HEAD request. A timeout reports the bound itself as latency.
  """
  if _is_websocket(endpoint):
    return await probe_websocket(endpoint, timeout_sec)
  return await probe_http(endpoint, timeout_sec, transport=transport)


async def preview(endpoint: str, window_sec: float = settings.PREVIEW_WINDOW_SEC) -> PreviewResult:
  """
  Connect to a WebSocket endpoint and return the first message it sends.

  Many RPC-style feeds stay silent until subscribed; an open connection
  with no message inside the window is still reported as connected.
  """
  started = time.monotonic()
  ws = None
  try:
    ws = await asyncio.wait_for(
      websockets.connect(endpoint, open_timeout=None, close_timeout=1),
      timeout=window_sec,
    )
    remaining = max(window_sec - (time.monotonic() - started), 0.0)
    try:
      message = await asyncio.wait_for(ws.recv(), timeout=remaining)
    except asyncio.TimeoutError:
      return PreviewResult(status="connected", message=WAITING_NOTE, latency_ms=_elapsed_ms(started))

    if isinstance(message, bytes):
      message = message.decode("utf-8", errors="replace")
    return PreviewResult(status="message", message=message, latency_ms=_elapsed_ms(started))
  except asyncio.TimeoutError:
    return PreviewResult(status="error", message="Timeout", latency_ms=int(window_sec * 1000))
  except Exception as exc:
    LOGGER.debug("Preview of %s failed: %s", endpoint, exc)
    return PreviewResult(status="error", message=f"Connection error: {exc}")
  finally:
    if ws is not None:
      with contextlib.suppress(Exception):
        await ws.close()


def _id_sort_key(stream_id: str) -> tuple[int, Any]:
  return (0, int(stream_id)) if stream_id.isdigit() else (1, stream_id)


async def check_endpoints(
  streams: Iterable[Stream],
  timeout_sec: float = settings.CHECK_TIMEOUT_SEC,
  delay_sec: float = settings.CHECK_DELAY_SEC,
) -> list[EndpointCheck]:
  """
  Probe every stream one after another.

  Results are ordered broken first, then by id descending.
  """
  results: list[EndpointCheck] = []
  for index, stream in enumerate(streams):
    if index and delay_sec:
      await asyncio.sleep(delay_sec)
    outcome = await probe(stream.endpoint, timeout_sec)
    results.append(EndpointCheck(
      id=stream.id,
      name=stream.name,
      endpoint=stream.endpoint,
      status="works" if outcome.reachable else "broken",
      latency_ms=outcome.latency_ms if outcome.reachable else None,
      error=outcome.error,
    ))

  results.sort(key=lambda r: _id_sort_key(r.id), reverse=True)
  results.sort(key=lambda r: r.status != "broken")
  return results
