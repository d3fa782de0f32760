"""
FastAPI surface for DataPlug.
Directory search, usage counters, connectivity probes and admin views.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from rich.logging import RichHandler

from apps.api import settings
from apps.api.admin import AdminService, bearer_token
from apps.api.catalog import StreamCatalog
from apps.api.counters import UsageCounterService
from apps.api.directory import DirectoryService
from apps.api.errors import DataPlugError
from apps.api.schemas import AddStreamRequest, ClickRequest
from apps.api.snippets import render_snippet
from apps.api.supabase_client import SupabaseAuth
from connectors import probe as probes

LOGGER = logging.getLogger("dataplug.api")


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
  """Route application logs through a Rich console handler."""
  handler = RichHandler(show_path=False, rich_tracebacks=True)
  handler.setFormatter(logging.Formatter(fmt="%(name)s: %(message)s", datefmt="[%X]"))
  logging.basicConfig(level=level, handlers=[handler], force=True)
  logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# Lazily built service singletons
_catalog: StreamCatalog | None = None
_counters: UsageCounterService | None = None


def get_catalog() -> StreamCatalog:
  global _catalog
  if _catalog is None:
    _catalog = StreamCatalog()
  return _catalog


def get_directory(catalog: StreamCatalog = Depends(get_catalog)) -> DirectoryService:
  return DirectoryService(catalog)


def get_counters(catalog: StreamCatalog = Depends(get_catalog)) -> UsageCounterService:
  global _counters
  if _counters is None:
    _counters = UsageCounterService(catalog)
  return _counters


def get_admin(catalog: StreamCatalog = Depends(get_catalog)) -> AdminService:
  return AdminService(catalog, SupabaseAuth())


@asynccontextmanager
async def lifespan(app: FastAPI):
  """Lifespan context manager for startup/shutdown."""
  LOGGER.info("DataPlug API starting (admins configured: %s)", len(settings.ADMIN_EMAILS))
  yield
  if _counters is not None:
    await _counters.flush_events()
  LOGGER.info("DataPlug API stopped")


configure_logging()

app = FastAPI(
  title="DataPlug API",
  description="Directory of public real-time WebSocket data streams",
  version="0.1.0",
  lifespan=lifespan,
)

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.CORS_ORIGINS,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)


@app.exception_handler(DataPlugError)
async def dataplug_error_handler(request: Request, exc: DataPlugError):
  """Render service errors as `{error}` payloads with their status code."""
  if exc.status_code >= 500:
    LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message)
  return JSONResponse({"error": exc.message}, status_code=exc.status_code)


def _failure(exc: DataPlugError) -> JSONResponse:
  return JSONResponse({"success": False, "error": exc.message}, status_code=exc.status_code)


@app.get("/health")
async def health():
  """Health check endpoint."""
  return {"status": "ok", "service": "dataplug"}


@app.get("/api/search")
async def search_streams(
  q: str = Query("", description="Search term; empty returns the first streams"),
  directory: DirectoryService = Depends(get_directory),
):
  """Search the catalog by name, description and tags."""
  results = await directory.search(q)
  return {"results": [stream.model_dump(mode="json") for stream in results]}


@app.get("/api/streams/count")
async def stream_count(directory: DirectoryService = Depends(get_directory)):
  """Total number of cataloged streams (null when the store is unavailable)."""
  return {"count": await directory.count()}


@app.get("/api/streams/{stream_id}/snippet")
async def stream_snippet(
  stream_id: str,
  kind: str = Query("node", alias="type", description="node, python or vibe"),
  directory: DirectoryService = Depends(get_directory),
):
  """Starter client code for a stream."""
  stream = await directory.get(stream_id)
  return {"type": kind, "code": render_snippet(kind, stream)}


@app.post("/api/click")
async def track_click(
  req: ClickRequest,
  counters: UsageCounterService = Depends(get_counters),
):
  """Increment a stream's usage counter."""
  try:
    await counters.increment(req.id, req.type)
  except DataPlugError as exc:
    LOGGER.warning("Click tracking failed for %s (%s): %s", req.id, req.type, exc.message)
    return _failure(exc)
  return {"success": True}


@app.post("/api/add-stream")
async def add_stream(
  req: AddStreamRequest,
  directory: DirectoryService = Depends(get_directory),
):
  """Submit a new stream to the catalog."""
  try:
    stream = await directory.add(req.name, req.endpoint, req.description, req.tags)
  except DataPlugError as exc:
    return _failure(exc)
  return {"success": True, "data": stream.model_dump(mode="json")}


@app.get("/api/ping")
async def ping_endpoint(endpoint: str | None = Query(None)):
  """Measure how long an endpoint takes to answer."""
  if not endpoint:
    return JSONResponse({"error": "Endpoint required"}, status_code=400)

  try:
    result = await probes.probe(endpoint)
  except Exception:
    LOGGER.exception("Unexpected failure pinging %s", endpoint)
    return JSONResponse({"latency": None, "error": "Failed to ping"}, status_code=500)

  if result.reachable:
    return {"latency": result.latency_ms}
  return {"latency": result.latency_ms, "error": result.error}


@app.get("/api/preview")
async def preview_endpoint(endpoint: str | None = Query(None)):
  """Show the first message a live endpoint sends."""
  if not endpoint:
    return JSONResponse({"error": "Endpoint required"}, status_code=400)
  result = await probes.preview(endpoint)
  return result.model_dump()


@app.get("/api/check-duplicates")
async def check_duplicates(admin: AdminService = Depends(get_admin)):
  """Report streams that share a normalized name and/or endpoint."""
  return await admin.duplicate_report()


@app.get("/api/session")
async def session(
  authorization: str | None = Header(None),
  admin: AdminService = Depends(get_admin),
):
  """Identity behind a session token and whether it may use admin views."""
  identity = await admin.identify(bearer_token(authorization))
  return {"id": identity.id, "email": identity.email, "is_admin": admin.is_admin(identity)}


@app.get("/api/admin/users")
async def admin_users(
  authorization: str | None = Header(None),
  admin: AdminService = Depends(get_admin),
):
  """List registered accounts (allow-listed admins only)."""
  identity = await admin.authorize(bearer_token(authorization))
  accounts = await admin.list_accounts(identity)
  return {"users": [account.model_dump(mode="json") for account in accounts]}


@app.get("/api/admin/streams")
async def admin_streams(
  authorization: str | None = Header(None),
  admin: AdminService = Depends(get_admin),
):
  """Per-stream usage totals, highest first (allow-listed admins only)."""
  identity = await admin.authorize(bearer_token(authorization))
  stats = await admin.list_stream_stats(identity)
  return {"streams": [s.model_dump() for s in stats]}


@app.get("/api/admin/test-streams")
async def admin_test_streams(
  authorization: str | None = Header(None),
  admin: AdminService = Depends(get_admin),
):
  """Probe every cataloged endpoint (allow-listed admins only)."""
  identity = await admin.authorize(bearer_token(authorization))
  results = await admin.check_streams(identity)
  broken = sum(1 for r in results if r.status == "broken")
  return {
    "results": [r.model_dump() for r in results],
    "works": len(results) - broken,
    "broken": broken,
  }


if __name__ == "__main__":
  import uvicorn
  uvicorn.run(app, host="0.0.0.0", port=8000, log_config=None)
