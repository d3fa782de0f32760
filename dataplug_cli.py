#!/usr/bin/env python3
"""
DataPlug CLI - terminal client for the DataPlug stream directory.
Search streams, check their connectivity, grab starter code and view
admin reports.
"""
import argparse
import asyncio
from typing import Any, Optional

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table

from dataplug_auth import DataPlugAuth

console = Console()

SNIPPET_LEXERS = {"node": "javascript", "python": "python", "vibe": "text"}


class DataPlugCLI:
  """Command handlers for the DataPlug terminal client."""

  def __init__(
    self,
    api_url: str = "http://localhost:8000",
    auth: Optional[DataPlugAuth] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.api_url = api_url.rstrip("/")
    self.auth = auth or DataPlugAuth(self.api_url)
    self.transport = transport

  def _client(self, timeout: float = 10.0) -> httpx.AsyncClient:
    return httpx.AsyncClient(
      base_url=self.api_url,
      timeout=timeout,
      transport=self.transport,
      headers=self.auth.get_auth_headers(),
    )

  def _report_error(self, response: httpx.Response, action: str) -> None:
    try:
      detail = response.json().get("error", response.text)
    except ValueError:
      detail = response.text
    console.print(f"[red]Failed to {action}: {response.status_code} {detail}[/]")

  async def search(self, term: str = "") -> list[dict[str, Any]]:
    """Search the directory and print matching streams."""
    async with self._client() as client:
      response = await client.get("/api/search", params={"q": term})
      count_response = await client.get("/api/streams/count")

    if response.status_code != 200:
      self._report_error(response, "search")
      return []

    results = response.json().get("results", [])
    total = count_response.json().get("count") if count_response.status_code == 200 else None

    if not results:
      console.print("[yellow]No streams found[/]")
      return []

    title = f"Streams matching '{term}'" if term else "Streams"
    if total is not None:
      title += f" ({total} cataloged)"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Endpoint", style="green")
    table.add_column("Tags", style="yellow")

    for stream in results:
      table.add_row(
        str(stream.get("id")),
        stream.get("name", ""),
        stream.get("endpoint", ""),
        ", ".join(stream.get("tags") or []),
      )

    console.print(table)
    return results

  async def ping(self, endpoint: str) -> dict[str, Any]:
    """Measure endpoint latency through the API."""
    async with self._client(timeout=15.0) as client:
      response = await client.get("/api/ping", params={"endpoint": endpoint})

    result = response.json()
    if response.status_code != 200:
      self._report_error(response, "ping")
    elif result.get("error"):
      latency = result.get("latency")
      suffix = f" after {latency} ms" if latency is not None else ""
      console.print(f"[red]✗ {endpoint}: {result['error']}{suffix}[/]")
    else:
      console.print(f"[green]✓ {endpoint}: {result['latency']} ms[/]")
    return result

  async def preview(self, endpoint: str) -> dict[str, Any]:
    """Show the first message an endpoint sends."""
    async with self._client(timeout=15.0) as client:
      response = await client.get("/api/preview", params={"endpoint": endpoint})

    if response.status_code != 200:
      self._report_error(response, "preview")
      return {}

    result = response.json()
    style = {"message": "green", "connected": "yellow"}.get(result.get("status"), "red")
    console.print(Panel(
      result.get("message") or "",
      title=f"[bold]{endpoint}[/]",
      subtitle=f"{result.get('status')} | {result.get('latency_ms')} ms",
      border_style=style,
    ))
    return result

  async def snippet(self, stream_id: str, kind: str = "node") -> Optional[str]:
    """Print starter code for a stream and record the click."""
    async with self._client() as client:
      response = await client.get(f"/api/streams/{stream_id}/snippet", params={"type": kind})
      if response.status_code != 200:
        self._report_error(response, "fetch snippet")
        return None

      code = response.json()["code"]
      console.print(Syntax(code, SNIPPET_LEXERS.get(kind, "text"), theme="monokai"))

      # Usage tracking is best-effort and never blocks the snippet.
      try:
        click = await client.post("/api/click", json={"id": stream_id, "type": kind})
        if click.status_code != 200:
          console.print(f"[dim]Click tracking failed: {click.status_code}[/]")
      except httpx.HTTPError as e:
        console.print(f"[dim]Click tracking error: {e}[/]")

    return code

  async def add(
    self,
    name: str,
    endpoint: str,
    description: str,
    tags: Optional[str] = None,
  ) -> Optional[dict[str, Any]]:
    """Submit a new stream to the directory."""
    async with self._client() as client:
      response = await client.post("/api/add-stream", json={
        "name": name,
        "endpoint": endpoint,
        "description": description,
        "tags": tags,
      })

    if response.status_code != 200:
      self._report_error(response, "add stream")
      return None

    stream = response.json()["data"]
    console.print(f"[green]✅ Added stream {stream.get('id')}: {stream.get('name')}[/]")
    return stream

  async def users(self) -> list[dict[str, Any]]:
    """List registered accounts (admin)."""
    async with self._client() as client:
      response = await client.get("/api/admin/users")

    if response.status_code != 200:
      self._report_error(response, "list users")
      return []

    users = response.json().get("users", [])
    table = Table(title=f"Registered users ({len(users)})", show_header=True, header_style="bold cyan")
    table.add_column("Email", style="white")
    table.add_column("Created At", style="green")
    table.add_column("ID", style="dim")
    for user in sorted(users, key=lambda u: u.get("created_at") or "", reverse=True):
      table.add_row(user.get("email", ""), str(user.get("created_at", "")), user.get("id", ""))
    console.print(table)
    return users

  async def stats(self) -> list[dict[str, Any]]:
    """Show per-stream usage totals (admin)."""
    async with self._client() as client:
      response = await client.get("/api/admin/streams")

    if response.status_code != 200:
      self._report_error(response, "load stream stats")
      return []

    streams = response.json().get("streams", [])
    table = Table(title="Stream usage", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Node.js", justify="right")
    table.add_column("Python", justify="right")
    table.add_column("Total", justify="right", style="bold green")
    for s in streams:
      table.add_row(
        str(s["id"]),
        s.get("name", ""),
        str(s.get("clicks_node", 0)),
        str(s.get("clicks_python", 0)),
        str(s.get("total", 0)),
      )
    console.print(table)
    return streams

  async def duplicates(self) -> dict[str, Any]:
    """Print the duplicate-detection report."""
    async with self._client() as client:
      response = await client.get("/api/check-duplicates")

    if response.status_code != 200:
      self._report_error(response, "check duplicates")
      return {}

    report = response.json()
    if not report.get("has_duplicates"):
      console.print(f"[green]No duplicates among {report.get('total', 0)} streams[/]")
      return report

    for title, key in (
      ("Same name", "duplicates_by_name"),
      ("Same endpoint", "duplicates_by_endpoint"),
      ("Same name and endpoint", "duplicates_exact"),
    ):
      groups = report.get(key) or []
      if not groups:
        continue
      console.print(f"\n[bold yellow]{title}[/] ({len(groups)} group(s))")
      for group in groups:
        ids = ", ".join(str(s.get("id")) for s in group.get("streams", []))
        label = group.get("name") or group.get("endpoint")
        console.print(f"  {label} x{group.get('count')}: [dim]{ids}[/]")
    return report

  async def check(self) -> dict[str, Any]:
    """Probe every cataloged endpoint (admin)."""
    console.print("[dim]Testing every stream endpoint, this can take a while...[/]")
    async with self._client(timeout=None) as client:
      response = await client.get("/api/admin/test-streams")

    if response.status_code != 200:
      self._report_error(response, "test streams")
      return {}

    payload = response.json()
    table = Table(
      title=f"Endpoint check: {payload.get('works', 0)} working, {payload.get('broken', 0)} broken",
      show_header=True,
      header_style="bold cyan",
    )
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Error", style="dim")
    for r in payload.get("results", []):
      status = "[green]works[/]" if r["status"] == "works" else "[red]broken[/]"
      latency = f"{r['latency_ms']} ms" if r.get("latency_ms") is not None else "-"
      table.add_row(str(r["id"]), r.get("name", ""), status, latency, r.get("error") or "")
    console.print(table)
    return payload


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(description="DataPlug CLI - real-time stream directory")
  parser.add_argument("--api", default="http://localhost:8000", help="DataPlug API URL")
  sub = parser.add_subparsers(dest="command", required=True)

  search = sub.add_parser("search", help="Search streams by name, description or tag")
  search.add_argument("term", nargs="?", default="")

  ping = sub.add_parser("ping", help="Measure endpoint latency")
  ping.add_argument("endpoint")

  preview = sub.add_parser("preview", help="Show the first message from an endpoint")
  preview.add_argument("endpoint")

  snippet = sub.add_parser("snippet", help="Print starter client code for a stream")
  snippet.add_argument("stream_id")
  snippet.add_argument("--type", dest="kind", choices=["node", "python", "vibe"], default="node")

  add = sub.add_parser("add", help="Submit a new stream")
  add.add_argument("--name", required=True)
  add.add_argument("--endpoint", required=True)
  add.add_argument("--description", required=True)
  add.add_argument("--tags", help="Comma-separated tags")

  login = sub.add_parser("login", help="Store a session token from the web sign-in")
  login.add_argument("--token", help="Session token (prompted when omitted)")

  sub.add_parser("logout", help="Forget the stored session token")
  sub.add_parser("users", help="List registered users (admin)")
  sub.add_parser("stats", help="Per-stream usage totals (admin)")
  sub.add_parser("duplicates", help="Report duplicate catalog entries")
  sub.add_parser("check", help="Test every cataloged endpoint (admin)")
  return parser


async def run(args: argparse.Namespace) -> None:
  cli = DataPlugCLI(api_url=args.api)

  if args.command == "search":
    await cli.search(args.term)
  elif args.command == "ping":
    await cli.ping(args.endpoint)
  elif args.command == "preview":
    await cli.preview(args.endpoint)
  elif args.command == "snippet":
    await cli.snippet(args.stream_id, args.kind)
  elif args.command == "add":
    await cli.add(args.name, args.endpoint, args.description, args.tags)
  elif args.command == "login":
    token = args.token or await asyncio.to_thread(Prompt.ask, "[bold green]Paste your session token[/]")
    await cli.auth.login(token)
  elif args.command == "logout":
    cli.auth.logout()
  elif args.command == "users":
    await cli.users()
  elif args.command == "stats":
    await cli.stats()
  elif args.command == "duplicates":
    await cli.duplicates()
  elif args.command == "check":
    await cli.check()


def main() -> None:
  """Console script entry point."""
  args = build_parser().parse_args()
  try:
    asyncio.run(run(args))
  except httpx.ConnectError:
    console.print(f"[red]❌ Cannot connect to DataPlug API at {args.api}[/]")
  except KeyboardInterrupt:
    console.print("\n[yellow]Interrupted[/]")


if __name__ == "__main__":
  main()
