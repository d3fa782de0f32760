"""
Session storage for the DataPlug CLI.
Sign-in happens in the browser (email link); the CLI keeps the pasted
session token so admin commands can send it as a bearer credential.
"""
import json
import os
from pathlib import Path
from typing import Optional

import httpx
from rich.console import Console

console = Console()

# Local token storage
AUTH_DIR = Path.home() / ".dataplug"
TOKEN_FILE = AUTH_DIR / "auth.json"


class DataPlugAuth:
  """Handles the stored session token for the CLI."""

  def __init__(self, api_url: str, token_file: Path = TOKEN_FILE):
    self.api_url = api_url.rstrip("/")
    self.token_file = token_file
    self.token: Optional[str] = None
    self.user_email: Optional[str] = None

    self.load_token()

  def load_token(self) -> bool:
    """Load saved session token."""
    if not self.token_file.exists():
      return False

    try:
      with open(self.token_file, "r") as f:
        data = json.load(f)
    except (OSError, ValueError) as e:
      console.print(f"[dim red]Error loading token: {e}[/]")
      return False

    if not isinstance(data, dict):
      console.print(f"[dim red]Ignoring malformed token file {self.token_file}[/]")
      return False

    self.token = data.get("access_token")
    self.user_email = data.get("email")
    return bool(self.token)

  def save_token(self, access_token: str, email: str) -> None:
    """Save session token locally (user read/write only)."""
    self.token_file.parent.mkdir(parents=True, exist_ok=True)
    with open(self.token_file, "w") as f:
      json.dump({"access_token": access_token, "email": email}, f, indent=2)
    os.chmod(self.token_file, 0o600)

    self.token = access_token
    self.user_email = email

  def clear_token(self) -> None:
    """Forget the stored session token."""
    if self.token_file.exists():
      self.token_file.unlink()

    self.token = None
    self.user_email = None

  def is_authenticated(self) -> bool:
    return bool(self.token)

  def get_auth_headers(self) -> dict[str, str]:
    """Authorization header for API requests."""
    if self.token:
      return {"Authorization": f"Bearer {self.token}"}
    return {}

  async def login(self, token: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bool:
    """
    Verify a pasted session token against the API and store it.

    Returns:
      True if the API accepted the token
    """
    token = token.strip()
    if not token:
      console.print("[red]No token provided[/]")
      return False

    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
      response = await client.get(
        f"{self.api_url}/api/session",
        headers={"Authorization": f"Bearer {token}"},
      )

    if response.status_code != 200:
      console.print(f"[red]Invalid token: {response.status_code}[/]")
      return False

    session = response.json()
    email = session.get("email") or "unknown"
    self.save_token(token, email)

    console.print(f"\n[green]✓ Logged in as {email}[/]")
    if not session.get("is_admin"):
      console.print("[yellow]This account is not on the admin allow-list[/]")
    return True

  def logout(self) -> None:
    self.clear_token()
    console.print("[green]✓ Logged out successfully[/]")
