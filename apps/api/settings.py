"""
Environment configuration for the DataPlug API.

Every value is read once at import time; services take them as constructor
defaults so tests can pass their own.
"""
import os


def _csv(value: str) -> list[str]:
  return [item.strip() for item in value.split(",") if item.strip()]


# Supabase project
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

STREAMS_TABLE = os.getenv("STREAMS_TABLE", "streams")
CLICK_EVENTS_TABLE = os.getenv("CLICK_EVENTS_TABLE", "click_events")

# Admin allow-list (exact, case-sensitive emails)
ADMIN_EMAILS = _csv(os.getenv("ADMIN_EMAILS", ""))

# Directory search
SEARCH_RESULT_LIMIT = int(os.getenv("SEARCH_RESULT_LIMIT", "6"))
SEARCH_CANDIDATE_LIMIT = int(os.getenv("SEARCH_CANDIDATE_LIMIT", "50"))

# Connectivity checks
PROBE_TIMEOUT_SEC = float(os.getenv("PROBE_TIMEOUT_SEC", "3.0"))
PREVIEW_WINDOW_SEC = float(os.getenv("PREVIEW_WINDOW_SEC", "5.0"))
CHECK_TIMEOUT_SEC = float(os.getenv("CHECK_TIMEOUT_SEC", "5.0"))
CHECK_DELAY_SEC = float(os.getenv("CHECK_DELAY_SEC", "0.1"))

# Usage counters
COUNTER_RPC = os.getenv("COUNTER_RPC") or None
COUNTER_MAX_ATTEMPTS = int(os.getenv("COUNTER_MAX_ATTEMPTS", "5"))
TRACK_CLICK_EVENTS = os.getenv("TRACK_CLICK_EVENTS", "true").lower() in ("1", "true", "yes")

# Server
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))
