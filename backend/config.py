"""
Runtime settings for the Robo Advisor backend.

Everything is read from the environment (a local .env file is loaded first),
so provider credentials never leave the server.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------

ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-6")
ASSISTANT_MAX_TOKENS = int(os.getenv("ASSISTANT_MAX_TOKENS", "2048"))

# Minimum spacing between UI-visible updates while a reply streams in
STREAM_UPDATE_INTERVAL = float(os.getenv("STREAM_UPDATE_INTERVAL", "0.05"))

# Fall back to case-insensitive substring matching on company names when a
# !TICKER, Name! token does not match the universe exactly
FUZZY_COMPANY_MATCH = _flag("FUZZY_COMPANY_MATCH", "true")

# Assistant sessions idle this long (seconds) are dropped from memory
SESSION_IDLE_TTL = float(os.getenv("SESSION_IDLE_TTL", "3600"))

# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------

ALPHA_VANTAGE_API_KEY = os.getenv("ALPHA_VANTAGE_API_KEY", "")
ALPHA_VANTAGE_URL = os.getenv("ALPHA_VANTAGE_URL", "https://www.alphavantage.co/query")

QUOTE_BATCH_SIZE = int(os.getenv("QUOTE_BATCH_SIZE", "5"))
QUOTE_BATCH_DELAY = float(os.getenv("QUOTE_BATCH_DELAY", "1.0"))
QUOTE_CACHE_TTL = float(os.getenv("QUOTE_CACHE_TTL", "60"))
FUNDAMENTALS_CACHE_TTL = float(os.getenv("FUNDAMENTALS_CACHE_TTL", "300"))

# ---------------------------------------------------------------------------
# Storage / web
# ---------------------------------------------------------------------------

_raw_url = os.getenv("DATABASE_URL", "sqlite:///./roboadvisor.db")
DATABASE_URL = _raw_url.replace("sqlite:///", "sqlite+aiosqlite:///")

STORAGE_DIR = Path(os.getenv("STORAGE_DIR", "./storage"))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
