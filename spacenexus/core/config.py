"""
Core Configuration
Central source of truth for application settings and constants.

Values are read from the environment (optionally seeded from a .env file).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# --- Database ---
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite:///{BASE_DIR / 'data' / 'spacenexus.db'}"
)

# --- Redis (rate limiting). Unset means the limiter fails open. ---
REDIS_URL = os.getenv("REDIS_URL")

# --- HTTP ---
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN")

# --- Webhooks ---
WEBHOOK_TIMEOUT_SECONDS = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "10"))
WEBHOOK_MAX_FAILURES = int(os.getenv("WEBHOOK_MAX_FAILURES", "10"))

# --- Offline sync queue ---
SYNC_MAX_RETRIES = int(os.getenv("SYNC_MAX_RETRIES", "3"))

# --- Circuit breakers ---
CIRCUIT_FAIL_MAX = int(os.getenv("CIRCUIT_FAIL_MAX", "5"))
CIRCUIT_RESET_TIMEOUT = float(os.getenv("CIRCUIT_RESET_TIMEOUT", "60"))

# --- Per-IP rate limits (requests, window seconds) ---
RATE_LIMIT_DEFAULT = int(os.getenv("RATE_LIMIT_DEFAULT", "60"))
RATE_LIMIT_DEFAULT_WINDOW = int(os.getenv("RATE_LIMIT_DEFAULT_WINDOW", "60"))
RATE_LIMIT_ADMIN = int(os.getenv("RATE_LIMIT_ADMIN", "30"))
RATE_LIMIT_ADMIN_WINDOW = int(os.getenv("RATE_LIMIT_ADMIN_WINDOW", "60"))

# --- Upstream fetches ---
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))
UPSTREAM_USER_AGENT = "SpaceNexus/1.0 (+https://spacenexus.us)"
NASA_API_KEY = os.getenv("NASA_API_KEY", "DEMO_KEY")
