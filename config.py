"""Environment-driven configuration, read once at process start."""
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv() # Searches current dir and parents for .env

DEFAULT_ORIGINS = ["http://localhost:10000", "http://localhost:1000"]


def _split_csv(value):
    """Splits a comma separated env value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "10001"))

MONGODB_URI = os.getenv("MONGODB_URI")
DB_NAME = os.getenv("DB_NAME", "calendar")

FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", DEFAULT_ORIGINS[0])
CORS_ORIGINS = _split_csv(os.getenv("CORS_ORIGINS")) or list(DEFAULT_ORIGINS)
if FRONTEND_ORIGIN not in CORS_ORIGINS:
    CORS_ORIGINS.append(FRONTEND_ORIGIN)

# Empty means labels are free text
EXPENSE_CATEGORIES = frozenset(_split_csv(os.getenv("EXPENSE_CATEGORIES")))

RATE_LIMIT = os.getenv("RATE_LIMIT", "120/minute")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "false").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Used by utils.api_client when no base URL is given
API_BASE_URL = os.getenv("API_BASE_URL", f"http://localhost:{PORT}")
