"""Application configuration read from the environment (and an optional .env)."""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("booklog")


def _get_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive {name}={raw!r}, using {default}")
        return default
    return value


# In test mode every collection lives in memory and nothing touches disk
TEST_MODE = os.environ.get("TEST_MODE", "0") == "1"

DB_PATH = os.environ.get(
    "BOOKLOG_DB_PATH", os.path.join(os.getcwd(), ".data", "booklog.db")
)

OPEN_LIBRARY_URL = os.environ.get("OPEN_LIBRARY_URL", "https://openlibrary.org")
OPEN_LIBRARY_COVERS_URL = os.environ.get(
    "OPEN_LIBRARY_COVERS_URL", "https://covers.openlibrary.org"
)

# Upper bound in seconds for any single provider call
PROVIDER_TIMEOUT = _get_float("PROVIDER_TIMEOUT", 10.0)

# Header set by the authenticating proxy in front of the app
AUTH_USER_HEADER = os.environ.get("AUTH_USER_HEADER", "X-Authenticated-User")

SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

RECENT_LIMIT = 5
SEARCH_LIMIT = 10
REVIEW_MAX_LENGTH = 5000
