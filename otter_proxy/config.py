"""Configuration constants, .env loading, and logging setup.

WHY: Centralizes every configurable value (remote endpoints, timeouts,
proxy limits, session lifetime) so they are easy to find and override
without touching the client or server code.

HOW: python-dotenv loads the .env file on import. Constants are read from
the environment with sensible defaults. load_credentials() gives a clear
error when the Otter credentials are missing.

RULES:
- Credentials are loaded from the environment, never hardcoded
- All defaults can be overridden via environment variables
- Base URLs always end with a slash (paths are appended directly)
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()


def _with_slash(url: str) -> str:
    return url if url.endswith("/") else url + "/"


# ---------------------------------------------------------------------------
# Remote service
# ---------------------------------------------------------------------------

OTTER_API_BASE_URL = _with_slash(
    os.getenv("OTTER_API_BASE_URL", "https://otter.ai/forward/api/v1/")
)
OTTER_S3_BASE_URL = _with_slash(
    os.getenv("OTTER_S3_BASE_URL", "https://s3.us-west-2.amazonaws.com/")
)
OTTER_UPLOAD_BUCKET = os.getenv("OTTER_UPLOAD_BUCKET", "speech-upload-prod")
OTTER_WEB_ORIGIN = "https://otter.ai"

REQUEST_TIMEOUT_S = float(os.getenv("OTTER_REQUEST_TIMEOUT", "30"))

# ---------------------------------------------------------------------------
# HTTP proxy
# ---------------------------------------------------------------------------

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"

ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()
]
"""Explicit CORS origins. Empty means any origin is reflected."""

RATE_LIMIT_WINDOW_S = 15 * 60
API_RATE_LIMIT = int(os.getenv("API_RATE_LIMIT", "100"))
AUTH_RATE_LIMIT = int(os.getenv("AUTH_RATE_LIMIT", "5"))
MAX_BODY_BYTES = 10 * 1024 * 1024
MAX_CREDENTIAL_LENGTH = 200

SESSION_TIMEOUT_S = int(os.getenv("SESSION_TIMEOUT_SECONDS", str(24 * 60 * 60)))
SESSION_CLEANUP_INTERVAL_S = 60 * 60

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def load_credentials() -> tuple[str, str]:
    """Load the Otter username and password from the environment.

    RULES:
    - Raises ValueError if either value is missing or empty
    - Never returns a default/placeholder value
    """
    username = os.getenv("OTTER_USERNAME", "").strip()
    password = os.getenv("OTTER_PASSWORD", "")
    if not username or not password:
        raise ValueError(
            "Otter credentials not configured. "
            "Add OTTER_USERNAME and OTTER_PASSWORD to the .env file."
        )
    return username, password


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the CLI and the server entry point."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
