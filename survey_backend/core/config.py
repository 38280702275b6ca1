# survey_backend/core/config.py
import logging
import os
from typing import List, Optional

from dotenv import load_dotenv

# Load the .env file from the project root. Fall back to the normal dotenv
# lookup if it is not there.
PROJECT_ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
dotenv_path = os.path.join(PROJECT_ROOT_DIR, ".env")
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)
else:
    load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL")
SQL_ECHO = _env_bool("SQL_ECHO", False)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:8000")

# Idempotency tokens shorter than this are rejected before anything else.
MIN_IDEMPOTENCY_TOKEN_LENGTH = int(os.getenv("MIN_IDEMPOTENCY_TOKEN_LENGTH", "10"))

FALLBACK_ORIGINS = [
    "http://127.0.0.1:5173",
    "http://localhost:5173",
]


def get_allowed_origins() -> List[str]:
    env_origins = os.getenv("BACKEND_ALLOWED_ORIGINS")
    if env_origins:
        origins = [origin.strip() for origin in env_origins.split(",") if origin.strip()]
        if origins:
            return origins
    return FALLBACK_ORIGINS


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the application process."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
