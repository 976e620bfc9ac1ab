"""
Configuration for the Group Quote Engine.

All settings come from environment variables (a local .env file is loaded
first when present).
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

from constants import (
    DEFAULT_QUOTE_MAX_WORKERS,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_POLL_TIMEOUT_S,
)

# Load environment variables
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return int(raw)


@dataclass
class IdeonConfig:
    """Settings for the external affordability service."""
    api_key: str = ""
    base_url: str = "https://api.ideonapi.com"
    min_delay_ms: int = 700        # ~85 req/min, under the shared 100 rpm limit
    max_retries: int = 3
    initial_backoff_ms: int = 500
    max_backoff_ms: int = 8000
    request_timeout_s: float = 15.0
    poll_timeout_s: float = 60.0
    poll_interval_s: float = 1.5

    @classmethod
    def from_environment(cls) -> "IdeonConfig":
        return cls(
            api_key=os.getenv("IDEON_API_KEY") or os.getenv("VERICRED_API_KEY", ""),
            base_url=os.getenv("IDEON_BASE_URL", "https://api.ideonapi.com").rstrip('/'),
            min_delay_ms=_env_int("IDEON_MIN_DELAY_MS", 700),
            max_retries=_env_int("IDEON_MAX_RETRIES", 3),
            initial_backoff_ms=_env_int("IDEON_INITIAL_BACKOFF_MS", 500),
            poll_timeout_s=_env_float("IDEON_POLL_TIMEOUT_S", 60.0),
            poll_interval_s=_env_float("IDEON_POLL_INTERVAL_S", 1.5),
        )

    def validate(self) -> Tuple[bool, str]:
        """Validate configuration. Returns (is_valid, error_message)."""
        if not self.api_key:
            return False, "IDEON_API_KEY environment variable is not set"
        return True, ""


@dataclass
class AppConfig:
    """Process-wide settings for the API server and the quotes UI."""
    # Database
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "group_quotes"
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_sslmode: Optional[str] = None

    # Quote runs
    quote_max_workers: int = DEFAULT_QUOTE_MAX_WORKERS

    # Quotes UI -> API
    quotes_api_url: str = "http://localhost:8000"
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    poll_timeout_s: float = DEFAULT_POLL_TIMEOUT_S

    log_level: str = "INFO"

    @classmethod
    def from_environment(cls) -> "AppConfig":
        """Load configuration from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            db_host=os.getenv("DB_HOST", "localhost"),
            db_port=_env_int("DB_PORT", 5432),
            db_name=os.getenv("DB_NAME", "group_quotes"),
            db_user=os.getenv("DB_USER") or None,
            db_password=os.getenv("DB_PASSWORD") or None,
            db_sslmode=os.getenv("DB_SSLMODE", "prefer"),
            quote_max_workers=_env_int("QUOTE_MAX_WORKERS", DEFAULT_QUOTE_MAX_WORKERS),
            quotes_api_url=os.getenv("QUOTES_API_URL", "http://localhost:8000").rstrip('/'),
            poll_interval_s=_env_float("QUOTES_POLL_INTERVAL_S", DEFAULT_POLL_INTERVAL_S),
            poll_timeout_s=_env_float("QUOTES_POLL_TIMEOUT_S", DEFAULT_POLL_TIMEOUT_S),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
