"""Configuration management."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

# Bounds enforced by the backend for notification_poll_interval_seconds
DEFAULT_POLL_INTERVAL_SECONDS = 30
MIN_POLL_INTERVAL_SECONDS = 5
MAX_POLL_INTERVAL_SECONDS = 300

ROLES = ("student", "teacher", "superadmin")


@dataclass
class BackendConfig:
    """LMS REST backend configuration."""
    base_url: str              # e.g. "http://localhost:8080/api"
    auth_token: str            # value of the auth_token cookie (JWT)
    fetch_timeout_seconds: float = 10.0


@dataclass
class IdentityConfig:
    """Optional overrides for the identity normally read from the JWT."""
    user_id: Optional[str] = None
    role: Optional[str] = None
    jwt_secret: Optional[str] = None  # verify the token when set


@dataclass
class StoreConfig:
    """Local state persistence configuration."""
    backend: str               # "sqlite", "memory" or "dynamodb"
    db_path: str
    dynamodb_table: str


@dataclass
class PollConfig:
    """Poll scheduler configuration."""
    interval_seconds: Optional[int]  # None means "ask the backend"
    preference_check_seconds: float
    feed_cap: int
    max_workers: int
    fetch_budget_seconds: float  # bound on all fetches of one cycle


@dataclass
class AppConfig:
    """Complete application configuration."""
    backend: BackendConfig
    identity: IdentityConfig
    store: StoreConfig
    poll: PollConfig


def clamp_poll_interval(seconds) -> int:
    """Clamp a poll interval to the range the backend accepts."""
    try:
        value = int(seconds)
    except (TypeError, ValueError):
        return DEFAULT_POLL_INTERVAL_SECONDS
    if value < MIN_POLL_INTERVAL_SECONDS:
        return MIN_POLL_INTERVAL_SECONDS
    if value > MAX_POLL_INTERVAL_SECONDS:
        return MAX_POLL_INTERVAL_SECONDS
    return value


def load_config() -> AppConfig:
    """
    Load configuration from environment variables (and a .env file if present).

    Raises:
        ConfigError: If required configuration values are missing or invalid.
    """
    load_dotenv()

    # Backend
    base_url = os.getenv("BACKEND_BASE_URL", "http://localhost:8080/api").rstrip("/")
    auth_token = os.getenv("AUTH_TOKEN")
    fetch_timeout = float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))

    # Identity overrides
    user_id = os.getenv("USER_ID") or None
    role = os.getenv("USER_ROLE") or None
    jwt_secret = os.getenv("JWT_SECRET") or None

    # Store
    store_backend = os.getenv("STORE_BACKEND", "sqlite").lower()
    db_path = os.getenv("DB_PATH", "notification_state.db")
    dynamodb_table = os.getenv("DYNAMODB_TABLE_NOTIFICATION_STATE", "notification_state")

    # Polling
    interval_raw = os.getenv("POLL_INTERVAL_SECONDS")
    interval_seconds = clamp_poll_interval(interval_raw) if interval_raw else None
    preference_check_seconds = float(os.getenv("PREFERENCE_CHECK_SECONDS", "2"))
    feed_cap = int(os.getenv("FEED_CAP", "40"))
    max_workers = int(os.getenv("FETCH_MAX_WORKERS", "4"))
    fetch_budget_seconds = float(os.getenv("FETCH_BUDGET_SECONDS", "60"))

    # Validate required fields
    missing = []
    if not auth_token:
        missing.append("AUTH_TOKEN")
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    if role and role not in ROLES:
        raise ConfigError(f"USER_ROLE must be one of {', '.join(ROLES)}, got '{role}'")
    if store_backend not in ("sqlite", "memory", "dynamodb"):
        raise ConfigError(f"Unknown STORE_BACKEND '{store_backend}'")
    if feed_cap < 1:
        raise ConfigError("FEED_CAP must be at least 1")

    return AppConfig(
        backend=BackendConfig(
            base_url=base_url,
            auth_token=auth_token,
            fetch_timeout_seconds=fetch_timeout,
        ),
        identity=IdentityConfig(
            user_id=user_id,
            role=role,
            jwt_secret=jwt_secret,
        ),
        store=StoreConfig(
            backend=store_backend,
            db_path=db_path,
            dynamodb_table=dynamodb_table,
        ),
        poll=PollConfig(
            interval_seconds=interval_seconds,
            preference_check_seconds=preference_check_seconds,
            feed_cap=feed_cap,
            max_workers=max_workers,
            fetch_budget_seconds=fetch_budget_seconds,
        ),
    )
