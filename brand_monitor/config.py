"""
Runtime configuration for the brand monitoring service.

Values come from environment variables; a ``.env`` file in the working
directory is loaded first for local development.

Environment Variables:
    REGISTRY_SEARCH_URL: Base URL of the trademark search service.
    REGISTRY_STATUS_URL: Base URL of the case-status (TSDR) service.
    REGISTRY_USER_AGENT: User-Agent sent with registry requests.
    REGISTRY_RATE_LIMIT_MS: Minimum delay between registry calls (default 1000).
    REGISTRY_TIMEOUT_SECONDS: Timeout for one registry call (default 10).
    REGISTRY_FALLBACK: "empty" (default) or "synthetic" results on registry failure.
    MONITORING_LOOKBACK_DAYS: Window for first-run new-application searches (default 30).
    DEDUPLICATE_ALERTS: Skip alerts already stored for the same conflict (default false).
    MONITORING_POLL_SECONDS: Run due checks in the background at this interval (unset: off).
    MONITORING_STALE_CHECK_SECONDS: A check still running after this long is retried (default 900).
    MONITORING_ITEMS_TABLE / MONITORING_ALERTS_TABLE: Store collection names.
    SUPABASE_URL / SUPABASE_KEY: Supabase project credentials for persistence.
"""

import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Configuration shared by the registry client, detectors and scheduler."""

    registry_search_url: str = "https://tmsearch.uspto.gov/search/v1.0"
    registry_status_url: str = "https://tsdrapi.uspto.gov/ts/cd"
    registry_user_agent: str = "IPTracker-BrandMonitoring/1.0"
    rate_limit_delay_ms: int = Field(default=1000, ge=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    registry_fallback: Literal["empty", "synthetic"] = "empty"

    lookback_days: int = Field(default=30, ge=1)
    deduplicate_alerts: bool = False
    poll_interval_seconds: Optional[float] = Field(default=None, gt=0)
    stale_check_seconds: float = Field(default=900.0, gt=0)

    items_table: str = "monitoring_items"
    alerts_table: str = "monitoring_alerts"

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        values = {
            "registry_search_url": os.getenv("REGISTRY_SEARCH_URL"),
            "registry_status_url": os.getenv("REGISTRY_STATUS_URL"),
            "registry_user_agent": os.getenv("REGISTRY_USER_AGENT"),
            "rate_limit_delay_ms": os.getenv("REGISTRY_RATE_LIMIT_MS"),
            "request_timeout_seconds": os.getenv("REGISTRY_TIMEOUT_SECONDS"),
            "registry_fallback": os.getenv("REGISTRY_FALLBACK"),
            "lookback_days": os.getenv("MONITORING_LOOKBACK_DAYS"),
            "poll_interval_seconds": os.getenv("MONITORING_POLL_SECONDS"),
            "stale_check_seconds": os.getenv("MONITORING_STALE_CHECK_SECONDS"),
            "items_table": os.getenv("MONITORING_ITEMS_TABLE"),
            "alerts_table": os.getenv("MONITORING_ALERTS_TABLE"),
            "supabase_url": os.getenv("SUPABASE_URL"),
            "supabase_key": os.getenv("SUPABASE_KEY"),
        }
        # Unset variables fall back to the field defaults
        kwargs = {key: value for key, value in values.items() if value not in (None, "")}
        kwargs["deduplicate_alerts"] = _env_bool("DEDUPLICATE_ALERTS", False)
        return cls(**kwargs)

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)
