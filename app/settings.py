# Runtime configuration read from environment variables.
# Values are loaded once per process; tests override via FastAPI dependency overrides or env vars set before import.
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Optional


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _to_decimal(val: Optional[str], default: str) -> Decimal:
    try:
        return Decimal(val if val is not None else default)
    except ArithmeticError:
        return Decimal(default)


@dataclass(frozen=True)
class Settings:
    """Engine-wide knobs.

    - commission_rate: platform cut in percent, passed explicitly to the commission deriver
    - db_timeout_seconds: upper bound for lock waits and connection checkout
    - max_stay_nights: longest bookable stay, validated before pricing
    - booking_lock_ttl_ms: TTL for the Redis per-listing lock
    """
    database_url: str
    db_timeout_seconds: int
    commission_rate: Decimal
    max_stay_nights: int
    booking_lock_ttl_ms: int


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./data.db"),
        db_timeout_seconds=_to_int(os.getenv("DB_TIMEOUT_SECONDS"), 10),
        commission_rate=_to_decimal(os.getenv("COMMISSION_RATE"), "15"),
        max_stay_nights=_to_int(os.getenv("MAX_STAY_NIGHTS"), 365),
        booking_lock_ttl_ms=_to_int(os.getenv("BOOKING_LOCK_TTL_MS"), 5000),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """FastAPI dependency and module-level accessor for the cached settings."""
    return load_settings()
