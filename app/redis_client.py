# Shared Redis connection for the listing lock and the rate limiter.
# Opt-in through REDIS_ENABLED; every caller treats "no client" as "run the database-only path".
import logging
import os
import threading
from typing import Optional

import redis

_logger = logging.getLogger("nestly.redis")

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}


def is_redis_enabled() -> bool:
    return os.getenv("REDIS_ENABLED", "false").strip().lower() in _TRUE_VALUES


def _timeout_seconds() -> float:
    try:
        return float(os.getenv("REDIS_TIMEOUT_SECONDS", "0.25"))
    except ValueError:
        return 0.25


class _Connection:
    """
    One lazily opened client per process.

    The first caller connects under a mutex so concurrent workers do not race to
    open several pools. A failed connect is remembered and not retried, which keeps
    request latency flat while Redis is down; restart the process to try again.
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._client: Optional[redis.Redis] = None
        self._failed = False

    @property
    def state(self) -> str:
        if not is_redis_enabled():
            return "disabled"
        if self._client is not None:
            return "connected"
        return "unavailable" if self._failed else "idle"

    def get(self) -> Optional[redis.Redis]:
        if not is_redis_enabled():
            return None
        if self._client is not None or self._failed:
            return self._client
        with self._mutex:
            if self._client is None and not self._failed:
                self._client = self._connect()
                self._failed = self._client is None
        return self._client

    @staticmethod
    def _connect() -> Optional[redis.Redis]:
        url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        timeout = _timeout_seconds()
        try:
            client = redis.Redis.from_url(
                url,
                socket_timeout=timeout,
                socket_connect_timeout=timeout,
                retry_on_timeout=False,
                health_check_interval=0,
            )
            client.ping()
        except (redis.RedisError, ValueError) as exc:
            _logger.warning("Redis unavailable at %s, continuing without it: %s", url, exc)
            return None
        _logger.info("Connected to Redis at %s", url)
        return client


_connection = _Connection()


def get_redis() -> Optional[redis.Redis]:
    """Return the shared client, or None when Redis is disabled or unreachable. Never raises."""
    return _connection.get()


def redis_state() -> str:
    """One of disabled, idle (not yet used), connected, unavailable."""
    return _connection.state
