# Redis-backed fixed-window rate limiter for auth and booking writes.
# - Per-IP counters keyed by scope: rl:v1:ip:{ip}:{scope}, expiring with the window.
# - Fail-open if Redis is unavailable, so the API remains usable in dev or outages.
import os
import logging
from typing import Callable, Dict, Literal, Optional

from fastapi import Request

from .errors import RateLimitedError
from .redis_client import get_redis, is_redis_enabled

logger = logging.getLogger("nestly.rate_limit")

Scope = Literal["login", "signup", "write"]

# scope -> (env var, default cap per window)
_SCOPE_LIMITS: Dict[str, tuple] = {
    "login": ("RATE_LIMIT_LOGIN_PER_WINDOW", 10),
    "signup": ("RATE_LIMIT_SIGNUP_PER_WINDOW", 5),
    "write": ("RATE_LIMIT_WRITE_PER_WINDOW", 30),
}


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _window_seconds() -> int:
    return _to_int(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 60)


def _limit_for_scope(scope: Scope) -> int:
    env_name, default = _SCOPE_LIMITS[scope]
    return _to_int(os.getenv(env_name), default)


def _client_ip(request: Request) -> str:
    # Connection address only; X-Forwarded-For is not trusted here
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(scope: Scope) -> Callable[[Request], None]:
    """
    FastAPI dependency factory enforcing a per-IP request cap for `scope`.

    Window and caps come from RATE_LIMIT_WINDOW_SECONDS and RATE_LIMIT_<SCOPE>_PER_WINDOW.
    Exceeding the cap raises RateLimitedError (429 with Retry-After). Redis being
    disabled or unreachable skips the check.
    """
    window = _window_seconds()
    limit = _limit_for_scope(scope)

    def _dependency(request: Request) -> None:
        if not is_redis_enabled():
            return

        r = get_redis()
        if r is None:
            return

        ip = _client_ip(request)
        key = f"rl:v1:ip:{ip}:{scope}"
        try:
            current = r.incr(key, amount=1)
            if current == 1:
                # First hit in this window starts the clock
                r.expire(key, window)
            ttl = r.ttl(key) if current > limit else None
        except Exception as exc:
            logger.warning("rate_limit.fail_open", extra={"scope": scope, "ip": ip, "error": str(exc)})
            return

        if ttl is not None:
            retry_after = ttl if isinstance(ttl, int) and ttl > 0 else window
            logger.info("rate_limit.rejected", extra={"scope": scope, "ip": ip, "limit": limit})
            raise RateLimitedError(
                "too many requests; slow down",
                retry_after=retry_after,
                details={"scope": scope, "limit": limit, "window_seconds": window, "retry_after": retry_after},
            )

    return _dependency
