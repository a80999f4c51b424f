# Locking for the booking critical section: "read availability, then write the booking".
# Two layers: a best-effort Redis lock across processes, and the authoritative row lock
# inside the database transaction.
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator
from uuid import uuid4

from sqlalchemy.orm import Session

from . import models
from .db import apply_lock_timeout, unit_of_work
from .redis_client import get_redis
from .settings import get_settings

logger = logging.getLogger("nestly.locks")

LOCK_POLL_SECONDS = 0.02

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def listing_lock_key(listing_id: int) -> str:
    return f"lock:booking:listing:{listing_id}"


@contextmanager
def redis_try_lock(key: str, ttl_ms: int = 5000, wait_ms: int = 0) -> Iterator[bool]:
    """
    Best-effort distributed lock implemented with Redis SET NX PX.

    - Retries SET NX every LOCK_POLL_SECONDS for up to wait_ms while another process holds the key.
    - True when the lock is acquired, or when Redis is unavailable (fail-open).
    - False when the key is still held after wait_ms.
    - Unlock uses a token-checked Lua script so we never release someone else's lock.
    """
    r = get_redis()
    if r is None:
        yield True
        return

    token = uuid4().hex
    deadline = time.monotonic() + wait_ms / 1000.0
    acquired = False
    try:
        while True:
            acquired = bool(r.set(key, token, nx=True, px=ttl_ms))
            if acquired or time.monotonic() >= deadline:
                break
            time.sleep(LOCK_POLL_SECONDS)
    except Exception as exc:
        # Fail open on Redis errors; the database row lock still guards the section
        logger.warning("redis_try_lock error (key=%s): %s", key, exc)
        yield True
        return
    try:
        yield acquired
    finally:
        if acquired:
            try:
                r.eval(_RELEASE_SCRIPT, 1, key, token)
            except Exception as exc:
                # The lock will expire by TTL
                logger.debug("redis_try_lock release error (key=%s): %s", key, exc)


def lock_listing_row(db: Session, listing_id: int) -> None:
    """
    Serialize writers for one listing inside the current transaction.

    - Postgres/MySQL: SELECT ... FOR UPDATE on the listing row, bounded by the lock timeout.
    - SQLite: the transaction already started with BEGIN IMMEDIATE, which holds the
      database write lock, so no row lock is issued.
    """
    if db.get_bind().dialect.name == "sqlite":
        return
    apply_lock_timeout(db)
    db.query(models.Listing.id).filter(models.Listing.id == listing_id).with_for_update().first()


@contextmanager
def listing_transaction(db: Session, listing_id: int) -> Iterator[Session]:
    """
    Atomic scope for availability-dependent writes on one listing.

        with listing_transaction(db, listing_id):
            if not is_available(db, listing_id, check_in, check_out):
                raise ConflictError(...)
            db.add(booking)

    The Redis lock only thins out contention before the database is touched. A worker
    waits at most one lock TTL for it and then proceeds anyway; the row lock decides,
    so losers of an overlapping race see ConflictError from the availability check.
    """
    ttl_ms = get_settings().booking_lock_ttl_ms
    key = listing_lock_key(listing_id)
    with redis_try_lock(key, ttl_ms=ttl_ms, wait_ms=ttl_ms) as locked:
        if not locked:
            logger.warning("listing lock still held after %sms, continuing under row lock (key=%s)", ttl_ms, key)
        with unit_of_work(db):
            lock_listing_row(db, listing_id)
            yield db
