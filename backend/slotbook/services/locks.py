# backend/slotbook/services/locks.py
"""
Serializing locks for contended write paths.

- service:{id}:bookings : check-and-write of a service's booking set
- owner:{id}:subscriptions : trial/payment activation of one owner

With Redis these locks are shared by every worker process; without it a
process-local threading.Lock per key is used.

The database lock (lock_service_row) is what makes a booking commit
atomic across processes: it is held from the conflict read to the
commit, with or without Redis.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from redis import Redis
from redis.exceptions import LockError, RedisError
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Services
from .errors import BookingValidationError, DomainError

logger = logging.getLogger(__name__)

KEY_PREFIX = "lock"

_local_locks: dict[str, threading.Lock] = {}
_local_locks_guard = threading.Lock()


def _local_lock(key: str) -> threading.Lock:
    with _local_locks_guard:
        lock = _local_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _local_locks[key] = lock
        return lock


@contextmanager
def resource_lock(
    key: str,
    redis: Redis | None = None,
    timeout: float | None = None,
    busy_error: DomainError | None = None,
) -> Iterator[None]:
    """
    Hold an exclusive lock on `key` for the duration of the block.

    Raises busy_error (or a generic DomainError) when the lock cannot be
    acquired within `timeout` seconds.
    """
    timeout = timeout if timeout is not None else settings.service_lock_timeout_seconds
    busy_error = busy_error or DomainError("Resource is busy, please retry", kind="busy")

    if redis is not None:
        lock = redis.lock(f"{KEY_PREFIX}:{key}", timeout=max(timeout, 1), blocking_timeout=timeout)
        try:
            acquired = lock.acquire()
        except RedisError as e:
            logger.error(f"Redis lock {key} unavailable: {e}")
            raise busy_error from e
        if not acquired:
            logger.warning(f"Lock {key} not acquired within {timeout}s")
            raise busy_error
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # Expired while held; the next holder already owns it
                logger.warning(f"Lock {key} expired before release")
        return

    lock = _local_lock(key)
    if not lock.acquire(timeout=timeout):
        logger.warning(f"Lock {key} not acquired within {timeout}s")
        raise busy_error
    try:
        yield
    finally:
        lock.release()


def service_lock(service_id: int, redis: Redis | None = None, timeout: float | None = None):
    """Serialize booking commits of one service."""
    return resource_lock(
        f"service:{service_id}:bookings",
        redis=redis,
        timeout=timeout,
        busy_error=BookingValidationError(
            "conflict", "Another booking for this service is being processed, please retry"
        ),
    )


def owner_lock(owner_id: int, redis: Redis | None = None, timeout: float | None = None):
    """Serialize subscription writes of one owner."""
    return resource_lock(f"owner:{owner_id}:subscriptions", redis=redis, timeout=timeout)


def lock_service_row(db: Session, service_id: int) -> None:
    """
    Take the database write lock guarding a service's bookings.

    Must open the session's transaction: nothing may have been written
    since the last commit/rollback. The lock is released by the commit
    or rollback that ends the transaction.

    SQLite has no row locks, so the whole database is reserved with
    BEGIN IMMEDIATE; other backends lock the service row FOR UPDATE.
    Waiting past the driver's busy timeout raises OperationalError.
    """
    if db.get_bind().dialect.name == "sqlite":
        db.execute(text("BEGIN IMMEDIATE"))
        return

    db.query(Services.id).filter(Services.id == service_id).with_for_update().one()
