"""Single-flight locks for per-tenant reconciliation runs.

Runs for one organization are mutually exclusive; different organizations
never contend. When ``REDIS_URL`` points at a Redis server the lock is held
there so that several workers share it, otherwise a process-local lock is used.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

logger = logging.getLogger(__name__)

REDIS_DISABLED_URL = "memory://"
LOCK_KEY_PREFIX = "issuelink:reconcile"
DEFAULT_LOCK_LEASE_SECONDS = 3600.0

_registry_guard = threading.Lock()
_local_locks: dict[str, threading.Lock] = {}
_redis_client = None


class ReconciliationInProgressError(RuntimeError):
    """Raised when another run already holds the tenant lock."""

    def __init__(self, org_id: UUID | str):
        super().__init__(f"Reconciliation already running for organization {org_id}")
        self.org_id = org_id


def get_redis_url() -> str | None:
    url = os.getenv("REDIS_URL")
    if not url or url.strip().lower() == REDIS_DISABLED_URL:
        return None
    return url.strip()


def _get_redis_client():
    url = get_redis_url()
    if not url:
        return None

    global _redis_client
    if _redis_client is None:
        import redis

        _redis_client = redis.Redis.from_url(
            url,
            socket_connect_timeout=2.0,
            socket_timeout=2.0,
            health_check_interval=30,
            retry_on_timeout=True,
        )
    return _redis_client


def _local_lock(key: str) -> threading.Lock:
    with _registry_guard:
        lock = _local_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _local_locks[key] = lock
        return lock


def lock_key(org_id: UUID | str) -> str:
    return f"{LOCK_KEY_PREFIX}:{org_id}"


@contextmanager
def tenant_lock(
    org_id: UUID | str,
    *,
    blocking_timeout: float | None = None,
    lease_seconds: float = DEFAULT_LOCK_LEASE_SECONDS,
) -> Iterator[None]:
    """
    Hold the reconciliation lock for ``org_id``.

    Waits up to ``blocking_timeout`` seconds (0 means fail immediately, None
    waits forever) and raises ReconciliationInProgressError when the lock
    cannot be acquired.
    """
    key = lock_key(org_id)
    client = _get_redis_client()

    if client is not None:
        from redis.exceptions import LockError

        redis_lock = client.lock(
            key,
            timeout=lease_seconds,
            blocking=blocking_timeout != 0,
            blocking_timeout=blocking_timeout if blocking_timeout else None,
        )
        if not redis_lock.acquire():
            raise ReconciliationInProgressError(org_id)
        try:
            yield
        finally:
            try:
                redis_lock.release()
            except LockError as exc:
                # Lease expired while the run was still going.
                logger.warning("Failed to release tenant lock %s: %s", key, exc)
        return

    lock = _local_lock(key)
    if blocking_timeout is None:
        acquired = lock.acquire()
    elif blocking_timeout <= 0:
        acquired = lock.acquire(blocking=False)
    else:
        acquired = lock.acquire(timeout=blocking_timeout)
    if not acquired:
        raise ReconciliationInProgressError(org_id)
    try:
        yield
    finally:
        lock.release()
