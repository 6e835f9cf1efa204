"""
Keyed mutex used to serialize scheduling changes per mentor or group session.

The local backend is a process-wide registry of ``threading.Lock`` objects;
an entry is evicted as soon as no thread holds or waits on it.
The redis backend uses ``SET NX EX`` so several workers share one lock; when
redis cannot be reached it fails open and the database uniqueness constraints
remain the last line of defence.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Dict, Iterator, Optional

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings
from .exceptions import SchedulingBusyException

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

_LOCAL_LOCKS: Dict[str, "_LocalLock"] = {}
_LOCAL_LOCKS_GUARD = threading.Lock()

_POLL_INTERVAL_S = 0.05


def mentor_lock_key(mentor_id: str) -> str:
    return f"mentor:{mentor_id}"


def session_lock_key(session_id: str) -> str:
    return f"group_session:{session_id}"


def _namespaced_key(key: str) -> str:
    return f"{settings.scheduling_lock_namespace}:lock:{key}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("scheduling_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


class _LocalLock:
    """A registry entry; ``users`` counts the holder plus any waiters."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


def _checkout_local(key: str) -> _LocalLock:
    with _LOCAL_LOCKS_GUARD:
        entry = _LOCAL_LOCKS.get(key)
        if entry is None:
            entry = _LocalLock()
            _LOCAL_LOCKS[key] = entry
        entry.users += 1
        return entry


def _checkin_local(key: str, entry: _LocalLock) -> None:
    """Drop a user; the entry is evicted once nobody holds or waits on it."""
    with _LOCAL_LOCKS_GUARD:
        entry.users -= 1
        if entry.users == 0 and _LOCAL_LOCKS.get(key) is entry:
            del _LOCAL_LOCKS[key]


def _acquire_local(key: str, wait_s: float) -> bool:
    entry = _checkout_local(key)
    acquired = entry.lock.acquire(timeout=wait_s)
    if not acquired:
        _checkin_local(key, entry)
    prometheus_metrics.record_scheduling_lock("acquire", "success" if acquired else "blocked")
    return acquired


def _release_local(key: str) -> None:
    with _LOCAL_LOCKS_GUARD:
        entry = _LOCAL_LOCKS[key]
    entry.lock.release()
    _checkin_local(key, entry)
    prometheus_metrics.record_scheduling_lock("release", "success")


def _acquire_redis(key: str, ttl_s: int, wait_s: float) -> bool:
    """
    Poll ``SET NX EX`` until acquired or ``wait_s`` elapses.

    Returns True without holding anything when redis is unavailable.
    """
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_scheduling_lock("acquire", "redis_unavailable")
        logger.warning("scheduling_lock_redis_unavailable", extra={"lock_key": key})
        return True

    deadline = time.monotonic() + wait_s
    while True:
        try:
            acquired = bool(client.set(_namespaced_key(key), str(time.time()), nx=True, ex=ttl_s))
        except Exception as exc:
            prometheus_metrics.record_scheduling_lock("acquire", "error")
            logger.warning(
                "scheduling_lock_acquire_failed",
                extra={
                    "lock_key": key,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return True
        if acquired:
            prometheus_metrics.record_scheduling_lock("acquire", "success")
            return True
        if time.monotonic() >= deadline:
            prometheus_metrics.record_scheduling_lock("acquire", "blocked")
            return False
        time.sleep(_POLL_INTERVAL_S)


def _release_redis(key: str) -> None:
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_scheduling_lock("release", "redis_unavailable")
        return
    try:
        deleted = client.delete(_namespaced_key(key))
        prometheus_metrics.record_scheduling_lock("release", "success" if deleted else "not_found")
    except Exception as exc:
        prometheus_metrics.record_scheduling_lock("release", "error")
        logger.warning(
            "scheduling_lock_release_failed",
            extra={
                "lock_key": key,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def scheduling_lock(
    key: str,
    *,
    ttl_s: Optional[int] = None,
    wait_s: Optional[float] = None,
) -> Iterator[None]:
    """
    Hold the mutex for ``key`` for the duration of the block.

    Raises:
        SchedulingBusyException: the lock was not obtained within ``wait_s``
    """
    ttl = ttl_s if ttl_s is not None else settings.scheduling_lock_ttl_seconds
    wait = wait_s if wait_s is not None else settings.scheduling_lock_wait_seconds
    use_redis = settings.scheduling_lock_backend == "redis"

    if use_redis:
        acquired = _acquire_redis(key, ttl, wait)
    else:
        acquired = _acquire_local(key, wait)
    if not acquired:
        logger.info("scheduling_lock_busy", extra={"lock_key": key})
        raise SchedulingBusyException(key)

    try:
        yield
    finally:
        if use_redis:
            _release_redis(key)
        else:
            _release_local(key)
