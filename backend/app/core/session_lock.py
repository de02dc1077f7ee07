from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Dict, Iterator, Optional

from redis import Redis

from app.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


def _lock_key(session_id: str) -> str:
    return f"thoughtcloud:lock:session:{session_id}:mutex"


class SessionTransitionLock:
    """
    Per-session mutex guarding lifecycle transitions.

    With a Redis client the lock is a ``SET NX EX`` key shared by every
    worker. Without one, an in-process table with the same TTL semantics is
    used, which only serializes threads of a single process. Redis errors
    fail open: the conditional status update in the lifecycle manager still
    rejects the losing writer.
    """

    def __init__(self, redis_client: Optional[Redis] = None, ttl_seconds: int = 90) -> None:
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self._local: Dict[str, float] = {}
        self._local_guard = threading.Lock()

    @classmethod
    def from_url(cls, redis_url: Optional[str], ttl_seconds: int = 90) -> "SessionTransitionLock":
        if not redis_url:
            return cls(None, ttl_seconds)
        client = Redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        return cls(client, ttl_seconds)

    def acquire(self, session_id: str) -> bool:
        if self.redis is None:
            acquired = self._acquire_local(session_id)
            prometheus_metrics.record_session_lock("acquire", "success" if acquired else "blocked")
            return acquired
        try:
            acquired = bool(
                self.redis.set(_lock_key(session_id), str(time.time()), nx=True, ex=self.ttl_seconds)
            )
        except Exception as exc:
            prometheus_metrics.record_session_lock("acquire", "error")
            logger.warning(
                "session_lock_acquire_failed",
                extra={
                    "session_id": session_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return True
        prometheus_metrics.record_session_lock("acquire", "success" if acquired else "blocked")
        return acquired

    def release(self, session_id: str) -> None:
        if self.redis is None:
            with self._local_guard:
                self._local.pop(session_id, None)
            prometheus_metrics.record_session_lock("release", "success")
            return
        try:
            deleted = self.redis.delete(_lock_key(session_id))
            prometheus_metrics.record_session_lock("release", "success" if deleted else "not_found")
        except Exception as exc:
            prometheus_metrics.record_session_lock("release", "error")
            logger.warning(
                "session_lock_release_failed",
                extra={
                    "session_id": session_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )

    @contextmanager
    def hold(self, session_id: str) -> Iterator[bool]:
        acquired = self.acquire(session_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(session_id)

    def _acquire_local(self, session_id: str) -> bool:
        now = time.monotonic()
        with self._local_guard:
            expires_at = self._local.get(session_id)
            if expires_at is not None and expires_at > now:
                return False
            self._local[session_id] = now + self.ttl_seconds
            return True
