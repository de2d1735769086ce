"""
Per-host write serialization for booking create/reschedule.

Uses a Redis lock when Redis is reachable (serializes across workers and
processes), otherwise an in-process lock per host. Either way the
read-check-write sequence for one host runs one attempt at a time.
"""

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Optional

import redis
from redis.exceptions import LockError

from ...config import BOOKING_LOCK_TIMEOUT_SECONDS, BOOKING_LOCK_WAIT_SECONDS
from .exceptions import HostLockTimeout

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "booking_lock:host"


class HostLockManager:
    """Hands out one mutex per host id"""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        timeout: float = BOOKING_LOCK_TIMEOUT_SECONDS,
        wait: float = BOOKING_LOCK_WAIT_SECONDS,
    ):
        self.redis_client = redis_client
        self.timeout = timeout
        self.wait = wait
        self._local_locks: dict[int, Lock] = {}
        self._registry_lock = Lock()

    @property
    def distributed(self) -> bool:
        return self.redis_client is not None

    def _local_lock(self, host_id: int) -> Lock:
        with self._registry_lock:
            lock = self._local_locks.get(host_id)
            if lock is None:
                lock = Lock()
                self._local_locks[host_id] = lock
            return lock

    @contextmanager
    def hold(self, host_id: int):
        """Block until this host's lock is acquired (or wait expires)"""
        if self.distributed:
            with self._hold_redis(host_id):
                yield
        else:
            with self._hold_local(host_id):
                yield

    @contextmanager
    def _hold_local(self, host_id: int):
        lock = self._local_lock(host_id)
        if not lock.acquire(timeout=self.wait):
            logger.error(f"❌ Timed out waiting for booking lock on host {host_id}")
            raise HostLockTimeout(f"Calendar for host {host_id} is busy, please retry")
        logger.debug(f"🔒 Acquired local booking lock for host {host_id}")
        try:
            yield
        finally:
            lock.release()

    @contextmanager
    def _hold_redis(self, host_id: int):
        lock = self.redis_client.lock(
            f"{LOCK_KEY_PREFIX}:{host_id}",
            timeout=self.timeout,
            blocking_timeout=self.wait,
        )
        if not lock.acquire():
            logger.error(f"❌ Timed out waiting for booking lock on host {host_id}")
            raise HostLockTimeout(f"Calendar for host {host_id} is busy, please retry")
        logger.debug(f"🔒 Acquired Redis booking lock for host {host_id}")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Lock expired while held; the database constraint still guards overlap
                logger.error(f"❌ Booking lock for host {host_id} expired before release: {e}")


_lock_manager: Optional[HostLockManager] = None


def get_host_lock_manager() -> HostLockManager:
    """Process-wide lock manager, Redis-backed when available"""
    global _lock_manager

    if _lock_manager is None:
        from ...rate_limiter import get_redis_client

        try:
            client = get_redis_client()
        except Exception as e:
            logger.warning(f"⚠️ Redis unavailable, booking locks are process-local: {e}")
            client = None
        _lock_manager = HostLockManager(redis_client=client)

    return _lock_manager
