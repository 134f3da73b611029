# identity_server/api/utils/locks.py
"""
Per-user mutual exclusion for read-check-write sequences on user records.

Redis primary (SET NX EX with a random owner value, compare-and-delete on release)
so that several worker processes serialize on the same user; process-local
threading locks when no REDIS_URL is configured (single-node/dev deployments).

Public API:
- UserLocks(redis_url="", ttl=..., timeout=..., client=None)
- UserLocks.hold(user_id)  (context manager)
- LockTimeout
"""
from __future__ import annotations
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Dict, Optional

import redis

from identity_server.api.config import USER_LOCK_TIMEOUT, USER_LOCK_TTL
from identity_server.api.utils.logger import write_log

LOCK_KEY_PREFIX = "user:lock:"
POLL_INTERVAL = 0.05

# Embedded Lua script: only the owner may release the lock
_RELEASE_LUA = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
  return redis.call("DEL", KEYS[1])
end
return 0
"""


class LockTimeout(RuntimeError):
    """The per-user lock could not be acquired in time."""


class UserLocks:
    def __init__(self, redis_url: str = "", ttl: int = USER_LOCK_TTL, timeout: float = USER_LOCK_TIMEOUT, client: Optional[redis.Redis] = None):
        self.ttl = int(ttl)
        self.timeout = float(timeout)
        if client is None and redis_url:
            client = redis.from_url(redis_url, decode_responses=True)
        self._redis: Optional[redis.Redis] = client
        self._release_script = self._redis.register_script(_RELEASE_LUA) if self._redis is not None else None
        self._local: Dict[str, threading.Lock] = {}
        self._local_guard = threading.Lock()

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "local"

    def _local_lock(self, user_id: str) -> threading.Lock:
        with self._local_guard:
            lock = self._local.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._local[user_id] = lock
            return lock

    def _acquire_redis(self, key: str, owner: str) -> bool:
        deadline = time.monotonic() + self.timeout
        while True:
            if self._redis.set(name=key, value=owner, nx=True, ex=self.ttl):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(POLL_INTERVAL)

    @contextmanager
    def hold(self, user_id: str):
        if not user_id:
            raise ValueError("user_id is required")

        if self._redis is None:
            lock = self._local_lock(user_id)
            if not lock.acquire(timeout=self.timeout):
                write_log({"event": "user_lock_timeout", "user_id": user_id, "backend": "local"}, stream="system", level="error")
                raise LockTimeout(f"could not lock user {user_id}")
            try:
                yield
            finally:
                lock.release()
            return

        key = LOCK_KEY_PREFIX + user_id
        owner = str(uuid.uuid4())
        if not self._acquire_redis(key, owner):
            write_log({"event": "user_lock_timeout", "user_id": user_id, "backend": "redis"}, stream="system", level="error")
            raise LockTimeout(f"could not lock user {user_id}")
        try:
            yield
        finally:
            self._release_script(keys=[key], args=[owner])
