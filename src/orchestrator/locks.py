"""Redis lock so only one process sweeps expired workflows at a time."""

from __future__ import annotations

from dataclasses import dataclass
import uuid

from redis import Redis


SWEEP_LOCK_KEY = "chefsocial:cleanup:sweep:lock"
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
  return redis.call("del", KEYS[1])
end
return 0
"""


@dataclass(frozen=True)
class SweepLockHandle:
    manager: "SweepLockManager"
    token: str
    key: str

    def release(self) -> bool:
        return self.manager.release(self.token)


class SweepLockManager:
    """Acquire and release the sweep lock using Redis SET NX EX."""

    def __init__(self, redis_client: Redis, *, ttl_seconds: int = 300, key: str = SWEEP_LOCK_KEY) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds
        self._key = key

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @property
    def key(self) -> str:
        return self._key

    def acquire(self) -> SweepLockHandle | None:
        token = str(uuid.uuid4())
        acquired = self._redis.set(self._key, token, nx=True, ex=self._ttl_seconds)
        if not acquired:
            return None
        return SweepLockHandle(manager=self, token=token, key=self._key)

    def release(self, token: str) -> bool:
        released = self._redis.eval(RELEASE_LOCK_SCRIPT, 1, self._key, token)
        return int(released) == 1
