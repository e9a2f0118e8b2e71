"""
Read-through cache for leaderboard pages.

Redis when REDIS_URL is configured, in-process memory otherwise. A Redis
failure logs a warning and drops to the memory cache for the rest of the
process lifetime. Entries expire after ttl_seconds; ttl 0 disables caching.
invalidate() drops pages by key prefix on both backends.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from redis import Redis, RedisError

logger = logging.getLogger("buddy")

MEMORY_SWEEP_THRESHOLD = 100


class LeaderboardCache:
    def __init__(
        self,
        ttl_seconds: int,
        *,
        redis_client: Optional[Redis] = None,
        time_fn: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = max(0, int(ttl_seconds))
        self._redis = redis_client
        self._time = time_fn
        self._memory: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings_obj) -> "LeaderboardCache":
        ttl = getattr(settings_obj, "LEADERBOARD_CACHE_TTL_SECONDS", 30)
        url = getattr(settings_obj, "REDIS_URL", None)
        client = None
        if url and ttl > 0:
            timeout = getattr(settings_obj, "STORE_TIMEOUT_SECONDS", 5.0)
            client = Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout)
            logger.info("Leaderboard cache using Redis")
        else:
            logger.info("Leaderboard cache using memory")
        return cls(ttl, redis_client=client)

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    def get(self, key: str) -> Optional[dict]:
        if not self.enabled:
            return None
        raw = self._get_raw(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: dict) -> None:
        if not self.enabled:
            return
        self._set_raw(key, json.dumps(value, default=str))

    def invalidate(self, prefix: str = "leaderboard:") -> int:
        """Drop every cached page whose key starts with `prefix`. Returns the number removed."""
        removed = 0
        if self._redis is not None:
            try:
                keys = list(self._redis.scan_iter(match=f"{prefix}*"))
                if keys:
                    removed += self._redis.delete(*keys)
            except RedisError as exc:
                self._disable_redis(exc, "invalidate")

        with self._lock:
            stale = [k for k in self._memory if k.startswith(prefix)]
            for k in stale:
                del self._memory[k]
        return removed + len(stale)

    # Internal helpers -------------------------------------------------
    def _disable_redis(self, exc: Exception, op: str) -> None:
        logger.warning("Leaderboard Redis %s failed, using memory cache: %s", op, exc)
        self._redis = None

    def _get_raw(self, key: str) -> Optional[str]:
        if self._redis is not None:
            try:
                value = self._redis.get(key)
                if value is None:
                    return None
                return value.decode("utf-8") if isinstance(value, bytes) else value
            except RedisError as exc:
                self._disable_redis(exc, "get")

        with self._lock:
            cached = self._memory.get(key)
            if cached is None:
                return None
            expires_at, raw = cached
            if expires_at <= self._time():
                del self._memory[key]
                return None
            return raw

    def _set_raw(self, key: str, raw: str) -> None:
        if self._redis is not None:
            try:
                self._redis.setex(key, self.ttl_seconds, raw)
                return
            except RedisError as exc:
                self._disable_redis(exc, "set")

        now = self._time()
        with self._lock:
            self._memory[key] = (now + self.ttl_seconds, raw)
            if len(self._memory) > MEMORY_SWEEP_THRESHOLD:
                expired = [k for k, (exp, _) in self._memory.items() if exp <= now]
                for k in expired:
                    del self._memory[k]
