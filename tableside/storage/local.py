import asyncio
import json
import logging
import time
from typing import Any

import redis.asyncio as redis

from tableside.core.config import settings


logger = logging.getLogger("tableside.local_store")

CURRENT_USER_KEY = "currentUser"
LAST_ACTIVE_TAB_KEY = "lastActiveTab"
WISHLIST_KEY = "wishlist"
CART_KEY = "cart"

STATE_KEYS = (CURRENT_USER_KEY, LAST_ACTIVE_TAB_KEY, WISHLIST_KEY, CART_KEY)


class LocalStore:
    """Per-diner key-value snapshots (session user, last tab, wishlist, cart).

    Values are JSON documents replaced wholesale on every write. Redis is used
    when reachable; an in-process mirror keeps the state available while Redis
    is down or disabled. Write failures are logged and reported as ``False``.
    """

    def __init__(
        self,
        redis_dsn: str | None = None,
        ttl_seconds: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        self._redis_dsn = redis_dsn or settings.redis_dsn
        self._ttl = ttl_seconds or settings.local_store_ttl_seconds
        self._enabled = enabled if enabled is not None else settings.local_store_redis_enabled
        self._redis: redis.Redis | None = None
        self._connect_lock = asyncio.Lock()
        self._cooldown_until_monotonic = 0.0
        self._connect_failures = 0
        self._memory: dict[str, tuple[float, str]] = {}
        self._memory_max = 5000
        self._errors = 0
        self._writes = 0

    @staticmethod
    def _key(scope: str, key: str) -> str:
        return f"tableside:local:{scope}:{key}"

    def _in_cooldown(self) -> bool:
        return time.monotonic() < self._cooldown_until_monotonic

    def _mark_redis_failed(self, exc: Exception) -> None:
        self._redis = None
        self._connect_failures += 1
        cooldown = min(60.0, 1.0 * (2 ** min(self._connect_failures, 6)))
        self._cooldown_until_monotonic = time.monotonic() + cooldown
        logger.warning(
            "LocalStore redis unavailable failures=%s cooldown_s=%.0f error=%s",
            self._connect_failures,
            cooldown,
            exc,
        )

    def _mem_get(self, key: str) -> str | None:
        entry = self._memory.get(key)
        if not entry:
            return None
        expires_at, payload = entry
        if expires_at <= time.monotonic():
            self._memory.pop(key, None)
            return None
        return payload

    def _mem_set(self, key: str, payload: str) -> None:
        now = time.monotonic()
        self._memory[key] = (now + max(1, int(self._ttl)), payload)
        if len(self._memory) <= self._memory_max:
            return
        expired = [k for k, (exp, _) in self._memory.items() if exp <= now]
        for k in expired:
            self._memory.pop(k, None)
        if len(self._memory) <= self._memory_max:
            return
        overflow = len(self._memory) - self._memory_max
        for k in list(self._memory.keys())[:overflow]:
            self._memory.pop(k, None)

    async def _get_redis(self) -> redis.Redis | None:
        if not self._enabled:
            return None
        if not self._redis_dsn or not str(self._redis_dsn).strip():
            return None
        if self._redis is not None:
            return self._redis
        if self._in_cooldown():
            return None
        async with self._connect_lock:
            if self._redis is not None:
                return self._redis
            if self._in_cooldown():
                return None
            try:
                client = redis.from_url(
                    self._redis_dsn,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
                await client.ping()
                self._redis = client
                self._connect_failures = 0
                self._cooldown_until_monotonic = 0.0
                logger.info("LocalStore connected redis=%s", self._redis_dsn)
            except (redis.RedisError, OSError) as exc:
                self._mark_redis_failed(exc)
        return self._redis

    async def get_json(self, scope: str, key: str) -> Any | None:
        full_key = self._key(scope, key)
        raw: str | None = None
        client = await self._get_redis()
        if client is not None:
            try:
                raw = await client.get(full_key)
            except redis.RedisError as exc:
                self._errors += 1
                self._mark_redis_failed(exc)
                raw = None
        if raw is None:
            raw = self._mem_get(full_key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            self._errors += 1
            logger.warning("LocalStore dropped unreadable value scope=%s key=%s", scope, key)
            return None

    async def set_json(self, scope: str, key: str, value: Any) -> bool:
        full_key = self._key(scope, key)
        try:
            payload = json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as exc:
            self._errors += 1
            logger.warning("LocalStore could not serialize scope=%s key=%s error=%s", scope, key, exc)
            return False
        self._mem_set(full_key, payload)
        self._writes += 1
        client = await self._get_redis()
        if client is None:
            return True
        try:
            await client.setex(full_key, self._ttl, payload)
        except redis.RedisError as exc:
            self._errors += 1
            self._mark_redis_failed(exc)
        return True

    async def delete(self, scope: str, key: str) -> None:
        full_key = self._key(scope, key)
        self._memory.pop(full_key, None)
        client = await self._get_redis()
        if client is None:
            return
        try:
            await client.delete(full_key)
        except redis.RedisError as exc:
            self._errors += 1
            self._mark_redis_failed(exc)

    async def load_state(self, scope: str) -> dict[str, Any]:
        """Read every persisted key for one diner; missing keys map to ``None``."""
        return {key: await self.get_json(scope, key) for key in STATE_KEYS}

    async def ping(self) -> bool:
        client = await self._get_redis()
        if client is None:
            return False
        try:
            await client.ping()
            return True
        except redis.RedisError as exc:
            self._mark_redis_failed(exc)
            return False

    def stats(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "connected": self._redis is not None,
            "memory_keys": len(self._memory),
            "writes": self._writes,
            "errors": self._errors,
            "connect_failures": self._connect_failures,
            "cooldown_s": max(0.0, self._cooldown_until_monotonic - time.monotonic()),
        }


local_store = LocalStore()
