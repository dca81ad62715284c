"""
Persistent key-value store backing session, refresh status and schedule state.

Values are JSON strings. Every write is a complete replacement of the key,
so concurrent writers never leave a half-updated record behind; the last
write wins.

Implementations:
- RedisKeyValueStore: redis.asyncio, survives process restarts
- MemoryKeyValueStore: process-local dict for tests and one-shot CLI runs
"""

import json
import math
import time
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as redis
import structlog

from motorscope.config.settings import get_settings

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Async key-value store of JSON-encoded values."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the raw value for key, or None if missing."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Replace the value for key."""

    @abstractmethod
    async def delete(self, *keys: str) -> None:
        """Remove keys; missing keys are ignored."""

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        """Atomically set key unless it exists; the key expires after ttl_seconds."""

    async def get_json(self, key: str) -> Any | None:
        raw = await self.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, key: str, value: Any) -> None:
        await self.set(key, json.dumps(value))

    async def connect(self) -> None:
        """Open underlying connections (no-op by default)."""

    async def close(self) -> None:
        """Release underlying connections (no-op by default)."""

    async def health_check(self) -> bool:
        return True


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. State is lost when the process exits."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._expires_at: dict[str, float] = {}

    async def get(self, key: str) -> str | None:
        self._expire(key)
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._expires_at.pop(key, None)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        self._expire(key)
        if key in self._data:
            return False
        self._data[key] = value
        self._expires_at[key] = time.monotonic() + ttl_seconds
        return True

    def _expire(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self._data.pop(key, None)
            del self._expires_at[key]

    def keys(self) -> list[str]:
        return list(self._data)


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store.

    Keys are namespaced with ``key_prefix`` so several orchestrators can
    share one Redis database.

    Usage:
        store = RedisKeyValueStore()
        await store.connect()
        await store.set_json("refresh_status", {...})
    """

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        settings = get_settings()
        self._redis_url = redis_url or str(settings.redis_url)
        self._key_prefix = key_prefix if key_prefix is not None else settings.redis_key_prefix
        self._redis: redis.Redis | None = client

    @property
    def client(self) -> redis.Redis | None:
        """Underlying Redis client, shared with the event broadcaster."""
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _require_client(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("RedisKeyValueStore is not connected")
        return self._redis

    async def connect(self) -> None:
        if self._redis is not None:
            return
        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Connected key-value store", backend="redis", prefix=self._key_prefix)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.close()
            self._redis = None

    async def get(self, key: str) -> str | None:
        return await self._require_client().get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        await self._require_client().set(self._key(key), value)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        await self._require_client().delete(*(self._key(k) for k in keys))

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        acquired = await self._require_client().set(
            self._key(key), value, nx=True, ex=max(1, math.ceil(ttl_seconds)),
        )
        return bool(acquired)

    async def health_check(self) -> bool:
        try:
            return bool(await self._require_client().ping())
        except Exception as e:
            logger.warning("Key-value store health check failed", error=str(e))
            return False
