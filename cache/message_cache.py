"""
Sent-message cache — write-through record of delivered messages.

Key schema:
    message:<external_id>  →  {"messageId": "<external_id>", "sentAt": "<ISO-8601>"}

Entries expire after ttl_days (30 by default). The sender only writes;
get_cached_message / is_cached exist for operators and tests.

Backends:
  - RedisMessageCache     (redis.asyncio, SET key value EX ttl)
  - InMemoryMessageCache  (dict with expiry timestamps, development only)
"""
from __future__ import annotations

import json
import time
import structlog
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from config.settings import CacheConfig

logger = structlog.get_logger()

KEY_PREFIX = "message:"
DEFAULT_TTL_DAYS = 30


class CacheError(Exception):
    """Raised when the cache backend cannot be reached or returns garbage."""

    def __init__(self, message: str, key: str = ""):
        self.key = key
        super().__init__(message)


def cache_key(external_id: str) -> str:
    return f"{KEY_PREFIX}{external_id}"


@dataclass
class CachedMessage:
    message_id: str
    sent_at: datetime

    def to_json(self) -> str:
        return json.dumps({"messageId": self.message_id, "sentAt": self.sent_at.isoformat()})

    @classmethod
    def from_json(cls, raw: str) -> CachedMessage:
        data = json.loads(raw)
        return cls(
            message_id=data["messageId"],
            sent_at=datetime.fromisoformat(data["sentAt"]),
        )


# ──────────────────────────────────────────────────────────────
#  Interface
# ──────────────────────────────────────────────────────────────

class MessageCache(ABC):
    """Abstract sent-message cache."""

    def __init__(self, ttl_days: int = DEFAULT_TTL_DAYS):
        self.ttl_seconds = ttl_days * 24 * 60 * 60

    @abstractmethod
    async def cache_sent_message(self, external_id: str, sent_at: datetime) -> None:
        ...

    @abstractmethod
    async def get_cached_message(self, external_id: str) -> Optional[CachedMessage]:
        """None when the key is absent or expired."""
        ...

    @abstractmethod
    async def is_cached(self, external_id: str) -> bool:
        ...

    async def close(self) -> None:
        pass


# ──────────────────────────────────────────────────────────────
#  Redis backend
# ──────────────────────────────────────────────────────────────

class RedisMessageCache(MessageCache):

    def __init__(self, redis_url: str = "redis://localhost:6379/0",
                 ttl_days: int = DEFAULT_TTL_DAYS, client: Any = None):
        super().__init__(ttl_days)
        self._redis_url = redis_url
        self._redis = client

    def _client(self):
        if self._redis is None:
            import redis.asyncio as aioredis
            self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
            logger.info("redis_cache_connected", url=self._redis_url)
        return self._redis

    async def cache_sent_message(self, external_id: str, sent_at: datetime) -> None:
        key = cache_key(external_id)
        value = CachedMessage(message_id=external_id, sent_at=sent_at).to_json()
        try:
            await self._client().set(key, value, ex=self.ttl_seconds)
        except Exception as e:
            raise CacheError(f"Failed to cache {key}: {e}", key=key) from e

    async def get_cached_message(self, external_id: str) -> Optional[CachedMessage]:
        key = cache_key(external_id)
        try:
            raw = await self._client().get(key)
        except Exception as e:
            raise CacheError(f"Failed to read {key}: {e}", key=key) from e
        if raw is None:
            return None
        try:
            return CachedMessage.from_json(raw)
        except (ValueError, KeyError) as e:
            raise CacheError(f"Corrupt cache entry {key}", key=key) from e

    async def is_cached(self, external_id: str) -> bool:
        key = cache_key(external_id)
        try:
            return bool(await self._client().exists(key))
        except Exception as e:
            raise CacheError(f"Failed to check {key}: {e}", key=key) from e

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


# ──────────────────────────────────────────────────────────────
#  In-memory backend
# ──────────────────────────────────────────────────────────────

class InMemoryMessageCache(MessageCache):

    def __init__(self, ttl_days: int = DEFAULT_TTL_DAYS):
        super().__init__(ttl_days)
        self._entries: dict[str, tuple[str, float]] = {}   # key → (json, expires_at)

    async def cache_sent_message(self, external_id: str, sent_at: datetime) -> None:
        value = CachedMessage(message_id=external_id, sent_at=sent_at).to_json()
        now = time.monotonic()
        self._prune(now)
        self._entries[cache_key(external_id)] = (value, now + self.ttl_seconds)

    async def get_cached_message(self, external_id: str) -> Optional[CachedMessage]:
        raw = self._get_raw(cache_key(external_id))
        return CachedMessage.from_json(raw) if raw is not None else None

    async def is_cached(self, external_id: str) -> bool:
        return self._get_raw(cache_key(external_id)) is not None

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def _get_raw(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value


# ──────────────────────────────────────────────────────────────
#  Factory
# ──────────────────────────────────────────────────────────────

def create_message_cache(config: CacheConfig) -> Optional[MessageCache]:
    """Build the configured cache, or None when caching is disabled."""
    if not config.enabled:
        logger.info("cache_disabled")
        return None
    if config.backend == "memory":
        logger.info("cache_created", backend="memory", ttl_days=config.ttl_days)
        return InMemoryMessageCache(ttl_days=config.ttl_days)
    logger.info("cache_created", backend="redis", ttl_days=config.ttl_days)
    return RedisMessageCache(redis_url=config.redis_url, ttl_days=config.ttl_days)
