"""Sent-message cache backends."""
from cache.message_cache import (
    CacheError,
    CachedMessage,
    InMemoryMessageCache,
    MessageCache,
    RedisMessageCache,
    cache_key,
    create_message_cache,
)

__all__ = [
    "CacheError", "CachedMessage", "MessageCache",
    "RedisMessageCache", "InMemoryMessageCache",
    "cache_key", "create_message_cache",
]
