"""Persistent key-value storage."""

from motorscope.storage.kv import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore

# Persisted record keys
SESSION_KEY = "auth_session"
REFRESH_STATUS_KEY = "refresh_status"
SCHEDULE_KEY = "schedule_state"

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
    "SESSION_KEY",
    "REFRESH_STATUS_KEY",
    "SCHEDULE_KEY",
]
