"""Tests for the key-value stores."""

from unittest.mock import AsyncMock

import pytest

from motorscope.storage import MemoryKeyValueStore, RedisKeyValueStore


class TestMemoryKeyValueStore:
    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        store = MemoryKeyValueStore()

        await store.set("a", "1")
        assert await store.get("a") == "1"

        await store.delete("a", "missing")
        assert await store.get("a") is None

    @pytest.mark.asyncio
    async def test_json_helpers(self):
        store = MemoryKeyValueStore()

        await store.set_json("record", {"token": "t", "count": 2})

        assert await store.get_json("record") == {"token": "t", "count": 2}
        assert await store.get_json("missing") is None

    @pytest.mark.asyncio
    async def test_initial_data_and_health(self):
        store = MemoryKeyValueStore({"a": "1"})

        assert store.keys() == ["a"]
        assert await store.health_check() is True

    @pytest.mark.asyncio
    async def test_set_if_absent(self):
        store = MemoryKeyValueStore()

        assert await store.set_if_absent("claim", "first", ttl_seconds=60) is True
        assert await store.set_if_absent("claim", "second", ttl_seconds=60) is False
        assert await store.get("claim") == "first"

        await store.delete("claim")
        assert await store.set_if_absent("claim", "third", ttl_seconds=60) is True

    @pytest.mark.asyncio
    async def test_set_if_absent_expires(self):
        store = MemoryKeyValueStore()

        await store.set_if_absent("claim", "stale", ttl_seconds=0)

        assert await store.get("claim") is None
        assert await store.set_if_absent("claim", "fresh", ttl_seconds=60) is True


class TestRedisKeyValueStore:
    """Test key prefixing and error handling against a mocked client."""

    @pytest.fixture
    def client(self):
        client = AsyncMock()
        client.get.return_value = '{"x": 1}'
        client.ping.return_value = True
        return client

    @pytest.mark.asyncio
    async def test_keys_are_prefixed(self, client):
        store = RedisKeyValueStore(key_prefix="ms:", client=client)

        await store.set("refresh_status", "{}")
        await store.get_json("refresh_status")
        await store.delete("a", "b")

        client.set.assert_awaited_once_with("ms:refresh_status", "{}")
        client.get.assert_awaited_once_with("ms:refresh_status")
        client.delete.assert_awaited_once_with("ms:a", "ms:b")

    @pytest.mark.asyncio
    async def test_set_if_absent_uses_nx_with_expiry(self, client):
        store = RedisKeyValueStore(key_prefix="ms:", client=client)
        client.set.return_value = True

        assert await store.set_if_absent("claim", "tok", ttl_seconds=90.5) is True
        client.set.assert_awaited_once_with("ms:claim", "tok", nx=True, ex=91)

        client.set.return_value = None
        assert await store.set_if_absent("claim", "tok", ttl_seconds=90) is False

    @pytest.mark.asyncio
    async def test_delete_nothing(self, client):
        store = RedisKeyValueStore(key_prefix="ms:", client=client)

        await store.delete()

        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        store = RedisKeyValueStore(redis_url="redis://localhost:6379/1")

        with pytest.raises(RuntimeError, match="not connected"):
            await store.get("a")

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        store = RedisKeyValueStore(client=client)
        assert await store.health_check() is True

        client.ping.side_effect = ConnectionError("refused")
        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self, client):
        store = RedisKeyValueStore(client=client)

        await store.close()

        client.close.assert_awaited_once()
        assert store.client is None
