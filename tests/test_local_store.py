import json
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from tableside.storage.local import CART_KEY, CURRENT_USER_KEY, LAST_ACTIVE_TAB_KEY, LocalStore


@pytest.mark.anyio
async def test_memory_roundtrip_when_redis_disabled():
    store = LocalStore(enabled=False)

    ok = await store.set_json("5550100", CART_KEY, [{"id": "tiramisu", "quantity": 1}])

    assert ok is True
    assert await store.get_json("5550100", CART_KEY) == [{"id": "tiramisu", "quantity": 1}]
    assert await store.get_json("5550199", CART_KEY) is None


@pytest.mark.anyio
async def test_delete_removes_value():
    store = LocalStore(enabled=False)
    await store.set_json("5550100", LAST_ACTIVE_TAB_KEY, "chat")

    await store.delete("5550100", LAST_ACTIVE_TAB_KEY)

    assert await store.get_json("5550100", LAST_ACTIVE_TAB_KEY) is None


@pytest.mark.anyio
async def test_load_state_reports_every_key():
    store = LocalStore(enabled=False)
    await store.set_json("5550100", CURRENT_USER_KEY, {"phone_number": "5550100", "name": "Sam"})

    state = await store.load_state("5550100")

    assert state[CURRENT_USER_KEY]["name"] == "Sam"
    assert state[CART_KEY] is None
    assert set(state) == {"currentUser", "lastActiveTab", "wishlist", "cart"}


@pytest.mark.anyio
async def test_unserializable_value_is_rejected():
    store = LocalStore(enabled=False)

    class Unserializable:
        def __str__(self):
            raise TypeError("nope")

    ok = await store.set_json("5550100", CART_KEY, {"bad": Unserializable()})

    assert ok is False


@pytest.mark.anyio
async def test_redis_is_preferred_when_connected():
    store = LocalStore(enabled=True)
    mock_redis = AsyncMock()
    mock_redis.get = AsyncMock(return_value=json.dumps("wishlist"))
    mock_redis.setex = AsyncMock(return_value=True)
    store._redis = mock_redis

    assert await store.get_json("5550100", LAST_ACTIVE_TAB_KEY) == "wishlist"
    assert await store.set_json("5550100", LAST_ACTIVE_TAB_KEY, "cart") is True
    mock_redis.setex.assert_awaited_once()
    key, _, payload = mock_redis.setex.await_args.args
    assert key == "tableside:local:5550100:lastActiveTab"
    assert json.loads(payload) == "cart"


@pytest.mark.anyio
async def test_redis_failure_falls_back_to_memory():
    store = LocalStore(enabled=True)
    mock_redis = AsyncMock()
    mock_redis.setex = AsyncMock(side_effect=redis.ConnectionError("down"))
    mock_redis.get = AsyncMock(side_effect=redis.ConnectionError("down"))
    store._redis = mock_redis

    assert await store.set_json("5550100", LAST_ACTIVE_TAB_KEY, "chat") is True
    assert await store.get_json("5550100", LAST_ACTIVE_TAB_KEY) == "chat"
    assert store.stats()["errors"] >= 1
    assert store.stats()["connected"] is False


@pytest.mark.anyio
async def test_unreachable_redis_uses_memory():
    store = LocalStore(redis_dsn="redis://nonexistent:6379", enabled=True)

    assert await store.set_json("5550100", CART_KEY, []) is True
    assert await store.get_json("5550100", CART_KEY) == []
    assert await store.ping() is False
