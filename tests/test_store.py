import pytest
from sqlalchemy.exc import OperationalError

from tableside.core.errors import NotFoundError, StoreError
from tableside.realtime.feed import ChangeFeed
from tableside.schemas.chat import TypingEntry


pytestmark = pytest.mark.anyio


def _gift_data(item_id: str = "tiramisu", sender: str = "5550100", recipient: str = "5550199") -> dict:
    return {
        "item_id": item_id,
        "item_name": item_id.title(),
        "item_price": 9.99,
        "sender_phone_number": sender,
        "sender_name": "Sam",
        "recipient_phone_number": recipient,
        "recipient_name": "Kim",
        "status": "active",
    }


async def test_create_assigns_id_and_server_timestamp(store):
    gift = await store.create_one("gifts", {**_gift_data(), "timestamp": "2001-01-01T00:00:00"})

    assert gift.id
    assert gift.timestamp is not None
    assert gift.timestamp.year != 2001
    assert (await store.get_one("gifts", gift.id)).item_id == "tiramisu"


async def test_update_and_delete(store):
    product = await store.create_one("products", {"id": "green-tea", "name": "Green Tea", "price": 3.99})

    updated = await store.update_one("products", product.id, {"price": 4.49})
    assert updated.price == 4.49

    assert await store.delete_one("products", product.id) is True
    assert await store.delete_one("products", product.id) is False
    with pytest.raises(NotFoundError):
        await store.update_one("products", product.id, {"price": 1})


async def test_query_with_equality_filters(store):
    await store.create_one("gifts", _gift_data())
    await store.create_one("gifts", _gift_data(item_id="green-tea"))
    await store.create_one("gifts", {**_gift_data(), "status": "removed"})

    found = await store.find_active_gifts("tiramisu", "5550100", "5550199")

    assert len(found) == 1
    assert len(await store.list_active_gifts()) == 2


async def test_update_many_limited_to_ids(store):
    first = await store.create_one("orders", {"phone_number": "5550100", "table_number": "Table 4", "total": 10})
    await store.create_one("orders", {"phone_number": "5550199", "table_number": "Table 5", "total": 20})

    updated = await store.update_many("orders", {}, {"status": "ready"}, ids=[first.id])

    assert updated == 1
    statuses = {o.table_number: o.status.value for o in await store.list_orders(use_cache=False)}
    assert statuses == {"Table 4": "ready", "Table 5": "pending"}
    assert await store.update_many("orders", {}, {"status": "ready"}, ids=[]) == 0


async def test_unknown_collection_is_rejected(store):
    with pytest.raises(ValueError):
        await store.get_one("reservations", "x")


async def test_watch_delivers_initial_and_updated_snapshots(store):
    snapshots = []

    async def on_messages(messages):
        snapshots.append([m.text for m in messages])

    subscription = await store.watch_messages("table-4", on_messages)
    await store.create_one("messages", {"room": "table-4", "text": "hi", "phone_number": "5550100"})
    await store.create_one("messages", {"room": "chat", "text": "elsewhere", "phone_number": "5550100"})
    subscription.close()
    await store.create_one("messages", {"room": "table-4", "text": "after close", "phone_number": "5550100"})

    assert snapshots == [[], ["hi"]]


async def test_typing_merge_and_clear(store):
    snapshots = []

    async def on_typing(entries):
        snapshots.append({phone: e.is_typing for phone, e in entries.items()})

    await store.watch_typing("chat", on_typing)
    await store.set_typing("chat", "5550100", TypingEntry(is_typing=True, name="Sam"))
    await store.set_typing("chat", "5550199", TypingEntry(is_typing=True, name="Kim"))
    await store.set_typing("chat", "5550100", None)

    assert snapshots == [
        {},
        {"5550100": True},
        {"5550100": True, "5550199": True},
        {"5550199": True},
    ]
    entries = await store.get_typing("chat")
    assert entries["5550199"].timestamp is not None


async def test_product_list_is_cached_and_invalidated(store):
    await store.create_one("products", {"id": "a", "name": "A", "price": 1})
    assert [p.id for p in await store.list_products()] == ["a"]

    await store.create_one("products", {"id": "b", "name": "B", "price": 2})

    assert [p.id for p in await store.list_products()] == ["a", "b"]
    assert store.products_cache.stats()["sets"] == 2


async def test_stale_profile_is_served_when_database_fails(store, monkeypatch):
    await store.create_user("5550100", "Sam")
    assert (await store.get_user("5550100")).name == "Sam"
    store.users_cache.set("5550100", store.users_cache.get("5550100"), ttl=-1)

    async def failing_get_one(collection, doc_id):
        raise StoreError("Database error during get users")

    monkeypatch.setattr(store, "get_one", failing_get_one)

    assert (await store.get_user("5550100")).name == "Sam"
    with pytest.raises(StoreError):
        await store.get_user("5550177")


async def test_database_errors_become_store_errors(store):
    class BrokenSession:
        async def __aenter__(self):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        async def __aexit__(self, *exc):
            return False

    store._session_factory = lambda: BrokenSession()

    with pytest.raises(StoreError):
        await store.ping()


async def test_feed_prunes_failing_subscriber():
    feed = ChangeFeed()
    received = []

    async def broken(snapshot):
        raise RuntimeError("socket gone")

    async def healthy(snapshot):
        received.append(snapshot)

    feed.subscribe("gifts", broken)
    feed.subscribe("gifts", healthy)

    await feed.publish("gifts", [1])
    await feed.publish("gifts", [2])

    assert received == [[1], [2]]
    assert feed.subscriber_count("gifts") == 1


async def test_orders_watch_sees_status_changes(store):
    snapshots = []

    async def on_orders(orders):
        snapshots.append([o.status.value for o in orders])

    await store.watch_orders(on_orders)
    order = await store.create_one("orders", {"phone_number": "5550100", "table_number": "Table 4"})
    await store.update_many("orders", {}, {"status": "ready"}, ids=[order.id])

    assert snapshots == [[], ["pending"], ["ready"]]
