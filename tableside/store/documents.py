"""Document-style access to the relational tables.

``DocumentStore`` exposes the small set of capabilities the application
needs from a shared backend: get/create/update/delete a document, query a
collection by equality filters, and subscribe to full-collection snapshots.
Every committed write republishes the affected snapshot on the change feed.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from pydantic import BaseModel
from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tableside.core.cache import TTLCache
from tableside.core.clock import utcnow
from tableside.core.config import settings
from tableside.core.errors import NotFoundError, StoreError
from tableside.db.session import async_session_factory
from tableside.models.models import Gift, GiftStatusEnum, Message, Order, Product, TypingStatus, User
from tableside.realtime.feed import ChangeFeed, Subscription, feed
from tableside.schemas.auth import UserPublic
from tableside.schemas.chat import MessagePublic, TypingEntry
from tableside.schemas.gift import GiftRecord
from tableside.schemas.menu import ProductPublic
from tableside.schemas.order import OrderPublic


logger = logging.getLogger("tableside.store")

_COLLECTIONS: dict[str, tuple[type, type[BaseModel]]] = {
    "users": (User, UserPublic),
    "products": (Product, ProductPublic),
    "messages": (Message, MessagePublic),
    "gifts": (Gift, GiftRecord),
    "orders": (Order, OrderPublic),
}

# Assigned by the store, never taken from the caller.
_SERVER_FIELDS = ("timestamp", "created_at", "updated_at")

GIFTS_TOPIC = "gifts"
ORDERS_TOPIC = "orders"


def messages_topic(room: str) -> str:
    return f"messages:{room}"


def typing_topic(room: str) -> str:
    return f"typing:{room}"


class DocumentStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        change_feed: ChangeFeed,
        *,
        message_limit: int = 200,
    ) -> None:
        self._session_factory = session_factory
        self._feed = change_feed
        self._message_limit = message_limit
        self.products_cache = TTLCache(settings.products_cache_ttl, name="products")
        self.users_cache = TTLCache(settings.users_cache_ttl, name="users")
        self.orders_cache = TTLCache(settings.orders_cache_ttl, name="orders")

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Store %s failed", action)
            raise StoreError(f"Database error during {action}") from exc

    @staticmethod
    def _resolve(collection: str) -> tuple[type, type[BaseModel]]:
        try:
            return _COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    # ---- generic document capabilities -------------------------------------------

    async def get_one(self, collection: str, doc_id: str) -> BaseModel | None:
        model, schema = self._resolve(collection)
        async with self._session(f"get {collection}") as session:
            row = await session.get(model, doc_id)
            return schema.model_validate(row) if row is not None else None

    async def create_one(self, collection: str, data: dict[str, Any]) -> BaseModel:
        model, schema = self._resolve(collection)
        values = {k: v for k, v in data.items() if k not in _SERVER_FIELDS and v is not None}
        async with self._session(f"create {collection}") as session:
            row = model(**values)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            document = schema.model_validate(row)
        logger.debug("Store created collection=%s", collection)
        await self._after_write(collection, document)
        return document

    async def update_one(self, collection: str, doc_id: str, patch: dict[str, Any]) -> BaseModel:
        model, schema = self._resolve(collection)
        async with self._session(f"update {collection}") as session:
            row = await session.get(model, doc_id)
            if row is None:
                raise NotFoundError(f"{collection} document {doc_id} not found")
            for key, value in patch.items():
                if key in _SERVER_FIELDS:
                    continue
                setattr(row, key, value)
            if hasattr(row, "updated_at"):
                row.updated_at = utcnow()
            await session.commit()
            await session.refresh(row)
            document = schema.model_validate(row)
        await self._after_write(collection, document)
        return document

    async def update_many(
        self,
        collection: str,
        filters: dict[str, Any],
        patch: dict[str, Any],
        *,
        ids: list[str] | None = None,
    ) -> int:
        """Apply one patch to every document matching ``filters`` (and ``ids``) in a single transaction."""
        model, _ = self._resolve(collection)
        conditions = self._conditions(model, filters)
        if ids is not None:
            if not ids:
                return 0
            conditions.append(model.id.in_(ids))
        async with self._session(f"update {collection}") as session:
            rows = (await session.execute(select(model).where(*conditions))).scalars().all()
            now = utcnow()
            for row in rows:
                for key, value in patch.items():
                    setattr(row, key, value)
                if hasattr(row, "updated_at"):
                    row.updated_at = now
            await session.commit()
        if rows:
            await self._after_write(collection, None)
        return len(rows)

    async def delete_one(self, collection: str, doc_id: str) -> bool:
        model, schema = self._resolve(collection)
        async with self._session(f"delete {collection}") as session:
            row = await session.get(model, doc_id)
            if row is None:
                return False
            document = schema.model_validate(row)
            await session.delete(row)
            await session.commit()
        await self._after_write(collection, document)
        return True

    async def query_many(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[BaseModel]:
        model, schema = self._resolve(collection)
        stmt = select(model).where(*self._conditions(model, filters or {}))
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit:
            stmt = stmt.limit(limit)
        async with self._session(f"query {collection}") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [schema.model_validate(row) for row in rows]

    @staticmethod
    def _conditions(model: type, filters: dict[str, Any]) -> list[Any]:
        conditions = []
        for key, value in filters.items():
            column = getattr(model, key, None)
            if column is None:
                raise ValueError(f"Unknown field for {model.__tablename__}: {key}")
            conditions.append(column == value)
        return conditions

    async def _after_write(self, collection: str, document: BaseModel | None) -> None:
        if collection == "products":
            self.products_cache.invalidate()
        elif collection == "users" and document is not None:
            self.users_cache.invalidate(document.phone_number)
        elif collection == "orders":
            self.orders_cache.invalidate()

        try:
            if collection == "messages" and document is not None:
                topic = messages_topic(document.room)
                if self._feed.subscriber_count(topic):
                    await self._feed.publish(topic, await self.list_messages(document.room))
            elif collection == "gifts" and self._feed.subscriber_count(GIFTS_TOPIC):
                await self._feed.publish(GIFTS_TOPIC, await self.list_active_gifts())
            elif collection == "orders" and self._feed.subscriber_count(ORDERS_TOPIC):
                await self._feed.publish(ORDERS_TOPIC, await self.list_orders(use_cache=False))
        except StoreError:
            logger.warning("Snapshot republish failed collection=%s", collection)

    async def ping(self) -> bool:
        async with self._session("ping") as session:
            await session.execute(text("SELECT 1"))
        return True

    # ---- users --------------------------------------------------------------------

    async def get_user(self, phone_number: str) -> UserPublic | None:
        cached = self.users_cache.get(phone_number)
        if cached is not None:
            return cached
        try:
            user = await self.get_one("users", phone_number)
        except StoreError:
            stale = self.users_cache.get_stale(phone_number)
            if stale is not None:
                logger.warning("Serving stale profile phone=%s", phone_number)
                return stale
            raise
        if user is not None:
            self.users_cache.set(phone_number, user)
        return user

    async def create_user(self, phone_number: str, name: str, photo_url: str | None = None) -> UserPublic:
        return await self.create_one(
            "users",
            {"phone_number": phone_number, "name": name, "photo_url": photo_url},
        )

    async def touch_login(self, phone_number: str) -> None:
        async with self._session("touch login") as session:
            row = await session.get(User, phone_number)
            if row is None:
                raise NotFoundError("User not found")
            row.last_login = utcnow()
            await session.commit()
        self.users_cache.invalidate(phone_number)

    async def list_users(self) -> list[UserPublic]:
        return await self.query_many("users", order_by="created_at", descending=True)

    # ---- products -----------------------------------------------------------------

    async def list_products(self) -> list[ProductPublic]:
        cached = self.products_cache.get("all")
        if cached is not None:
            return cached
        try:
            products = await self.query_many("products", order_by="name")
        except StoreError:
            stale = self.products_cache.get_stale("all")
            if stale is not None:
                logger.warning("Serving stale product list")
                return stale
            raise
        self.products_cache.set("all", products)
        return products

    async def count_products(self) -> int:
        async with self._session("count products") as session:
            return int((await session.execute(select(func.count()).select_from(Product))).scalar_one())

    # ---- messages -----------------------------------------------------------------

    async def list_messages(self, room: str, limit: int | None = None) -> list[MessagePublic]:
        newest_first = await self.query_many(
            "messages",
            {"room": room},
            order_by="timestamp",
            descending=True,
            limit=limit or self._message_limit,
        )
        return list(reversed(newest_first))

    # ---- typing presence ----------------------------------------------------------

    async def get_typing(self, room: str) -> dict[str, TypingEntry]:
        async with self._session("get typing") as session:
            rows = (await session.execute(select(TypingStatus).where(TypingStatus.room == room))).scalars().all()
            return {row.phone_number: TypingEntry.model_validate(row) for row in rows}

    async def set_typing(self, room: str, phone_number: str, entry: TypingEntry | None) -> None:
        """Merge one diner's entry into the room's presence record; ``None`` clears it."""
        async with self._session("set typing") as session:
            if entry is None:
                await session.execute(
                    delete(TypingStatus).where(
                        TypingStatus.room == room,
                        TypingStatus.phone_number == phone_number,
                    )
                )
            else:
                row = await session.get(TypingStatus, (room, phone_number))
                if row is None:
                    row = TypingStatus(room=room, phone_number=phone_number)
                    session.add(row)
                row.is_typing = entry.is_typing
                row.name = entry.name
                row.table_number = entry.table_number
                row.timestamp = utcnow()
            await session.commit()
        topic = typing_topic(room)
        if self._feed.subscriber_count(topic):
            try:
                await self._feed.publish(topic, await self.get_typing(room))
            except StoreError:
                logger.warning("Typing republish failed room=%s", room)

    # ---- gifts --------------------------------------------------------------------

    async def list_active_gifts(self) -> list[GiftRecord]:
        return await self.query_many(
            "gifts",
            {"status": GiftStatusEnum.ACTIVE.value},
            order_by="timestamp",
            descending=True,
        )

    async def find_active_gifts(self, item_id: str, sender_phone: str, recipient_phone: str) -> list[GiftRecord]:
        return await self.query_many(
            "gifts",
            {
                "item_id": item_id,
                "sender_phone_number": sender_phone,
                "recipient_phone_number": recipient_phone,
                "status": GiftStatusEnum.ACTIVE.value,
            },
        )

    # ---- orders -------------------------------------------------------------------

    async def list_orders(self, *, use_cache: bool = True) -> list[OrderPublic]:
        if use_cache:
            cached = self.orders_cache.get("all")
            if cached is not None:
                return cached
        try:
            orders = await self.query_many("orders", order_by="created_at", descending=True)
        except StoreError:
            stale = self.orders_cache.get_stale("all")
            if stale is not None:
                logger.warning("Serving stale order list")
                return stale
            raise
        self.orders_cache.set("all", orders)
        return orders

    # ---- subscriptions ------------------------------------------------------------

    async def _watch(
        self,
        topic: str,
        callback: Callable[[Any], Awaitable[None]],
        load: Callable[[], Awaitable[Any]],
    ) -> Subscription:
        subscription = self._feed.subscribe(topic, callback)
        try:
            snapshot = await load()
        except StoreError:
            subscription.close()
            raise
        await callback(snapshot)
        return subscription

    async def watch_messages(self, room: str, callback: Callable[[list[MessagePublic]], Awaitable[None]]) -> Subscription:
        return await self._watch(messages_topic(room), callback, lambda: self.list_messages(room))

    async def watch_typing(
        self, room: str, callback: Callable[[dict[str, TypingEntry]], Awaitable[None]]
    ) -> Subscription:
        return await self._watch(typing_topic(room), callback, lambda: self.get_typing(room))

    async def watch_gifts(self, callback: Callable[[list[GiftRecord]], Awaitable[None]]) -> Subscription:
        return await self._watch(GIFTS_TOPIC, callback, self.list_active_gifts)

    async def watch_orders(self, callback: Callable[[list[OrderPublic]], Awaitable[None]]) -> Subscription:
        return await self._watch(ORDERS_TOPIC, callback, lambda: self.list_orders(use_cache=False))


document_store = DocumentStore(async_session_factory, feed)
