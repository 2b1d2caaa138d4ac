import logging
from collections import Counter
from typing import Any, Iterable

from tableside.core.errors import MissingIdError
from tableside.models.models import OrderStatusEnum
from tableside.schemas.menu import ProductCreate, ProductPublic, ProductUpdate
from tableside.schemas.order import OrderPublic, TableSummary
from tableside.store.documents import DocumentStore


logger = logging.getLogger("tableside.admin")

DEFAULT_TABLE = "Table 1"


def table_of(order: OrderPublic) -> str:
    return order.table_number or DEFAULT_TABLE


def group_orders_by_table(orders: Iterable[OrderPublic]) -> list[TableSummary]:
    """Per-table order lists in first-seen order, with count, summed total and status breakdown."""
    grouped: dict[str, list[OrderPublic]] = {}
    for order in orders:
        grouped.setdefault(table_of(order), []).append(order)
    return [
        TableSummary(
            table_number=table,
            orders=table_orders,
            order_count=len(table_orders),
            total=round(sum(o.total or 0.0 for o in table_orders), 2),
            statuses=dict(Counter(o.status.value for o in table_orders)),
        )
        for table, table_orders in grouped.items()
    ]


def _require_id(product_id: str | None) -> str:
    if not product_id or not product_id.strip():
        logger.error("Product ID is missing")
        raise MissingIdError()
    return product_id.strip()


class AdminService:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def list_products(self) -> list[ProductPublic]:
        return await self._store.list_products()

    async def create_product(self, payload: ProductCreate) -> ProductPublic:
        data = payload.model_dump(mode="json")
        if not data.get("id"):
            data.pop("id", None)
        product = await self._store.create_one("products", data)
        logger.info("Product created id=%s name=%s", product.id, product.name)
        return product

    async def update_product(self, product_id: str | None, payload: ProductUpdate) -> ProductPublic:
        product_id = _require_id(product_id)
        patch = payload.model_dump(mode="json", exclude_unset=True)
        product = await self._store.update_one("products", product_id, patch)
        logger.info("Product updated id=%s fields=%s", product_id, sorted(patch))
        return product

    async def delete_product(self, product_id: str | None) -> bool:
        product_id = _require_id(product_id)
        deleted = await self._store.delete_one("products", product_id)
        logger.info("Product delete id=%s deleted=%s", product_id, deleted)
        return deleted

    async def tables(self) -> list[TableSummary]:
        return group_orders_by_table(await self._store.list_orders())

    async def _set_table_status(self, table_number: str, status: OrderStatusEnum) -> int:
        orders = await self._store.list_orders(use_cache=False)
        ids = [order.id for order in orders if table_of(order) == table_number]
        updated = await self._store.update_many("orders", {}, {"status": status.value}, ids=ids)
        logger.info("Table status table=%s status=%s orders=%s", table_number, status.value, updated)
        return updated

    async def mark_table_ready(self, table_number: str) -> int:
        return await self._set_table_status(table_number, OrderStatusEnum.READY)

    async def clear_table(self, table_number: str) -> int:
        return await self._set_table_status(table_number, OrderStatusEnum.COMPLETED)

    async def list_users(self):
        return await self._store.list_users()

    def cache_stats(self) -> dict[str, Any]:
        return {
            "products": self._store.products_cache.stats(),
            "users": self._store.users_cache.stats(),
            "orders": self._store.orders_cache.stats(),
        }

    def clear_caches(self) -> None:
        self._store.products_cache.invalidate()
        self._store.users_cache.invalidate()
        self._store.orders_cache.invalidate()
