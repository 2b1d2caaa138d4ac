import logging

from tableside.models.models import GiftStatusEnum
from tableside.schemas.cart import CartItem, CartTotals
from tableside.schemas.order import OrderPublic
from tableside.services import pricing
from tableside.store.documents import DocumentStore


logger = logging.getLogger("tableside.orders")

DEFAULT_TABLE = "Table 1"


async def place_order(
    store: DocumentStore,
    cart: list[CartItem],
    *,
    phone_number: str,
    customer_name: str,
    table_number: str | None = None,
    discount_code: str | None = None,
    gift_amount: float = 0.0,
) -> tuple[OrderPublic, CartTotals]:
    """Record the cart as a pending order and retire the gifts the buyer paid for.

    Only sent lines whose record names the buyer as sender are retired. A
    recipient checking out only flags the record ``removed_by_receiver`` so the
    free line stays out of their cart while the sender still pays for it.

    Raises ``EmptyCartError`` / ``InvalidDiscountCodeError`` before anything is written.
    """
    pricing.ensure_not_empty(cart)
    totals = pricing.quote(cart, discount_code, gift_amount)
    order = await store.create_one(
        "orders",
        {
            "table_number": table_number or DEFAULT_TABLE,
            "phone_number": phone_number,
            "customer_name": customer_name,
            "items": [item.model_dump(mode="json", by_alias=True) for item in cart],
            "subtotal": round(totals.subtotal, 2),
            "tax": round(totals.tax, 2),
            "discount": round(totals.discount, 2),
            "gift_amount": round(totals.gift_amount, 2),
            "total": round(totals.total, 2),
        },
    )
    gift_ids = [item.gift_doc_id for item in cart if item.is_gift_sent and item.gift_doc_id]
    retired = 0
    if gift_ids:
        retired = await store.update_many(
            "gifts",
            {"sender_phone_number": phone_number, "status": GiftStatusEnum.ACTIVE.value},
            {"status": GiftStatusEnum.ORDERED.value},
            ids=gift_ids,
        )
    received_ids = [item.gift_doc_id for item in cart if item.is_gift_received and item.gift_doc_id]
    if received_ids:
        await store.update_many(
            "gifts",
            {"recipient_phone_number": phone_number, "status": GiftStatusEnum.ACTIVE.value},
            {"removed_by_receiver": True},
            ids=received_ids,
        )
    logger.info(
        "Order placed id=%s phone=%s table=%s total=%.2f gifts=%s",
        order.id,
        phone_number,
        order.table_number,
        order.total,
        retired,
    )
    return order, totals
