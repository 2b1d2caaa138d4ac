"""Cart reducers and gift reconciliation.

Every function here is pure: it takes the current cart and returns a new
list, leaving its input untouched. Gift items in the cart are a projection of
the active gift records; ``reconcile_cart`` recomputes that projection from
the latest snapshot so the outcome depends only on the snapshot and the
diner, never on the order snapshots arrived in.
"""

import logging
import re
from typing import Iterable

from tableside.core.errors import GiftLineError, InvalidQuantityError
from tableside.schemas.cart import CartItem
from tableside.schemas.gift import GiftRecord


logger = logging.getLogger("tableside.cart")

SENTINEL_ITEM_ID = "test-item"
UNKNOWN_RECIPIENT_NAME = "Unknown User"

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_phone(phone: str | None) -> str:
    if not phone:
        return ""
    return _NON_DIGITS.sub("", phone)


def received_gift_id(item_id: str, sender_phone: str) -> str:
    return f"received-{item_id}-{sender_phone}"


def sent_gift_id(item_id: str, recipient_phone: str) -> str:
    return f"sent-{item_id}-{recipient_phone}"


def _received_item(gift: GiftRecord) -> CartItem:
    return CartItem(
        id=gift.item_id,
        gift_id=received_gift_id(gift.item_id, gift.sender_phone_number),
        name=gift.item_name,
        price=0.0,
        original_price=gift.item_price,
        quantity=1,
        is_gift=True,
        is_gift_sent=False,
        is_gift_received=True,
        gifted_by=gift.sender_name,
        gifted_to=gift.recipient_phone_number,
        gift_doc_id=gift.id,
        image=gift.item_image,
        description=gift.item_description,
        rating=gift.item_rating,
        review_count=gift.item_review_count,
    )


def _sent_item(gift: GiftRecord) -> CartItem:
    return CartItem(
        id=gift.item_id,
        gift_id=sent_gift_id(gift.item_id, gift.recipient_phone_number),
        name=gift.item_name,
        price=gift.item_price,
        original_price=gift.item_price,
        quantity=1,
        is_gift=True,
        is_gift_sent=True,
        is_gift_received=False,
        gifted_by=gift.sender_name,
        gifted_to=gift.recipient_phone_number,
        gifted_to_name=gift.recipient_name or UNKNOWN_RECIPIENT_NAME,
        gift_doc_id=gift.id,
        image=gift.item_image,
        description=gift.item_description,
        rating=gift.item_rating,
        review_count=gift.item_review_count,
    )


def synthesize_gift_items(gifts: Iterable[GiftRecord], user_phone: str | None) -> list[CartItem]:
    """Cart items implied by the gift snapshot for one diner, in snapshot order.

    A self-gift yields both a received and a sent item. A received item the
    recipient already ordered is left out.
    """
    me = normalize_phone(user_phone)
    if not me:
        return []
    items: list[CartItem] = []
    for gift in gifts:
        if gift.item_id == SENTINEL_ITEM_ID:
            continue
        if normalize_phone(gift.recipient_phone_number) == me and not gift.removed_by_receiver:
            items.append(_received_item(gift))
        if normalize_phone(gift.sender_phone_number) == me:
            items.append(_sent_item(gift))
    return items


def deduplicate_cart(cart: Iterable[CartItem]) -> list[CartItem]:
    seen: set[str] = set()
    result: list[CartItem] = []
    for item in cart:
        key = item.dedup_key
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def _with_doc_id(item: CartItem, candidates: dict[str, CartItem]) -> CartItem:
    """Point a gift line at the record currently backing its gift id."""
    if not item.is_gift or item.gift_id not in candidates:
        return item
    doc_id = candidates[item.gift_id].gift_doc_id
    if item.gift_doc_id == doc_id:
        return item
    return item.model_copy(update={"gift_doc_id": doc_id})


def reconcile_cart(
    cart: list[CartItem],
    gifts: Iterable[GiftRecord],
    user_phone: str | None,
) -> list[CartItem]:
    """Bring the cart's gift items in line with the active gift snapshot.

    Missing gift items are appended in one batch, gift items with no backing
    record and the sentinel item are dropped, then the result is deduplicated.
    Running it again on its own output returns an equal cart.
    """
    # Duplicate records for one gift id resolve to the lowest document id.
    candidates: dict[str, CartItem] = {}
    for item in synthesize_gift_items(gifts, user_phone):
        current = candidates.get(item.gift_id)
        if current is None or (item.gift_doc_id or "") < (current.gift_doc_id or ""):
            candidates[item.gift_id] = item
    valid_ids = set(candidates)

    present = {item.gift_id for item in cart if item.gift_id}
    additions = [item for gift_id, item in candidates.items() if gift_id not in present]
    refreshed = [_with_doc_id(item, candidates) for item in cart]

    kept = [
        item
        for item in [*refreshed, *additions]
        if item.id != SENTINEL_ITEM_ID and (not item.is_gift or item.gift_id in valid_ids)
    ]
    result = deduplicate_cart(kept)
    if additions or len(result) != len(cart):
        logger.debug(
            "Cart reconciled added=%s size_before=%s size_after=%s",
            len(additions),
            len(cart),
            len(result),
        )
    return result


def add_to_cart(cart: list[CartItem], item: CartItem, quantity: int = 1) -> list[CartItem]:
    """Merge a regular item into the cart; a new line takes ``quantity``.

    Gift lines only come from gift records, so gift items are refused here.
    """
    if item.is_gift:
        raise GiftLineError()
    if quantity < 1:
        raise InvalidQuantityError()
    for index, existing in enumerate(cart):
        if existing.id == item.id and not existing.is_gift:
            merged = existing.model_copy(update={"quantity": existing.quantity + quantity})
            return [*cart[:index], merged, *cart[index + 1:]]
    return [*cart, item.model_copy(update={"quantity": quantity})]


def find_cart_item(cart: Iterable[CartItem], key: str) -> CartItem | None:
    for item in cart:
        if item.key == key:
            return item
    return None


def remove_from_cart(cart: list[CartItem], key: str) -> tuple[list[CartItem], CartItem | None]:
    removed = find_cart_item(cart, key)
    return [item for item in cart if item.key != key], removed


def update_quantity(cart: list[CartItem], key: str, quantity: int) -> tuple[list[CartItem], CartItem | None]:
    """Set a line's quantity; zero or less removes it and returns the removed line.

    Gift lines stay at quantity 1 whatever is requested.
    """
    if quantity <= 0:
        return remove_from_cart(cart, key)
    updated: list[CartItem] = []
    for item in cart:
        if item.key == key:
            item = item.model_copy(update={"quantity": 1 if item.is_gift else quantity})
        updated.append(item)
    return updated, None


def cart_item_count(cart: Iterable[CartItem]) -> int:
    return sum(item.quantity for item in cart)


def gift_cart_item(
    product: CartItem,
    sender_name: str,
    recipient_phone: str,
    recipient_name: str,
    gift_doc_id: str | None,
) -> CartItem:
    """The sender's own line for a gift that was just created."""
    return product.model_copy(
        update={
            "gift_id": sent_gift_id(product.id, recipient_phone),
            "price": product.price,
            "original_price": product.price,
            "quantity": 1,
            "is_gift": True,
            "is_gift_sent": True,
            "is_gift_received": False,
            "gifted_by": sender_name,
            "gifted_to": recipient_phone,
            "gifted_to_name": recipient_name or UNKNOWN_RECIPIENT_NAME,
            "gift_doc_id": gift_doc_id,
        }
    )
