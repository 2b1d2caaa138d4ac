from typing import Iterable

from tableside.core.config import settings
from tableside.core.errors import EmptyCartError, InvalidDiscountCodeError
from tableside.schemas.cart import CartItem, CartTotals


DISCOUNT_CODES: dict[str, float] = {
    "welcome10": 0.10,
    "save20": 0.20,
}


def compute_totals(
    cart: Iterable[CartItem],
    discount: float = 0.0,
    gift_amount: float = 0.0,
    tax_rate: float | None = None,
) -> CartTotals:
    """Totals for a cart; received gifts cost nothing and sent gifts bill at their original price."""
    rate = settings.tax_rate if tax_rate is None else tax_rate
    regular_subtotal = 0.0
    gift_sent_subtotal = 0.0
    for item in cart:
        if not item.is_gift:
            regular_subtotal += item.price * item.quantity
        elif item.is_gift_sent:
            unit = item.original_price if item.original_price is not None else item.price
            gift_sent_subtotal += unit * item.quantity
    subtotal = regular_subtotal + gift_sent_subtotal
    tax = subtotal * rate
    return CartTotals(
        regular_subtotal=regular_subtotal,
        gift_sent_subtotal=gift_sent_subtotal,
        subtotal=subtotal,
        tax=tax,
        discount=discount,
        gift_amount=gift_amount,
        total=subtotal + tax + gift_amount - discount,
    )


def resolve_discount(code: str, subtotal: float) -> float:
    rate = DISCOUNT_CODES.get((code or "").strip().lower())
    if rate is None:
        raise InvalidDiscountCodeError()
    return subtotal * rate


def discount_message(code: str) -> str:
    rate = DISCOUNT_CODES[(code or "").strip().lower()]
    return f"{round(rate * 100)}% discount applied!"


def quote(cart: list[CartItem], code: str | None = None, gift_amount: float = 0.0) -> CartTotals:
    base = compute_totals(cart, gift_amount=gift_amount)
    if not code:
        return base
    return compute_totals(cart, discount=resolve_discount(code, base.subtotal), gift_amount=gift_amount)


def ensure_not_empty(cart: list[CartItem]) -> None:
    if not cart:
        raise EmptyCartError()
