import logging

from fastapi import APIRouter, Request, status
from pydantic import ValidationError

from tableside.api.deps import CurrentUserDep, LocalStoreDep, StoreDep
from tableside.core.audit import AuditAction, audit_log
from tableside.schemas.cart import CartItem, QuoteRequest, QuoteResponse
from tableside.schemas.order import CheckoutRequest, CheckoutResponse, OrderPublic
from tableside.services import pricing
from tableside.services.cart import cart_item_count
from tableside.services.orders import place_order
from tableside.storage.local import CART_KEY, CURRENT_USER_KEY


router = APIRouter(tags=["orders"])
logger = logging.getLogger("tableside.orders")


@router.post("/cart/quote", response_model=QuoteResponse)
async def quote_cart(payload: QuoteRequest) -> QuoteResponse:
    totals = pricing.quote(payload.items, payload.discount_code, payload.gift_amount)
    return QuoteResponse(
        totals=totals,
        discount_code=payload.discount_code.strip().lower() if payload.discount_code else None,
        item_count=cart_item_count(payload.items),
    )


async def _stored_cart(local: LocalStoreDep, phone_number: str) -> list[CartItem]:
    raw = await local.get_json(phone_number, CART_KEY) or []
    items: list[CartItem] = []
    for entry in raw:
        try:
            items.append(CartItem.model_validate(entry))
        except ValidationError:
            logger.warning("Skipping unreadable cart line phone=%s", phone_number)
    return items


@router.post("/orders", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutRequest,
    store: StoreDep,
    local: LocalStoreDep,
    current_user: CurrentUserDep,
    request: Request,
) -> CheckoutResponse:
    from_local = payload.items is None
    cart = await _stored_cart(local, current_user.phone_number) if from_local else payload.items
    table_number = payload.table_number
    if table_number is None:
        stored_user = await local.get_json(current_user.phone_number, CURRENT_USER_KEY) or {}
        table_number = stored_user.get("table_number")

    order, totals = await place_order(
        store,
        cart,
        phone_number=current_user.phone_number,
        customer_name=current_user.name,
        table_number=table_number,
        discount_code=payload.discount_code,
        gift_amount=payload.gift_amount,
    )
    if from_local:
        await local.set_json(current_user.phone_number, CART_KEY, [])
    audit_log(
        AuditAction.ORDER_CREATE,
        request=request,
        user_id=current_user.phone_number,
        details={"order_id": order.id, "table_number": order.table_number, "total": order.total},
    )
    return CheckoutResponse(order=order, totals=totals)


@router.get("/orders/mine", response_model=list[OrderPublic])
async def list_my_orders(store: StoreDep, current_user: CurrentUserDep) -> list[OrderPublic]:
    return [o for o in await store.list_orders() if o.phone_number == current_user.phone_number]
