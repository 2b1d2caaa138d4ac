from pydantic import BaseModel, Field

from tableside.models.models import OrderStatusEnum
from tableside.schemas.common import UtcDatetime
from tableside.schemas.cart import CartItem, CartTotals


class CheckoutRequest(BaseModel):
    items: list[CartItem] | None = None
    discount_code: str | None = None
    gift_amount: float = Field(default=0.0, ge=0)
    table_number: str | None = Field(default=None, max_length=32)


class OrderPublic(BaseModel):
    id: str
    table_number: str | None = None
    phone_number: str
    customer_name: str = ""
    items: list[dict] = Field(default_factory=list)
    subtotal: float = 0.0
    tax: float = 0.0
    discount: float = 0.0
    gift_amount: float = 0.0
    total: float = 0.0
    status: OrderStatusEnum = OrderStatusEnum.PENDING
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None

    model_config = {"from_attributes": True}


class CheckoutResponse(BaseModel):
    order: OrderPublic
    totals: CartTotals


class TableSummary(BaseModel):
    table_number: str
    orders: list[OrderPublic]
    order_count: int
    total: float
    statuses: dict[str, int]


class TableActionResponse(BaseModel):
    table_number: str
    updated: int
    status: OrderStatusEnum
