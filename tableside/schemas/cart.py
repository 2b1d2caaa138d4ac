from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CartItem(BaseModel):
    """A cart line as persisted per diner (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    gift_id: str | None = None
    name: str = ""
    price: float = 0.0
    original_price: float | None = None
    quantity: int = Field(default=1, ge=1)
    is_gift: bool = False
    is_gift_sent: bool = False
    is_gift_received: bool = False
    gifted_by: str | None = None
    gifted_to: str | None = None
    gifted_to_name: str | None = None
    gift_doc_id: str | None = None
    image: str = ""
    description: str = ""
    rating: float | None = None
    review_count: int | None = None

    @property
    def key(self) -> str:
        """Identity used for removal and quantity updates."""
        return self.gift_id or self.id

    @property
    def dedup_key(self) -> str:
        if self.is_gift:
            return self.gift_id or f"{self.id}-gift"
        return f"{self.id}-regular"


class CartTotals(BaseModel):
    regular_subtotal: float
    gift_sent_subtotal: float
    subtotal: float
    tax: float
    discount: float
    gift_amount: float
    total: float


class QuoteRequest(BaseModel):
    items: list[CartItem] = Field(default_factory=list)
    discount_code: str | None = None
    gift_amount: float = Field(default=0.0, ge=0)


class QuoteResponse(BaseModel):
    totals: CartTotals
    discount_code: str | None = None
    item_count: int
