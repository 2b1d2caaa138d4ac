from pydantic import BaseModel, Field

from tableside.schemas.common import UtcDatetime


class GiftRecord(BaseModel):
    id: str
    item_id: str
    item_name: str
    item_price: float = 0.0
    item_image: str = ""
    item_description: str = ""
    item_rating: float | None = None
    item_review_count: int | None = None
    sender_phone_number: str
    sender_name: str = ""
    recipient_phone_number: str
    recipient_name: str = ""
    status: str = "active"
    removed_by_sender: bool = False
    removed_by_receiver: bool = False
    timestamp: UtcDatetime | None = None

    model_config = {"from_attributes": True}


class GiftCreate(BaseModel):
    item_id: str = Field(min_length=1, max_length=64)
    recipient_phone_number: str = Field(min_length=3, max_length=32)
    recipient_name: str = Field(default="", max_length=120)
    send_message: bool = True
    room: str | None = Field(default=None, max_length=64)
    table_number: str | None = Field(default=None, max_length=32)


class GiftCreateResponse(BaseModel):
    created: bool
    message: str
