from pydantic import BaseModel, Field, field_validator

from tableside.models.models import MessageKindEnum
from tableside.schemas.common import UtcDatetime


class MessageCreate(BaseModel):
    text: str = Field(min_length=1, max_length=2000)
    table_number: str | None = Field(default=None, max_length=32)

    @field_validator("text")
    @classmethod
    def _text_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Message text must not be blank")
        return normalized


class MessagePublic(BaseModel):
    id: str
    room: str
    text: str
    phone_number: str
    display_name: str = ""
    photo_url: str | None = None
    table_number: str | None = None
    kind: MessageKindEnum = MessageKindEnum.CHAT
    recommended_item: str | None = None
    recommended_item_price: float | None = None
    recommended_to: str | None = None
    gifted_item: str | None = None
    gifted_item_price: float | None = None
    gifted_to: str | None = None
    gifted_to_phone: str | None = None
    timestamp: UtcDatetime | None = None

    model_config = {"from_attributes": True}


class TypingEntry(BaseModel):
    is_typing: bool = False
    timestamp: UtcDatetime | None = None
    name: str = ""
    table_number: str | None = None

    model_config = {"from_attributes": True}


class TypingUser(BaseModel):
    phone_number: str
    name: str
    table_number: str | None = None


class TypingUpdate(BaseModel):
    is_typing: bool


class ChatParticipant(BaseModel):
    phone_number: str
    name: str
    photo_url: str | None = None
    table_number: str | None = None
