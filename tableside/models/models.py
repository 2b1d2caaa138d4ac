from datetime import datetime
from enum import Enum as StrEnumBase
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tableside.core.clock import utcnow
from tableside.db.session import Base


def _new_id() -> str:
    return uuid4().hex


class User(Base):
    __tablename__ = "users"

    phone_number: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    photo_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_login: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ProductCategoryEnum(str, StrEnumBase):
    MAIN_COURSE = "main-course"
    APPETIZERS = "appetizers"
    DRINKS = "drinks"
    DESSERTS = "desserts"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    description: Mapped[str] = mapped_column(String(1000), default="")
    full_description: Mapped[str] = mapped_column(Text, default="")
    image: Mapped[str] = mapped_column(String(2048), default="")
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    spice_level: Mapped[int] = mapped_column(Integer, default=0)
    chef_special: Mapped[bool] = mapped_column(Boolean, default=False)
    order_count: Mapped[int] = mapped_column(Integer, default=0)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
    category: Mapped[str] = mapped_column(String(32), default=ProductCategoryEnum.MAIN_COURSE.value, index=True)
    is_popular: Mapped[bool] = mapped_column(Boolean, default=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class MessageKindEnum(str, StrEnumBase):
    CHAT = "chat"
    RECOMMENDATION = "recommendation"
    GIFT = "gift"


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    room: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(120), default="")
    photo_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    table_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    kind: Mapped[str] = mapped_column(String(20), default=MessageKindEnum.CHAT.value)
    recommended_item: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recommended_item_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    recommended_to: Mapped[str | None] = mapped_column(String(120), nullable=True)
    gifted_item: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gifted_item_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    gifted_to: Mapped[str | None] = mapped_column(String(120), nullable=True)
    gifted_to_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)


class GiftStatusEnum(str, StrEnumBase):
    ACTIVE = "active"
    REMOVED = "removed"
    ORDERED = "ordered"


class Gift(Base):
    __tablename__ = "gifts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    item_image: Mapped[str] = mapped_column(String(2048), default="")
    item_description: Mapped[str] = mapped_column(String(1000), default="")
    item_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    item_review_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sender_phone_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    sender_name: Mapped[str] = mapped_column(String(120), default="")
    recipient_phone_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    recipient_name: Mapped[str] = mapped_column(String(120), default="")
    status: Mapped[str] = mapped_column(String(20), default=GiftStatusEnum.ACTIVE.value, index=True)
    removed_by_sender: Mapped[bool] = mapped_column(Boolean, default=False)
    removed_by_receiver: Mapped[bool] = mapped_column(Boolean, default=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        Index("ix_gifts_triple", "item_id", "sender_phone_number", "recipient_phone_number"),
    )


class OrderStatusEnum(str, StrEnumBase):
    PENDING = "pending"
    READY = "ready"
    COMPLETED = "completed"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    table_number: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(String(120), default="")
    items: Mapped[list] = mapped_column(JSON, default=list)
    subtotal: Mapped[float] = mapped_column(Float, default=0.0)
    tax: Mapped[float] = mapped_column(Float, default=0.0)
    discount: Mapped[float] = mapped_column(Float, default=0.0)
    gift_amount: Mapped[float] = mapped_column(Float, default=0.0)
    total: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatusEnum.PENDING.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TypingStatus(Base):
    """One row per (room, diner); the rows of a room form its presence record."""

    __tablename__ = "typing_status"

    room: Mapped[str] = mapped_column(String(64), primary_key=True)
    phone_number: Mapped[str] = mapped_column(String(32), primary_key=True)
    is_typing: Mapped[bool] = mapped_column(Boolean, default=False)
    name: Mapped[str] = mapped_column(String(120), default="")
    table_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
