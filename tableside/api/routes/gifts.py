import logging

from fastapi import APIRouter, HTTPException, Request, status

from tableside.api.deps import CurrentUserDep, StoreDep
from tableside.core.audit import AuditAction, audit_gift_action
from tableside.core.config import settings
from tableside.core.errors import DuplicateGiftError, SelfGiftError
from tableside.models.models import GiftStatusEnum, MessageKindEnum
from tableside.schemas.gift import GiftCreate, GiftRecord
from tableside.services.cart import normalize_phone
from tableside.services.grouping import format_price


router = APIRouter(prefix="/gifts", tags=["gifts"])
logger = logging.getLogger("tableside.gifts")


def _involves(gift: GiftRecord, phone_number: str) -> bool:
    me = normalize_phone(phone_number)
    return me in (normalize_phone(gift.sender_phone_number), normalize_phone(gift.recipient_phone_number))


@router.get("/mine", response_model=list[GiftRecord])
async def list_my_gifts(store: StoreDep, current_user: CurrentUserDep) -> list[GiftRecord]:
    return [g for g in await store.list_active_gifts() if _involves(g, current_user.phone_number)]


@router.post("", response_model=GiftRecord, status_code=status.HTTP_201_CREATED)
async def create_gift(
    payload: GiftCreate,
    store: StoreDep,
    current_user: CurrentUserDep,
    request: Request,
) -> GiftRecord:
    product = await store.get_one("products", payload.item_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if normalize_phone(payload.recipient_phone_number) == normalize_phone(current_user.phone_number):
        raise SelfGiftError()

    # Check-then-create: two concurrent sends can both pass the check.
    existing = await store.find_active_gifts(
        product.id, current_user.phone_number, payload.recipient_phone_number
    )
    if existing:
        logger.info(
            "Duplicate gift item_id=%s sender=%s recipient=%s",
            product.id,
            current_user.phone_number,
            payload.recipient_phone_number,
        )
        raise DuplicateGiftError()

    recipient = await store.get_user(payload.recipient_phone_number)
    recipient_name = payload.recipient_name or (recipient.name if recipient else "") or "Unknown User"
    gift = await store.create_one(
        "gifts",
        {
            "item_id": product.id,
            "item_name": product.name,
            "item_price": product.price,
            "item_image": product.image,
            "item_description": product.description,
            "item_rating": product.rating,
            "item_review_count": product.review_count,
            "sender_phone_number": current_user.phone_number,
            "sender_name": current_user.name,
            "recipient_phone_number": payload.recipient_phone_number,
            "recipient_name": recipient_name,
            "status": GiftStatusEnum.ACTIVE.value,
            "removed_by_sender": False,
            "removed_by_receiver": False,
        },
    )
    audit_gift_action(
        AuditAction.GIFT_CREATE,
        request,
        current_user.phone_number,
        gift.id,
        {"item_id": product.id, "recipient": payload.recipient_phone_number},
    )

    if payload.send_message:
        await store.create_one(
            "messages",
            {
                "room": payload.room or settings.default_room,
                "text": (
                    f'🎁 {current_user.name} gifted "{product.name}" '
                    f"(${format_price(product.price)}) to {recipient_name}"
                ),
                "phone_number": current_user.phone_number,
                "display_name": current_user.name,
                "photo_url": current_user.photo_url,
                "table_number": payload.table_number or "Table 1",
                "kind": MessageKindEnum.GIFT.value,
                "gifted_item": product.name,
                "gifted_item_price": product.price,
                "gifted_to": recipient_name,
                "gifted_to_phone": payload.recipient_phone_number,
            },
        )
    return gift


@router.delete("/{gift_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_gift(
    gift_id: str,
    store: StoreDep,
    current_user: CurrentUserDep,
    request: Request,
) -> None:
    gift = await store.get_one("gifts", gift_id)
    if gift is None or not _involves(gift, current_user.phone_number):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift not found")
    await store.delete_one("gifts", gift_id)
    audit_gift_action(AuditAction.GIFT_DELETE, request, current_user.phone_number, gift_id)
