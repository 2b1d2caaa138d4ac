import logging

from fastapi import APIRouter, Query, status

from tableside.api.deps import CurrentUserDep, StoreDep
from tableside.models.models import MessageKindEnum
from tableside.schemas.chat import ChatParticipant, MessageCreate, MessagePublic, TypingEntry, TypingUpdate, TypingUser
from tableside.services.cart import normalize_phone
from tableside.services.presence import live_typing_users


router = APIRouter(prefix="/chat/{room}", tags=["chat"])
logger = logging.getLogger("tableside.chat")

DEFAULT_TABLE = "Table 1"


@router.get("/messages", response_model=list[MessagePublic])
async def list_messages(
    room: str,
    store: StoreDep,
    _: CurrentUserDep,
    limit: int = Query(default=100, ge=1, le=500),
) -> list[MessagePublic]:
    return await store.list_messages(room, limit=limit)


@router.post("/messages", response_model=MessagePublic, status_code=status.HTTP_201_CREATED)
async def post_message(
    room: str,
    payload: MessageCreate,
    store: StoreDep,
    current_user: CurrentUserDep,
) -> MessagePublic:
    message = await store.create_one(
        "messages",
        {
            "room": room,
            "text": payload.text,
            "phone_number": current_user.phone_number,
            "display_name": current_user.name,
            "photo_url": current_user.photo_url,
            "table_number": payload.table_number or DEFAULT_TABLE,
            "kind": MessageKindEnum.CHAT.value,
        },
    )
    # A sent message always ends the sender's typing spell.
    await store.set_typing(room, current_user.phone_number, None)
    logger.info("Chat message room=%s phone=%s", room, current_user.phone_number)
    return message


@router.get("/participants", response_model=list[ChatParticipant])
async def list_participants(room: str, store: StoreDep, current_user: CurrentUserDep) -> list[ChatParticipant]:
    me = normalize_phone(current_user.phone_number)
    seen: dict[str, ChatParticipant] = {}
    for message in await store.list_messages(room):
        if normalize_phone(message.phone_number) == me or message.phone_number in seen:
            continue
        profile = await store.get_user(message.phone_number)
        seen[message.phone_number] = ChatParticipant(
            phone_number=message.phone_number,
            name=(profile.name if profile else None) or message.display_name or "Unknown User",
            photo_url=profile.photo_url if profile else message.photo_url,
            table_number=message.table_number,
        )
    return list(seen.values())


@router.get("/typing", response_model=list[TypingUser])
async def get_typing(room: str, store: StoreDep, current_user: CurrentUserDep) -> list[TypingUser]:
    return live_typing_users(await store.get_typing(room), current_user.phone_number)


@router.put("/typing", status_code=status.HTTP_204_NO_CONTENT)
async def put_typing(
    room: str,
    payload: TypingUpdate,
    store: StoreDep,
    current_user: CurrentUserDep,
    table_number: str | None = Query(default=None, max_length=32),
) -> None:
    entry = None
    if payload.is_typing:
        entry = TypingEntry(is_typing=True, name=current_user.name, table_number=table_number or DEFAULT_TABLE)
    await store.set_typing(room, current_user.phone_number, entry)
