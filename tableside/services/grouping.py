import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from tableside.core.clock import seconds_since, utcnow
from tableside.models.models import MessageKindEnum
from tableside.schemas.chat import MessagePublic
from tableside.services.cart import normalize_phone
from tableside.services.notifications import (
    HIGHLIGHT_DURATION_MS,
    MESSAGE_DURATION_MS,
    NotificationService,
    Toast,
    ToastKind,
)
from tableside.services.scheduler import KeyedScheduler


logger = logging.getLogger("tableside.notifications")

DEFAULT_WINDOW_MS = 1000
NEW_MESSAGE_WINDOW_S = 2.0


@dataclass
class NotificationGroup:
    sender_phone_number: str
    sender_name: str
    message_count: int
    last_message: str
    last_message_time: datetime

    @property
    def body(self) -> str:
        if self.message_count == 1:
            return self.last_message
        return f"{self.message_count} new messages"


class NotificationGrouper:
    """Coalesce bursts of chat messages per sender into one toast.

    Each message from a sender restarts that sender's quiet window; when the
    window elapses one ``message`` toast is emitted and the group discarded.
    """

    def __init__(
        self,
        notifications: NotificationService,
        scheduler: KeyedScheduler | None = None,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> None:
        self._notifications = notifications
        self._scheduler = scheduler or KeyedScheduler()
        self._window_ms = window_ms
        self._groups: dict[str, NotificationGroup] = {}

    def add(self, sender_phone: str, sender_name: str, preview: str) -> NotificationGroup:
        group = self._groups.get(sender_phone)
        if group is None:
            group = NotificationGroup(
                sender_phone_number=sender_phone,
                sender_name=sender_name,
                message_count=1,
                last_message=preview,
                last_message_time=utcnow(),
            )
            self._groups[sender_phone] = group
        else:
            group.message_count += 1
            group.last_message = preview
            group.last_message_time = utcnow()
        self._scheduler.schedule(sender_phone, self._window_ms, lambda: self._flush(sender_phone))
        return group

    def _flush(self, sender_phone: str) -> None:
        group = self._groups.pop(sender_phone, None)
        if group is None:
            return
        logger.debug("Grouped toast sender=%s count=%s", sender_phone, group.message_count)
        self._notifications.notify(
            Toast(
                kind=ToastKind.MESSAGE,
                message=group.sender_name,
                duration_ms=MESSAGE_DURATION_MS,
                sender=group.sender_name,
                preview=group.body,
            )
        )

    def group(self, sender_phone: str) -> NotificationGroup | None:
        return self._groups.get(sender_phone)

    def pending_senders(self) -> list[str]:
        return list(self._groups)

    def close(self) -> None:
        self._scheduler.close()
        self._groups.clear()


def find_new_message(
    messages: Iterable[MessagePublic],
    user_phone: str | None,
    now: datetime | None = None,
    window_s: float = NEW_MESSAGE_WINDOW_S,
) -> MessagePublic | None:
    """The latest message in the snapshot that arrived within ``window_s`` and is not the diner's own."""
    me = normalize_phone(user_phone)
    observed_at = now or utcnow()
    newest: MessagePublic | None = None
    for message in messages:
        age = seconds_since(message.timestamp, observed_at)
        if age is None:
            age = 0.0
        if age < window_s and normalize_phone(message.phone_number) != me:
            newest = message
    return newest


def is_highlight(message: MessagePublic) -> bool:
    return message.kind in (MessageKindEnum.RECOMMENDATION, MessageKindEnum.GIFT)


def format_price(price: float) -> str:
    if float(price).is_integer():
        return str(int(price))
    return str(price)


def _price_text(price: float | None) -> str:
    if not price:
        return ""
    return f" (${format_price(price)})"


def highlight_toast(message: MessagePublic, sender_name: str) -> Toast:
    """Immediate toast for a recommendation or gift announcement."""
    if message.kind is MessageKindEnum.GIFT:
        return Toast(
            kind=ToastKind.GIFT,
            message=(
                f'{sender_name} gifted "{message.gifted_item}"'
                f"{_price_text(message.gifted_item_price)} to {message.gifted_to}"
            ),
            duration_ms=HIGHLIGHT_DURATION_MS,
            sender=sender_name,
            receiver=message.gifted_to,
        )
    return Toast(
        kind=ToastKind.RECOMMENDATION,
        message=(
            f'{sender_name} recommended "{message.recommended_item}"'
            f"{_price_text(message.recommended_item_price)} to {message.recommended_to}"
        ),
        duration_ms=HIGHLIGHT_DURATION_MS,
        sender=sender_name,
        receiver=message.recommended_to,
    )
