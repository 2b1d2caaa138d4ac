"""Toast notifications delivered to a diner's page."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Callable
from uuid import uuid4

from pydantic import BaseModel, Field

from tableside.core.clock import utcnow
from tableside.services.scheduler import KeyedScheduler


logger = logging.getLogger("tableside.notifications")

MAX_VISIBLE_TOASTS = 5
DEFAULT_DURATION_MS = 4000
SHORT_DURATION_MS = 3000
MESSAGE_DURATION_MS = 5000
HIGHLIGHT_DURATION_MS = 6000


class ToastKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    MESSAGE = "message"
    GIFT = "gift"
    RECOMMENDATION = "recommendation"


class Toast(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    kind: ToastKind = ToastKind.INFO
    message: str
    duration_ms: int = DEFAULT_DURATION_MS
    sender: str | None = None
    receiver: str | None = None
    preview: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class NotificationService(ABC):
    @abstractmethod
    def notify(self, toast: Toast) -> None:
        """Show ``toast`` to the diner."""

    def toast(
        self,
        message: str,
        kind: ToastKind = ToastKind.INFO,
        duration_ms: int = SHORT_DURATION_MS,
        *,
        sender: str | None = None,
        receiver: str | None = None,
        preview: str | None = None,
    ) -> Toast:
        toast = Toast(
            kind=kind,
            message=message,
            duration_ms=duration_ms,
            sender=sender,
            receiver=receiver,
            preview=preview,
        )
        self.notify(toast)
        return toast


class ToastCenter(NotificationService):
    """Visible toast stack for one diner.

    Newest first, at most five. A new ``message`` toast replaces any earlier
    ``message`` toast. Each toast is dismissed after its duration; a duration
    of zero keeps it until dismissed.
    """

    def __init__(self, scheduler: KeyedScheduler | None = None, max_visible: int = MAX_VISIBLE_TOASTS) -> None:
        self._scheduler = scheduler or KeyedScheduler()
        self._max_visible = max_visible
        self._visible: list[Toast] = []
        self._observers: list[Callable[[Toast], None]] = []

    @property
    def visible(self) -> list[Toast]:
        return list(self._visible)

    def add_observer(self, observer: Callable[[Toast], None]) -> None:
        self._observers.append(observer)

    def notify(self, toast: Toast) -> None:
        if toast.kind is ToastKind.MESSAGE:
            for old in self._visible:
                if old.kind is ToastKind.MESSAGE:
                    self._scheduler.cancel(old.id)
            self._visible = [toast, *(t for t in self._visible if t.kind is not ToastKind.MESSAGE)]
        else:
            self._visible = [toast, *self._visible]
        for dropped in self._visible[self._max_visible:]:
            self._scheduler.cancel(dropped.id)
        self._visible = self._visible[: self._max_visible]

        if toast.duration_ms > 0:
            self._scheduler.schedule(toast.id, toast.duration_ms, lambda: self.dismiss(toast.id))
        logger.debug("Toast kind=%s message=%s", toast.kind.value, toast.message)

        for observer in list(self._observers):
            try:
                observer(toast)
            except Exception:
                logger.exception("Toast observer failed")

    def dismiss(self, toast_id: str) -> bool:
        self._scheduler.cancel(toast_id)
        before = len(self._visible)
        self._visible = [t for t in self._visible if t.id != toast_id]
        return len(self._visible) != before

    def close(self) -> None:
        self._scheduler.close()
        self._observers.clear()
