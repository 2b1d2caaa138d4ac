import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Mapping

from tableside.core.clock import seconds_since, utcnow
from tableside.schemas.chat import TypingEntry, TypingUser
from tableside.services.cart import normalize_phone
from tableside.services.scheduler import KeyedScheduler


logger = logging.getLogger("tableside.presence")

TYPING_TTL_MS = 5000
IDLE_STOP_MS = 1500
BLUR_STOP_MS = 1000
CEILING_MS = 5000

_STOP = "stop"
_CEILING = "ceiling"


def is_live(entry: TypingEntry, now: datetime, ttl_ms: int = TYPING_TTL_MS) -> bool:
    if not entry.is_typing:
        return False
    age = seconds_since(entry.timestamp, now)
    # A write still waiting for its server timestamp counts as fresh.
    if age is None:
        return True
    return age * 1000 < ttl_ms


def live_typing_users(
    entries: Mapping[str, TypingEntry | None],
    user_phone: str | None,
    now: datetime | None = None,
    ttl_ms: int = TYPING_TTL_MS,
) -> list[TypingUser]:
    me = normalize_phone(user_phone)
    observed_at = now or utcnow()
    users: list[TypingUser] = []
    for phone_number, entry in entries.items():
        if entry is None or normalize_phone(phone_number) == me:
            continue
        if is_live(entry, observed_at, ttl_ms):
            users.append(TypingUser(phone_number=phone_number, name=entry.name, table_number=entry.table_number))
    return users


def typing_label(users: list[TypingUser]) -> str:
    if not users:
        return ""
    if len(users) == 1:
        return f"{users[0].name or users[0].phone_number} is typing"
    return f"{len(users)} people are typing"


class TypingTracker:
    """Drives one diner's own entry in the room presence record from input events.

    ``write`` receives ``True`` when typing starts and ``False`` when it stops.
    A stop comes from an empty input, 1.5 s without keystrokes, 1 s after the
    input loses focus, or the 5 s ceiling on a single typing spell.
    """

    def __init__(
        self,
        write: Callable[[bool], Awaitable[None]],
        scheduler: KeyedScheduler | None = None,
        *,
        idle_ms: int = IDLE_STOP_MS,
        blur_ms: int = BLUR_STOP_MS,
        ceiling_ms: int = CEILING_MS,
    ) -> None:
        self._write = write
        self._scheduler = scheduler or KeyedScheduler()
        self._idle_ms = idle_ms
        self._blur_ms = blur_ms
        self._ceiling_ms = ceiling_ms
        self._tasks: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self.is_typing = False
        self.text = ""

    def _spawn_write(self, value: bool) -> None:
        task = asyncio.get_running_loop().create_task(self._safe_write(value))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _safe_write(self, value: bool) -> None:
        # Writes land in the order the transitions happened.
        async with self._write_lock:
            try:
                await self._write(value)
            except Exception:
                logger.exception("Typing status write failed is_typing=%s", value)

    def _start(self) -> None:
        self.is_typing = True
        self._spawn_write(True)
        self._scheduler.schedule(_CEILING, self._ceiling_ms, self._stop)

    def _stop(self) -> None:
        self._scheduler.cancel(_STOP)
        self._scheduler.cancel(_CEILING)
        if not self.is_typing:
            return
        self.is_typing = False
        self._spawn_write(False)

    def on_input(self, text: str) -> None:
        self.text = text
        self._scheduler.cancel(_STOP)
        has_text = bool(text.strip())
        if not has_text:
            self._stop()
            return
        if not self.is_typing:
            self._start()
        self._scheduler.schedule(_STOP, self._idle_ms, self._stop)

    def on_blur(self) -> None:
        self._scheduler.cancel(_STOP)
        if self.is_typing:
            self._scheduler.schedule(_STOP, self._blur_ms, self._stop)

    def on_focus(self) -> None:
        self._scheduler.cancel(_STOP)
        if self.text.strip() and not self.is_typing:
            self._start()
            self._scheduler.schedule(_STOP, self._idle_ms, self._stop)

    def on_sent(self) -> None:
        self.text = ""
        self._stop()

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def close(self) -> None:
        """Cancel timers and, if still marked typing, write the final stop before returning."""
        self._scheduler.close()
        await self.drain()
        if self.is_typing:
            self.is_typing = False
            await self._safe_write(False)
