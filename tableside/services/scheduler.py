import asyncio
import logging
from typing import Any, Callable, Hashable, Protocol


logger = logging.getLogger("tableside.scheduler")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


CallLater = Callable[[float, Callable[[], None]], TimerHandle]


def loop_call_later(delay_s: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay_s, callback)


class KeyedScheduler:
    """At most one pending timer per key; scheduling a key again replaces its timer.

    Delays are in milliseconds. ``call_later`` defaults to the running event
    loop and can be swapped for a virtual clock in tests.
    """

    def __init__(self, call_later: CallLater | None = None) -> None:
        self._call_later = call_later or loop_call_later
        self._handles: dict[Hashable, TimerHandle] = {}
        self._closed = False

    def schedule(self, key: Hashable, delay_ms: float, callback: Callable[[], Any]) -> None:
        if self._closed:
            return
        self.cancel(key)

        def fire() -> None:
            if self._handles.get(key) is not handle:
                return
            self._handles.pop(key, None)
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback failed key=%s", key)

        handle = self._call_later(delay_ms / 1000.0, fire)
        self._handles[key] = handle

    def cancel(self, key: Hashable) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def close(self) -> None:
        self.cancel_all()
        self._closed = True

    def pending(self, key: Hashable) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)
