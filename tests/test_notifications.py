from tableside.services.notifications import Toast, ToastCenter, ToastKind
from tableside.services.scheduler import KeyedScheduler


def test_newest_toast_first_and_capped_at_five(timers):
    center = ToastCenter(KeyedScheduler(timers))

    for index in range(7):
        center.toast(f"toast {index}", ToastKind.INFO)

    assert [t.message for t in center.visible] == ["toast 6", "toast 5", "toast 4", "toast 3", "toast 2"]


def test_message_toast_replaces_previous_message_toast(timers):
    center = ToastCenter(KeyedScheduler(timers))

    center.toast("Cart cleared", ToastKind.INFO)
    center.notify(Toast(kind=ToastKind.MESSAGE, message="Alice", preview="hi"))
    center.notify(Toast(kind=ToastKind.MESSAGE, message="Bob", preview="hello"))

    assert [(t.kind, t.message) for t in center.visible] == [
        (ToastKind.MESSAGE, "Bob"),
        (ToastKind.INFO, "Cart cleared"),
    ]


def test_toast_expires_after_its_duration(timers):
    center = ToastCenter(KeyedScheduler(timers))

    center.toast("Gift sent to Sam!", ToastKind.SUCCESS, duration_ms=3000)
    timers.advance(2.9)
    assert len(center.visible) == 1

    timers.advance(0.2)
    assert center.visible == []


def test_zero_duration_stays_until_dismissed(timers):
    center = ToastCenter(KeyedScheduler(timers))

    toast = center.toast("Pinned", ToastKind.WARNING, duration_ms=0)
    timers.advance(60)
    assert center.visible == [toast]

    assert center.dismiss(toast.id)
    assert center.visible == []
    assert not center.dismiss(toast.id)


def test_observer_failure_does_not_block_others(timers, caplog):
    center = ToastCenter(KeyedScheduler(timers))
    seen = []

    def broken(toast):
        raise RuntimeError("socket gone")

    center.add_observer(broken)
    center.add_observer(seen.append)
    center.toast("Cart cleared")

    assert [t.message for t in seen] == ["Cart cleared"]
    assert "Toast observer failed" in caplog.text


def test_close_cancels_expiry_timers(timers):
    center = ToastCenter(KeyedScheduler(timers))
    center.toast("one")
    center.toast("two")

    center.close()

    assert timers.pending == 0
