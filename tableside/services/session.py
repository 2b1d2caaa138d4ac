"""Server-side state for one connected diner.

A ``DinerSession`` owns what the diner's page shows: the cart, wishlist,
active tab, chat feed, typing indicator, unread counter and toasts. It keeps
that state in step with the shared collections by subscribing to the change
feed, and persists the diner-local parts through ``LocalStore``.

Action methods never raise. Failures are logged and turned into toasts.
"""

import logging
import re
from typing import Any, Callable

from pydantic import ValidationError

from tableside.core.clock import Clock, utcnow
from tableside.core.config import settings
from tableside.core.errors import DuplicateGiftError, EmptyCartError, SelfGiftError, StoreError, TablesideError
from tableside.models.models import GiftStatusEnum, MessageKindEnum
from tableside.realtime.feed import Subscription
from tableside.schemas.auth import SessionUser
from tableside.schemas.cart import CartItem, CartTotals
from tableside.schemas.chat import ChatParticipant, MessagePublic, TypingEntry, TypingUser
from tableside.schemas.gift import GiftRecord
from tableside.schemas.order import OrderPublic
from tableside.services import cart as cart_ops
from tableside.services import pricing
from tableside.services.grouping import NotificationGrouper, find_new_message, format_price, highlight_toast, is_highlight
from tableside.services.notifications import Toast, ToastCenter, ToastKind
from tableside.services.orders import place_order
from tableside.services.presence import TypingTracker, live_typing_users, typing_label
from tableside.services.scheduler import CallLater, KeyedScheduler
from tableside.storage.local import CART_KEY, CURRENT_USER_KEY, LAST_ACTIVE_TAB_KEY, WISHLIST_KEY, LocalStore
from tableside.store.documents import DocumentStore


logger = logging.getLogger("tableside.session")

TABS = ("menu", "chat", "wishlist", "cart", "table")
DEFAULT_TAB = "menu"
DEFAULT_TABLE = "Table 1"
UNKNOWN_USER = "Unknown User"


def room_for_table(table_number: str | None) -> str:
    if not table_number or not table_number.strip():
        return settings.default_room
    suffix = re.sub(r"^table\s*", "", table_number.strip().lower())
    suffix = re.sub(r"[^a-z0-9]+", "-", suffix).strip("-")
    return f"table-{suffix}" if suffix else settings.default_room


def _load_items(raw: Any, label: str) -> list[CartItem]:
    items: list[CartItem] = []
    if not isinstance(raw, list):
        return items
    for entry in raw:
        try:
            items.append(CartItem.model_validate(entry))
        except ValidationError:
            logger.warning("Dropping unreadable %s entry", label)
    return items


class DinerSession:
    def __init__(
        self,
        store: DocumentStore,
        local: LocalStore,
        scope: str,
        *,
        call_later: CallLater | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._local = local
        self.scope = scope
        self._call_later = call_later
        self._clock = clock
        self.notifications = ToastCenter(KeyedScheduler(call_later))
        self._grouper = NotificationGrouper(
            self.notifications,
            KeyedScheduler(call_later),
            window_ms=settings.group_window_ms,
        )
        self._typing: TypingTracker | None = None
        self._subscriptions: list[Subscription] = []
        self._state_observers: list[Callable[[dict[str, Any]], None]] = []
        self._last_notified_id: str | None = None

        self.user: SessionUser | None = None
        self.active_tab = DEFAULT_TAB
        self.current_page = DEFAULT_TAB
        self.cart: list[CartItem] = []
        self.wishlist: list[CartItem] = []
        self.gifts: list[GiftRecord] = []
        self.messages: list[MessagePublic] = []
        self.typing_users: list[TypingUser] = []
        self.unread_message_count = 0
        self.discount = 0.0
        self.discount_code: str | None = None
        self.gift_amount = 0.0

    # ---- lifecycle ----------------------------------------------------------------

    @property
    def room(self) -> str:
        return room_for_table(self.user.table_number if self.user else None)

    @property
    def phone(self) -> str | None:
        return self.user.phone_number if self.user else None

    @property
    def started(self) -> bool:
        return bool(self._subscriptions)

    def add_state_observer(self, observer: Callable[[dict[str, Any]], None]) -> None:
        self._state_observers.append(observer)

    def add_toast_observer(self, observer: Callable[[Toast], None]) -> None:
        self.notifications.add_observer(observer)

    async def load(self) -> None:
        """Restore the persisted snapshots for this diner."""
        state = await self._local.load_state(self.scope)
        raw_user = state.get(CURRENT_USER_KEY)
        if raw_user:
            try:
                self.user = SessionUser.model_validate(raw_user)
            except ValidationError:
                logger.warning("Dropping unreadable session user scope=%s", self.scope)
        tab = state.get(LAST_ACTIVE_TAB_KEY)
        if tab in TABS:
            self.active_tab = tab
            self.current_page = tab
        self.wishlist = _load_items(state.get(WISHLIST_KEY), "wishlist")
        self.cart = cart_ops.deduplicate_cart(_load_items(state.get(CART_KEY), "cart"))

    async def login(self, user: SessionUser) -> None:
        if self.user is not None and self.user.phone_number != user.phone_number:
            await self._teardown()
        self.user = user
        await self._persist(CURRENT_USER_KEY, user.model_dump(mode="json"))
        await self.start()

    async def start(self) -> None:
        if self.user is None or self.started:
            return
        room = self.room
        self._typing = TypingTracker(
            self._write_typing,
            KeyedScheduler(self._call_later),
            idle_ms=settings.typing_idle_ms,
            blur_ms=settings.typing_blur_ms,
            ceiling_ms=settings.typing_ceiling_ms,
        )
        try:
            self._subscriptions.append(await self._store.watch_gifts(self._on_gifts))
            self._subscriptions.append(await self._store.watch_messages(room, self._on_messages))
            self._subscriptions.append(await self._store.watch_typing(room, self._on_typing))
        except StoreError:
            logger.warning("Session subscriptions incomplete phone=%s room=%s", self.phone, room)
            self.notifications.toast("Could not connect to the table. Retrying later.", ToastKind.ERROR)
        logger.info("Session started phone=%s room=%s", self.phone, room)
        self._emit()

    async def _teardown(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        self._grouper.close()
        self._grouper = NotificationGrouper(
            self.notifications,
            KeyedScheduler(self._call_later),
            window_ms=settings.group_window_ms,
        )
        if self._typing is not None:
            await self._typing.close()
            self._typing = None

    async def close(self) -> None:
        """Dispose subscriptions, cancel pending timers and clear this diner's typing entry."""
        await self._teardown()
        self._grouper.close()
        self.notifications.close()
        logger.info("Session closed phone=%s", self.phone)

    async def logout(self) -> None:
        await self._teardown()
        for key in (CURRENT_USER_KEY, LAST_ACTIVE_TAB_KEY, WISHLIST_KEY):
            await self._local.delete(self.scope, key)
        self.user = None
        self.wishlist = []
        self.active_tab = DEFAULT_TAB
        self.current_page = DEFAULT_TAB
        self.unread_message_count = 0
        self._emit()

    # ---- persistence and observers ------------------------------------------------

    async def _persist(self, key: str, value: Any) -> None:
        try:
            await self._local.set_json(self.scope, key, value)
        except Exception:
            logger.exception("Local persist failed scope=%s key=%s", self.scope, key)

    async def _persist_cart(self) -> None:
        await self._persist(CART_KEY, [item.model_dump(mode="json", by_alias=True) for item in self.cart])

    async def _persist_wishlist(self) -> None:
        await self._persist(WISHLIST_KEY, [item.model_dump(mode="json", by_alias=True) for item in self.wishlist])

    def _emit(self) -> None:
        view = self.view()
        for observer in list(self._state_observers):
            try:
                observer(view)
            except Exception:
                logger.exception("State observer failed")

    def totals(self) -> CartTotals:
        return pricing.quote(self.cart, self.discount_code, self.gift_amount)

    def view(self) -> dict[str, Any]:
        return {
            "user": self.user.model_dump(mode="json") if self.user else None,
            "room": self.room if self.user else None,
            "active_tab": self.active_tab,
            "current_page": self.current_page,
            "cart": [item.model_dump(mode="json", by_alias=True) for item in self.cart],
            "cart_count": cart_ops.cart_item_count(self.cart),
            "totals": self.totals().model_dump(mode="json"),
            "discount_code": self.discount_code,
            "wishlist": [item.model_dump(mode="json", by_alias=True) for item in self.wishlist],
            "messages": [m.model_dump(mode="json") for m in self.messages],
            "typing_users": [t.model_dump(mode="json") for t in self.typing_users],
            "typing_label": typing_label(self.typing_users),
            "unread_message_count": self.unread_message_count,
            "toasts": [t.model_dump(mode="json") for t in self.notifications.visible],
        }

    # ---- snapshot handlers --------------------------------------------------------

    async def _on_gifts(self, gifts: list[GiftRecord]) -> None:
        me = cart_ops.normalize_phone(self.phone)
        self.gifts = [
            g
            for g in gifts
            if me
            and me in (cart_ops.normalize_phone(g.sender_phone_number), cart_ops.normalize_phone(g.recipient_phone_number))
        ]
        reconciled = cart_ops.reconcile_cart(self.cart, self.gifts, self.phone)
        if reconciled != self.cart:
            self.cart = reconciled
            await self._persist_cart()
        self._emit()

    async def _on_messages(self, messages: list[MessagePublic]) -> None:
        self.messages = messages
        newest = find_new_message(messages, self.phone, self._clock(), settings.new_message_window_s)
        if newest is not None and newest.id != self._last_notified_id and self.current_page != "chat":
            self._last_notified_id = newest.id
            await self._notify_new_message(newest)
        self._emit()

    async def _on_typing(self, entries: dict[str, TypingEntry]) -> None:
        self.typing_users = live_typing_users(entries, self.phone, self._clock(), settings.typing_ttl_ms)
        self._emit()

    async def _sender_name(self, phone_number: str) -> str:
        try:
            profile = await self._store.get_user(phone_number)
        except StoreError:
            return phone_number
        if profile is None or not profile.name:
            return phone_number
        return profile.name

    async def _notify_new_message(self, message: MessagePublic) -> None:
        sender_name = await self._sender_name(message.phone_number)
        if is_highlight(message):
            self.notifications.notify(highlight_toast(message, sender_name))
            return
        self.unread_message_count += 1
        self._grouper.add(message.phone_number, sender_name, message.text)

    # ---- navigation ---------------------------------------------------------------

    async def change_tab(self, tab: str) -> None:
        if tab not in TABS:
            self.notifications.toast(f"Unknown tab: {tab}", ToastKind.WARNING)
            return
        self.active_tab = tab
        self.current_page = tab
        if tab == "chat":
            self.unread_message_count = 0
        await self._persist(LAST_ACTIVE_TAB_KEY, tab)
        self._emit()

    # ---- wishlist -----------------------------------------------------------------

    def is_in_wishlist(self, item_id: str) -> bool:
        return any(item.id == item_id for item in self.wishlist)

    async def add_to_wishlist(self, item: CartItem) -> None:
        if self.is_in_wishlist(item.id):
            return
        self.wishlist = [*self.wishlist, item]
        self.notifications.toast(f"{item.name} added to wishlist!", ToastKind.SUCCESS)
        await self._persist_wishlist()
        self._emit()

    async def remove_from_wishlist(self, item_id: str) -> None:
        removed = next((item for item in self.wishlist if item.id == item_id), None)
        if removed is None:
            return
        self.wishlist = [item for item in self.wishlist if item.id != item_id]
        self.notifications.toast(f"{removed.name} removed from wishlist", ToastKind.INFO)
        await self._persist_wishlist()
        self._emit()

    # ---- cart ---------------------------------------------------------------------

    async def add_to_cart(self, item: CartItem, quantity: int = 1) -> None:
        try:
            self.cart = cart_ops.add_to_cart(self.cart, item, quantity)
        except TablesideError as exc:
            self.notifications.toast(exc.message, ToastKind.ERROR)
            return
        self.notifications.toast(f"{item.name} added to cart", ToastKind.SUCCESS)
        await self._persist_cart()
        self._emit()

    async def remove_from_cart(self, key: str) -> None:
        self.cart, removed = cart_ops.remove_from_cart(self.cart, key)
        await self._persist_cart()
        if removed is not None:
            self.notifications.toast(f"{removed.name} removed from cart", ToastKind.INFO)
            if removed.gift_doc_id:
                try:
                    await self._store.delete_one("gifts", removed.gift_doc_id)
                except StoreError:
                    logger.warning("Gift delete failed gift_doc_id=%s", removed.gift_doc_id)
                    self.notifications.toast("Failed to remove gift", ToastKind.ERROR)
        self._emit()

    async def update_cart_quantity(self, key: str, quantity: int) -> None:
        if quantity <= 0:
            await self.remove_from_cart(key)
            return
        self.cart, _ = cart_ops.update_quantity(self.cart, key, quantity)
        await self._persist_cart()
        self._emit()

    async def clear_cart(self) -> None:
        self.cart = []
        self.notifications.toast("Cart cleared", ToastKind.INFO)
        await self._persist_cart()
        self._emit()

    # ---- gifts and recommendations ------------------------------------------------

    async def add_gift_to_cart(self, item: CartItem, recipient_phone: str, recipient_name: str) -> bool:
        """Create a gift record and add the sender's line; ``False`` when nothing was created.

        The duplicate check and the create are separate calls, so two sends
        racing for the same item and recipient can both succeed.
        """
        if self.user is None:
            return False
        if cart_ops.normalize_phone(recipient_phone) == cart_ops.normalize_phone(self.user.phone_number):
            self.notifications.toast(SelfGiftError().message, ToastKind.ERROR)
            return False
        sender_name = self.user.name or "You"
        try:
            existing = await self._store.find_active_gifts(item.id, self.user.phone_number, recipient_phone)
            if existing:
                self.notifications.toast(DuplicateGiftError().message, ToastKind.ERROR)
                return False
            record = await self._store.create_one(
                "gifts",
                {
                    "item_id": item.id,
                    "item_name": item.name,
                    "item_price": item.price,
                    "item_image": item.image,
                    "item_description": item.description,
                    "item_rating": item.rating,
                    "item_review_count": item.review_count,
                    "sender_phone_number": self.user.phone_number,
                    "sender_name": sender_name,
                    "recipient_phone_number": recipient_phone,
                    "recipient_name": recipient_name,
                    "status": GiftStatusEnum.ACTIVE.value,
                    "removed_by_sender": False,
                    "removed_by_receiver": False,
                },
            )
        except StoreError:
            logger.warning("Gift create failed item_id=%s recipient=%s", item.id, recipient_phone)
            self.notifications.toast("Failed to send gift", ToastKind.ERROR)
            return False

        sent = cart_ops.gift_cart_item(item, sender_name, recipient_phone, recipient_name, record.id)
        if cart_ops.find_cart_item(self.cart, sent.key) is None:
            self.cart = [*self.cart, sent]
        await self._persist_cart()
        self.notifications.toast(f"Gift sent to {recipient_name}!", ToastKind.SUCCESS)
        self._emit()
        return True

    async def gift_to_participant(self, item: CartItem, participant_phone: str, participant_name: str) -> bool:
        created = await self.add_gift_to_cart(item, participant_phone, participant_name)
        if not created:
            return False
        sender_name = self.user.name or "You"
        try:
            await self._store.create_one(
                "messages",
                {
                    **self._message_base(),
                    "text": f'🎁 {sender_name} gifted "{item.name}" (${format_price(item.price)}) to {participant_name}',
                    "kind": MessageKindEnum.GIFT.value,
                    "gifted_item": item.name,
                    "gifted_item_price": item.price,
                    "gifted_to": participant_name,
                    "gifted_to_phone": participant_phone,
                },
            )
        except StoreError:
            self.notifications.toast(f"Failed to gift {item.name}", ToastKind.ERROR)
            return True
        self.notifications.toast(f"Gifted {item.name} to {participant_name}!", ToastKind.SUCCESS)
        return True

    async def recommend_to_participant(self, item: CartItem, participant_name: str) -> bool:
        if self.user is None:
            return False
        sender_name = self.user.name or "You"
        try:
            await self._store.create_one(
                "messages",
                {
                    **self._message_base(),
                    "text": f'💡 {sender_name} recommended "{item.name}" (${format_price(item.price)}) to {participant_name}',
                    "kind": MessageKindEnum.RECOMMENDATION.value,
                    "recommended_item": item.name,
                    "recommended_item_price": item.price,
                    "recommended_to": participant_name,
                },
            )
        except StoreError:
            self.notifications.toast(f"Failed to recommend {item.name}", ToastKind.ERROR)
            return False
        return True

    async def get_chat_participants(self) -> list[ChatParticipant]:
        me = cart_ops.normalize_phone(self.phone)
        participants: dict[str, ChatParticipant] = {}
        for message in self.messages:
            if not message.phone_number or cart_ops.normalize_phone(message.phone_number) == me:
                continue
            if message.phone_number not in participants:
                participants[message.phone_number] = ChatParticipant(
                    phone_number=message.phone_number,
                    name=message.display_name or UNKNOWN_USER,
                    table_number=message.table_number,
                )
        enriched: list[ChatParticipant] = []
        for phone_number, participant in participants.items():
            try:
                profile = await self._store.get_user(phone_number)
            except StoreError:
                logger.warning("Profile lookup failed phone=%s", phone_number)
                profile = None
            if profile is not None:
                participant = participant.model_copy(
                    update={"name": profile.name or participant.name, "photo_url": profile.photo_url}
                )
            enriched.append(participant)
        return enriched

    # ---- chat ---------------------------------------------------------------------

    def _message_base(self) -> dict[str, Any]:
        return {
            "room": self.room,
            "phone_number": self.user.phone_number,
            "display_name": self.user.name or "You",
            "photo_url": self.user.photo_url,
            "table_number": self.user.table_number or DEFAULT_TABLE,
        }

    async def send_message(self, text: str) -> MessagePublic | None:
        text = (text or "").strip()
        if self.user is None or not text:
            return None
        if self._typing is not None:
            self._typing.on_sent()
        try:
            return await self._store.create_one(
                "messages",
                {**self._message_base(), "text": text, "kind": MessageKindEnum.CHAT.value},
            )
        except StoreError:
            self.notifications.toast("Failed to send message", ToastKind.ERROR)
            return None

    async def _write_typing(self, is_typing: bool) -> None:
        if self.user is None:
            return
        entry = None
        if is_typing:
            entry = TypingEntry(
                is_typing=True,
                name=self.user.name,
                table_number=self.user.table_number or DEFAULT_TABLE,
            )
        await self._store.set_typing(self.room, self.user.phone_number, entry)

    def typing_input(self, text: str) -> None:
        if self._typing is not None:
            self._typing.on_input(text)

    def typing_blur(self) -> None:
        if self._typing is not None:
            self._typing.on_blur()

    def typing_focus(self) -> None:
        if self._typing is not None:
            self._typing.on_focus()

    @property
    def typing(self) -> TypingTracker | None:
        return self._typing

    # ---- pricing and checkout -----------------------------------------------------

    async def apply_discount(self, code: str) -> float:
        subtotal = self.totals().subtotal
        try:
            self.discount = pricing.resolve_discount(code, subtotal)
        except TablesideError as exc:
            self.discount = 0.0
            self.discount_code = None
            self.notifications.toast(exc.message, ToastKind.ERROR)
            self._emit()
            return 0.0
        self.discount_code = code.strip().lower()
        self.notifications.toast(pricing.discount_message(code), ToastKind.SUCCESS)
        self._emit()
        return self.discount

    async def set_gift_amount(self, amount: float) -> None:
        self.gift_amount = max(0.0, float(amount))
        self._emit()

    async def checkout(self) -> OrderPublic | None:
        if self.user is None:
            return None
        try:
            order, _ = await place_order(
                self._store,
                self.cart,
                phone_number=self.user.phone_number,
                customer_name=self.user.name,
                table_number=self.user.table_number,
                discount_code=self.discount_code,
                gift_amount=self.gift_amount,
            )
        except EmptyCartError as exc:
            self.notifications.toast(exc.message, ToastKind.WARNING)
            return None
        except StoreError:
            self.notifications.toast("Failed to place order", ToastKind.ERROR)
            return None
        self.cart = []
        self.discount = 0.0
        self.discount_code = None
        self.gift_amount = 0.0
        await self._persist_cart()
        self.notifications.toast("Order placed!", ToastKind.SUCCESS)
        self._emit()
        return order

    # ---- websocket dispatch -------------------------------------------------------

    async def dispatch(self, action: str, payload: dict[str, Any]) -> Any:
        """Run one client action; every failure ends as an error toast."""
        try:
            return await self._dispatch(action, payload)
        except TablesideError as exc:
            self.notifications.toast(exc.message, ToastKind.ERROR)
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Rejected action=%s error=%s", action, exc)
            self.notifications.toast("Invalid request", ToastKind.ERROR)
        except Exception:
            logger.exception("Action failed action=%s", action)
            self.notifications.toast("Something went wrong", ToastKind.ERROR)
        return None

    async def _dispatch(self, action: str, payload: dict[str, Any]) -> Any:
        if action == "change_tab":
            return await self.change_tab(payload["tab"])
        if action == "add_to_wishlist":
            return await self.add_to_wishlist(CartItem.model_validate(payload["item"]))
        if action == "remove_from_wishlist":
            return await self.remove_from_wishlist(payload["item_id"])
        if action == "add_to_cart":
            return await self.add_to_cart(CartItem.model_validate(payload["item"]), int(payload.get("quantity", 1)))
        if action == "remove_from_cart":
            return await self.remove_from_cart(payload["key"])
        if action == "update_cart_quantity":
            return await self.update_cart_quantity(payload["key"], int(payload["quantity"]))
        if action == "clear_cart":
            return await self.clear_cart()
        if action == "gift":
            return await self.gift_to_participant(
                CartItem.model_validate(payload["item"]),
                payload["phone_number"],
                payload.get("name") or UNKNOWN_USER,
            )
        if action == "recommend":
            return await self.recommend_to_participant(CartItem.model_validate(payload["item"]), payload["name"])
        if action == "participants":
            return [p.model_dump(mode="json") for p in await self.get_chat_participants()]
        if action == "send_message":
            message = await self.send_message(payload["text"])
            return message.model_dump(mode="json") if message else None
        if action == "typing":
            self.typing_input(payload.get("text", ""))
            return None
        if action == "typing_blur":
            self.typing_blur()
            return None
        if action == "typing_focus":
            self.typing_focus()
            return None
        if action == "apply_discount":
            return await self.apply_discount(payload["code"])
        if action == "set_gift_amount":
            return await self.set_gift_amount(float(payload["amount"]))
        if action == "checkout":
            order = await self.checkout()
            return order.model_dump(mode="json") if order else None
        if action == "dismiss_toast":
            return self.notifications.dismiss(payload["id"])
        if action == "state":
            return self.view()
        if action == "logout":
            return await self.logout()
        raise ValueError(f"Unknown action: {action}")
