"""
Tests for cart reducers and gift reconciliation.
"""
from itertools import permutations

import pytest

from tableside.core.errors import GiftLineError, InvalidQuantityError
from tableside.schemas.cart import CartItem
from tableside.schemas.gift import GiftRecord
from tableside.services.cart import (
    SENTINEL_ITEM_ID,
    add_to_cart,
    deduplicate_cart,
    reconcile_cart,
    received_gift_id,
    remove_from_cart,
    sent_gift_id,
    synthesize_gift_items,
    update_quantity,
)

ME = "+1 555 0100"
FRIEND = "+1 555 0199"
OTHER = "+1 555 0142"


def _gift(doc_id: str, item_id: str, sender: str, recipient: str, price: float = 12.5) -> GiftRecord:
    return GiftRecord(
        id=doc_id,
        item_id=item_id,
        item_name=item_id.replace("-", " ").title(),
        item_price=price,
        sender_phone_number=sender,
        sender_name="Sender",
        recipient_phone_number=recipient,
        recipient_name="Recipient",
    )


def _regular(item_id: str, price: float = 5.0, quantity: int = 1) -> CartItem:
    return CartItem(id=item_id, name=item_id, price=price, quantity=quantity)


def _keys(cart: list[CartItem]) -> set[str]:
    return {item.dedup_key for item in cart}


SNAPSHOT = [
    _gift("g1", "tiramisu", FRIEND, ME, 9.99),
    _gift("g2", "beef-steak", ME, FRIEND, 24.99),
    _gift("g3", "green-tea", OTHER, FRIEND, 3.99),
    _gift("g4", "lamb-chops", ME, OTHER, 28.99),
]


class TestSynthesize:
    def test_received_gift_is_free_and_keeps_original_price(self):
        items = synthesize_gift_items([_gift("g1", "tiramisu", FRIEND, ME, 9.99)], ME)

        assert len(items) == 1
        received = items[0]
        assert received.is_gift_received
        assert received.price == 0
        assert received.original_price == 9.99
        assert received.gift_id == received_gift_id("tiramisu", FRIEND)
        assert received.gift_doc_id == "g1"

    def test_sent_gift_bills_at_original_price(self):
        items = synthesize_gift_items([_gift("g2", "beef-steak", ME, FRIEND, 24.99)], ME)

        sent = items[0]
        assert sent.is_gift_sent
        assert sent.price == sent.original_price == 24.99
        assert sent.gift_id == sent_gift_id("beef-steak", FRIEND)
        assert sent.gifted_to_name == "Recipient"

    def test_phone_formatting_does_not_matter(self):
        items = synthesize_gift_items([_gift("g1", "tiramisu", FRIEND, "15550100")], ME)

        assert len(items) == 1

    def test_unrelated_gifts_are_ignored(self):
        assert synthesize_gift_items([_gift("g3", "green-tea", OTHER, FRIEND)], ME) == []

    def test_no_user_yields_nothing(self):
        assert synthesize_gift_items(SNAPSHOT, None) == []
        assert synthesize_gift_items(SNAPSHOT, "") == []

    def test_self_gift_yields_both_sides(self):
        items = synthesize_gift_items([_gift("g9", "green-tea", ME, ME)], ME)

        assert {item.is_gift_received for item in items} == {True, False}

    def test_received_side_already_ordered_is_skipped(self):
        gift = _gift("g1", "tiramisu", FRIEND, ME, 9.99).model_copy(update={"removed_by_receiver": True})

        assert synthesize_gift_items([gift], ME) == []
        assert len(synthesize_gift_items([gift], FRIEND)) == 1


class TestReconcile:
    def test_adds_missing_gift_items(self):
        cart = reconcile_cart([_regular("fresh-lemonade")], SNAPSHOT, ME)

        assert _keys(cart) == {
            "fresh-lemonade-regular",
            received_gift_id("tiramisu", FRIEND),
            sent_gift_id("beef-steak", FRIEND),
            sent_gift_id("lamb-chops", OTHER),
        }
        assert cart[0].id == "fresh-lemonade"

    def test_evicts_gift_items_without_active_record(self):
        stale = synthesize_gift_items([_gift("g7", "chocolate-cake", FRIEND, ME)], ME)[0]

        cart = reconcile_cart([_regular("green-tea"), stale], [], ME)

        assert [item.id for item in cart] == ["green-tea"]

    def test_drops_sentinel_item(self):
        cart = reconcile_cart([_regular(SENTINEL_ITEM_ID), _regular("bruschetta")], [], ME)

        assert [item.id for item in cart] == ["bruschetta"]

    def test_is_idempotent(self):
        start = [_regular("fresh-lemonade", quantity=2), _regular("bruschetta")]

        once = reconcile_cart(start, SNAPSHOT, ME)
        twice = reconcile_cart(once, SNAPSHOT, ME)

        assert twice == once

    def test_is_order_independent(self):
        start = [_regular("fresh-lemonade")]
        results = {frozenset(_keys(reconcile_cart(start, list(p), ME))) for p in permutations(SNAPSHOT)}

        assert len(results) == 1

    def test_duplicate_records_resolve_to_lowest_document_id(self):
        gifts = [_gift("b-doc", "tiramisu", FRIEND, ME), _gift("a-doc", "tiramisu", FRIEND, ME)]

        for ordering in (gifts, list(reversed(gifts))):
            cart = reconcile_cart([], ordering, ME)
            assert len(cart) == 1
            assert cart[0].gift_doc_id == "a-doc"

    def test_line_follows_replacement_record(self):
        old_line = synthesize_gift_items([_gift("g1", "tiramisu", FRIEND, ME)], ME)[0]
        replacement = [_gift("g5", "tiramisu", FRIEND, ME)]

        cart = reconcile_cart([old_line], replacement, ME)

        assert len(cart) == 1
        assert cart[0].gift_doc_id == "g5"
        assert reconcile_cart(cart, replacement, ME) == cart

    def test_no_duplicate_keys_after_reconcile(self):
        received = synthesize_gift_items([SNAPSHOT[0]], ME)[0]
        messy = [_regular("bruschetta"), _regular("bruschetta", quantity=3), received, received]

        cart = reconcile_cart(messy, SNAPSHOT, ME)

        regular = [(i.id, i.is_gift) for i in cart if not i.is_gift]
        gift_ids = [i.gift_id for i in cart if i.is_gift]
        assert len(regular) == len(set(regular))
        assert len(gift_ids) == len(set(gift_ids))

    def test_input_cart_is_not_mutated(self):
        start = [_regular("bruschetta")]

        reconcile_cart(start, SNAPSHOT, ME)

        assert len(start) == 1


class TestReducers:
    def test_add_merges_same_item(self):
        cart = add_to_cart([], _regular("bruschetta"))
        cart = add_to_cart(cart, _regular("bruschetta"), 2)

        assert len(cart) == 1
        assert cart[0].quantity == 3

    def test_add_keeps_regular_and_gift_apart(self):
        gift_line = synthesize_gift_items([_gift("g1", "bruschetta", FRIEND, ME)], ME)[0]

        cart = add_to_cart([gift_line], _regular("bruschetta"))

        assert len(cart) == 2

    def test_add_refuses_gift_items(self):
        gift_line = synthesize_gift_items([_gift("g1", "bruschetta", FRIEND, ME)], ME)[0]

        with pytest.raises(GiftLineError):
            add_to_cart([], gift_line)

    @pytest.mark.parametrize("requested", [0, -3])
    def test_add_refuses_quantity_below_one(self, requested):
        with pytest.raises(InvalidQuantityError):
            add_to_cart([_regular("bruschetta")], _regular("bruschetta"), requested)

    def test_quantity_zero_or_below_removes_regular_item(self):
        cart = [_regular("bruschetta", quantity=2), _regular("green-tea")]

        for requested in (0, -3):
            updated, removed = update_quantity(cart, "bruschetta", requested)
            assert [item.id for item in updated] == ["green-tea"]
            assert removed is not None and removed.id == "bruschetta"

    def test_gift_item_quantity_stays_one(self):
        gift_line = synthesize_gift_items([SNAPSHOT[0]], ME)[0]

        updated, removed = update_quantity([gift_line], gift_line.key, 5)

        assert removed is None
        assert updated[0].quantity == 1

    def test_remove_by_gift_id(self):
        gift_line = synthesize_gift_items([SNAPSHOT[0]], ME)[0]

        cart, removed = remove_from_cart([_regular("tiramisu"), gift_line], gift_line.gift_id)

        assert removed == gift_line
        assert [item.is_gift for item in cart] == [False]

    def test_deduplicate_keeps_first_occurrence(self):
        first = _regular("bruschetta", quantity=4)

        cart = deduplicate_cart([first, _regular("bruschetta")])

        assert cart == [first]

    def test_camel_case_round_trip_from_local_storage(self):
        raw = {"id": "tiramisu", "giftId": "received-tiramisu-1", "isGift": True, "isGiftReceived": True, "price": 0}

        item = CartItem.model_validate(raw)

        assert item.gift_id == "received-tiramisu-1"
        assert item.model_dump(by_alias=True)["giftId"] == "received-tiramisu-1"
