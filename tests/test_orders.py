"""
Tests for cart quoting and checkout over HTTP.
"""
import anyio
import pytest
from fastapi.testclient import TestClient

from tableside.main import app
from tableside.storage.local import CART_KEY


TEA = {"id": "green-tea", "name": "Green Tea", "price": 4.0, "quantity": 2}
SENT_GIFT = {
    "id": "tiramisu",
    "giftId": "sent-tiramisu-5550199",
    "name": "Tiramisu",
    "price": 9.99,
    "originalPrice": 9.99,
    "isGift": True,
    "isGiftSent": True,
}
RECEIVED_GIFT = {
    "id": "cake",
    "giftId": "received-cake-5550199",
    "name": "Cake",
    "price": 0,
    "originalPrice": 7.5,
    "isGift": True,
    "isGiftReceived": True,
}


def _login(phone_number: str = "5550100", name: str = "Alex", table_number: str | None = "Table 4") -> TestClient:
    client = TestClient(app)
    client.post("/auth/login", json={"phone_number": phone_number, "name": name, "table_number": table_number})
    return client


class TestQuote:
    def test_quote_prices_gifts(self):
        client = TestClient(app)

        res = client.post("/cart/quote", json={"items": [TEA, SENT_GIFT, RECEIVED_GIFT]})

        assert res.status_code == 200
        totals = res.json()["totals"]
        assert totals["regular_subtotal"] == pytest.approx(8.0)
        assert totals["gift_sent_subtotal"] == pytest.approx(9.99)
        assert totals["subtotal"] == pytest.approx(17.99)
        assert totals["tax"] == pytest.approx(17.99 * 0.08)
        assert res.json()["item_count"] == 4

    def test_quote_with_discount_and_gift_amount(self):
        client = TestClient(app)

        res = client.post(
            "/cart/quote",
            json={"items": [{**TEA, "quantity": 25}], "discount_code": " SAVE20 ", "gift_amount": 5},
        )

        totals = res.json()["totals"]
        assert res.json()["discount_code"] == "save20"
        assert totals["discount"] == pytest.approx(20.0)
        assert totals["total"] == pytest.approx(100 + 8 + 5 - 20)

    def test_invalid_code(self):
        client = TestClient(app)
        res = client.post("/cart/quote", json={"items": [TEA], "discount_code": "free"})
        assert res.status_code == 400
        assert res.json()["detail"] == "Invalid discount code"


class TestCheckout:
    def test_requires_auth(self):
        client = TestClient(app)
        res = client.post("/orders", json={"items": [TEA]})
        assert res.status_code == 401

    def test_empty_cart_is_rejected(self):
        client = _login()
        res = client.post("/orders", json={"items": []})
        assert res.status_code == 400
        assert res.json()["detail"] == "Your cart is empty"

    def test_checkout_with_explicit_items(self):
        client = _login()

        res = client.post("/orders", json={"items": [TEA, RECEIVED_GIFT], "discount_code": "welcome10"})

        assert res.status_code == 201
        order = res.json()["order"]
        assert order["table_number"] == "Table 4"
        assert order["status"] == "pending"
        assert order["subtotal"] == pytest.approx(8.0)
        assert order["discount"] == pytest.approx(0.8)
        assert order["total"] == pytest.approx(round(8.0 + 0.64 - 0.8, 2))
        assert len(order["items"]) == 2

        mine = client.get("/orders/mine").json()
        assert [o["id"] for o in mine] == [order["id"]]

    def test_checkout_uses_stored_cart_and_empties_it(self, local_store):
        client = _login(table_number=None)

        anyio.run(local_store.set_json, "5550100", CART_KEY, [TEA])

        res = client.post("/orders", json={})

        assert res.status_code == 201
        assert res.json()["order"]["table_number"] == "Table 1"
        assert anyio.run(local_store.get_json, "5550100", CART_KEY) == []

    def test_orders_mine_is_per_diner(self):
        alex = _login()
        kim = _login("5550199", "Kim", "Table 5")
        alex.post("/orders", json={"items": [TEA]})

        assert len(alex.get("/orders/mine").json()) == 1
        assert kim.get("/orders/mine").json() == []
