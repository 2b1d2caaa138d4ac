"""
Tests for the gifts API: creation, duplicate rejection, listing, deletion.
"""
from fastapi.testclient import TestClient

from tableside.main import app


def _login(phone_number: str, name: str) -> TestClient:
    client = TestClient(app)
    res = client.post("/auth/login", json={"phone_number": phone_number, "name": name, "table_number": "Table 4"})
    assert res.status_code == 200
    return client


def _add_product(client: TestClient, product_id: str = "tiramisu", price: float = 9.99) -> None:
    res = client.post(
        "/admin/products",
        json={"id": product_id, "name": product_id.replace("-", " ").title(), "price": price, "category": "desserts"},
    )
    assert res.status_code == 201


def test_gift_requires_auth():
    client = TestClient(app)
    res = client.post("/gifts", json={"item_id": "tiramisu", "recipient_phone_number": "5550199"})
    assert res.status_code == 401


def test_create_gift_and_announce():
    alex = _login("5550100", "Alex")
    kim = _login("5550199", "Kim")
    _add_product(alex)

    res = alex.post(
        "/gifts",
        json={"item_id": "tiramisu", "recipient_phone_number": "5550199", "room": "table-4"},
    )

    assert res.status_code == 201
    gift = res.json()
    assert gift["item_name"] == "Tiramisu"
    assert gift["item_price"] == 9.99
    assert gift["sender_name"] == "Alex"
    assert gift["recipient_name"] == "Kim"
    assert gift["status"] == "active"

    messages = kim.get("/chat/table-4/messages").json()
    assert messages[-1]["text"] == '🎁 Alex gifted "Tiramisu" ($9.99) to Kim'
    assert messages[-1]["kind"] == "gift"
    assert messages[-1]["gifted_to_phone"] == "5550199"


def test_duplicate_gift_is_conflict():
    alex = _login("5550100", "Alex")
    _add_product(alex)
    body = {"item_id": "tiramisu", "recipient_phone_number": "5550199", "recipient_name": "Kim", "send_message": False}

    assert alex.post("/gifts", json=body).status_code == 201
    res = alex.post("/gifts", json=body)

    assert res.status_code == 409
    assert res.json()["detail"] == "You cannot gift the same item twice to the same person"
    assert len(alex.get("/gifts/mine").json()) == 1


def test_same_item_to_another_diner_is_allowed():
    alex = _login("5550100", "Alex")
    _add_product(alex)

    first = alex.post("/gifts", json={"item_id": "tiramisu", "recipient_phone_number": "5550199", "send_message": False})
    second = alex.post("/gifts", json={"item_id": "tiramisu", "recipient_phone_number": "5550177", "send_message": False})

    assert first.status_code == second.status_code == 201
    assert second.json()["recipient_name"] == "Unknown User"


def test_gift_to_self_and_unknown_product():
    alex = _login("5550100", "Alex")
    _add_product(alex)

    to_self = alex.post("/gifts", json={"item_id": "tiramisu", "recipient_phone_number": "555-0100"})
    missing = alex.post("/gifts", json={"item_id": "lobster", "recipient_phone_number": "5550199"})

    assert to_self.status_code == 400
    assert to_self.json()["detail"] == "You cannot gift an item to yourself"
    assert missing.status_code == 404


def test_mine_lists_sent_and_received():
    alex = _login("5550100", "Alex")
    kim = _login("5550199", "Kim")
    sam = _login("5550177", "Sam")
    _add_product(alex)
    alex.post("/gifts", json={"item_id": "tiramisu", "recipient_phone_number": "5550199", "send_message": False})

    assert len(alex.get("/gifts/mine").json()) == 1
    assert len(kim.get("/gifts/mine").json()) == 1
    assert sam.get("/gifts/mine").json() == []


def test_delete_gift_only_by_participants():
    alex = _login("5550100", "Alex")
    sam = _login("5550177", "Sam")
    _add_product(alex)
    gift_id = alex.post(
        "/gifts", json={"item_id": "tiramisu", "recipient_phone_number": "5550199", "send_message": False}
    ).json()["id"]

    assert sam.delete(f"/gifts/{gift_id}").status_code == 404
    assert alex.delete(f"/gifts/{gift_id}").status_code == 204
    assert alex.get("/gifts/mine").json() == []
    assert alex.delete(f"/gifts/{gift_id}").status_code == 404
