import pytest

from storefront.models import Product

CART_URL = "/api/v1/cart"
ORDERS_URL = "/api/v1/orders"

CHECKOUT = {
    "shipping_address": {
        "street": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
    },
    "payment_method": "credit_card",
}


def stock_of(db, product_id: str) -> int:
    db.expire_all()
    return db.get(Product, product_id).stock


@pytest.fixture
def stocked(make_product):
    laptop = make_product(name="Laptop", price="10.00", stock=5)
    mouse = make_product(name="Mouse", price="2.50", stock=10)
    return laptop.id, mouse.id


def test_checkout_places_order_and_reserves_stock(client, db, stocked, user_headers):
    laptop_id, mouse_id = stocked
    client.post(CART_URL, json={"product_id": laptop_id, "quantity": 2}, headers=user_headers)
    client.post(CART_URL, json={"product_id": mouse_id, "quantity": 4}, headers=user_headers)

    response = client.post(f"{ORDERS_URL}/checkout", json=CHECKOUT, headers=user_headers)

    assert response.status_code == 201
    order = response.json()["data"]
    assert order["status"] == "pending"
    assert order["user_id"] == "user-1"
    assert order["total_items"] == 6
    assert order["total_amount"] == 30.0
    assert order["shipping_address"]["city"] == "Springfield"
    lines = {item["product_id"]: (item["quantity"], item["unit_price"]) for item in order["items"]}
    assert lines == {laptop_id: (2, 10.0), mouse_id: (4, 2.5)}

    assert stock_of(db, laptop_id) == 3
    assert stock_of(db, mouse_id) == 6
    assert client.get(CART_URL, headers=user_headers).json()["data"]["total_items"] == 0


def test_checkout_uses_cart_price_snapshot(client, db, stocked, user_headers):
    laptop_id, _ = stocked
    client.post(CART_URL, json={"product_id": laptop_id, "quantity": 1}, headers=user_headers)

    db.get(Product, laptop_id).price = 50
    db.commit()

    order = client.post(f"{ORDERS_URL}/checkout", json=CHECKOUT, headers=user_headers).json()["data"]
    assert order["total_amount"] == 10.0


def test_checkout_of_empty_cart(client, user_headers):
    response = client.post(f"{ORDERS_URL}/checkout", json=CHECKOUT, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "CART_EMPTY"


def test_checkout_rolls_back_when_stock_ran_out(client, db, stocked, user_headers):
    laptop_id, mouse_id = stocked
    client.post(CART_URL, json={"product_id": mouse_id, "quantity": 3}, headers=user_headers)
    client.post(CART_URL, json={"product_id": laptop_id, "quantity": 4}, headers=user_headers)

    # Остаток уменьшился после добавления в корзину
    db.get(Product, laptop_id).stock = 1
    db.commit()

    response = client.post(f"{ORDERS_URL}/checkout", json=CHECKOUT, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INSUFFICIENT_STOCK"
    assert stock_of(db, mouse_id) == 10
    assert stock_of(db, laptop_id) == 1
    assert client.get(CART_URL, headers=user_headers).json()["data"]["total_items"] == 7
    assert client.get(ORDERS_URL, headers=user_headers).json()["total"] == 0


def test_guest_checkout_and_lookup(client, stocked):
    laptop_id, _ = stocked
    session = {"X-Session-Id": "guest_buyer"}
    client.post(CART_URL, json={"product_id": laptop_id, "quantity": 1}, headers=session)

    order = client.post(f"{ORDERS_URL}/checkout", json=CHECKOUT, headers=session).json()["data"]
    assert order["session_id"] == "guest_buyer"
    assert order["user_id"] is None

    assert client.get(f"{ORDERS_URL}/{order['id']}", headers=session).status_code == 200
    response = client.get(f"{ORDERS_URL}/{order['id']}", headers={"X-Session-Id": "guest_other"})
    assert response.status_code == 404


def test_order_listing_and_visibility(client, stocked, auth_headers, admin_headers):
    laptop_id, _ = stocked
    alice, bob = auth_headers("alice"), auth_headers("bob")
    for headers in (alice, bob):
        client.post(CART_URL, json={"product_id": laptop_id, "quantity": 1}, headers=headers)
        client.post(f"{ORDERS_URL}/checkout", json=CHECKOUT, headers=headers)

    mine = client.get(ORDERS_URL, headers=alice).json()
    assert mine["total"] == 1
    assert mine["orders"][0]["user_id"] == "alice"
    bob_order_id = client.get(ORDERS_URL, headers=bob).json()["orders"][0]["id"]

    response = client.get(f"{ORDERS_URL}/{bob_order_id}", headers=alice)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"

    assert client.get(f"{ORDERS_URL}/{bob_order_id}", headers=admin_headers).status_code == 200
    assert client.get(ORDERS_URL, params={"all_users": True}, headers=alice).status_code == 403
    assert client.get(ORDERS_URL, params={"all_users": True}, headers=admin_headers).json()["total"] == 2


def test_order_list_requires_login(client):
    assert client.get(ORDERS_URL).status_code == 401


def test_admin_updates_order_status(client, stocked, user_headers, admin_headers):
    laptop_id, _ = stocked
    client.post(CART_URL, json={"product_id": laptop_id, "quantity": 1}, headers=user_headers)
    order_id = client.post(f"{ORDERS_URL}/checkout", json=CHECKOUT, headers=user_headers).json()["data"]["id"]

    url = f"{ORDERS_URL}/{order_id}/status"
    assert client.patch(url, json={"status": "shipped"}, headers=user_headers).status_code == 403

    response = client.patch(url, json={"status": "shipped"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "shipped"

    filtered = client.get(ORDERS_URL, params={"status": "shipped"}, headers=user_headers).json()
    assert filtered["total"] == 1

    assert client.patch(f"{ORDERS_URL}/missing/status", json={"status": "shipped"},
                        headers=admin_headers).status_code == 404
