from conftest import make_product
from database import db


def add(client, headers, product, quantity):
    return client.post("/api/cart/add", json={"product_id": str(product["_id"]), "quantity": quantity}, headers=headers)


def test_cart_starts_empty(client, user_headers):
    res = client.get("/api/cart", headers=user_headers)
    assert res.status_code == 200
    assert res.json()["cart"]["items"] == []
    assert res.json()["cart"]["subtotal"] == 0


def test_adding_twice_merges_into_one_line(client, user_headers, category):
    product = make_product(category, name="Rice", price=45.5, purchase_price=40)
    add(client, user_headers, product, 2)
    res = add(client, user_headers, product, 3)

    items = res.json()["cart"]["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 5
    assert items[0]["subtotal"] == 227.5
    assert items[0]["profit"] == 27.5
    assert res.json()["cart"]["subtotal"] == 227.5


def test_merge_picks_up_the_current_price(client, user_headers, admin_headers, category):
    product = make_product(category, price=10)
    add(client, user_headers, product, 1)
    client.put(f"/api/products/{product['_id']}", json={"price": 12}, headers=admin_headers)
    item = add(client, user_headers, product, 1).json()["cart"]["items"][0]
    assert item["price_per_unit"] == 12
    assert item["subtotal"] == item["price_per_unit"] * item["quantity"]


def test_add_rejects_bad_quantity_and_inactive_products(client, user_headers, category):
    product = make_product(category)
    hidden = make_product(category, is_active=False)
    assert add(client, user_headers, product, 0).status_code == 400
    res = add(client, user_headers, hidden, 1)
    assert res.status_code == 404
    assert res.json()["message"] == "Product not found or inactive"


def test_update_sets_quantity_and_zero_removes(client, user_headers, category):
    a = make_product(category, name="A", price=20)
    b = make_product(category, name="B", price=5)
    add(client, user_headers, a, 1)
    add(client, user_headers, b, 1)

    res = client.put("/api/cart/update", json={"product_id": str(a["_id"]), "quantity": 4}, headers=user_headers)
    assert res.json()["cart"]["subtotal"] == 85

    res = client.put("/api/cart/update", json={"product_id": str(a["_id"]), "quantity": 0}, headers=user_headers)
    items = res.json()["cart"]["items"]
    assert [i["name"] for i in items] == ["B"]
    assert res.json()["cart"]["subtotal"] == 5


def test_update_rejects_negative_and_unknown_lines(client, user_headers, category):
    a = make_product(category)
    assert client.put("/api/cart/update", json={"product_id": str(a["_id"]), "quantity": 1}, headers=user_headers).status_code == 404
    add(client, user_headers, a, 1)
    assert client.put("/api/cart/update", json={"product_id": str(a["_id"]), "quantity": -1}, headers=user_headers).status_code == 400
    other = make_product(category)
    res = client.put("/api/cart/update", json={"product_id": str(other["_id"]), "quantity": 1}, headers=user_headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Product not in cart"


def test_remove_line(client, user_headers, category):
    a = make_product(category)
    b = make_product(category)
    add(client, user_headers, a, 1)

    res = client.request("DELETE", "/api/cart/remove", json={"product_id": str(b["_id"])}, headers=user_headers)
    assert res.status_code == 404

    res = client.request("DELETE", "/api/cart/remove", json={"product_id": str(a["_id"])}, headers=user_headers)
    assert res.status_code == 200
    assert res.json()["cart"]["items"] == []


def test_clear_is_fine_when_already_empty(client, user_headers, category):
    res = client.delete("/api/cart/clear", headers=user_headers)
    assert res.status_code == 200
    assert res.json()["message"] == "Cart is already empty"

    add(client, user_headers, make_product(category), 2)
    res = client.delete("/api/cart/clear", headers=user_headers)
    assert res.json()["message"] == "Cart cleared successfully"
    assert client.get("/api/cart", headers=user_headers).json()["cart"]["items"] == []


def test_validate_stock_reports_every_issue(client, user_headers, category):
    ok = make_product(category, name="Ok", stock=10)
    short = make_product(category, name="Short", stock=1)
    bulk = make_product(category, kind="bulk", name="Lentils", stock_in_grams=600, quantity_in_grams=1000)
    gone = make_product(category, name="Gone", stock=10)
    for product, qty in ((ok, 2), (short, 3), (bulk, 1), (gone, 1)):
        add(client, user_headers, product, qty)
    db["product"].update_one({"_id": gone["_id"]}, {"$set": {"is_active": False}})

    res = client.get("/api/cart/validate-stock", headers=user_headers)
    assert res.status_code == 400
    body = res.json()
    assert body["message"] == "Stock validation failed"
    by_name = {i["name"]: i["reason"] for i in body["issues"]}
    assert set(by_name) == {"Short", "Lentils", "Gone"}
    assert by_name["Short"] == "Insufficient stock. Available: 1, Required: 3"
    assert by_name["Gone"] == "Product not found or inactive"


def test_validate_stock_passes_and_rejects_empty_cart(client, user_headers, category):
    res = client.get("/api/cart/validate-stock", headers=user_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Cart is empty"

    add(client, user_headers, make_product(category, stock=3), 3)
    assert client.get("/api/cart/validate-stock", headers=user_headers).status_code == 200


def test_cart_needs_login(client):
    assert client.get("/api/cart").status_code == 401
