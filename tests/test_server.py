import pytest
from fastapi.testclient import TestClient

from config import Config
from db import Database
from server import create_app


@pytest.fixture
def client(clean_env):
    return TestClient(create_app(Config(), Database.in_memory()))


@pytest.fixture
def secured(clean_env):
    clean_env.setenv("ADMIN_EMAIL", "admin@tarascos.mx")
    clean_env.setenv("ADMIN_PASSWORD", "s3cret")
    clean_env.setenv("ADMIN_TOKEN", "tok-123")
    return TestClient(create_app(Config(), Database.in_memory()))


def _seed(client):
    category = client.post("/api/categories", json={"name": "Tacos"}).json()["data"]
    taco = client.post("/api/products", json={
        "name": "Taco", "description": "Asada", "price": 150, "category_id": category["id"],
    }).json()["data"]
    verde = client.post("/api/sauces", json={"name": "Verde", "spice": 2}).json()["data"]
    return category, taco, verde


def _checkout(client, taco, verde, phone="5551234567"):
    return client.post("/api/orders", json={
        "customer_name": "Ana López",
        "customer_phone": phone,
        "address": "Av. Juárez 12",
        "items": [{"product_id": taco["id"], "quantity": 2, "sauce_ids": [verde["id"]]}],
    })


def test_checkout_returns_server_side_totals(client):
    _, taco, verde = _seed(client)
    response = _checkout(client, taco, verde)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert (body["data"]["subtotal"], body["data"]["tip"], body["data"]["total"]) == (300.0, 30.0, 330.0)
    assert body["data"]["delivery_type"] == "home-delivery"


def test_repeat_phone_gives_one_client(client):
    _, taco, verde = _seed(client)
    _checkout(client, taco, verde)
    _checkout(client, taco, verde)

    clients = client.get("/api/clients").json()["data"]
    assert len(clients) == 1
    assert clients[0]["order_count"] == 2
    assert clients[0]["total_spent"] == 660.0


def test_missing_contact_is_a_400(client):
    _, taco, verde = _seed(client)
    response = _checkout(client, taco, verde, phone="")
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "phone" in response.json()["error"]


def test_schema_errors_use_the_envelope(client):
    _, taco, _ = _seed(client)
    response = client.post("/api/orders", json={
        "customer_name": "Ana", "customer_phone": "555", "address": "Centro",
        "items": [{"product_id": taco["id"], "quantity": 0}],
    })
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_category_delete_rules(client):
    category, taco, _ = _seed(client)

    blocked = client.delete(f"/api/categories/{category['id']}")
    assert blocked.status_code == 400
    assert blocked.json()["success"] is False

    assert client.delete(f"/api/products/{taco['id']}").status_code == 200
    assert client.delete(f"/api/categories/{category['id']}").status_code == 200


def test_unknown_ids_are_404(client):
    response = client.get("/api/orders/TAR-0-zzzz")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Order not found: TAR-0-zzzz"}


def test_lifecycle_and_cleanup_routes(client):
    _, taco, verde = _seed(client)
    first = _checkout(client, taco, verde).json()["data"]
    second = _checkout(client, taco, verde).json()["data"]

    assert client.post(f"/api/orders/{first['id']}/advance").json()["data"]["status"] == "preparing"
    assert client.post(f"/api/orders/{second['id']}/cancel", json={"reason": "duplicado"}).status_code == 200

    illegal = client.patch(f"/api/orders/{second['id']}/status", json={"status": "ready"})
    assert illegal.status_code == 400

    cleanup = client.delete("/api/orders/completed").json()["data"]
    assert (cleanup["attempted"], cleanup["deleted"], cleanup["failed"]) == (1, 1, 0)

    remaining = client.get("/api/orders").json()
    assert [o["id"] for o in remaining["data"]] == [first["id"]]
    assert remaining["degraded"] is False


def test_admin_order_has_no_tip(client):
    _, taco, verde = _seed(client)
    response = client.post("/api/admin/orders", json={
        "customer_name": "Mostrador", "customer_phone": "000", "address": "Local",
        "delivery_type": "pickup",
        "items": [{"product_id": taco["id"], "quantity": 1}],
    })
    data = response.json()["data"]
    assert (data["tip"], data["total"]) == (0.0, 150.0)
    assert data["delivery_type"] == "pickup"


def test_menu_is_public(secured):
    assert secured.get("/api/menu").status_code == 200


def test_back_office_requires_token(secured):
    assert secured.get("/api/orders").status_code == 401
    assert secured.post("/api/categories", json={"name": "X"}).status_code == 401

    headers = {"Authorization": "Bearer tok-123"}
    assert secured.get("/api/orders", headers=headers).status_code == 200


def test_login(secured):
    bad = secured.post("/api/auth", json={"email": "admin@tarascos.mx", "password": "nope"})
    assert bad.status_code == 401

    good = secured.post("/api/auth", json={"email": "admin@tarascos.mx", "password": "s3cret"})
    assert good.status_code == 200
    assert good.json()["data"]["token"] == "tok-123"
    assert good.cookies.get("authToken") == "tok-123"


def test_health_and_metrics(client):
    assert client.get("/health").json()["status"] == "healthy"

    _, taco, verde = _seed(client)
    _checkout(client, taco, verde)
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "orders_total" in metrics.text
