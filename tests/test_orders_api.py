from __future__ import annotations

from urllib.parse import parse_qs, urlsplit
from uuid import uuid4

from storefront.api.routes_orders import get_wallet_verifier
from storefront.core.config import get_settings
from storefront.payments.signing import HASH_FIELD, sign

ADDRESS = {"address": "9 Hang Bai", "city": "Hanoi", "postal_code": "100000", "country": "Vietnam"}


def _create_order(client, headers, product_id: str, qty: int = 2, payment_method: str = "redirect_gateway") -> dict:
    response = client.post(
        "/api/orders",
        json={
            "order_items": [{"product_id": product_id, "qty": qty}],
            "shipping_address": ADDRESS,
            "payment_method": payment_method,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _callback_for(payment_url: str, response_code: str) -> dict[str, str]:
    query = {key: values[0] for key, values in parse_qs(urlsplit(payment_url).query).items()}
    query.pop(HASH_FIELD)
    query.update({"vnp_ResponseCode": response_code, "vnp_TransactionNo": uuid4().hex[:8], "vnp_PayDate": "20240101120500"})
    query[HASH_FIELD] = sign(query, get_settings().gateway_hash_secret)
    return query


def test_orders_require_api_key(client, auth_headers):
    assert client.get("/api/orders/mine").status_code == 401
    assert client.get("/api/orders/mine", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/api/orders/mine", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/orders/mine", headers=auth_headers["customer"]).status_code == 200
    bearer = {"Authorization": f"Bearer {get_settings().customer_api_key}"}
    assert client.get("/api/orders/mine", headers=bearer).status_code == 200


def test_create_order_computes_prices(client, auth_headers, seed_product):
    product_id = seed_product(price=125000, stock=10)

    order = _create_order(client, auth_headers["customer"], product_id, qty=2)

    assert order["items_price"] == 250000
    assert order["tax_price"] == 25000
    assert order["shipping_price"] == 30000
    assert order["total_price"] == 305000
    assert order["is_paid"] is False
    assert order["delivery_status"] == "Not Processed"
    assert order["customer_ref"] == get_settings().customer_actor_id

    mine = client.get("/api/orders/mine", headers=auth_headers["customer"]).json()
    assert order["order_id"] in {item["order_id"] for item in mine["orders"]}


def test_create_order_rejects_empty_items(client, auth_headers):
    response = client.post(
        "/api/orders",
        json={"order_items": [], "shipping_address": ADDRESS, "payment_method": "cash_on_delivery"},
        headers=auth_headers["customer"],
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation_failed"


def test_create_order_reports_short_stock(client, auth_headers, seed_product):
    product_id = seed_product(stock=1)
    response = client.post(
        "/api/orders",
        json={
            "order_items": [{"product_id": product_id, "qty": 5}],
            "shipping_address": ADDRESS,
            "payment_method": "cash_on_delivery",
        },
        headers=auth_headers["customer"],
    )
    assert response.status_code == 409
    assert response.json()["error"] == "insufficient_stock"


def test_redirect_gateway_round_trip(client, auth_headers, seed_product):
    order = _create_order(client, auth_headers["customer"], seed_product(price=100000))

    created = client.post(
        f"/api/orders/{order['order_id']}/gateway",
        headers={**auth_headers["customer"], "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
    )
    assert created.status_code == 200
    payment_url = created.json()["paymentUrl"]
    params = parse_qs(urlsplit(payment_url).query)
    assert params["vnp_IpAddr"] == ["203.0.113.9"]
    assert params["vnp_Amount"] == [str(order["total_price"] * 100)]

    declined = client.get(
        "/api/orders/gateway-return",
        params=_callback_for(payment_url, "51"),
        follow_redirects=False,
    )
    assert declined.status_code == 302
    location = urlsplit(declined.headers["location"])
    assert location.path == f"/order/{order['order_id']}"
    assert parse_qs(location.query)["success"] == ["false"]
    assert "51" in parse_qs(location.query)["message"][0]
    assert client.get(f"/api/orders/{order['order_id']}", headers=auth_headers["customer"]).json()["is_paid"] is False

    accepted = client.get(
        "/api/orders/gateway-return",
        params=_callback_for(payment_url, "00"),
        follow_redirects=False,
    )
    assert accepted.status_code == 302
    assert parse_qs(urlsplit(accepted.headers["location"]).query)["success"] == ["true"]
    stored = client.get(f"/api/orders/{order['order_id']}", headers=auth_headers["customer"]).json()
    assert stored["is_paid"] is True
    assert stored["payment_result"]["channel"] == "redirect_gateway"


def test_gateway_return_rejects_bad_signature(client, auth_headers, seed_product):
    order = _create_order(client, auth_headers["customer"], seed_product())
    payment_url = client.post(f"/api/orders/{order['order_id']}/gateway", headers=auth_headers["customer"]).json()[
        "paymentUrl"
    ]
    forged = _callback_for(payment_url, "00")
    forged[HASH_FIELD] = "0" * 128

    response = client.get("/api/orders/gateway-return", params=forged, follow_redirects=False)

    assert response.status_code == 400
    assert response.json()["error"] == "signature_invalid"
    assert client.get(f"/api/orders/{order['order_id']}", headers=auth_headers["customer"]).json()["is_paid"] is False


def test_wallet_capture_route(client, auth_headers, seed_product, wallet_verifier):
    from storefront.main import app

    order = _create_order(client, auth_headers["customer"], seed_product(price=100000), qty=1, payment_method="wallet_checkout")
    # 100000 + 10% tax + 30000 shipping = 140000 -> 5.60 at 25000 per unit
    wallet_verifier.amount = "5.60"
    app.dependency_overrides[get_wallet_verifier] = lambda: wallet_verifier
    payment_id = f"WALLET-{uuid4().hex}"
    body = {
        "id": payment_id,
        "status": "COMPLETED",
        "update_time": "2024-01-01T12:00:00Z",
        "payer": {"email_address": "buyer@example.com"},
    }

    paid = client.put(f"/api/orders/{order['order_id']}/pay", json=body, headers=auth_headers["customer"])
    assert paid.status_code == 200, paid.text
    assert paid.json()["is_paid"] is True
    assert paid.json()["payment_result"]["id"] == payment_id

    other = _create_order(client, auth_headers["customer"], seed_product(price=100000), qty=1, payment_method="wallet_checkout")
    replayed = client.put(f"/api/orders/{other['order_id']}/pay", json=body, headers=auth_headers["customer"])
    assert replayed.status_code == 409
    assert replayed.json()["error"] == "replay_detected"

    wallet_verifier.amount = "5.59"
    mismatched = client.put(
        f"/api/orders/{other['order_id']}/pay",
        json={**body, "id": f"WALLET-{uuid4().hex}"},
        headers=auth_headers["customer"],
    )
    assert mismatched.status_code == 409
    assert mismatched.json()["error"] == "amount_mismatch"


def test_cash_on_delivery_and_delivery_tracking(client, auth_headers, seed_product):
    order = _create_order(client, auth_headers["customer"], seed_product(), payment_method="redirect_gateway")
    order_id = order["order_id"]

    cod = client.put(f"/api/orders/{order_id}/cod", headers=auth_headers["customer"])
    assert cod.status_code == 200
    assert cod.json()["is_paid"] is True
    assert cod.json()["payment_method"] == "cash_on_delivery"

    forbidden = client.put(
        f"/api/orders/{order_id}/delivery-status",
        json={"delivery_status": "Shipped"},
        headers=auth_headers["customer"],
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "forbidden"

    shipped = client.put(
        f"/api/orders/{order_id}/delivery-status",
        json={"delivery_status": "Shipped", "comment": "handed to carrier"},
        headers=auth_headers["staff"],
    )
    assert shipped.status_code == 200
    history = shipped.json()["status_history"]
    assert history[-1]["status"] == "Shipped"
    assert history[-1]["comment"] == "handed to carrier"
    assert history[-1]["updated_by"] == get_settings().staff_actor_id

    delivered = client.put(f"/api/orders/{order_id}/deliver", headers=auth_headers["staff"])
    assert delivered.status_code == 200
    assert delivered.json()["is_delivered"] is True
    assert delivered.json()["delivery_status"] == "Delivered"

    cancelled = client.put(
        f"/api/orders/{order_id}/delivery-status",
        json={"delivery_status": "Cancelled"},
        headers=auth_headers["staff"],
    )
    assert cancelled.status_code == 400


def test_staff_only_order_listing(client, auth_headers):
    assert client.get("/api/orders", headers=auth_headers["customer"]).status_code == 403
    listing = client.get("/api/orders", headers=auth_headers["staff"])
    assert listing.status_code == 200
    assert listing.json()["count"] == len(listing.json()["orders"])


def test_order_not_found(client, auth_headers):
    response = client.get("/api/orders/does-not-exist", headers=auth_headers["staff"])
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_customer_cannot_read_foreign_order(client, auth_headers, seed_order):
    order = seed_order(customer_ref="someone-else")
    response = client.get(f"/api/orders/{order.order_id}", headers=auth_headers["customer"])
    assert response.status_code == 403
    assert client.get(f"/api/orders/{order.order_id}", headers=auth_headers["staff"]).status_code == 200


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_malformed_order_body_uses_validation_error_shape(client, auth_headers, seed_product):
    missing_address = client.post(
        "/api/orders",
        json={"order_items": [{"product_id": seed_product(), "qty": 1}], "payment_method": "cash_on_delivery"},
        headers=auth_headers["customer"],
    )
    assert missing_address.status_code == 400
    assert missing_address.json()["error"] == "validation_failed"
    assert "shipping_address" in missing_address.json()["detail"]

    bad_channel = client.post(
        "/api/orders",
        json={"order_items": [], "shipping_address": ADDRESS, "payment_method": "barter"},
        headers=auth_headers["customer"],
    )
    assert bad_channel.status_code == 400
    assert bad_channel.json()["error"] == "validation_failed"
