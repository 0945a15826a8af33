"""
Subscription and order-payment API integration tests
"""

from datetime import timedelta

from .conftest import TODAY
from .test_api_orders import order_payload


def subscription_payload(address, **extra):
    payload = {
        "package_type": "breakfast_monthly",
        "package_title": "Breakfast, 30 days",
        "start_date": (TODAY + timedelta(days=1)).isoformat(),
        "end_date": (TODAY + timedelta(days=30)).isoformat(),
        "address_id": address.id,
    }
    payload.update(extra)
    return payload


def confirm_body(gateway, gateway_order_id, gateway_payment_id="pay_api_001", signature=None):
    return {
        "gateway_order_id": gateway_order_id,
        "gateway_payment_id": gateway_payment_id,
        "signature": signature or gateway.sign(gateway_order_id, gateway_payment_id),
    }


class TestSubscriptionsAPI:

    def test_subscribe_and_pay(self, client, gateway, auth_headers, verified_address):
        response = client.post("/api/v1/subscriptions", headers=auth_headers,
                               json=subscription_payload(verified_address))
        assert response.status_code == 201
        subscription = response.json()["data"]
        assert subscription["status"] == "pending_payment"
        assert subscription["price_cents"] == 90000

        response = client.post(f"/api/v1/subscriptions/{subscription['id']}/payment", headers=auth_headers)
        assert response.status_code == 201
        handle = response.json()["data"]
        assert handle["amount_cents"] == 90000
        assert handle["payment"]["kind"] == "subscription"

        response = client.post(f"/api/v1/subscriptions/{subscription['id']}/payment/confirm",
                               headers=auth_headers, json=confirm_body(gateway, handle["gateway_order_id"]))
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Subscription activated"
        assert body["data"]["subscription"]["status"] == "active"

        response = client.get(f"/api/v1/subscriptions/{subscription['id']}", headers=auth_headers)
        assert response.json()["data"]["status"] == "active"

    def test_forged_confirmation(self, client, auth_headers, verified_address):
        subscription = client.post("/api/v1/subscriptions", headers=auth_headers,
                                   json=subscription_payload(verified_address)).json()["data"]
        handle = client.post(f"/api/v1/subscriptions/{subscription['id']}/payment",
                             headers=auth_headers, json={"currency": "INR"}).json()["data"]

        response = client.post(
            f"/api/v1/subscriptions/{subscription['id']}/payment/confirm", headers=auth_headers,
            json={"gateway_order_id": handle["gateway_order_id"], "gateway_payment_id": "pay_x",
                  "signature": "forged"}
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "PAYMENT_VERIFICATION_FAILED"

        listing = client.get("/api/v1/subscriptions", headers=auth_headers,
                             params={"status": "payment_failed"}).json()
        assert listing["data"]["pagination"]["total"] == 1

    def test_unknown_package(self, client, auth_headers, verified_address):
        response = client.post("/api/v1/subscriptions", headers=auth_headers,
                               json=subscription_payload(verified_address, package_type="yearly_feast"))
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_other_users_subscription(self, client, auth_headers, other_headers, verified_address):
        subscription = client.post("/api/v1/subscriptions", headers=auth_headers,
                                   json=subscription_payload(verified_address)).json()["data"]
        response = client.get(f"/api/v1/subscriptions/{subscription['id']}", headers=other_headers)
        assert response.status_code == 404

    def test_admin_listing(self, client, auth_headers, admin_headers, verified_address, sample_user):
        client.post("/api/v1/subscriptions", headers=auth_headers, json=subscription_payload(verified_address))

        assert client.get("/api/v1/admin/subscriptions", headers=auth_headers).status_code == 403
        listing = client.get("/api/v1/admin/subscriptions", headers=admin_headers,
                             params={"user_id": sample_user["id"], "status": "pending_payment"}).json()
        assert listing["data"]["pagination"]["total"] == 1


class TestOrderPaymentAPI:

    def test_pay_pending_order(self, client, gateway, auth_headers, verified_address, menu_items, tomorrow):
        order = client.post("/api/v1/orders", headers=auth_headers,
                            json=order_payload(verified_address, menu_items["thali"], tomorrow)).json()["data"]

        response = client.post("/api/v1/payments/initiate-orders", headers=auth_headers,
                               json={"order_ids": [order["id"]], "total_amount_cents": 12500})
        assert response.status_code == 201
        handle = response.json()["data"]
        assert handle["payment"]["kind"] == "orders"

        response = client.post("/api/v1/payments/confirm", headers=auth_headers,
                               json=confirm_body(gateway, handle["gateway_order_id"]))
        assert response.status_code == 200

        paid = client.get(f"/api/v1/orders/{order['id']}", headers=auth_headers).json()["data"]
        assert paid["payment_status"] == "paid"
        assert paid["status"] == "confirmed"

    def test_order_ids_required(self, client, auth_headers):
        response = client.post("/api/v1/payments/initiate-orders", headers=auth_headers, json={"order_ids": []})
        assert response.status_code == 422
