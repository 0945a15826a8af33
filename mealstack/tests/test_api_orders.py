"""
Order API integration tests
"""

from datetime import timedelta

from .conftest import TODAY


def order_payload(address, item, order_date, meal_type="lunch", quantity=1, **extra):
    payload = {
        "order_date": order_date.isoformat(),
        "meal_type": meal_type,
        "items": [{"menu_item_id": item.id, "quantity": quantity}],
        "address_id": address.id,
    }
    payload.update(extra)
    return payload


class TestOrdersAPI:
    """Order API tests"""

    def test_place_order_success(self, client, auth_headers, verified_address, menu_items, tomorrow):
        response = client.post(
            "/api/v1/orders",
            headers=auth_headers,
            json=order_payload(verified_address, menu_items["thali"], tomorrow, quantity=2,
                               notes="Ring the bell", total_amount_cents=24500)
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["data"]["order_number"].startswith("ORD-")
        assert data["data"]["total_amount_cents"] == 24500
        assert data["data"]["status"] == "pending"
        assert data["data"]["selected_items"][0]["quantity"] == 2

    def test_requires_authentication(self, client, verified_address, menu_items, tomorrow):
        response = client.post("/api/v1/orders",
                               json=order_payload(verified_address, menu_items["thali"], tomorrow))
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "AUTHENTICATION_REQUIRED"

    def test_invalid_token(self, client):
        response = client.get("/api/v1/orders", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_disabled_account(self, client, test_db, sample_user, auth_headers):
        test_db.execute_query("UPDATE users SET is_active = FALSE WHERE id = ?", [sample_user["id"]])
        response = client.get("/api/v1/orders", headers=auth_headers)
        assert response.status_code == 401

    def test_capacity_exceeded(self, client, container, auth_headers, verified_address, menu_items, tomorrow):
        container.ledger.set_limit(tomorrow, "lunch", 0)
        response = client.post("/api/v1/orders", headers=auth_headers,
                               json=order_payload(verified_address, menu_items["thali"], tomorrow))
        assert response.status_code == 409
        assert response.json()["error_code"] == "CAPACITY_EXCEEDED"

    def test_business_rule_errors(self, client, clock, auth_headers, verified_address,
                                  unverified_address, menu_items, tomorrow):
        past = order_payload(verified_address, menu_items["thali"], TODAY - timedelta(days=1))
        assert client.post("/api/v1/orders", headers=auth_headers, json=past).json()["error_code"] == "INVALID_DATE"

        unverified = order_payload(unverified_address, menu_items["thali"], tomorrow)
        response = client.post("/api/v1/orders", headers=auth_headers, json=unverified)
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_ADDRESS"

        clock.set_time(11, 0)
        late = order_payload(verified_address, menu_items["thali"], TODAY)
        assert client.post("/api/v1/orders", headers=auth_headers, json=late).json()["error_code"] == "ORDER_WINDOW_CLOSED"

    def test_request_validation(self, client, auth_headers, verified_address, tomorrow):
        payload = {"order_date": tomorrow.isoformat(), "meal_type": "brunch", "items": [],
                   "address_id": verified_address.id}
        response = client.post("/api/v1/orders", headers=auth_headers, json=payload)
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_bulk_orders(self, client, container, auth_headers, verified_address, menu_items, tomorrow):
        container.ledger.set_limit(tomorrow, "dinner", 0)
        response = client.post("/api/v1/orders/bulk", headers=auth_headers, json={"groups": [
            order_payload(verified_address, menu_items["thali"], tomorrow),
            order_payload(verified_address, menu_items["khichdi"], tomorrow, meal_type="dinner"),
        ]})

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["total_orders"] == 1
        assert data["errors"][0].startswith("Group 2: ")

    def test_bulk_orders_all_failed(self, client, container, auth_headers, verified_address, menu_items, tomorrow):
        container.ledger.set_limit(tomorrow, "lunch", 0)
        response = client.post("/api/v1/orders/bulk", headers=auth_headers, json={"groups": [
            order_payload(verified_address, menu_items["thali"], tomorrow),
        ]})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_list_and_get(self, client, auth_headers, other_headers, verified_address, menu_items, tomorrow):
        created = client.post("/api/v1/orders", headers=auth_headers,
                              json=order_payload(verified_address, menu_items["thali"], tomorrow)).json()["data"]

        listing = client.get("/api/v1/orders", headers=auth_headers, params={"status": "pending"})
        assert listing.status_code == 200
        page = listing.json()["data"]
        assert page["pagination"]["total"] == 1
        assert page["items"][0]["id"] == created["id"]

        assert client.get(f"/api/v1/orders/{created['id']}", headers=auth_headers).status_code == 200
        assert client.get(f"/api/v1/orders/{created['id']}", headers=other_headers).status_code == 404

        by_date = client.get(f"/api/v1/orders/date/{tomorrow.isoformat()}", headers=auth_headers)
        assert len(by_date.json()["data"]) == 1
        assert client.get("/api/v1/orders/today", headers=auth_headers).json()["data"] == []

    def test_cancel(self, client, container, auth_headers, verified_address, menu_items, tomorrow):
        created = client.post("/api/v1/orders", headers=auth_headers,
                              json=order_payload(verified_address, menu_items["thali"], tomorrow)).json()["data"]

        response = client.patch(f"/api/v1/orders/{created['id']}/cancel", headers=auth_headers,
                                json={"reason": "Plans changed"})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        assert container.ledger.find(tomorrow).lunch.booked == 0

        again = client.patch(f"/api/v1/orders/{created['id']}/cancel", headers=auth_headers)
        assert again.status_code == 409
        assert again.json()["error_code"] == "INVALID_TRANSITION"


class TestAdminOrdersAPI:

    def test_requires_admin(self, client, auth_headers):
        response = client.get("/api/v1/admin/orders", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error_code"] == "PERMISSION_DENIED"

    def test_status_flow(self, client, auth_headers, admin_headers, verified_address, menu_items, tomorrow):
        created = client.post("/api/v1/orders", headers=auth_headers,
                              json=order_payload(verified_address, menu_items["thali"], tomorrow)).json()["data"]

        response = client.patch(f"/api/v1/admin/orders/{created['id']}/status", headers=admin_headers,
                                json={"status": "confirmed"})
        assert response.json()["data"]["status"] == "confirmed"

        back = client.patch(f"/api/v1/admin/orders/{created['id']}/status", headers=admin_headers,
                            json={"status": "pending"})
        assert back.status_code == 409

        listing = client.get("/api/v1/admin/orders", headers=admin_headers, params={"status": "confirmed"})
        assert listing.json()["data"]["pagination"]["total"] == 1

    def test_stats(self, client, admin_headers):
        response = client.get("/api/v1/admin/stats", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["date"] == TODAY.isoformat()
        assert data["capacity_today"]["lunch"]["limit"] == 50
