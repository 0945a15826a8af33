"""
Capacity API integration tests
"""

from datetime import timedelta

from .conftest import TODAY


class TestCapacityAPI:

    def test_get_capacity_creates_defaults(self, client, auth_headers, tomorrow):
        response = client.get(f"/api/v1/capacity/{tomorrow.isoformat()}", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["date"] == tomorrow.isoformat()
        assert data["dinner"] == {"limit": 50, "booked": 0, "remaining": 50}

    def test_upcoming(self, client, auth_headers):
        response = client.get("/api/v1/capacity/upcoming", headers=auth_headers, params={"days": 3})
        dates = [r["date"] for r in response.json()["data"]]
        assert dates == [(TODAY + timedelta(days=i)).isoformat() for i in range(3)]

    def test_update_requires_admin(self, client, auth_headers, tomorrow):
        response = client.put(f"/api/v1/capacity/{tomorrow.isoformat()}", headers=auth_headers,
                              json={"lunch": 10})
        assert response.status_code == 403

    def test_admin_update(self, client, admin_headers, tomorrow):
        response = client.put(f"/api/v1/capacity/{tomorrow.isoformat()}", headers=admin_headers,
                              json={"breakfast": 20, "lunch": 10})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["breakfast"]["limit"] == 20
        assert data["lunch"]["limit"] == 10
        assert data["dinner"]["limit"] == 50

    def test_negative_limit(self, client, admin_headers, tomorrow):
        response = client.put(f"/api/v1/capacity/{tomorrow.isoformat()}", headers=admin_headers,
                              json={"lunch": -5})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_CAPACITY"

    def test_limit_below_booked(self, client, container, admin_headers, tomorrow):
        container.ledger.reserve(tomorrow, "lunch", 4)
        response = client.put(f"/api/v1/capacity/{tomorrow.isoformat()}", headers=admin_headers,
                              json={"lunch": 3})
        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "INVALID_CAPACITY"
        assert body["details"]["booked"] == 4

    def test_empty_update(self, client, admin_headers, tomorrow):
        response = client.put(f"/api/v1/capacity/{tomorrow.isoformat()}", headers=admin_headers, json={})
        assert response.status_code == 400

    def test_bulk(self, client, container, admin_headers, tomorrow):
        container.ledger.reserve(tomorrow, "dinner", 6)
        response = client.post("/api/v1/capacity/bulk", headers=admin_headers,
                               json={"dinner": 5, "days": 3})
        data = response.json()["data"]
        assert len(data["updated"]) == 2
        assert data["skipped"][0]["date"] == tomorrow.isoformat()
