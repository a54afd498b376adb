"""HTTP tests for driver registration, login, location and ratings."""

import pytest


@pytest.fixture()
def registered(client):
    response = client.post(
        "/drivers",
        json={"name": "Sam Rider", "phone": "07000000001", "password": "secret1", "vehicleInfo": "Scooter"},
    )
    assert response.status_code == 201
    return response.json()["driver"]


class TestRegistration:
    def test_profile_never_exposes_password(self, registered):
        assert registered["name"] == "Sam Rider"
        assert registered["isAvailable"] is True
        assert registered["rating"] == 0.0
        assert "password" not in registered
        assert "passwordHash" not in registered

    def test_duplicate_phone(self, client, registered):
        response = client.post("/drivers", json={"name": "Other", "phone": "07000000001", "password": "pw"})
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestLogin:
    def test_valid_credentials(self, client, registered):
        response = client.post("/drivers/login", json={"phone": "07000000001", "password": "secret1"})
        assert response.status_code == 200
        assert response.json()["driver"]["id"] == registered["id"]

    def test_wrong_password(self, client, registered):
        response = client.post("/drivers/login", json={"phone": "07000000001", "password": "wrong"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid credentials"}

    def test_unknown_phone(self, client):
        response = client.post("/drivers/login", json={"phone": "07999999999", "password": "secret1"})
        assert response.status_code == 404


class TestProfile:
    def test_update_and_toggle_availability(self, client, registered):
        response = client.patch(
            f"/drivers/{registered['id']}", json={"vehicleInfo": "E-bike", "isAvailable": False}
        )
        driver = response.json()["driver"]
        assert driver["vehicleInfo"] == "E-bike"
        assert driver["isAvailable"] is False

        available = client.get("/drivers", params={"available": "true"}).json()["drivers"]
        assert available == []

    def test_location_update(self, client, registered):
        response = client.put(
            f"/drivers/{registered['id']}/location",
            json={"latitude": 53.8, "longitude": -1.55, "accuracy": 5.0},
        )
        assert response.status_code == 200
        location = response.json()["driver"]["currentLocation"]
        assert location["latitude"] == 53.8
        assert location["longitude"] == -1.55

        active = client.get("/drivers/active", params={"withLocation": "true"}).json()["drivers"]
        assert [driver["id"] for driver in active] == [registered["id"]]

    def test_detail_of_unknown_driver(self, client):
        assert client.get("/drivers/missing").status_code == 404


class TestDeletion:
    def test_staff_can_delete(self, client, registered, staff_headers):
        response = client.delete(f"/drivers/{registered['id']}", headers=staff_headers)
        assert response.status_code == 204
        assert client.get(f"/drivers/{registered['id']}").status_code == 404

    def test_anonymous_cannot_delete(self, client, registered):
        assert client.delete(f"/drivers/{registered['id']}").status_code == 401


class TestRatingApi:
    def test_rating_before_delivery(self, client, registered, place_order):
        order = place_order()
        response = client.post(
            f"/drivers/{registered['id']}/rating",
            json={"orderId": order.id, "customerEmail": "alex@example.com", "rating": 4},
        )
        assert response.status_code == 400

    def test_rating_out_of_range(self, client, registered, place_order):
        order = place_order()
        response = client.post(
            f"/drivers/{registered['id']}/rating",
            json={"orderId": order.id, "customerEmail": "alex@example.com", "rating": 9},
        )
        assert response.status_code == 400
