"""HTTP tests for the menu, cart, order and report endpoints."""

import pytest


@pytest.fixture()
def customer_payload():
    return {
        "name": "Alex Diner",
        "email": "alex@example.com",
        "phone": "07700900001",
        "address": "1 High Street",
        "city": "Leeds",
        "postcode": "LS1 1AA",
    }


@pytest.fixture()
def placed(client, menu, customer_payload):
    """Factory: checkout a guest cart over HTTP and return the order JSON."""
    counter = iter(range(1000))

    def _placed(order_type="DELIVERY"):
        session_id = f"web-{next(counter)}"
        client.post("/cart", json={"sessionId": session_id, "menuItemId": menu["A"].id, "quantity": 2})
        client.post("/cart", json={"sessionId": session_id, "menuItemId": menu["B"].id, "quantity": 1})
        response = client.post(
            "/orders",
            json={"sessionId": session_id, "orderType": order_type, "customer": customer_payload},
        )
        assert response.status_code == 201
        return response.json()["order"]

    return _placed


@pytest.fixture()
def customer_headers():
    return {"X-User-Id": "cust-001", "X-User-Email": "alex@example.com"}


class TestMenuApi:
    def test_lists_all_items(self, client, menu):
        response = client.get("/menu")
        assert response.status_code == 200
        assert {item["name"] for item in response.json()["items"]} == {"Item A", "Item B", "Item C"}

    def test_filters_available_and_category(self, client, menu):
        items = client.get("/menu", params={"available": "true", "category": "sides"}).json()["items"]
        assert [item["name"] for item in items] == ["Item B"]

    def test_staff_can_mark_sold_out(self, client, menu, staff_headers):
        response = client.patch(
            f"/menu/{menu['A'].id}/availability", json={"isAvailable": False}, headers=staff_headers
        )
        assert response.status_code == 200
        assert response.json()["item"]["isAvailable"] is False

    def test_availability_requires_identity(self, client, menu):
        response = client.patch(f"/menu/{menu['A'].id}/availability", json={"isAvailable": False})
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Authentication required"}

    def test_availability_requires_staff_role(self, client, menu):
        response = client.patch(
            f"/menu/{menu['A'].id}/availability",
            json={"isAvailable": False},
            headers={"X-User-Id": "cust-1", "X-User-Role": "customer"},
        )
        assert response.status_code == 403
        assert response.json()["success"] is False


class TestCartApi:
    def test_empty_cart(self, client):
        body = client.get("/cart", params={"sessionId": "web-empty"}).json()
        assert body["success"] is True
        assert body["cart"]["items"] == []
        assert body["cart"]["total"] == 0.0

    def test_add_update_remove(self, client, menu):
        cart = client.post(
            "/cart",
            json={"sessionId": "web-1", "menuItemId": menu["A"].id, "quantity": 2, "specialInstructions": "Spicy"},
        ).json()["cart"]
        (line,) = cart["items"]
        assert line["unitPrice"] == 5.0
        assert line["totalPrice"] == 10.0
        assert line["specialInstructions"] == "Spicy"

        cart = client.put(f"/cart/{line['id']}", json={"quantity": 3}).json()["cart"]
        assert cart["total"] == 15.0
        assert cart["itemCount"] == 3

        cart = client.delete(f"/cart/{line['id']}").json()["cart"]
        assert cart["items"] == []

    def test_clear(self, client, menu):
        client.post("/cart", json={"customerId": "cust-9", "menuItemId": menu["A"].id})
        cart = client.delete("/cart", params={"customerId": "cust-9"}).json()["cart"]
        assert cart["items"] == []
        assert cart["customerId"] == "cust-9"

    def test_zero_quantity_is_rejected(self, client, menu):
        response = client.post("/cart", json={"sessionId": "web-2", "menuItemId": menu["A"].id, "quantity": 0})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_sold_out_item_is_rejected(self, client, menu):
        response = client.post("/cart", json={"sessionId": "web-3", "menuItemId": menu["C"].id, "quantity": 1})
        assert response.status_code == 400

    def test_unknown_item(self, client, menu):
        response = client.post("/cart", json={"sessionId": "web-4", "menuItemId": "nope", "quantity": 1})
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_missing_body_field_uses_error_envelope(self, client):
        response = client.post("/cart", json={"sessionId": "web-5"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Invalid request"
        assert any(detail["field"].endswith("menuItemId") for detail in body["details"])


class TestOrderApi:
    def test_checkout_empty_cart(self, client, menu, customer_payload):
        response = client.post(
            "/orders", json={"sessionId": "web-nothing", "orderType": "PICKUP", "customer": customer_payload}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Cart is empty"

    def test_get_and_track(self, client, placed):
        order = placed()
        assert client.get(f"/orders/{order['id']}").json()["order"]["orderNumber"] == order["orderNumber"]
        tracked = client.get(f"/orders/track/{order['orderNumber']}").json()["order"]
        assert tracked["id"] == order["id"]

    def test_unknown_order(self, client):
        response = client.get("/orders/does-not-exist")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_payment_amount_mismatch(self, client, placed):
        order = placed()
        response = client.post(f"/orders/{order['id']}/payment", json={"method": "CARD", "amount": 1.0})
        assert response.status_code == 400
        assert response.json()["details"] == {"expected": 15.5, "received": 1.0}

    def test_declined_payment(self, client, gateway, placed):
        gateway.configure(should_succeed=False, failure_reason="Card declined")
        order = placed()
        response = client.post(f"/orders/{order['id']}/payment", json={"method": "CARD", "amount": 15.5})
        assert response.status_code == 400
        assert response.json()["error"] == "Card declined"
        assert client.get(f"/orders/{order['id']}").json()["order"]["paymentStatus"] == "FAILED"

    def test_gateway_outage_is_a_server_error(self, client, gateway, placed):
        gateway.configure(available=False)
        order = placed()
        response = client.post(f"/orders/{order['id']}/payment", json={"method": "CARD", "amount": 15.5})
        assert response.status_code == 500
        assert response.json()["success"] is False

    def test_cancel(self, client, placed, customer_headers):
        order = placed()
        response = client.post(f"/orders/{order['id']}/cancel", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "CANCELLED"

        again = client.post(f"/orders/{order['id']}/cancel", headers=customer_headers)
        assert again.status_code == 400

    def test_cancel_requires_identity(self, client, placed):
        order = placed()
        response = client.post(f"/orders/{order['id']}/cancel")
        assert response.status_code == 401
        assert client.get(f"/orders/{order['id']}").json()["order"]["status"] == "PENDING"

    def test_cancel_by_another_customer_is_forbidden(self, client, placed):
        order = placed()
        stranger = {"X-User-Id": "cust-999", "X-User-Email": "someone@example.com"}
        response = client.post(f"/orders/{order['id']}/cancel", headers=stranger)
        assert response.status_code == 403
        assert client.get(f"/orders/{order['id']}").json()["order"]["status"] == "PENDING"

    def test_customer_email_match_ignores_case(self, client, placed):
        order = placed()
        headers = {"X-User-Id": "cust-001", "X-User-Email": "Alex@Example.com"}
        response = client.post(f"/orders/{order['id']}/cancel", headers=headers)
        assert response.status_code == 200

    def test_staff_can_cancel_any_order(self, client, placed, staff_headers):
        order = placed()
        response = client.post(f"/orders/{order['id']}/cancel", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "CANCELLED"

    def test_history_by_email(self, client, placed):
        first = placed()
        second = placed()
        orders = client.get("/orders/history", params={"email": "alex@example.com"}).json()["orders"]
        assert {order["id"] for order in orders} == {first["id"], second["id"]}

    def test_reorder_copies_items(self, client, placed):
        order = placed()
        cart = client.post("/orders/reorder", json={"orderId": order["id"], "sessionId": "web-again"}).json()["cart"]
        assert cart["total"] == 13.0
        assert cart["itemCount"] == 3


class TestStaffOrderApi:
    def test_list_requires_staff(self, client):
        assert client.get("/orders").status_code == 401

    def test_list_filters_by_status(self, client, placed, staff_headers):
        pending = placed()
        cancelled = placed()
        client.post(f"/orders/{cancelled['id']}/cancel", headers=staff_headers)

        orders = client.get("/orders", params={"status": "PENDING"}, headers=staff_headers).json()["orders"]
        assert [order["id"] for order in orders] == [pending["id"]]

    def test_limit_out_of_range(self, client, staff_headers):
        response = client.get("/orders", params={"limit": 0}, headers=staff_headers)
        assert response.status_code == 400

    def test_status_update(self, client, placed, staff_headers):
        order = placed()
        response = client.put(f"/orders/{order['id']}/status", json={"status": "confirmed"}, headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "CONFIRMED"

    def test_invalid_transition(self, client, placed, staff_headers):
        order = placed()
        response = client.put(f"/orders/{order['id']}/status", json={"status": "delivered"}, headers=staff_headers)
        assert response.status_code == 400

    def test_status_update_with_driver(self, client, placed, make_driver, staff_headers):
        order = placed()
        client.post(f"/orders/{order['id']}/payment", json={"method": "CARD", "amount": 15.5})
        driver = make_driver()

        response = client.put(
            f"/orders/{order['id']}/status",
            json={"status": "out_for_delivery", "driverId": driver.id},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "OUT_FOR_DELIVERY"
        assert response.json()["order"]["driverId"] == driver.id

    def test_rejected_status_update_leaves_driver_unassigned(self, client, placed, make_driver, staff_headers):
        order = placed()
        client.post(f"/orders/{order['id']}/payment", json={"method": "CARD", "amount": 15.5})
        driver = make_driver()

        response = client.put(
            f"/orders/{order['id']}/status",
            json={"status": "delivered", "driverId": driver.id},
            headers=staff_headers,
        )
        assert response.status_code == 400
        current = client.get(f"/orders/{order['id']}").json()["order"]
        assert current["status"] == "PREPARING"
        assert current["driverId"] is None

    def test_assign_driver(self, client, placed, make_driver, staff_headers):
        order = placed()
        client.post(f"/orders/{order['id']}/payment", json={"method": "CARD", "amount": 15.5})
        driver = make_driver()

        response = client.put(
            f"/orders/{order['id']}/driver", json={"driverId": driver.id}, headers=staff_headers
        )
        assert response.status_code == 200
        assert response.json()["order"]["driverId"] == driver.id
        assert response.json()["order"]["driver"]["name"] == "Sam Rider"

    def test_sales_report(self, client, placed, staff_headers):
        order = placed(order_type="PICKUP")
        client.post(f"/orders/{order['id']}/payment", json={"method": "CASH", "amount": 13.0})

        response = client.get("/reports/sales", params={"period": "today"}, headers=staff_headers)
        assert response.status_code == 200
        report = response.json()["report"]
        assert report["period"] == "today"
        assert report["summary"]["totalOrders"] == 1
        assert report["summary"]["totalRevenue"] == 13.0
        assert report["breakdowns"]["paymentMethods"] == {"cash": 1}

    def test_sales_report_requires_staff(self, client):
        response = client.get("/reports/sales", headers={"X-User-Id": "cust-1"})
        assert response.status_code == 403
