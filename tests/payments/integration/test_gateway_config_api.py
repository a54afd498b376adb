"""HTTP tests for the fake gateway configuration endpoint."""


def test_configure_fake_gateway(client, gateway):
    response = client.post(
        "/payments/gateway/configure",
        json={"shouldSucceed": False, "failureReason": "Insufficient funds"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "gateway": {
            "gateway": "FakeGateway",
            "shouldSucceed": False,
            "failureReason": "Insufficient funds",
            "available": True,
        },
    }
    assert gateway.should_succeed is False


def test_configured_decline_reaches_checkout(client, place_order):
    client.post("/payments/gateway/configure", json={"shouldSucceed": False, "failureReason": "Card stolen"})
    order = place_order()

    response = client.post(f"/orders/{order.id}/payment", json={"method": "CARD", "amount": order.total})
    assert response.status_code == 400
    assert response.json()["error"] == "Card stolen"


def test_disabled_in_production(client, services):
    services.settings.env = "production"
    response = client.post("/payments/gateway/configure", json={"shouldSucceed": True})
    assert response.status_code == 403
