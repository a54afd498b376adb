"""HTTP tests for the live order notification stream and health check."""

import asyncio


def test_stream_opens_with_connected_ack(client, services):
    # A closed broker ends the stream right after the ack, so the response completes.
    asyncio.run(services.broker.close())

    response = client.get("/orders/notifications")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.text.startswith('data: {"type":"connected"')


def test_notifications_route_is_not_an_order_id(client, services):
    asyncio.run(services.broker.close())
    assert client.get("/orders/notifications").status_code != 404


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "sqlite", "broker": "memory", "gateway": "fake"}


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert response.headers["x-request-id"] == "req-123"
    assert client.get("/health").headers["x-request-id"]
