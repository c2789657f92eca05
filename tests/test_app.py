import pytest

from storefront.services.kafka_client import KafkaClient


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["kafka"] == "disabled"


def test_health_reports_unreachable_database(client, monkeypatch):
    def refuse():
        raise ConnectionError("connection refused")

    monkeypatch.setattr("storefront.main.check_connection", refuse)

    response = client.get("/health")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "unhealthy"
    assert body["database"] == "disconnected"


def test_root(client):
    body = client.get("/").json()
    assert body["status"] == "running"
    assert body["endpoints"]["cart"] == "/api/v1/cart"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/v1/nothing-here")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "NOT_FOUND"
    assert "timestamp" in body


def test_build_event_envelope():
    event = KafkaClient.build_event("cart.cleared", {"cart_id": "c1"})

    assert event["event_type"] == "cart.cleared"
    assert event["payload"] == {"cart_id": "c1"}
    assert event["event_id"]
    assert event["event_timestamp"]


@pytest.mark.asyncio
async def test_disabled_client_skips_publishing():
    client = KafkaClient(enabled=False)

    await client.start_producer()

    assert client.producer is None
    assert await client.publish_event("cart.cleared", "cart_cleared", {"cart_id": "c1"}) is False
