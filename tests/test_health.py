"""
Tests for the service banner and health endpoint.
"""


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "Subsync API running"}


def test_health_connected(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert data["service"] == "subsync"
    assert "timestamp" in data
