from unittest.mock import Mock

from fastapi.testclient import TestClient

from aichef.main import create_app


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_readyz_with_reachable_store(client):
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_readyz_when_store_unreachable(test_settings, provider):
    store = Mock()
    store.ping.return_value = False
    client = TestClient(create_app(settings_obj=test_settings, store=store, provider=provider))

    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert resp.json()["status"] == "error"
