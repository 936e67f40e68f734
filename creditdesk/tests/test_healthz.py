from fastapi.testclient import TestClient

from creditdesk.features.accounts.storage import MemoryStateStorage
from creditdesk.main import create_app


def test_healthz_always_ok(api_client):
    resp = api_client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_healthz_counts_accounts(api_client, store):
    store.login("a@example.com")
    store.login("b@example.com")
    assert api_client.get("/healthz").json()["accounts"] == 2


def test_lifespan_loads_store_from_storage():
    storage = MemoryStateStorage({"version": 2, "currentUser": "a@example.com", "users": {
        "a@example.com": {"email": "a@example.com", "credits": 150},
    }})
    app = create_app(storage=storage)
    with TestClient(app) as client:
        body = client.get("/healthz").json()
    assert body["accounts"] == 1
    assert app.state.store.current_user == "a@example.com"
