from fastapi.testclient import TestClient

from app.core.config import settings
from app.main import create_app


def test_health_ok():
    app = create_app()
    client = TestClient(app)

    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"


def test_health_live():
    app = create_app()
    client = TestClient(app)

    r = client.get("/health/live")
    assert r.status_code == 200
    assert r.json().get("status") == "live"


def test_root_banner():
    client = TestClient(create_app())

    r = client.get("/")
    assert r.status_code == 200
    assert "OK" in r.text


def test_ready_requires_shopify_credentials(monkeypatch):
    client = TestClient(create_app())

    assert client.get("/health/ready").status_code == 200

    monkeypatch.setattr(settings, "shopify_admin_api_token", None)
    r = client.get("/health/ready")
    assert r.status_code == 503
    assert r.json()["success"] is False


def test_request_id_is_echoed():
    client = TestClient(create_app())

    r = client.get("/health", headers={"X-Request-ID": "rid-123"})
    assert r.headers["X-Request-ID"] == "rid-123"
