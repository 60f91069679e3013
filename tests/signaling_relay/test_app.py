from datetime import datetime

import pytest
import socketio
from fastapi.testclient import TestClient

from signaling_relay.app import create_app, create_asgi_app
from signaling_relay.config import RelaySettings
from signaling_relay.gateway import SignalingGateway


def _parse_iso_z(ts: str) -> datetime:
    """
    Parse ISO-8601 timestamps that may end with 'Z' (UTC).
    """
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


@pytest.fixture
def cfg():
    return RelaySettings(frontend_url="http://dashboard.test", session_timeout_sec=0)


@pytest.fixture
def client(cfg):
    app = create_app(cfg)
    with TestClient(app) as c:
        yield c


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "signaling relay running"}


def test_health_endpoint(client):
    response = client.get("/api/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "OK"
    _parse_iso_z(data["timestamp"])


def test_status_endpoint_reflects_registry(client):
    gateway = client.app.state.gateway
    gateway.registry.add_broadcaster("sid-1", "dev1", "Cam1")
    gateway.registry.add_broadcaster("sid-2", "dev1", "Cam1")
    gateway.registry.add_viewer("sid-3", "v1")

    response = client.get("/api/status")
    assert response.status_code == 200

    data = response.json()
    assert data["broadcasters"] == ["dev1"]
    assert data["viewers"] == 1
    assert data["pendingSessions"] == 0
    assert data["collisions"] == 1
    assert data["connections"] == 0
    assert isinstance(data["timestamp"], int)


def test_cors_allows_only_configured_origin(client):
    allowed = client.get("/api/health", headers={"Origin": "http://dashboard.test"})
    assert allowed.headers.get("access-control-allow-origin") == "http://dashboard.test"

    denied = client.get("/api/health", headers={"Origin": "http://evil.test"})
    assert "access-control-allow-origin" not in denied.headers


def test_create_app_builds_socketio_gateway(cfg):
    app = create_app(cfg)
    gateway = app.state.gateway

    assert isinstance(gateway, SignalingGateway)
    assert isinstance(gateway.sio, socketio.AsyncServer)
    assert gateway.router.session_timeout_sec == 0


def test_asgi_app_serves_http_routes(cfg):
    asgi_app = create_asgi_app(cfg)
    assert isinstance(asgi_app, socketio.ASGIApp)

    response = TestClient(asgi_app).get("/api/health")
    assert response.status_code == 200
