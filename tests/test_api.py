"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from crafty_broker.api.app import create_app
from crafty_broker.broker.factory import CraftyControllerBrokerFactory
from crafty_broker.models.config import PollingConfig
from crafty_broker.registry.store import BrokerRegistry
from crafty_broker.transport.actions import ActionKind

from fakes import FakeTransport, make_server_config, rejected, running, stopped

FAST = PollingConfig(poll_interval_seconds=0.01, convergence_timeout_seconds=0.3)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def registry(transport):
    """A registry managing one server ("lobby") through the fake transport."""
    registry = BrokerRegistry(CraftyControllerBrokerFactory(polling=FAST))
    registry.register(make_server_config(), transport=transport)
    yield registry
    registry.close_all()


@pytest.fixture
def client(registry):
    return TestClient(create_app(registry=registry))


class TestServerEndpoints:
    def test_list_servers(self, client):
        response = client.get("/servers")
        assert response.status_code == 200
        assert response.json() == [{"name": "lobby", "type": "crafty", "state": "unknown"}]

    def test_register_server(self, client, registry):
        payload = make_server_config(name="survival", serverID="abc").model_dump()
        response = client.post("/servers", json=payload)
        assert response.status_code == 200
        assert registry.get("survival").config.server_id == "abc"

    def test_register_duplicate(self, client):
        response = client.post("/servers", json=make_server_config().model_dump())
        assert response.status_code == 409

    def test_register_wrong_type(self, client):
        payload = make_server_config(name="proxy", type="velocity").model_dump()
        response = client.post("/servers", json=payload)
        assert response.status_code == 400

    def test_unknown_server(self, client):
        assert client.get("/servers/nope/status").status_code == 404
        assert client.post("/servers/nope/start").status_code == 404

    def test_status(self, client, transport):
        transport.script(ActionKind.STATUS, running())
        response = client.get("/servers/lobby/status")
        assert response.json() == {"name": "lobby", "status": "running"}

    def test_status_unknown(self, client, transport):
        transport.script(ActionKind.STATUS, rejected())
        assert client.get("/servers/lobby/status").json()["status"] == "unknown"

    def test_address(self, client):
        response = client.get("/servers/lobby/address")
        assert response.json() == {"host": "10.0.0.5", "port": 25566}


class TestLifecycleEndpoints:
    def test_start(self, client, transport):
        transport.script(ActionKind.STATUS, stopped(), running())
        response = client.post("/servers/lobby/start")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["final_state"] == "running"

    def test_start_rejected(self, client, transport):
        transport.script(ActionKind.START, rejected("server is busy"))
        response = client.post("/servers/lobby/start")
        assert response.status_code == 502
        assert response.json()["failure"] == "rejected"

    def test_stop_timeout(self, client, transport):
        transport.script(ActionKind.STATUS, running())
        response = client.post("/servers/lobby/stop")
        assert response.status_code == 502
        assert response.json()["failure"] == "timeout"

    def test_remove(self, client, registry, transport):
        transport.script(ActionKind.STOP, rejected())
        response = client.delete("/servers/lobby")
        assert response.status_code == 200
        assert ActionKind.DELETE in transport.actions
        assert registry.get("lobby") is None

    def test_remove_rejected_keeps_server(self, client, registry, transport):
        transport.script(ActionKind.DELETE, rejected())
        response = client.delete("/servers/lobby")
        assert response.status_code == 502
        assert registry.get("lobby") is not None


class TestReconcileEndpoints:
    def test_unchanged_config(self, client, transport):
        response = client.put("/servers/lobby/config", json=make_server_config().model_dump())
        assert response.status_code == 200
        assert response.json()["changed"] is False
        assert client.post("/servers/lobby/config/apply").status_code == 404
        assert transport.calls == []

    def test_changed_config_is_applied_later(self, client, registry, transport):
        transport.script(ActionKind.STATUS, stopped(), running())
        payload = make_server_config(token="rotated").model_dump()

        response = client.put("/servers/lobby/config", json=payload)
        assert response.json()["changed"] is True
        assert transport.calls == []

        response = client.post("/servers/lobby/config/apply")
        assert response.status_code == 200
        assert response.json()["action"] == "reconcile"
        assert registry.get("lobby").config.token.get_secret_value() == "rotated"

    def test_wrong_type(self, client):
        payload = make_server_config(type="velocity").model_dump()
        response = client.put("/servers/lobby/config", json=payload)
        assert response.status_code == 400

    def test_name_mismatch(self, client):
        payload = make_server_config(name="other").model_dump()
        assert client.put("/servers/lobby/config", json=payload).status_code == 400


class TestCreateApp:
    def test_polling_configures_default_registry(self):
        app = create_app(polling=FAST)
        assert app.state.registry.factory.polling == FAST

    def test_polling_with_registry_is_rejected(self, registry):
        with pytest.raises(ValueError):
            create_app(registry=registry, polling=FAST)
