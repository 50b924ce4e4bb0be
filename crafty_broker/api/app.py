"""
Crafty Broker API — FastAPI endpoints.

Lets an orchestrator drive the managed servers over HTTP:
- Server registration
- Status and address lookup
- Start / stop / remove
- Config reconciliation (plan, then apply)
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from crafty_broker.broker.facade import CraftyControllerBroker
from crafty_broker.broker.factory import CraftyControllerBrokerFactory
from crafty_broker.models.config import PollingConfig, ServerConfig
from crafty_broker.models.lifecycle import LifecycleResult
from crafty_broker.registry.store import BrokerRegistry

logging.basicConfig(level=os.environ.get("CRAFTY_BROKER_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


def _lifecycle_response(result: LifecycleResult) -> JSONResponse:
    """200 on success, 502 with the typed failure otherwise."""
    return JSONResponse(
        status_code=200 if result.success else 502,
        content=result.model_dump(mode="json"),
    )


# --- Application Factory ---

def create_app(
    registry: Optional[BrokerRegistry] = None,
    polling: Optional[PollingConfig] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    `polling` configures the registry built when none is passed. A supplied
    registry already carries its factory's polling settings, so passing both
    is an error.
    """
    if registry is not None and polling is not None:
        raise ValueError("Pass polling settings through the registry's factory, not both")

    reg = registry or BrokerRegistry(CraftyControllerBrokerFactory(polling=polling))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        reg.close_all()

    app = FastAPI(
        title="Crafty Broker API",
        description="Lifecycle control for Crafty Controller servers",
        version="0.2.0",
        lifespan=lifespan,
    )
    app.state.registry = reg

    def _broker(name: str) -> CraftyControllerBroker:
        broker = reg.get(name)
        if broker is None:
            raise HTTPException(404, "Server not found")
        return broker

    # === SERVERS ===

    @app.get("/servers")
    def list_servers():
        """All managed servers."""
        return reg.list()

    @app.post("/servers")
    def register_server(config: ServerConfig):
        """Start managing a server."""
        try:
            creation = reg.register(config)
        except KeyError:
            raise HTTPException(409, "Server already registered")
        if not creation.success:
            raise HTTPException(400, creation.detail)
        return {"status": "registered", "name": config.name}

    @app.get("/servers/{name}/status")
    def server_status(name: str):
        """Current remote status: running, stopped or unknown."""
        broker = _broker(name)
        return {"name": name, "status": broker.get_status().value}

    @app.get("/servers/{name}/address")
    def server_address(name: str):
        """Host and port players connect to."""
        result = _broker(name).address()
        if not result.success:
            raise HTTPException(400, result.detail)
        return result.address.model_dump()

    # === LIFECYCLE ===

    @app.post("/servers/{name}/start")
    def start_server(name: str):
        """Start and wait for the server to report running."""
        return _lifecycle_response(_broker(name).start_server())

    @app.post("/servers/{name}/stop")
    def stop_server(name: str):
        """Stop and wait for the server to report stopped."""
        return _lifecycle_response(_broker(name).stop_server())

    @app.delete("/servers/{name}")
    def remove_server(name: str):
        """Stop and delete the server on the controller. Irreversible."""
        result = _broker(name).remove_server()
        if result.success:
            reg.remove(name)
        return _lifecycle_response(result)

    # === RECONCILIATION ===

    @app.put("/servers/{name}/config")
    def reconcile_server(name: str, config: ServerConfig):
        """Compare a new config; a change is held as a pending action."""
        broker = _broker(name)
        if config.name != name:
            raise HTTPException(400, "Config name does not match server")
        result = broker.reconcile(config)
        if not result.success:
            raise HTTPException(400, result.detail)
        if result.changed:
            reg.set_pending(name, result.action)
        else:
            reg.pop_pending(name)
        return result.to_dict()

    @app.post("/servers/{name}/config/apply")
    def apply_config(name: str):
        """Run the pending stop → swap → start for a changed config."""
        _broker(name)
        action = reg.pop_pending(name)
        if action is None:
            raise HTTPException(404, "No pending configuration change")
        return _lifecycle_response(action.run())

    return app


def _default_registry() -> BrokerRegistry:
    registry = BrokerRegistry()
    config_path = os.environ.get("CRAFTY_BROKER_CONFIG")
    if config_path:
        registry.load_file(config_path)
    return registry


# Default application instance
app = create_app(registry=_default_registry())
