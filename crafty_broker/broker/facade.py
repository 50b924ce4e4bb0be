"""
Lifecycle Facade — the broker an orchestrator holds for one Crafty server.

Thin wrapper over the ReconciliationEngine exposing the orchestrator-facing
names. Lifecycle calls need the matching Crafty permissions on the token:
COMMANDS for start/stop, CONFIG for removal.
"""

import threading
from typing import Optional

from crafty_broker.execution.loop import EventLoopThread
from crafty_broker.models.config import CraftyBrokerConfig, PollingConfig, ServerConfig
from crafty_broker.models.lifecycle import (
    AddressResult,
    BrokerState,
    LifecycleResult,
    RemoteStatus,
)
from crafty_broker.reconciler.engine import ReconcileResult, ReconciliationEngine
from crafty_broker.transport.client import Transport, TransportClient


class CraftyControllerBroker:
    """Sends lifecycle requests for one server to a Crafty Controller instance."""

    def __init__(
        self,
        name: str,
        config: CraftyBrokerConfig,
        transport: Optional[Transport] = None,
        polling: Optional[PollingConfig] = None,
        loop: Optional[EventLoopThread] = None,
    ):
        self.name = name
        polling = polling or PollingConfig()
        self.engine = ReconciliationEngine(
            config=config,
            transport=transport or TransportClient(timeout_seconds=polling.request_timeout_seconds),
            polling=polling,
            loop=loop,
        )

    @property
    def config(self) -> Optional[CraftyBrokerConfig]:
        return self.engine.config

    @property
    def state(self) -> BrokerState:
        return self.engine.state

    def address(self) -> AddressResult:
        return self.engine.address()

    def reconcile(self, config: ServerConfig) -> ReconcileResult:
        """Reconcile config changes; run the returned action to apply them."""
        return self.engine.reconcile(config)

    def get_status(self) -> RemoteStatus:
        return self.engine.get_status()

    def is_running(self) -> bool:
        return self.engine.is_running()

    def start_server(self, cancel: Optional[threading.Event] = None) -> LifecycleResult:
        """Start the server and wait until Crafty reports it running."""
        return self.engine.start(cancel)

    def stop_server(self, cancel: Optional[threading.Event] = None) -> LifecycleResult:
        """Stop the server and wait until Crafty reports it stopped."""
        return self.engine.stop(cancel)

    def remove_server(self) -> LifecycleResult:
        """
        Stop (best effort), then delete the server on the controller.

        Irreversible: Crafty discards the server's files and settings.
        """
        return self.engine.remove_server()

    def close(self) -> None:
        self.engine.close()

    def __enter__(self) -> "CraftyControllerBroker":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        config = self.config
        server_id = config.server_id if config else None
        return f"CraftyControllerBroker(name={self.name!r}, server_id={server_id!r})"
