"""
Reconciliation Engine — drives one remote server toward a requested state.

Crafty applies lifecycle commands asynchronously: a successful start_server
reply only means the command was accepted, and the stats endpoint catches up
later. The engine therefore issues a command, then polls status until the
observed state matches the target or the convergence deadline passes.

States:
  STOPPED → STARTING → RUNNING → STOPPING → STOPPED
  Any state → UNKNOWN on a failed status read; the next good read leaves it.

Every public operation blocks the caller and returns a typed result. The
async work (requests, poll sleeps) runs on the engine's EventLoopThread.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Optional, Tuple

from crafty_broker.execution.loop import EventLoopThread
from crafty_broker.models.api import ApiResult
from crafty_broker.models.config import (
    BrokerConfigError,
    CraftyBrokerConfig,
    Endpoint,
    PollingConfig,
    ServerConfig,
    parse_broker_config,
)
from crafty_broker.models.lifecycle import (
    AddressResult,
    BrokerState,
    FailureKind,
    LifecycleResult,
    RemoteStatus,
    ServerAddress,
)
from crafty_broker.transport.actions import ActionKind
from crafty_broker.transport.client import Transport, TransportError

logger = logging.getLogger(__name__)

DEFAULT_GAME_PORT = 25565


def parse_address(address: str, default_port: int = DEFAULT_GAME_PORT) -> Tuple[str, int]:
    """
    Split "host", "host:port" or "[v6]:port" into a host and a port.

    A bare IPv6 literal (more than one colon, no brackets) is taken whole.
    """
    address = address.strip()
    if not address:
        raise ValueError("Address is empty")

    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not host:
            raise ValueError(f"Malformed IPv6 address: {address!r}")
        port_str = rest[1:] if rest.startswith(":") else None
        if rest and port_str is None:
            raise ValueError(f"Malformed address: {address!r}")
    elif address.count(":") == 1:
        host, port_str = address.split(":")
    else:
        host, port_str = address, None

    if not host:
        raise ValueError(f"Missing host in address: {address!r}")
    if not port_str:
        return host, default_port
    if not port_str.isdigit() or not 1 <= int(port_str) <= 65535:
        raise ValueError(f"Invalid port in address: {address!r}")
    return host, int(port_str)


class DeferredAction:
    """
    A unit of work handed back by reconcile for the orchestrator to run later.

    A no-op action completes without touching the network. Running an action
    a second time returns the first result instead of repeating the work.
    """

    def __init__(self, description: str, work: Optional[Callable[[], LifecycleResult]] = None):
        self.description = description
        self._work = work
        self._result: Optional[LifecycleResult] = None

    @classmethod
    def noop(cls, description: str = "configuration unchanged") -> "DeferredAction":
        return cls(description)

    @property
    def is_noop(self) -> bool:
        return self._work is None

    @property
    def done(self) -> bool:
        return self._result is not None

    def run(self) -> LifecycleResult:
        if self._result is None:
            if self._work is None:
                self._result = LifecycleResult.ok("reconcile", detail=self.description)
            else:
                self._result = self._work()
        return self._result

    __call__ = run

    def __repr__(self) -> str:
        return f"DeferredAction({self.description!r}, noop={self.is_noop})"


class ReconcileResult:
    """Outcome of reconcile: either an input-validation failure or an action."""

    def __init__(
        self,
        success: bool,
        action: Optional[DeferredAction] = None,
        failure: Optional[FailureKind] = None,
        detail: Optional[str] = None,
    ):
        self.success = success
        self.action = action
        self.failure = failure
        self.detail = detail

    @property
    def changed(self) -> bool:
        return self.action is not None and not self.action.is_noop

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "changed": self.changed,
            "failure": self.failure.value if self.failure else None,
            "detail": self.detail,
            "action": self.action.description if self.action else None,
        }


class ReconciliationEngine:
    """
    Lifecycle state machine for one Crafty server.

    The active CraftyBrokerConfig is only ever replaced by a single attribute
    assignment, and each operation reads it once, so a poll loop sees either
    the old configuration or the new one, never a mix.
    """

    def __init__(
        self,
        config: CraftyBrokerConfig,
        transport: Transport,
        polling: Optional[PollingConfig] = None,
        loop: Optional[EventLoopThread] = None,
    ):
        self._config: Optional[CraftyBrokerConfig] = config
        self.transport = transport
        self.polling = polling or PollingConfig()
        self._owns_loop = loop is None
        self._loop = loop or EventLoopThread(name=f"crafty-broker-{config.server_id}")
        self._lock = threading.RLock()
        self._state = BrokerState.UNKNOWN

    @property
    def config(self) -> Optional[CraftyBrokerConfig]:
        """Current configuration, or None once the server has been removed."""
        return self._config

    @property
    def state(self) -> BrokerState:
        return self._state

    # --- Public, blocking operations ---

    def get_status(self) -> RemoteStatus:
        config = self._config
        if config is None:
            logger.error("Status requested for a removed server")
            return RemoteStatus.UNKNOWN
        return self._loop.run(self._get_status(config.endpoint()))

    def is_running(self) -> bool:
        return self.get_status() == RemoteStatus.RUNNING

    def start(self, cancel: Optional[threading.Event] = None) -> LifecycleResult:
        config = self._config
        if config is None:
            return self._removed("start")
        return self._loop.run(self._start(config.endpoint(), cancel))

    def stop(self, cancel: Optional[threading.Event] = None) -> LifecycleResult:
        config = self._config
        if config is None:
            return self._removed("stop")
        return self._loop.run(self._stop(config.endpoint(), cancel))

    def remove_server(self) -> LifecycleResult:
        config = self._config
        if config is None:
            return self._removed("remove")
        return self._loop.run(self._remove(config))

    def reconcile(self, server_config: ServerConfig) -> ReconcileResult:
        """
        Compare a new server config against the active one.

        Unchanged configs are swapped in immediately and yield a no-op
        action. Changed configs yield a deferred stop → swap → start, so the
        server keeps running on the old settings until the cutover.
        """
        try:
            new_config = parse_broker_config(server_config)
        except BrokerConfigError as e:
            logger.error("config type error: %s", e)
            return ReconcileResult(False, failure=FailureKind.INVALID_CONFIG, detail=str(e))

        with self._lock:
            current = self._config
            if current is None:
                return ReconcileResult(
                    False,
                    failure=FailureKind.INVALID_CONFIG,
                    detail=f"Server {new_config.server_id} has been removed",
                )
            if new_config == current:
                self._config = new_config
                return ReconcileResult(True, action=DeferredAction.noop())

        logger.info("Configuration for server %s changed, restart required", current.server_id)
        return ReconcileResult(
            True,
            action=DeferredAction(
                f"restart server {current.server_id} with new configuration",
                lambda: self._loop.run(self._cutover(current, new_config)),
            ),
        )

    def address(self) -> AddressResult:
        config = self._config
        if config is None or not config.address:
            return AddressResult(
                success=False,
                failure=FailureKind.INVALID_CONFIG,
                detail="No address specified in config",
            )
        try:
            host, port = parse_address(config.address)
        except ValueError as e:
            return AddressResult(success=False, failure=FailureKind.INVALID_CONFIG, detail=str(e))
        return AddressResult(success=True, address=ServerAddress(host=host, port=port))

    def close(self) -> None:
        """Close the transport and, if the engine created it, its loop."""
        if self._loop.closed:
            return
        try:
            self._loop.run(self.transport.aclose())
        finally:
            if self._owns_loop:
                self._loop.close()

    # --- Coroutines run on the engine loop ---

    async def _send(self, endpoint: Endpoint, action: ActionKind) -> ApiResult:
        try:
            return await self.transport.send(endpoint, action)
        except TransportError as e:
            logger.error("Transport failure for %s on server %s: %s", action.value, endpoint.resource_id, e)
            return ApiResult.error(FailureKind.TRANSPORT, str(e))

    async def _read_status(self, endpoint: Endpoint) -> RemoteStatus:
        result = await self._send(endpoint, ActionKind.STATUS)
        if not result.ok:
            logger.error(
                "Unable to send status request for server %s! Error: %s",
                endpoint.resource_id,
                result.error_detail,
            )
            return RemoteStatus.UNKNOWN
        # A successful reply without a running flag means not running
        if result.remote_state is not None and result.remote_state.running is True:
            return RemoteStatus.RUNNING
        return RemoteStatus.STOPPED

    async def _get_status(self, endpoint: Endpoint) -> RemoteStatus:
        status = await self._read_status(endpoint)
        self._state = BrokerState(status.value)
        return status

    async def _start(self, endpoint: Endpoint, cancel: Optional[threading.Event] = None) -> LifecycleResult:
        return await self._transition(
            "start", endpoint, ActionKind.START, RemoteStatus.RUNNING, BrokerState.STARTING, cancel
        )

    async def _stop(self, endpoint: Endpoint, cancel: Optional[threading.Event] = None) -> LifecycleResult:
        return await self._transition(
            "stop", endpoint, ActionKind.STOP, RemoteStatus.STOPPED, BrokerState.STOPPING, cancel
        )

    async def _transition(
        self,
        name: str,
        endpoint: Endpoint,
        action: ActionKind,
        target: RemoteStatus,
        pending: BrokerState,
        cancel: Optional[threading.Event],
    ) -> LifecycleResult:
        """Issue a command, then poll until the remote reports the target status."""
        started = time.monotonic()
        result = await self._send(endpoint, action)
        if not result.ok:
            logger.error("Unable to send %s request! Error: %s", name, result.error_detail)
            return LifecycleResult.failed(
                name,
                result.failure or FailureKind.REJECTED,
                f"Unable to {name} server: {endpoint.resource_id}, Error message: {result.error_detail}",
                final_state=self._state,
                elapsed_seconds=round(time.monotonic() - started, 3),
            )

        self._state = pending
        return await self._await_convergence(name, endpoint, target, started, cancel)

    async def _await_convergence(
        self,
        name: str,
        endpoint: Endpoint,
        target: RemoteStatus,
        started: float,
        cancel: Optional[threading.Event],
    ) -> LifecycleResult:
        deadline = started + self.polling.convergence_timeout_seconds
        server_id = endpoint.resource_id

        while True:
            if cancel is not None and cancel.is_set():
                return LifecycleResult.failed(
                    name,
                    FailureKind.CANCELLED,
                    f"Cancelled while waiting for server {server_id} to become {target.value}",
                    final_state=self._state,
                    elapsed_seconds=round(time.monotonic() - started, 3),
                )

            status = await self._read_status(endpoint)
            now = time.monotonic()
            elapsed = round(now - started, 3)

            if status == target:
                self._state = BrokerState(target.value)
                logger.info("Server %s is %s after %.2fs", server_id, target.value, elapsed)
                return LifecycleResult.ok(name, final_state=self._state, elapsed_seconds=elapsed)

            if status == RemoteStatus.UNKNOWN and self.polling.abort_on_unknown:
                # Presumed crashed or unreachable; waiting out the deadline would not help
                self._state = BrokerState.UNKNOWN
                return LifecycleResult.failed(
                    name,
                    FailureKind.UNEXPECTED_STATE,
                    f"Server {server_id} became unreachable while waiting for it to be {target.value}",
                    final_state=self._state,
                    elapsed_seconds=elapsed,
                )

            remaining = deadline - now
            if remaining <= 0:
                self._state = BrokerState(status.value)
                return LifecycleResult.failed(
                    name,
                    FailureKind.TIMEOUT,
                    f"Server {server_id} did not become {target.value} within "
                    f"{self.polling.convergence_timeout_seconds:g}s",
                    final_state=self._state,
                    elapsed_seconds=elapsed,
                )

            await asyncio.sleep(min(self.polling.poll_interval_seconds, remaining))

    async def _remove(self, config: CraftyBrokerConfig) -> LifecycleResult:
        """Best-effort stop, then the destructive call regardless of the stop outcome."""
        endpoint = config.endpoint()
        started = time.monotonic()

        stopped = await self._stop(endpoint)
        if not stopped.success:
            logger.warning(
                "Stopping server %s before removal failed (%s), removing anyway",
                config.server_id,
                stopped.detail,
            )

        action = ActionKind.KILL if config.remove_action == "kill" else ActionKind.DELETE
        result = await self._send(endpoint, action)
        elapsed = round(time.monotonic() - started, 3)
        if not result.ok:
            logger.error("Unable to send %s request! Error: %s", action.value, result.error_detail)
            return LifecycleResult.failed(
                "remove",
                result.failure or FailureKind.REJECTED,
                f"Unable to remove server: {config.server_id}, Error message: {result.error_detail}",
                final_state=self._state,
                elapsed_seconds=elapsed,
            )

        with self._lock:
            if self._config == config:
                self._config = None
        self._state = BrokerState.STOPPED
        logger.info("Removed server %s", config.server_id)
        return LifecycleResult.ok("remove", final_state=self._state, elapsed_seconds=elapsed)

    async def _cutover(self, previous: CraftyBrokerConfig, new_config: CraftyBrokerConfig) -> LifecycleResult:
        """Stop under the old config, swap, start under the new one."""
        if not self._still_active(previous):
            return self._superseded(new_config)

        stopped = await self._stop(previous.endpoint())
        if not stopped.success:
            return LifecycleResult.failed(
                "reconcile",
                stopped.failure or FailureKind.REJECTED,
                f"New configuration not applied, stop failed: {stopped.detail}",
                final_state=self._state,
                elapsed_seconds=stopped.elapsed_seconds,
            )

        with self._lock:
            if self._config != previous:
                return self._superseded(new_config)
            self._config = new_config
        logger.info("Swapped configuration for server %s", new_config.server_id)

        started = await self._start(new_config.endpoint())
        return LifecycleResult(
            action="reconcile",
            success=started.success,
            failure=started.failure,
            detail=started.detail,
            final_state=started.final_state,
            elapsed_seconds=round(stopped.elapsed_seconds + started.elapsed_seconds, 3),
        )

    def _still_active(self, config: CraftyBrokerConfig) -> bool:
        with self._lock:
            return self._config == config

    def _superseded(self, new_config: CraftyBrokerConfig) -> LifecycleResult:
        logger.warning(
            "Configuration for server %s was removed or replaced, not applying", new_config.server_id
        )
        return LifecycleResult.failed(
            "reconcile",
            FailureKind.INVALID_CONFIG,
            "Configuration was removed or replaced since reconcile",
            final_state=self._state,
        )

    def _removed(self, name: str) -> LifecycleResult:
        return LifecycleResult.failed(
            name, FailureKind.INVALID_CONFIG, "Server has been removed", final_state=self._state
        )
