"""
Broker Registry — the set of servers this process manages.

Updated by: the management API (register, reconcile, remove)
Queried by: the management API
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from crafty_broker.broker.facade import CraftyControllerBroker
from crafty_broker.broker.factory import BrokerCreation, CraftyControllerBrokerFactory
from crafty_broker.models.config import ServerConfig
from crafty_broker.reconciler.engine import DeferredAction

logger = logging.getLogger(__name__)


class BrokerRegistry:
    """In-memory registry of brokers and their pending reconcile actions."""

    def __init__(self, factory: Optional[CraftyControllerBrokerFactory] = None):
        self.factory = factory or CraftyControllerBrokerFactory()
        self._brokers: Dict[str, CraftyControllerBroker] = {}
        self._types: Dict[str, str] = {}
        self._pending: Dict[str, DeferredAction] = {}

    def register(self, config: ServerConfig, **kwargs) -> BrokerCreation:
        """Build and store a broker. Raises KeyError if the name is taken."""
        if config.name in self._brokers:
            raise KeyError(config.name)
        creation = self.factory.create_from_config(config, **kwargs)
        if creation.success:
            self._brokers[config.name] = creation.broker
            self._types[config.name] = config.type
        return creation

    def get(self, name: str) -> Optional[CraftyControllerBroker]:
        return self._brokers.get(name)

    def remove(self, name: str) -> bool:
        """Drop a broker and close it."""
        broker = self._brokers.pop(name, None)
        self._types.pop(name, None)
        self._pending.pop(name, None)
        if broker is None:
            return False
        broker.close()
        return True

    def list(self) -> List[dict]:
        return [
            {"name": name, "type": self._types[name], "state": broker.state.value}
            for name, broker in self._brokers.items()
        ]

    def set_pending(self, name: str, action: DeferredAction) -> None:
        self._pending[name] = action

    def pop_pending(self, name: str) -> Optional[DeferredAction]:
        return self._pending.pop(name, None)

    def close_all(self) -> None:
        for name in list(self._brokers):
            self.remove(name)

    def load_file(self, path: Union[str, Path]) -> List[BrokerCreation]:
        """Register every server listed in a JSON file: {"servers": [ServerConfig, ...]}."""
        raw = json.loads(Path(path).read_text())
        results = []
        for entry in raw.get("servers", []):
            config = ServerConfig.model_validate(entry)
            creation = self.register(config)
            if not creation.success:
                logger.error("Skipping server %s: %s", config.name, creation.detail)
            results.append(creation)
        return results
