"""Builds brokers from the server configs handed over by the orchestrator."""

import logging
from typing import List, Optional

from crafty_broker.broker.facade import CraftyControllerBroker
from crafty_broker.models.config import (
    BrokerConfigError,
    PollingConfig,
    ServerConfig,
    parse_broker_config,
)
from crafty_broker.models.lifecycle import FailureKind
from crafty_broker.transport.client import Transport

logger = logging.getLogger(__name__)


class BrokerCreation:
    """Either a ready broker or the reason one could not be built."""

    def __init__(
        self,
        broker: Optional[CraftyControllerBroker] = None,
        failure: Optional[FailureKind] = None,
        detail: Optional[str] = None,
    ):
        self.broker = broker
        self.failure = failure
        self.detail = detail

    @property
    def success(self) -> bool:
        return self.broker is not None


class CraftyControllerBrokerFactory:
    """Creates brokers that call the Crafty Controller API."""

    provides: List[str] = ["crafty"]

    def __init__(self, polling: Optional[PollingConfig] = None):
        self.polling = polling or PollingConfig()

    def create_from_config(
        self,
        config: ServerConfig,
        transport: Optional[Transport] = None,
        polling: Optional[PollingConfig] = None,
    ) -> BrokerCreation:
        """Validate the config's kind and payload, then build a broker for it."""
        if config.type not in self.provides:
            return BrokerCreation(
                failure=FailureKind.INVALID_CONFIG,
                detail=f"Invalid configuration for crafty broker: type {config.type!r}",
            )
        try:
            crafty_config = parse_broker_config(config, expected_type=config.type)
        except BrokerConfigError as e:
            logger.error("Unable to create broker for %s: %s", config.name, e)
            return BrokerCreation(failure=FailureKind.INVALID_CONFIG, detail=str(e))

        broker = CraftyControllerBroker(
            name=config.name,
            config=crafty_config,
            transport=transport,
            polling=polling or self.polling,
        )
        logger.debug("Created broker for %s (server %s)", config.name, crafty_config.server_id)
        return BrokerCreation(broker=broker)
