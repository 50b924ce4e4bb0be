"""Crafty broker data models."""

from crafty_broker.models.api import (
    ApiEnvelope,
    ApiResult,
    Outcome,
    ServerInfo,
    ServerStats,
)
from crafty_broker.models.config import (
    BROKER_CONFIG_TYPES,
    BrokerConfigError,
    ConfigTypeError,
    CraftyBrokerConfig,
    Endpoint,
    InvalidConfigError,
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

__all__ = [
    "AddressResult",
    "ApiEnvelope",
    "ApiResult",
    "BROKER_CONFIG_TYPES",
    "BrokerConfigError",
    "BrokerState",
    "ConfigTypeError",
    "CraftyBrokerConfig",
    "Endpoint",
    "FailureKind",
    "InvalidConfigError",
    "LifecycleResult",
    "Outcome",
    "PollingConfig",
    "RemoteStatus",
    "ServerAddress",
    "ServerConfig",
    "ServerInfo",
    "ServerStats",
    "parse_broker_config",
]
