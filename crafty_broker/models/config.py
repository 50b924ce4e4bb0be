"""Broker configuration — host-supplied server config and the crafty payload."""

from typing import Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError


class BrokerConfigError(Exception):
    """Raised when a server configuration cannot be used by a broker."""
    pass


class ConfigTypeError(BrokerConfigError):
    """The configuration's discriminant names a different broker kind."""
    pass


class InvalidConfigError(BrokerConfigError):
    """The broker-specific payload does not validate."""
    pass


class Endpoint(BaseModel):
    """Everything the transport needs to reach one remote server."""

    model_config = ConfigDict(frozen=True)

    base_address: str                       # e.g., "https://localhost:8443"
    resource_id: str                        # Crafty server ID
    auth_token: SecretStr
    insecure_transport: bool = False


class CraftyBrokerConfig(BaseModel):
    """Crafty-specific broker payload. Replaced wholesale, never mutated."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    server_id: str = Field(alias="serverID")
    token: SecretStr
    crafty_address: str = Field(default="https://localhost:8443", alias="craftyAddress")
    insecure_mode: bool = Field(default=False, alias="insecureMode")
    address: Optional[str] = None           # Address players connect to
    remove_action: Literal["delete", "kill"] = Field(default="delete", alias="removeAction")

    def endpoint(self) -> Endpoint:
        return Endpoint(
            base_address=self.crafty_address,
            resource_id=self.server_id,
            auth_token=self.token,
            insecure_transport=self.insecure_mode,
        )


class ServerConfig(BaseModel):
    """A server entry as handed over by the orchestrator."""

    name: str
    type: str                               # Discriminant, e.g., "crafty"
    config: dict = {}


class PollingConfig(BaseModel):
    """Timing for convergence polling and single requests."""

    poll_interval_seconds: float = Field(gt=0, default=0.1)
    convergence_timeout_seconds: float = Field(gt=0, default=10.0)
    request_timeout_seconds: float = Field(gt=0, default=10.0)
    abort_on_unknown: bool = True           # UNKNOWN mid-poll fails immediately


BROKER_CONFIG_TYPES: Dict[str, Type[BaseModel]] = {
    "crafty": CraftyBrokerConfig,
}


def parse_broker_config(server_config: ServerConfig, expected_type: str = "crafty") -> BaseModel:
    """
    Resolve the tagged broker payload of a server config.

    The discriminant is checked before the payload is touched, so a config
    meant for another broker kind is a ConfigTypeError rather than a
    validation failure.
    """
    if server_config.type != expected_type:
        raise ConfigTypeError(
            f"Expected a {expected_type} config and got {server_config.type!r}"
        )

    model = BROKER_CONFIG_TYPES.get(server_config.type)
    if model is None:
        raise ConfigTypeError(f"Unknown broker config type: {server_config.type!r}")

    try:
        return model.model_validate(server_config.config)
    except ValidationError as e:
        raise InvalidConfigError(
            f"Invalid {server_config.type} config for {server_config.name}: {e}"
        ) from e
