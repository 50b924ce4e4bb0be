"""Crafty API response envelope and the per-call ApiResult."""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from crafty_broker.models.lifecycle import FailureKind


def _none_if_invalid(value: Any, handler) -> Any:
    try:
        return handler(value)
    except ValidationError:
        return None


class ServerInfo(BaseModel):
    """Static server definition nested in a stats reply."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    server_id: Optional[str] = None
    created: Optional[str] = None
    server_name: Optional[str] = None
    path: Optional[str] = None
    executable: Optional[str] = None
    log_path: Optional[str] = None
    execution_command: Optional[str] = None
    auto_start: Optional[bool] = None
    auto_start_delay: Optional[int] = None
    crash_detection: Optional[bool] = None
    stop_command: Optional[str] = None
    executable_update_url: Optional[str] = None
    server_ip: Optional[str] = None
    server_port: Optional[int] = None
    logs_delete_after: Optional[int] = None
    type: Optional[str] = None
    show_status: Optional[bool] = None
    created_by: Optional[int] = None
    shutdown_timeout: Optional[int] = None
    ignored_exits: Optional[str] = None
    count_players: Optional[bool] = None

    @field_validator("*", mode="wrap")
    @classmethod
    def _tolerate_type_drift(cls, value: Any, handler) -> Any:
        return _none_if_invalid(value, handler)


class ServerStats(BaseModel):
    """The `data` payload of a stats reply. Only `running` drives decisions."""

    model_config = ConfigDict(extra="ignore")

    running: Optional[bool] = None
    stats_id: Optional[int] = None
    created: Optional[str] = None
    server_id: Optional[Union[ServerInfo, str]] = None
    started: Optional[str] = None
    cpu: Optional[float] = None
    mem: Optional[Any] = None               # "1.2GB" or 0 depending on version
    mem_percent: Optional[float] = None
    world_name: Optional[str] = None
    world_size: Optional[Any] = None
    server_port: Optional[int] = None
    int_ping_results: Optional[Any] = None
    online: Optional[int] = None
    max: Optional[int] = None
    players: Optional[Any] = None
    desc: Optional[str] = None
    icon: Optional[str] = None
    version: Optional[str] = None
    updating: Optional[bool] = None
    waiting_start: Optional[bool] = None
    first_run: Optional[bool] = None
    crashed: Optional[bool] = None
    importing: Optional[bool] = None

    @field_validator("*", mode="wrap")
    @classmethod
    def _tolerate_type_drift(cls, value: Any, handler, info: ValidationInfo) -> Any:
        # `running` decides lifecycle state and stays strict
        if info.field_name == "running":
            return handler(value)
        return _none_if_invalid(value, handler)


class ApiEnvelope(BaseModel):
    """Top-level JSON wrapper returned by every Crafty v2 endpoint."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: Optional[str] = None            # "ok" | "error"
    data: Optional[ServerStats] = None
    error: Optional[str] = None
    error_data: Optional[Any] = Field(default=None, alias="errorData")  # str, or a dict for schema errors
    info: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def describe_error(self) -> str:
        """Best human-readable reason the remote gave for a non-ok reply."""
        parts = [str(p) for p in (self.error, self.error_data, self.info) if p]
        if not parts:
            return f"remote returned status {self.status!r}"
        return ": ".join(parts)


class Outcome(str, Enum):
    OK = "ok"
    ERROR = "error"


class ApiResult(BaseModel):
    """Outcome of exactly one transport call."""

    model_config = ConfigDict(frozen=True)

    outcome: Outcome
    remote_state: Optional[ServerStats] = None
    error_detail: Optional[str] = None
    failure: Optional[FailureKind] = None   # Set whenever outcome is ERROR
    http_status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK

    @classmethod
    def from_envelope(cls, envelope: ApiEnvelope, http_status: Optional[int] = None) -> "ApiResult":
        if envelope.ok:
            return cls(
                outcome=Outcome.OK,
                remote_state=envelope.data,
                http_status=http_status,
            )
        return cls(
            outcome=Outcome.ERROR,
            remote_state=envelope.data,
            error_detail=envelope.describe_error(),
            failure=FailureKind.REJECTED,
            http_status=http_status,
        )

    @classmethod
    def error(
        cls,
        failure: FailureKind,
        detail: str,
        http_status: Optional[int] = None,
    ) -> "ApiResult":
        return cls(
            outcome=Outcome.ERROR,
            error_detail=detail,
            failure=failure,
            http_status=http_status,
        )
