"""Lifecycle states and the typed results returned to the orchestrator."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RemoteStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"     # Call failed or reply was ambiguous; never means STOPPED


class BrokerState(str, Enum):
    """Engine-observed state of the managed server."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    UNKNOWN = "unknown"


class FailureKind(str, Enum):
    INVALID_CONFIG = "invalid_config"       # Rejected before any network call
    TRANSPORT = "transport"                 # Connection reset, protocol mismatch, I/O error
    PARSE = "parse"                         # Body unparseable even after lenient re-parse
    REJECTED = "rejected"                   # Remote envelope status != ok
    TIMEOUT = "timeout"                     # Accepted but never converged
    UNEXPECTED_STATE = "unexpected_state"   # UNKNOWN observed while polling
    CANCELLED = "cancelled"                 # Caller's cancel event was set


class LifecycleResult(BaseModel):
    """Outcome of one facade operation."""

    model_config = ConfigDict(frozen=True)

    action: str                             # "start" | "stop" | "remove" | "reconcile"
    success: bool
    failure: Optional[FailureKind] = None
    detail: Optional[str] = None            # Human-readable diagnostic on failure
    final_state: Optional[BrokerState] = None
    elapsed_seconds: float = 0.0

    @classmethod
    def ok(cls, action: str, **kwargs) -> "LifecycleResult":
        return cls(action=action, success=True, **kwargs)

    @classmethod
    def failed(cls, action: str, failure: FailureKind, detail: str, **kwargs) -> "LifecycleResult":
        return cls(action=action, success=False, failure=failure, detail=detail, **kwargs)


class ServerAddress(BaseModel):
    """Where players connect to the managed server."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(ge=1, le=65535)


class AddressResult(BaseModel):
    success: bool
    address: Optional[ServerAddress] = None
    failure: Optional[FailureKind] = None
    detail: Optional[str] = None
