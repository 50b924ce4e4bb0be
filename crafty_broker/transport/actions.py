"""Lifecycle actions and the HTTP request each one maps to."""

from enum import Enum
from urllib.parse import quote

API_ROOT = "api/v2/servers"


class ActionKind(str, Enum):
    """
    Each action maps to exactly one (HTTP method, path suffix) pair.

    KILL is the destructive call used by API generations that have no
    DELETE on the server resource.
    """

    START = "start"
    STOP = "stop"
    DELETE = "delete"
    KILL = "kill"
    STATUS = "status"

    @property
    def method(self) -> str:
        return _ROUTES[self][0]

    @property
    def suffix(self) -> str:
        return _ROUTES[self][1]

    @property
    def destructive(self) -> bool:
        return self in (ActionKind.DELETE, ActionKind.KILL)

    def path(self, resource_id: str) -> str:
        """Path relative to the controller's base address."""
        segments = [API_ROOT, quote(resource_id, safe="")]
        if self.suffix:
            segments.append(self.suffix)
        return "/".join(segments)


_ROUTES = {
    ActionKind.START: ("POST", "action/start_server"),
    ActionKind.STOP: ("POST", "action/stop_server"),
    ActionKind.DELETE: ("DELETE", ""),
    ActionKind.KILL: ("POST", "action/kill_server"),
    ActionKind.STATUS: ("GET", "stats"),
}
