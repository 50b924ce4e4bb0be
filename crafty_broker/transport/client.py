"""
Transport Client — authenticated requests against the Crafty v2 API.

Behavioral Contract:
- One call = one HTTP attempt. No retries at this layer.
- Every reply body is decoded into an ApiEnvelope, whatever the status code.
- Malformed JSON gets one lenient re-parse of the raw text before it is
  reported as a PARSE error result.
- A connection reset (the usual symptom of http vs https mismatch) becomes a
  TRANSPORT error result. Every other transport failure raises TransportError.
"""

import json
import logging
import ssl
from typing import Dict, Optional, Protocol

import httpx
from pydantic import ValidationError

from crafty_broker.models.api import ApiEnvelope, ApiResult
from crafty_broker.models.config import Endpoint
from crafty_broker.models.lifecycle import FailureKind
from crafty_broker.transport.actions import ActionKind
from crafty_broker.transport.trust import TrustAllCertificates

logger = logging.getLogger(__name__)

PROTOCOL_HINT = "check whether the controller address should use http or https"


class TransportError(Exception):
    """Raised when a request fails at the transport level for a fatal reason."""
    pass


class Transport(Protocol):
    """What the reconciliation engine needs from a transport."""

    async def send(self, endpoint: Endpoint, action: ActionKind) -> ApiResult: ...

    async def aclose(self) -> None: ...


def _is_protocol_mismatch(exc: BaseException) -> bool:
    """Whether an httpx error looks like talking plaintext to TLS or vice versa."""
    if isinstance(exc, httpx.RemoteProtocolError):
        return True

    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionResetError):
            return True
        if isinstance(current, ssl.SSLError) and "WRONG_VERSION_NUMBER" in str(current).upper():
            return True
        if "connection reset" in str(current).lower():
            return True
        current = current.__cause__ or current.__context__
    return False


def _lenient_parse(text: str) -> Optional[ApiEnvelope]:
    """Recover an envelope from a body the strict decoder rejected."""
    cleaned = text.lstrip("\ufeff").strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end < start:
        return None
    try:
        # strict=False allows raw control characters inside strings
        raw = json.loads(cleaned[start:end + 1], strict=False)
        return ApiEnvelope.model_validate(raw)
    except (ValueError, ValidationError):
        return None


class TransportClient:
    """
    httpx-backed transport. Keeps one pooled AsyncClient per trust policy.

    Must be used from a single event loop; the reconciliation engine runs it
    on its own EventLoopThread.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._clients: Dict[bool, httpx.AsyncClient] = {}
        self._trust: Optional[TrustAllCertificates] = None

    def _client_for(self, endpoint: Endpoint) -> httpx.AsyncClient:
        insecure = endpoint.insecure_transport
        client = self._clients.get(insecure)
        if client is None:
            verify = True
            if insecure:
                if self._trust is None:
                    self._trust = TrustAllCertificates(
                        reason=f"insecure mode enabled for server {endpoint.resource_id}"
                    )
                verify = self._trust.ssl_context()
            client = httpx.AsyncClient(
                verify=verify,
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
            self._clients[insecure] = client
        return client

    @staticmethod
    def build_url(endpoint: Endpoint, action: ActionKind) -> str:
        return f"{endpoint.base_address.rstrip('/')}/{action.path(endpoint.resource_id)}"

    async def send(self, endpoint: Endpoint, action: ActionKind) -> ApiResult:
        """Issue one request and decode its reply."""
        url = self.build_url(endpoint, action)
        headers = {"Authorization": f"Bearer {endpoint.auth_token.get_secret_value()}"}
        logger.debug("Trying %s: %s %s", action.value, action.method, url)

        try:
            response = await self._client_for(endpoint).request(
                action.method, url, headers=headers
            )
        except httpx.TransportError as e:
            if _is_protocol_mismatch(e):
                logger.error(
                    "Unable to connect to the api at %s! Check the protocol of the address! (%s)",
                    endpoint.base_address,
                    e,
                )
                return ApiResult.error(FailureKind.TRANSPORT, f"connection reset: {PROTOCOL_HINT}")
            raise TransportError(f"{action.value} request to {url} failed: {e!r}") from e

        logger.debug("Response %s for %s: %s", response.status_code, action.value, response.text)
        return self._decode(response)

    def _decode(self, response: httpx.Response) -> ApiResult:
        try:
            envelope = ApiEnvelope.model_validate_json(response.content)
        except ValidationError:
            logger.debug("invalid json response from crafty api, attempting to fix")
            envelope = _lenient_parse(response.text)
            if envelope is None:
                logger.error(
                    "Unparseable response from crafty api (HTTP %s)", response.status_code
                )
                return ApiResult.error(
                    FailureKind.PARSE,
                    f"unparseable response body (HTTP {response.status_code})",
                    http_status=response.status_code,
                )
        return ApiResult.from_envelope(envelope, http_status=response.status_code)

    async def aclose(self) -> None:
        clients, self._clients = self._clients, {}
        for client in clients.values():
            await client.aclose()
