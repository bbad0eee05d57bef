"""
Async HTTP client for the relay node's REST API.

Every public operation is independently fallible and never raises: a
transport problem surfaces internally as TransportError and is collapsed
to the operation's "unavailable" value (False, "unknown", []).
"""

from typing import Any, List, Optional

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from blindrelay.common.errors import TransportError
from blindrelay.common.protocol import Peer, RelayMessage
from blindrelay.common.utils import quote_topic


logger = structlog.get_logger(__name__)

UNKNOWN_VERSION = "unknown"

_peers_adapter = TypeAdapter(List[Peer])
_messages_adapter = TypeAdapter(List[RelayMessage])


class RelayClient:
    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8645",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )
        self.subscriptions = set()

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------- low level -------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path}: {exc!r}") from exc
        if not response.is_success:
            raise TransportError(f"{method} {path}: HTTP {response.status_code}")
        return response

    async def _json(self, path: str, adapter: TypeAdapter):
        response = await self._request("GET", path, headers={"accept": "application/json"})
        try:
            return adapter.validate_json(response.content)
        except ValidationError as exc:
            raise TransportError(f"GET {path}: malformed response") from exc

    # ------------- node status -------------

    async def health(self) -> bool:
        """True only when /health answers 200."""
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as exc:
            logger.debug("relay_health_unreachable", error=repr(exc))
            return False
        return response.status_code == 200

    async def version(self) -> str:
        try:
            response = await self._request(
                "GET", "/debug/v1/version", headers={"accept": "text/plain"}
            )
        except TransportError as exc:
            logger.debug("relay_version_unavailable", error=str(exc))
            return UNKNOWN_VERSION
        return response.text.strip() or UNKNOWN_VERSION

    async def list_peers(self) -> List[Peer]:
        try:
            return await self._json("/admin/v1/peers", _peers_adapter)
        except TransportError as exc:
            logger.warning("relay_peers_unavailable", error=str(exc))
            return []

    # ------------- relay -------------

    async def subscribe(self, topic: str) -> bool:
        """
        Subscribe to a content topic. Safe to repeat: the relay treats a
        second subscription to the same topic as a confirmation.
        """
        try:
            await self._request(
                "POST",
                "/relay/v1/auto/subscriptions",
                json=[topic],
                headers={"accept": "text/plain"},
            )
        except TransportError as exc:
            logger.warning("relay_subscribe_failed", topic=topic, error=str(exc))
            return False
        if topic not in self.subscriptions:
            logger.info("relay_subscribed", topic=topic)
        self.subscriptions.add(topic)
        return True

    async def publish(self, message: RelayMessage) -> bool:
        """Fire and forget. Failures are logged; retrying is the caller's call."""
        try:
            await self._request(
                "POST",
                "/relay/v1/auto/messages",
                json=message.model_dump(by_alias=True),
            )
        except TransportError as exc:
            logger.warning(
                "relay_publish_failed",
                topic=message.content_topic,
                timestamp=message.timestamp,
                error=str(exc),
            )
            return False
        return True

    async def fetch(self, topic: str) -> List[RelayMessage]:
        """All messages the relay currently buffers for `topic`."""
        try:
            messages = await self._json(
                f"/relay/v1/auto/messages/{quote_topic(topic)}", _messages_adapter
            )
        except TransportError as exc:
            logger.warning("relay_fetch_failed", topic=topic, error=str(exc))
            return []
        return messages
