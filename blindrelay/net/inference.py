"""Thin async wrapper around the inference engine's /api/generate endpoint."""

from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from blindrelay.common.errors import TransportError
from blindrelay.common.protocol import GenerateRequest, GenerateResponse


logger = structlog.get_logger(__name__)

GENERATE_ENDPOINT = "/api/generate"


class InferenceClient:
    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "dolphin-llama3",
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def generate(self, prompt: str) -> str:
        """
        Non-streaming completion for `prompt`.

        :raises TransportError: engine unreachable, non-2xx or malformed reply
        """
        body = GenerateRequest(model=self.model, prompt=prompt, stream=False)
        try:
            response = await self._client.post(GENERATE_ENDPOINT, json=body.model_dump())
        except httpx.HTTPError as exc:
            raise TransportError(f"inference engine unreachable: {exc!r}") from exc
        if not response.is_success:
            raise TransportError(f"inference engine replied HTTP {response.status_code}")

        try:
            result = GenerateResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise TransportError("inference engine sent a malformed reply") from exc

        logger.debug("inference_done", model=self.model, chars=len(result.response))
        return result.response
