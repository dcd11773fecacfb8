from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, List, Optional, Sequence

import httpx

from relay.core.models import ConversationTurn
from relay.errors import UpstreamStatusError, UpstreamTransportError


logger = logging.getLogger(__name__)


class CompletionClient:
    """Streaming client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        base_url: str,
        model: Optional[str],
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = f"{base_url.rstrip('/')}/chat/completions"
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_payload(self, turns: Sequence[ConversationTurn]) -> Dict:
        messages: List[Dict[str, str]] = [turn.to_message() for turn in turns]
        return {"model": self.model, "messages": messages, "stream": True}

    async def stream_bytes(self, turns: Sequence[ConversationTurn]) -> AsyncIterator[bytes]:
        """Yield raw body chunks of a streaming completion.

        Raises:
            UpstreamStatusError: the endpoint answered with a non-2xx status.
            UpstreamTransportError: connecting or reading failed.
        """
        payload = self.build_payload(turns)
        try:
            async with self.client.stream(
                "POST", self.endpoint, json=payload, headers=self._headers()
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error(
                        "Upstream returned status %s: %s", response.status_code, body[:200]
                    )
                    raise UpstreamStatusError(response.status_code, body)

                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            reason = str(exc) or type(exc).__name__
            raise UpstreamTransportError(f"流处理错误: {reason}") from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
