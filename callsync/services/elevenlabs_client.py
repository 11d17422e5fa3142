from typing import Any, Dict, Optional

import httpx

from callsync.core.config import settings


class ElevenLabsClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.elevenlabs_api_key
        self.base_url = (base_url or settings.elevenlabs_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"xi-api-key": self.api_key or ""},
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    async def list_conversations(self, page_size: int, cursor: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page_size": page_size}
        if cursor:
            params["cursor"] = cursor
        async with self._client() as client:
            response = await client.get("/convai/conversations", params=params)
            response.raise_for_status()
            return response.json()

    async def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.get(f"/convai/conversations/{conversation_id}")
            response.raise_for_status()
            return response.json()
