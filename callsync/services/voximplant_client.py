from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from callsync.core.config import settings

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class VoximplantClient:
    def __init__(
        self,
        account_id: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.account_id = account_id if account_id is not None else settings.voximplant_account_id
        self.api_key = api_key if api_key is not None else settings.voximplant_api_key
        self.base_url = (base_url or settings.voximplant_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.account_id and self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    def _credentials(self) -> Dict[str, Any]:
        return {"account_id": self.account_id, "api_key": self.api_key}

    async def _get(self, method: str, params: Dict[str, Any]) -> Any:
        async with self._client() as client:
            response = await client.get(f"/{method}", params=params)
            response.raise_for_status()
            return response.json()

    async def get_call_history(
        self,
        from_date: Optional[datetime],
        to_date: Optional[datetime],
        count: int,
        with_records: bool = True,
    ) -> Dict[str, Any]:
        params = self._credentials()
        if from_date is not None:
            params["from_date"] = from_date.strftime(DATE_FORMAT)
        if to_date is not None:
            params["to_date"] = to_date.strftime(DATE_FORMAT)
        params["count"] = count
        params["with_records"] = str(with_records).lower()
        return await self._get("GetCallHistory", params)

    async def get_account_info(self) -> Dict[str, Any]:
        return await self._get("GetAccountInfo", self._credentials())
