"""Provider adapters for the sync orchestrator.

Each adapter hides one provider's pagination protocol and error semantics
behind the same small interface:

- ``fetch_page(token)`` returns a :class:`PageResult` with raw items
- ``external_id(raw)`` extracts the dedup key
- ``fetch_details(external_id)`` performs the optional secondary fetch
- ``normalize(raw, details)`` builds the canonical record
- ``fetch_all()`` collects canonical records for the read path

Adapters never raise for provider failures. They report them through
``PageResult.status`` so the orchestrator decides whether to keep going.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from callsync.core.config import settings
from callsync.schemas import CallSource, CanonicalCallRecord
from callsync.services import normalizer
from callsync.services.elevenlabs_client import ElevenLabsClient
from callsync.services.errors import PermanentRecordError
from callsync.services.voximplant_client import VoximplantClient

logger = logging.getLogger(__name__)


class FetchStatus(str, enum.Enum):
    OK = "ok"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


@dataclass
class PageResult:
    status: FetchStatus = FetchStatus.OK
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_token: Optional[str] = None
    done: bool = True
    error: Optional[str] = None
    warning: Optional[str] = None

    @classmethod
    def empty(cls, warning: Optional[str] = None) -> "PageResult":
        return cls(warning=warning)

    @classmethod
    def recoverable(cls, error: str) -> "PageResult":
        return cls(status=FetchStatus.RECOVERABLE, error=error)

    @classmethod
    def fatal(cls, error: str) -> "PageResult":
        return cls(status=FetchStatus.FATAL, error=error)


def describe_http_error(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code} from {exc.request.url.path}"
    return f"{type(exc).__name__}: {exc}"


class ProviderAdapter:
    source: CallSource
    name: str

    async def fetch_page(self, token: Optional[str] = None) -> PageResult:
        raise NotImplementedError

    async def fetch_details(self, external_id: str) -> Optional[Dict[str, Any]]:
        return None

    def external_id(self, raw: Dict[str, Any]) -> str:
        raise NotImplementedError

    def normalize(self, raw: Dict[str, Any], details: Optional[Dict[str, Any]] = None) -> CanonicalCallRecord:
        raise NotImplementedError

    async def fetch_all(self) -> List[CanonicalCallRecord]:
        raise NotImplementedError

    def _normalize_many(self, items: List[Dict[str, Any]]) -> List[CanonicalCallRecord]:
        records = []
        for raw in items:
            try:
                records.append(self.normalize(raw))
            except (PermanentRecordError, ValueError) as exc:
                logger.warning("Skipping malformed %s item: %s", self.name, exc)
        return records


class ElevenLabsAdapter(ProviderAdapter):
    """Cursor-paginated conversations list."""

    source = CallSource.ELEVENLABS
    name = "elevenlabs"

    def __init__(
        self,
        client: Optional[ElevenLabsClient] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> None:
        self.client = client or ElevenLabsClient()
        self.page_size = page_size or settings.elevenlabs_page_size
        self.max_pages = max_pages or settings.sync_max_pages

    async def fetch_page(self, token: Optional[str] = None) -> PageResult:
        if not self.client.configured:
            logger.warning("ElevenLabs API key is missing. Skipping sync.")
            return PageResult.empty(warning="ElevenLabs API key is missing")
        try:
            data = await self.client.list_conversations(self.page_size, token)
        except httpx.HTTPError as exc:
            logger.error("Error fetching ElevenLabs conversations: %s", describe_http_error(exc))
            return PageResult.fatal(describe_http_error(exc))
        except ValueError as exc:
            logger.error("ElevenLabs returned an unreadable page: %s", exc)
            return PageResult.fatal(f"Invalid response body: {exc}")

        if not isinstance(data, dict):
            logger.error("ElevenLabs returned an unexpected page shape: %s", type(data).__name__)
            return PageResult.fatal("Unexpected response shape")
        conversations = data.get("conversations") or []
        if not isinstance(conversations, list):
            return PageResult.fatal("Unexpected conversations shape")
        next_cursor = data.get("next_cursor") or None
        has_more = bool(data.get("has_more"))
        if has_more and not next_cursor:
            logger.warning("ElevenLabs reported has_more without next_cursor; stopping pagination.")
        done = not conversations or not has_more or not next_cursor
        return PageResult(
            items=conversations,
            next_token=None if done else next_cursor,
            done=done,
        )

    async def fetch_details(self, external_id: str) -> Optional[Dict[str, Any]]:
        if not self.client.configured:
            return None
        try:
            return await self.client.get_conversation(external_id)
        except httpx.HTTPError as exc:
            logger.warning(
                "Error fetching details for conversation %s: %s", external_id, describe_http_error(exc)
            )
            return None
        except ValueError as exc:
            logger.warning("Unreadable details for conversation %s: %s", external_id, exc)
            return None

    def external_id(self, raw: Dict[str, Any]) -> str:
        return normalizer.elevenlabs_external_id(raw)

    def normalize(self, raw: Dict[str, Any], details: Optional[Dict[str, Any]] = None) -> CanonicalCallRecord:
        return normalizer.normalize_conversation(raw, details)

    async def fetch_all(self) -> List[CanonicalCallRecord]:
        records: List[CanonicalCallRecord] = []
        token: Optional[str] = None
        for _ in range(self.max_pages):
            page = await self.fetch_page(token)
            if page.status is not FetchStatus.OK:
                logger.error("ElevenLabs listing stopped early: %s", page.error)
                break
            records.extend(self._normalize_many(page.items))
            if page.done:
                break
            token = page.next_token
        return records


class VoximplantAdapter(ProviderAdapter):
    """Date-range call history; one capped page per invocation."""

    source = CallSource.VOXIMPLANT
    name = "voximplant"

    def __init__(
        self,
        client: Optional[VoximplantClient] = None,
        lookback_days: Optional[int] = None,
        count: Optional[int] = None,
        query_lookback_days: Optional[int] = None,
        query_count: Optional[int] = None,
    ) -> None:
        self.client = client or VoximplantClient()
        self.lookback_days = lookback_days or settings.voximplant_sync_lookback_days
        self.count = count or settings.voximplant_sync_count
        self.query_lookback_days = query_lookback_days or settings.voximplant_query_lookback_days
        self.query_count = query_count or settings.voximplant_query_count

    def date_window(self, lookback_days: int, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        to_date = now or datetime.now(timezone.utc)
        return to_date - timedelta(days=lookback_days), to_date

    async def _history(self, lookback_days: int, count: int) -> PageResult:
        if not self.client.configured:
            logger.warning("Voximplant credentials are missing. Skipping sync.")
            return PageResult.empty(warning="Voximplant credentials are missing")
        from_date, to_date = self.date_window(lookback_days)
        try:
            data = await self.client.get_call_history(from_date, to_date, count)
        except httpx.HTTPError as exc:
            logger.error("Error fetching call history from Voximplant: %s", describe_http_error(exc))
            return PageResult.recoverable(describe_http_error(exc))
        except ValueError as exc:
            logger.error("Voximplant returned an unreadable body: %s", exc)
            return PageResult.recoverable(f"Invalid response body: {exc}")
        if not isinstance(data, dict):
            return PageResult.recoverable("Unexpected response shape")
        if data.get("error"):
            logger.error("Voximplant API error: %s", data["error"])
            return PageResult.recoverable(str(data["error"]))
        items = data.get("result") or []
        if not isinstance(items, list):
            return PageResult.recoverable("Unexpected result shape")
        return PageResult(items=items, done=True)

    async def fetch_page(self, token: Optional[str] = None) -> PageResult:
        return await self._history(self.lookback_days, self.count)

    def external_id(self, raw: Dict[str, Any]) -> str:
        return normalizer.voximplant_external_id(raw)

    def normalize(self, raw: Dict[str, Any], details: Optional[Dict[str, Any]] = None) -> CanonicalCallRecord:
        return normalizer.normalize_call_history(raw)

    async def fetch_all(self) -> List[CanonicalCallRecord]:
        page = await self._history(self.query_lookback_days, self.query_count)
        return self._normalize_many(page.items)


def build_adapters() -> Dict[str, ProviderAdapter]:
    return {
        ElevenLabsAdapter.name: ElevenLabsAdapter(),
        VoximplantAdapter.name: VoximplantAdapter(),
    }
