import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx

from callsync.core.config import settings
from callsync.schemas import CallSource, CallStatus, ConversationDetailOut
from callsync.services.adapters import ElevenLabsAdapter, VoximplantAdapter
from callsync.services.elevenlabs_client import ElevenLabsClient
from callsync.services.errors import ConfigurationMissing, TransientProviderError
from callsync.services.matcher import UnifiedRecord, reconcile
from callsync.services.normalizer import format_transcript
from callsync.services.store import SqlCallStore

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def filter_records(
    records: List[UnifiedRecord],
    search: Optional[str] = None,
    status: Optional[CallStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[UnifiedRecord]:
    needle = search.lower() if search else None
    start, end = as_utc(start), as_utc(end)
    filtered = []
    for record in records:
        if status and record.status != status:
            continue
        if start and record.timestamp < start:
            continue
        if end and record.timestamp > end:
            continue
        if needle:
            haystack = " ".join(filter(None, [record.caller_number, record.transcription])).lower()
            if needle not in haystack:
                continue
        filtered.append(record)
    return filtered


def unified_from_store(
    store: SqlCallStore,
    search: Optional[str] = None,
    status: Optional[CallStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    window_seconds: Optional[float] = None,
) -> List[UnifiedRecord]:
    start, end = as_utc(start), as_utc(end)
    window = window_seconds or settings.match_window_seconds
    # widen by the window so a partner just outside the bounds can still merge
    margin = timedelta(seconds=window)
    query_start = start - margin if start else None
    query_end = end + margin if end else None
    telephony = store.query(source=CallSource.VOXIMPLANT, start=query_start, end=query_end)
    conversations = store.query(source=CallSource.ELEVENLABS, start=query_start, end=query_end)
    merged = reconcile(telephony, conversations, window)
    # filters run after the merge so a merged call matches on its enriched transcript
    return filter_records(merged, search=search, status=status, start=start, end=end)


async def unified_from_providers(
    voximplant: VoximplantAdapter,
    elevenlabs: ElevenLabsAdapter,
    search: Optional[str] = None,
    status: Optional[CallStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    window_seconds: Optional[float] = None,
) -> List[UnifiedRecord]:
    telephony, conversations = await asyncio.gather(voximplant.fetch_all(), elevenlabs.fetch_all())
    merged = reconcile(telephony, conversations, window_seconds or settings.match_window_seconds)
    return filter_records(merged, search=search, status=status, start=start, end=end)


async def conversation_detail(
    conversation_id: str, client: Optional[ElevenLabsClient] = None
) -> ConversationDetailOut:
    client = client or ElevenLabsClient()
    if not client.configured:
        raise ConfigurationMissing("ElevenLabs API key is missing")
    try:
        details = await client.get_conversation(conversation_id)
    except httpx.HTTPStatusError as exc:
        raise TransientProviderError(
            "elevenlabs", f"HTTP {exc.response.status_code}", status_code=exc.response.status_code
        ) from exc
    except httpx.HTTPError as exc:
        raise TransientProviderError("elevenlabs", f"{type(exc).__name__}: {exc}") from exc
    except ValueError as exc:
        raise TransientProviderError("elevenlabs", f"Invalid response body: {exc}") from exc
    if not isinstance(details, dict):
        raise TransientProviderError("elevenlabs", "Unexpected response shape")
    analysis = details.get("analysis")
    if not isinstance(analysis, dict):
        analysis = {}
    return ConversationDetailOut(
        conversation_id=conversation_id,
        transcription=format_transcript(details.get("transcript")),
        summary=analysis.get("transcript_summary"),
        audio_url=details.get("audio_url"),
    )
