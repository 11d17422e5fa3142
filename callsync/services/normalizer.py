from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from callsync.schemas import CallSource, CallStatus, CanonicalCallRecord, Sentiment
from callsync.services.errors import PermanentRecordError

HIDDEN_CALLER = "Hidden"


def parse_timestamp(value: Any) -> datetime:
    """Parse a provider timestamp into an aware UTC datetime.

    Accepts unix seconds (numbers or numeric strings), ISO-8601 strings with
    or without offset, ``YYYY-MM-DD HH:MM:SS`` and datetime objects. Values
    without a timezone marker are taken as UTC.
    """
    if value is None or value == "":
        raise PermanentRecordError("Missing timestamp")
    if isinstance(value, bool):
        raise PermanentRecordError(f"Invalid timestamp: {value!r}")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise PermanentRecordError(f"Invalid timestamp: {value!r}") from exc
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            seconds = None
        if seconds is not None:
            return parse_timestamp(seconds)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise PermanentRecordError(f"Invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_duration(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        duration = int(float(value))
    except (TypeError, ValueError) as exc:
        raise PermanentRecordError(f"Invalid duration: {value!r}") from exc
    return max(duration, 0)


def parse_cost(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise PermanentRecordError(f"Invalid cost: {value!r}") from exc


def format_transcript(turns: Optional[Iterable[dict]]) -> str:
    if not turns:
        return ""
    lines = []
    for turn in turns:
        lines.append(f"{turn.get('role')}: {turn.get('message') or ''}")
    return "\n".join(lines)


# ElevenLabs
#   status "completed"          -> completed, anything else -> missed
#   call_successful "success"   -> positive,  anything else -> neutral


def elevenlabs_status(raw_status: Any) -> CallStatus:
    if raw_status == "completed":
        return CallStatus.COMPLETED
    return CallStatus.MISSED


def elevenlabs_sentiment(call_successful: Any) -> Sentiment:
    if call_successful == "success":
        return Sentiment.POSITIVE
    return Sentiment.NEUTRAL


# Voximplant
#   duration > 0 and successful is not False -> completed, else missed
#   completed -> neutral, missed -> negative (never positive)


def voximplant_status(duration: int, successful: Any) -> CallStatus:
    if duration > 0 and successful is not False:
        return CallStatus.COMPLETED
    return CallStatus.MISSED


def voximplant_sentiment(status: CallStatus) -> Sentiment:
    if status is CallStatus.COMPLETED:
        return Sentiment.NEUTRAL
    return Sentiment.NEGATIVE


def require_mapping(payload: Any, provider: str) -> dict:
    if not isinstance(payload, dict):
        raise PermanentRecordError(f"{provider} item is not an object: {payload!r}")
    return payload


def elevenlabs_external_id(payload: dict) -> str:
    require_mapping(payload, "ElevenLabs")
    conversation_id = payload.get("conversation_id")
    if not conversation_id:
        raise PermanentRecordError("Missing ElevenLabs conversation_id")
    return str(conversation_id)


def voximplant_external_id(payload: dict) -> str:
    require_mapping(payload, "Voximplant")
    history_id = payload.get("call_session_history_id")
    if history_id is None or history_id == "":
        raise PermanentRecordError("Missing Voximplant call_session_history_id")
    return str(history_id)


def normalize_conversation(payload: dict, details: Optional[dict] = None) -> CanonicalCallRecord:
    require_mapping(payload, "ElevenLabs")
    if not isinstance(details, dict):
        details = {}
    analysis = details.get("analysis")
    if not isinstance(analysis, dict):
        analysis = {}
    summary = analysis.get("transcript_summary") or payload.get("transcript_summary")
    return CanonicalCallRecord(
        external_id=elevenlabs_external_id(payload),
        source=CallSource.ELEVENLABS,
        caller_number=HIDDEN_CALLER,
        duration_seconds=parse_duration(payload.get("duration_secs")),
        status=elevenlabs_status(payload.get("status")),
        sentiment=elevenlabs_sentiment(payload.get("call_successful")),
        transcription=format_transcript(details.get("transcript")),
        summary=summary,
        audio_url=details.get("audio_url"),
        agent_id=payload.get("agent_id"),
        timestamp=parse_timestamp(payload.get("start_time_unix_secs")),
    )


def normalize_call_history(payload: dict) -> CanonicalCallRecord:
    require_mapping(payload, "Voximplant")
    duration = parse_duration(payload.get("duration"))
    status = voximplant_status(duration, payload.get("successful"))
    return CanonicalCallRecord(
        external_id=voximplant_external_id(payload),
        source=CallSource.VOXIMPLANT,
        caller_number=payload.get("remote_number") or None,
        duration_seconds=duration,
        status=status,
        sentiment=voximplant_sentiment(status),
        transcription="",
        audio_url=payload.get("record_url") or None,
        cost=parse_cost(payload.get("cost")),
        timestamp=parse_timestamp(payload.get("start_date")),
    )
