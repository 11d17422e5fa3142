import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class CallSource(str, enum.Enum):
    ELEVENLABS = "ElevenLabs"
    VOXIMPLANT = "Voximplant"
    MERGED = "Merged"


class CallStatus(str, enum.Enum):
    COMPLETED = "completed"
    MISSED = "missed"


class Sentiment(str, enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class CanonicalCallRecord(BaseModel):
    external_id: str = Field(min_length=1)
    source: CallSource
    caller_number: Optional[str] = None
    duration_seconds: int = Field(default=0, ge=0)
    status: CallStatus
    sentiment: Optional[Sentiment] = None
    transcription: Optional[str] = None
    summary: Optional[str] = None
    audio_url: Optional[str] = None
    agent_id: Optional[str] = None
    cost: Optional[Decimal] = None
    timestamp: datetime

    class Config:
        from_attributes = True
        frozen = True

    @field_validator("timestamp")
    def as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class MergedCallRecord(CanonicalCallRecord):
    source: CallSource = CallSource.MERGED
    primary_external_id: str
    primary_source: CallSource
    secondary_external_id: str
    secondary_source: CallSource


class CallStats(BaseModel):
    total_calls: int
    completed_calls: int
    missed_calls: int
    total_duration_seconds: int
    average_duration_seconds: float
    total_cost: Decimal
    sentiment: Dict[str, int]


class SyncResultOut(BaseModel):
    provider: str
    status: str
    stage: Optional[str] = None
    pages: int
    created: int
    skipped: int
    failed_records: int
    warning: Optional[str] = None
    message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class SyncStatusOut(BaseModel):
    provider: str
    state: str


class ConversationDetailOut(BaseModel):
    conversation_id: str
    transcription: str
    summary: Optional[str]
    audio_url: Optional[str] = None


class UnifiedCallsOut(BaseModel):
    items: List[MergedCallRecord | CanonicalCallRecord]
    total: int
    merged: int


class BalanceOut(BaseModel):
    balance: Decimal
    currency: str


class DiagnosticCheck(BaseModel):
    status: str = "pending"
    details: Any = None
    sample_data: Any = None


class DiagnosticConfiguration(BaseModel):
    account_id_present: bool
    api_key_present: bool
    api_url: str
    error: Optional[str] = None


class DiagnosticsOut(BaseModel):
    timestamp: datetime
    configuration: DiagnosticConfiguration
    tests: Dict[str, DiagnosticCheck]
