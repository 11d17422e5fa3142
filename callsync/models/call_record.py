from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from callsync.core.database import Base


class CallRecord(Base):
    __tablename__ = "call_records"
    __table_args__ = (UniqueConstraint("source", "external_id", name="uq_call_records_source_external_id"),)

    id = Column(Integer, primary_key=True)
    source = Column(String(20), nullable=False, index=True)
    external_id = Column(String(128), nullable=False)
    caller_number = Column(String(64), index=True)
    duration_seconds = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, index=True)
    sentiment = Column(String(20))
    transcription = Column(Text)
    summary = Column(Text)
    audio_url = Column(String(1024))
    agent_id = Column(String(128))
    cost = Column(Numeric(12, 4))
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
