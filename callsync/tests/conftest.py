import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from callsync import models  # noqa: F401
from callsync.core.database import Base
from callsync.schemas import CallSource, CallStatus, CanonicalCallRecord, Sentiment
from callsync.services import normalizer
from callsync.services.adapters import PageResult, ProviderAdapter
from callsync.services.store import SqlCallStore

T0 = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


class CountingStore(SqlCallStore):
    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.create_calls = 0

    def create(self, record):
        self.create_calls += 1
        return super().create(record)


@pytest.fixture()
def store(session_factory):
    return CountingStore(session_factory)


def voximplant_item(history_id, start=T0, duration=60, **extra):
    item = {
        "call_session_history_id": history_id,
        "remote_number": "+79991234567",
        "duration": duration,
        "successful": True,
        "record_url": None,
        "cost": "0.25",
        "start_date": start.strftime("%Y-%m-%d %H:%M:%S"),
    }
    item.update(extra)
    return item


def conversation_item(conversation_id, start=T0, duration=45, **extra):
    item = {
        "conversation_id": conversation_id,
        "agent_id": "agent-1",
        "duration_secs": duration,
        "status": "completed",
        "call_successful": "success",
        "start_time_unix_secs": int(start.timestamp()),
    }
    item.update(extra)
    return item


def make_record(
    external_id,
    source=CallSource.VOXIMPLANT,
    timestamp=T0,
    **fields,
) -> CanonicalCallRecord:
    values = {
        "external_id": external_id,
        "source": source,
        "duration_seconds": 30,
        "status": CallStatus.COMPLETED,
        "sentiment": Sentiment.NEUTRAL,
        "timestamp": timestamp,
    }
    values.update(fields)
    return CanonicalCallRecord(**values)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


class FakeAdapter(ProviderAdapter):
    """Serves canned Voximplant-shaped pages and records every call."""

    source = CallSource.VOXIMPLANT
    name = "voximplant"

    def __init__(self, pages: List[PageResult], gate: Optional[asyncio.Event] = None):
        self.pages = pages
        self.gate = gate
        self.tokens: List[Optional[str]] = []
        self.details_calls: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.tokens)

    async def fetch_page(self, token=None):
        self.tokens.append(token)
        if self.gate is not None:
            await self.gate.wait()
        return self.pages[min(len(self.tokens), len(self.pages)) - 1]

    async def fetch_details(self, external_id):
        self.details_calls.append(external_id)
        return None

    def external_id(self, raw):
        return normalizer.voximplant_external_id(raw)

    def normalize(self, raw, details=None):
        return normalizer.normalize_call_history(raw)

    async def fetch_all(self):
        return self._normalize_many([item for page in self.pages for item in page.items])
