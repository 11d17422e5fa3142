from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from callsync.models import CallRecord
from callsync.schemas import CallSource, CallStats, CallStatus, CanonicalCallRecord, Sentiment
from callsync.services.errors import DuplicateError


def to_canonical(row: CallRecord) -> CanonicalCallRecord:
    return CanonicalCallRecord.model_validate(row)


class SqlCallStore:
    """Append-only call store keyed by (source, external_id).

    There is deliberately no update operation: a stored record is never
    rewritten by later sync passes.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def _session(self) -> Session:
        return self.session_factory()

    def exists(self, source: CallSource, external_id: str) -> bool:
        with self._session() as db:
            found = (
                db.query(CallRecord.id)
                .filter(CallRecord.source == CallSource(source).value, CallRecord.external_id == external_id)
                .first()
            )
            return found is not None

    def create(self, record: CanonicalCallRecord) -> CanonicalCallRecord:
        row = CallRecord(
            source=record.source.value,
            external_id=record.external_id,
            caller_number=record.caller_number,
            duration_seconds=record.duration_seconds,
            status=record.status.value,
            sentiment=record.sentiment.value if record.sentiment else None,
            transcription=record.transcription,
            summary=record.summary,
            audio_url=record.audio_url,
            agent_id=record.agent_id,
            cost=record.cost,
            timestamp=record.timestamp,
        )
        with self._session() as db:
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateError(record.source.value, record.external_id) from exc
            db.refresh(row)
            return to_canonical(row)

    def query(
        self,
        source: Optional[CallSource] = None,
        status: Optional[CallStatus] = None,
        search: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[CanonicalCallRecord]:
        with self._session() as db:
            query = db.query(CallRecord)
            filters = []
            if source:
                filters.append(CallRecord.source == CallSource(source).value)
            if status:
                filters.append(CallRecord.status == CallStatus(status).value)
            if search:
                pattern = f"%{search}%"
                filters.append(
                    or_(CallRecord.caller_number.ilike(pattern), CallRecord.transcription.ilike(pattern))
                )
            if start:
                filters.append(CallRecord.timestamp >= start)
            if end:
                filters.append(CallRecord.timestamp <= end)
            if filters:
                query = query.filter(and_(*filters))
            query = query.order_by(CallRecord.timestamp.desc(), CallRecord.id.asc())
            if limit:
                query = query.limit(limit)
            return [to_canonical(row) for row in query.all()]

    def aggregate(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> CallStats:
        with self._session() as db:
            filters = []
            if start:
                filters.append(CallRecord.timestamp >= start)
            if end:
                filters.append(CallRecord.timestamp <= end)
            row = (
                db.query(
                    func.count(CallRecord.id).label("total"),
                    func.sum(case((CallRecord.status == CallStatus.COMPLETED.value, 1), else_=0)).label("completed"),
                    func.sum(case((CallRecord.status == CallStatus.MISSED.value, 1), else_=0)).label("missed"),
                    func.sum(CallRecord.duration_seconds).label("duration"),
                    func.sum(CallRecord.cost).label("cost"),
                )
                .filter(*filters)
                .one()
            )
            sentiment_rows = (
                db.query(CallRecord.sentiment, func.count(CallRecord.id))
                .filter(*filters)
                .group_by(CallRecord.sentiment)
                .all()
            )

        total = row.total or 0
        duration = int(row.duration or 0)
        sentiment = {value.value: 0 for value in Sentiment}
        for name, count in sentiment_rows:
            if name in sentiment:
                sentiment[name] = count
        return CallStats(
            total_calls=total,
            completed_calls=int(row.completed or 0),
            missed_calls=int(row.missed or 0),
            total_duration_seconds=duration,
            average_duration_seconds=duration / total if total else 0.0,
            total_cost=Decimal(str(row.cost or 0)),
            sentiment=sentiment,
        )
