"""
Signal Event Sink

Persists signal events in batches. The hub hands every batch over as a
fire-and-forget task; writes run in the default thread pool so the event
loop never blocks on SQLite.
"""

import asyncio
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from signal_hub.errors import CollaboratorFailure
from signal_hub.models import Coordinate, SignalEvent, SignalEventSource, SignalPoint

from .models import SignalEventRecord


class SqlSignalEventSink:
    """
    SQLAlchemy-backed persistence sink

    Usage:
        sink = SqlSignalEventSink()
        await sink.record_signal_events(events)
        latest = await sink.recent_events(limit=20)
    """

    def __init__(self, session_factory=None):
        """
        Initialize sink

        Args:
            session_factory: sessionmaker to use (defaults to SessionLocal)
        """
        if session_factory is None:
            from .database import SessionLocal
            session_factory = SessionLocal

        self.session_factory = session_factory

        self.batches_written = 0
        self.events_written = 0

    async def record_signal_events(self, events: List[SignalEvent]) -> int:
        """
        Write one batch in a single transaction

        Returns:
            Number of rows written

        Raises:
            CollaboratorFailure: the batch could not be committed
        """
        if not events:
            return 0

        loop = asyncio.get_running_loop()
        count = await loop.run_in_executor(None, self._write_batch, list(events))

        self.batches_written += 1
        self.events_written += count
        return count

    def _write_batch(self, events: List[SignalEvent]) -> int:
        """Insert the batch (runs in thread pool)"""
        db = self.session_factory()
        try:
            db.add_all([self._to_record(event) for event in events])
            db.commit()
            return len(events)
        except SQLAlchemyError as e:
            db.rollback()
            raise CollaboratorFailure("persistence", str(e))
        finally:
            db.close()

    async def recent_events(self, limit: int = 20) -> List[SignalEvent]:
        """Latest recorded events, oldest first"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_recent, limit)

    def _read_recent(self, limit: int) -> List[SignalEvent]:
        db = self.session_factory()
        try:
            rows = (
                db.query(SignalEventRecord)
                .order_by(SignalEventRecord.timestamp.desc(), SignalEventRecord.id.desc())
                .limit(limit)
                .all()
            )
            return [self._to_event(row) for row in reversed(rows)]
        except SQLAlchemyError as e:
            raise CollaboratorFailure("persistence", str(e))
        finally:
            db.close()

    @staticmethod
    def _to_record(event: SignalEvent) -> SignalEventRecord:
        return SignalEventRecord(
            signal_id=event.signal.signal_id,
            lat=event.signal.lat,
            lng=event.signal.lng,
            direction=event.direction,
            from_direction=event.from_direction,
            bearing=event.bearing,
            distance=event.distance,
            case_id=event.case_id,
            patient_name=event.patient_name,
            source=event.source.value,
            timestamp=event.timestamp,
        )

    @staticmethod
    def _to_event(row: SignalEventRecord) -> SignalEvent:
        return SignalEvent(
            signal=SignalPoint(Coordinate(row.lat, row.lng)),
            direction=row.direction,
            from_direction=row.from_direction,
            case_id=row.case_id,
            patient_name=row.patient_name,
            bearing=row.bearing,
            distance=row.distance,
            source=SignalEventSource(row.source),
            timestamp=row.timestamp,
        )


# Global sink instance
_sink: Optional[SqlSignalEventSink] = None


def get_sink() -> Optional[SqlSignalEventSink]:
    return _sink


def set_sink(sink: Optional[SqlSignalEventSink]):
    global _sink
    _sink = sink
