"""
Database Package

SQLAlchemy persistence for recorded signal events.
"""

from .database import Base, engine, SessionLocal, init_db
from .models import SignalEventRecord
from .signal_event_sink import SqlSignalEventSink, get_sink, set_sink

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "init_db",
    "SignalEventRecord",
    "SqlSignalEventSink",
    "get_sink",
    "set_sink",
]
