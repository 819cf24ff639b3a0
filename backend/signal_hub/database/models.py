"""
SQLAlchemy ORM Models

Signal events recorded by the hub: traffic lights detected in range of the
vehicle and traffic lights reported by dashboards.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Index
from sqlalchemy.sql import func
from .database import Base


class SignalEventRecord(Base):
    """
    One notified or reported traffic signal

    signal_id is the coordinate normalized to 7 decimals ("lat,lng").
    """
    __tablename__ = "signal_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    signal_id = Column(String, nullable=False, index=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    direction = Column(String)         # N, NE, E, ...
    from_direction = Column(String)
    bearing = Column(Float)
    distance = Column(Float)

    case_id = Column(String, index=True)
    patient_name = Column(String)
    source = Column(String, nullable=False, default="proximity")

    timestamp = Column(Float, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index('idx_signal_event_case_time', 'case_id', 'timestamp'),
    )
