"""
Domain Models Package

Value types shared by the geo engine, the coordination hub and the
persistence layer. Import from here for convenience.
"""

from .coordinates import (
    SIGNAL_ID_PRECISION,
    Coordinate,
    SignalPoint,
    Bearing,
    signal_id_for,
)

from .signal_event import (
    SignalEvent,
    SignalEventSource,
)

__all__ = [
    "SIGNAL_ID_PRECISION",
    "Coordinate",
    "SignalPoint",
    "Bearing",
    "signal_id_for",
    "SignalEvent",
    "SignalEventSource",
]
