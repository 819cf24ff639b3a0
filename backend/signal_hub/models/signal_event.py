"""
Signal Event Model

A signal event is one traffic light that was either detected in range of the
vehicle by the proximity engine or reported by a dashboard. It is the unit
handed to the persistence sink and serialized into trafficLightUpdate payloads.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .coordinates import SignalPoint


class SignalEventSource(str, Enum):
    """Where a signal event came from"""
    PROXIMITY = "proximity"    # detected by the hub's proximity engine
    REPORTED = "reported"      # nearbyTrafficLights sent by an observer


@dataclass
class SignalEvent:
    signal: SignalPoint
    direction: Optional[str]
    from_direction: Optional[str]
    case_id: Optional[str] = None
    patient_name: Optional[str] = None
    bearing: Optional[float] = None
    distance: Optional[float] = None
    source: SignalEventSource = SignalEventSource.PROXIMITY
    timestamp: float = field(default_factory=time.time)

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape of one entry in trafficLights"""
        payload = {
            "lat": self.signal.lat,
            "lng": self.signal.lng,
            "direction": self.direction,
            "fromDirection": self.from_direction,
        }
        if self.bearing is not None:
            payload["bearing"] = round(self.bearing, 1)
        if self.distance is not None:
            payload["distance"] = round(self.distance, 1)
        return payload
