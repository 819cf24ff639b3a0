"""
Geographic Value Types

Coordinate, SignalPoint and Bearing are immutable and hashable so they can be
used as set members and dictionary keys by the proximity engine.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


# Decimal places kept when deriving a signal's identity from its position
SIGNAL_ID_PRECISION = 7


@dataclass(frozen=True)
class Coordinate:
    """WGS-84 position in decimal degrees"""
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


def signal_id_for(lat: float, lng: float) -> str:
    """Natural key of a signal: its coordinate normalized to fixed precision"""
    return f"{lat:.{SIGNAL_ID_PRECISION}f},{lng:.{SIGNAL_ID_PRECISION}f}"


@dataclass(frozen=True)
class SignalPoint:
    """
    Traffic signal from the static catalog

    Two signals are the same entity iff their normalized coordinates match,
    so the id is derived rather than assigned.
    """
    position: Coordinate
    signal_id: str = field(default="", compare=False)

    def __post_init__(self):
        object.__setattr__(
            self, "signal_id", signal_id_for(self.position.lat, self.position.lng)
        )

    @classmethod
    def at(cls, lat: float, lng: float) -> "SignalPoint":
        return cls(Coordinate(lat, lng))

    @property
    def lat(self) -> float:
        return self.position.lat

    @property
    def lng(self) -> float:
        return self.position.lng

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, SignalPoint):
            return NotImplemented
        return self.signal_id == other.signal_id

    def __hash__(self) -> int:
        return hash(self.signal_id)


@dataclass(frozen=True)
class Bearing:
    """Initial bearing between two points: degrees from north + compass octant"""
    degrees: float
    octant: str

    def to_dict(self) -> Dict[str, Any]:
        return {"degrees": round(self.degrees, 1), "cardinal": self.octant}
