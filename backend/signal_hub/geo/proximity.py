"""
Proximity Tracker

Detects traffic signals that have newly come within notification range of
the vehicle and remembers them so each signal is reported once per case.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Set

from signal_hub.models import Bearing, Coordinate, SignalPoint

from .geomath import bearing, distance_meters


DEFAULT_RADIUS_METERS = 200.0


@dataclass(frozen=True)
class SignalApproach:
    """
    Newly detected signal together with the approach geometry

    direction: bearing vehicle -> signal (where the vehicle is heading)
    from_direction: bearing signal -> vehicle (where the signal sees it coming from)
    """
    signal: SignalPoint
    direction: Bearing
    from_direction: Bearing
    distance: float


class ProximityTracker:
    """
    Track which signals have already been notified for the active case

    Usage:
        tracker = ProximityTracker(radius_meters=200)
        newly = tracker.check_proximity(vehicle_pos, relevant_signals)
        # ... same position again returns []
        tracker.reset()  # on request acceptance
    """

    def __init__(self, radius_meters: float = DEFAULT_RADIUS_METERS):
        """
        Initialize tracker

        Args:
            radius_meters: Notification radius around the vehicle
        """
        if radius_meters <= 0:
            raise ValueError(f"radius_meters must be positive, got {radius_meters}")

        self.radius_meters = radius_meters
        self._notified: Set[str] = set()

    @property
    def notified_ids(self) -> FrozenSet[str]:
        """Read-only view of the notified signal ids"""
        return frozenset(self._notified)

    def is_notified(self, signal: SignalPoint) -> bool:
        return signal.signal_id in self._notified

    def check_proximity(
        self,
        vehicle_pos: Coordinate,
        candidates: Iterable[SignalPoint]
    ) -> List[SignalPoint]:
        """
        Report signals that entered range since the last call

        Args:
            vehicle_pos: Current vehicle position
            candidates: Signals to test (normally the relevant signal set)

        Returns:
            Signals within radius that were not reported before, in
            candidate order. Each is marked notified before returning.
        """
        newly_entered: List[SignalPoint] = []

        for signal in candidates:
            if signal.signal_id in self._notified:
                continue

            if distance_meters(vehicle_pos, signal.position) <= self.radius_meters:
                self._notified.add(signal.signal_id)
                newly_entered.append(signal)

        return newly_entered

    def reset(self):
        """Forget every notified signal"""
        self._notified.clear()


def describe_approach(vehicle_pos: Coordinate, signal: SignalPoint) -> SignalApproach:
    """Compute both approach bearings and the distance for a detected signal"""
    return SignalApproach(
        signal=signal,
        direction=bearing(vehicle_pos, signal.position),
        from_direction=bearing(signal.position, vehicle_pos),
        distance=distance_meters(vehicle_pos, signal.position),
    )
