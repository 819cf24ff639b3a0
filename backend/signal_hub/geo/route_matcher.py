"""
Route Signal Matcher

Filters the signal catalog down to the signals that sit within a corridor
around the vehicle's route. The result is the relevant signal set that the
proximity tracker watches for the rest of the case.
"""

from typing import List, Sequence

from signal_hub.models import Coordinate, SignalPoint

from .geomath import distance_to_segment, distance_to_segment_meters


DEFAULT_CORRIDOR_METERS = 50.0

# Legacy corridor expressed in raw degrees (~50 m near the equator)
DEGREE_CORRIDOR_THRESHOLD = 0.0005


class RouteSignalMatcher:
    """
    Match catalog signals against a route polyline

    By default the corridor is measured in meters against the clamped
    nearest point of each segment. With use_degree_heuristic=True the raw
    degree distance is compared to degree_threshold instead; that mode
    exists for parity with dashboards that still use the degree heuristic.
    """

    def __init__(
        self,
        corridor_meters: float = DEFAULT_CORRIDOR_METERS,
        use_degree_heuristic: bool = False,
        degree_threshold: float = DEGREE_CORRIDOR_THRESHOLD
    ):
        self.corridor_meters = corridor_meters
        self.use_degree_heuristic = use_degree_heuristic
        self.degree_threshold = degree_threshold

    def match_route(
        self,
        path: Sequence[Coordinate],
        catalog: Sequence[SignalPoint],
        corridor_meters: float = None
    ) -> List[SignalPoint]:
        """
        Signals within the corridor of the path

        Args:
            path: Ordered route points
            catalog: Candidate signals
            corridor_meters: Override for the configured corridor

        Returns:
            Matching signals in catalog order, each at most once
        """
        if not path or not catalog:
            return []

        corridor = self.corridor_meters if corridor_meters is None else corridor_meters

        # A single point degenerates to a zero-length segment
        segments = list(zip(path, path[1:])) or [(path[0], path[0])]

        relevant: List[SignalPoint] = []
        seen = set()

        for signal in catalog:
            if signal.signal_id in seen:
                continue

            for seg_start, seg_end in segments:
                if self._within_corridor(seg_start, seg_end, signal.position, corridor):
                    relevant.append(signal)
                    seen.add(signal.signal_id)
                    break

        return relevant

    def _within_corridor(
        self,
        seg_start: Coordinate,
        seg_end: Coordinate,
        point: Coordinate,
        corridor_meters: float
    ) -> bool:
        if self.use_degree_heuristic:
            return distance_to_segment(seg_start, seg_end, point) < self.degree_threshold
        return distance_to_segment_meters(seg_start, seg_end, point) < corridor_meters


def match_route(
    path: Sequence[Coordinate],
    catalog: Sequence[SignalPoint],
    corridor_meters: float = DEFAULT_CORRIDOR_METERS
) -> List[SignalPoint]:
    """Meter-based corridor match with default settings"""
    return RouteSignalMatcher(corridor_meters).match_route(path, catalog)
