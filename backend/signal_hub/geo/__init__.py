"""
Geospatial Engine

Components:
- geomath: distance, bearing and segment projection
- ProximityTracker: newly-in-range signal detection with deduplication
- RouteSignalMatcher: corridor filter producing the relevant signal set
- MotionSimulator: simulated vehicle position stream
"""

from .geomath import (
    EARTH_RADIUS_M,
    COMPASS_OCTANTS,
    distance_meters,
    bearing,
    octant_for,
    distance_to_segment,
    nearest_point_on_segment,
    distance_to_segment_meters,
)

from .proximity import (
    DEFAULT_RADIUS_METERS,
    ProximityTracker,
    SignalApproach,
    describe_approach,
)

from .route_matcher import (
    DEFAULT_CORRIDOR_METERS,
    DEGREE_CORRIDOR_THRESHOLD,
    RouteSignalMatcher,
    match_route,
)

from .motion import MotionSimulator


__all__ = [
    "EARTH_RADIUS_M",
    "COMPASS_OCTANTS",
    "distance_meters",
    "bearing",
    "octant_for",
    "distance_to_segment",
    "nearest_point_on_segment",
    "distance_to_segment_meters",
    "DEFAULT_RADIUS_METERS",
    "ProximityTracker",
    "SignalApproach",
    "describe_approach",
    "DEFAULT_CORRIDOR_METERS",
    "DEGREE_CORRIDOR_THRESHOLD",
    "RouteSignalMatcher",
    "match_route",
    "MotionSimulator",
]
