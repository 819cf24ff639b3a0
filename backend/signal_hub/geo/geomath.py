"""
Geo Math - distance, bearing and segment projection

Pure functions over Coordinate values. Inputs are assumed to be finite,
in-range coordinates; the wire parser rejects anything else before it
reaches this module.
"""

import math

from signal_hub.models import Bearing, Coordinate


EARTH_RADIUS_M = 6371000  # Earth's radius in meters

COMPASS_OCTANTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """
    Great-circle distance between two coordinates (haversine)

    Args:
        a: First point
        b: Second point

    Returns:
        Distance in meters
    """
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lng - a.lng)

    h = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def octant_for(degrees: float) -> str:
    """Compass octant for a bearing; sectors are 45 degrees centered on each point"""
    index = int(math.floor(degrees / 45.0 + 0.5)) % 8
    return COMPASS_OCTANTS[index]


def bearing(origin: Coordinate, target: Coordinate) -> Bearing:
    """
    Initial bearing from origin towards target

    Identical points have no direction; they report 0 degrees (N).

    Args:
        origin: Start point
        target: End point

    Returns:
        Bearing with degrees in [0, 360) and compass octant
    """
    phi1 = math.radians(origin.lat)
    phi2 = math.radians(target.lat)
    delta_lambda = math.radians(target.lng - origin.lng)

    y = math.sin(delta_lambda) * math.cos(phi2)
    x = (math.cos(phi1) * math.sin(phi2) -
         math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda))

    degrees = (math.degrees(math.atan2(y, x)) + 360.0) % 360.0
    if degrees >= 360.0:
        degrees = 0.0

    return Bearing(degrees=degrees, octant=octant_for(degrees))


def distance_to_segment(seg_start: Coordinate, seg_end: Coordinate, point: Coordinate) -> float:
    """
    Clamped distance from point to a segment in raw coordinate degrees

    Treats (lat, lng) as planar. Kept for the degree-threshold corridor
    heuristic; distance_to_segment_meters is the accurate variant.
    """
    a = point.lat - seg_start.lat
    b = point.lng - seg_start.lng
    c = seg_end.lat - seg_start.lat
    d = seg_end.lng - seg_start.lng

    length_sq = c * c + d * d
    param = (a * c + b * d) / length_sq if length_sq != 0 else -1.0

    if param < 0:
        nearest_lat, nearest_lng = seg_start.lat, seg_start.lng
    elif param > 1:
        nearest_lat, nearest_lng = seg_end.lat, seg_end.lng
    else:
        nearest_lat = seg_start.lat + param * c
        nearest_lng = seg_start.lng + param * d

    return math.hypot(point.lat - nearest_lat, point.lng - nearest_lng)


def nearest_point_on_segment(seg_start: Coordinate, seg_end: Coordinate, point: Coordinate) -> Coordinate:
    """
    Closest point of the segment to `point`

    The projection runs in a local equirectangular frame centered on the
    point, so longitude is scaled by cos(latitude) before the dot product.
    """
    scale = math.cos(math.radians(point.lat))

    ax, ay = (seg_start.lng - point.lng) * scale, seg_start.lat - point.lat
    bx, by = (seg_end.lng - point.lng) * scale, seg_end.lat - point.lat
    dx, dy = bx - ax, by - ay

    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return seg_start

    # Point sits at the frame origin
    t = -(ax * dx + ay * dy) / length_sq
    t = max(0.0, min(1.0, t))

    return Coordinate(
        lat=seg_start.lat + t * (seg_end.lat - seg_start.lat),
        lng=seg_start.lng + t * (seg_end.lng - seg_start.lng),
    )


def distance_to_segment_meters(seg_start: Coordinate, seg_end: Coordinate, point: Coordinate) -> float:
    """Distance in meters from point to the clamped nearest point of the segment"""
    return distance_meters(point, nearest_point_on_segment(seg_start, seg_end, point))
