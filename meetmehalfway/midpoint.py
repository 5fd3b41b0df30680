import logging
import math

from .errors import InvalidRoute
from .geo import distance, interpolate, polyline_length
from .models import Coordinate, Midpoint, MidpointSource, Route

logger = logging.getLogger(__name__)

# Relative gap between the reported route length and the polyline geometry
# above which a warning is logged.
LENGTH_MISMATCH_TOLERANCE = 0.25


def resolve_route_midpoint(route: Route) -> Midpoint:
    """Point at 50% of the route's reported length, walking its polyline.

    Segment lengths are accumulated with the haversine distance until the
    running total would pass half of ``route.distance_meters``; the midpoint
    is interpolated on that segment. If the threshold is never crossed (the
    reported length overstates the geometry) the middle vertex is returned.
    """
    points = route.points
    if len(points) < 2:
        raise InvalidRoute(f"route needs at least 2 points, got {len(points)}")
    if route.distance_meters < 0:
        raise InvalidRoute(f"route length must be non-negative, got {route.distance_meters}")

    half = route.distance_meters / 2
    travelled = 0.0
    for start, end in zip(points, points[1:]):
        segment = distance(start, end)
        if travelled + segment > half:
            ratio = (half - travelled) / segment
            return Midpoint(MidpointSource.ROUTE_BASED, interpolate(start, end, ratio))
        travelled += segment

    if travelled == 0.0:
        # every vertex is the same point
        return Midpoint(MidpointSource.ROUTE_BASED, points[0])

    _log_length_mismatch(route, travelled)
    return Midpoint(MidpointSource.ROUTE_BASED, points[len(points) // 2])


def _log_length_mismatch(route: Route, haversine_total: float):
    geometric = polyline_length(route.points)
    gap = abs(route.distance_meters - geometric) / max(route.distance_meters, 1.0)
    level = logging.WARNING if gap > LENGTH_MISMATCH_TOLERANCE else logging.INFO
    logger.log(
        level,
        "route midpoint fell back to middle vertex: reported=%.0fm haversine=%.0fm geodesic=%.0fm points=%d",
        route.distance_meters, haversine_total, geometric, len(route.points),
    )


def resolve_geometric_midpoint(a: Coordinate, b: Coordinate) -> Midpoint:
    """Great-circle midpoint of two coordinates, ignoring roads"""
    lat1, lng1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lng2 = math.radians(b.lat), math.radians(b.lng)
    dlng = lng2 - lng1

    bx = math.cos(lat2) * math.cos(dlng)
    by = math.cos(lat2) * math.sin(dlng)
    mid_lat = math.atan2(
        math.sin(lat1) + math.sin(lat2),
        math.sqrt((math.cos(lat1) + bx) ** 2 + by ** 2),
    )
    mid_lng = lng1 + math.atan2(by, math.cos(lat1) + bx)

    lng_deg = (math.degrees(mid_lng) + 540.0) % 360.0 - 180.0
    return Midpoint(MidpointSource.GEOMETRIC, Coordinate(math.degrees(mid_lat), lng_deg))
