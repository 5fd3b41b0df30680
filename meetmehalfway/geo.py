import math
from typing import Sequence

from geopy.distance import geodesic

from .errors import InvalidInput
from .models import Coordinate


EARTH_RADIUS_M = 6371000.0


def distance(p1: Coordinate, p2: Coordinate) -> float:
    """Great-circle (haversine) distance in meters between two coordinates"""
    lat1, lon1 = math.radians(p1.lat), math.radians(p1.lng)
    lat2, lon2 = math.radians(p2.lat), math.radians(p2.lng)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def interpolate(p1: Coordinate, p2: Coordinate, ratio: float) -> Coordinate:
    """Linear interpolation in lat/lng space.

    Only meaningful for short segments such as consecutive polyline vertices.
    ``ratio`` is expected in [0, 1] and is not clamped here.
    """
    return Coordinate(
        lat=p1.lat + (p2.lat - p1.lat) * ratio,
        lng=p1.lng + (p2.lng - p1.lng) * ratio,
    )


def polyline_length(points: Sequence[Coordinate]) -> float:
    """Geodesic (WGS-84) length of a polyline in meters"""
    total = 0.0
    for i in range(len(points) - 1):
        total += geodesic(points[i].as_tuple(), points[i + 1].as_tuple()).meters
    return total


def _parse_number(value, name: str) -> float:
    if isinstance(value, bool) or value is None:
        raise InvalidInput(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise InvalidInput(f"{name} must be finite, got {value!r}")
    return number


def parse_coordinate(lat, lng) -> Coordinate:
    """Parse a lat/lng pair (numbers or numeric strings) into a validated Coordinate"""
    point = Coordinate(_parse_number(lat, 'lat'), _parse_number(lng, 'lng'))
    if not point.in_range():
        raise InvalidInput(
            f"coordinate out of range: lat={point.lat}, lng={point.lng} "
            "(lat must be within [-90, 90], lng within [-180, 180])"
        )
    return point


def parse_point(value, name: str = 'point') -> Coordinate:
    """Parse a ``{"lat": .., "lng": ..}`` mapping from a request body"""
    if not isinstance(value, dict) or 'lat' not in value or 'lng' not in value:
        raise InvalidInput(f"{name} must have lat and lng properties")
    return parse_coordinate(value['lat'], value['lng'])
