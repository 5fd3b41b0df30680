from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Coordinate:
    """Latitude / longitude pair in decimal degrees"""
    lat: float
    lng: float

    def in_range(self) -> bool:
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lng <= 180.0

    def to_dict(self) -> Dict:
        return {'lat': self.lat, 'lng': self.lng}

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Route:
    """One driving path between two endpoints.

    ``distance_meters`` is the length reported by the routing service and is
    trusted as-is; it is not recomputed from ``points``.
    """
    points: Tuple[Coordinate, ...]
    distance_meters: float
    duration_seconds: float
    summary: str = ''
    polyline: Optional[str] = None

    def to_dict(self, include_points: bool = False) -> Dict:
        data = {
            'summary': self.summary,
            'distance_meters': self.distance_meters,
            'duration_seconds': self.duration_seconds,
            'duration_minutes': round(self.duration_seconds / 60, 1),
            'overview_polyline': self.polyline,
        }
        if include_points:
            data['points'] = [p.to_dict() for p in self.points]
        return data


class MidpointSource(str, Enum):
    NOT_COMPUTED = 'not-computed'
    GEOMETRIC = 'geometric'
    ROUTE_BASED = 'route-based'


@dataclass(frozen=True)
class Midpoint:
    source: MidpointSource
    location: Optional[Coordinate] = None

    @classmethod
    def not_computed(cls) -> 'Midpoint':
        return cls(MidpointSource.NOT_COMPUTED)

    @property
    def is_computed(self) -> bool:
        return self.source is not MidpointSource.NOT_COMPUTED and self.location is not None

    def to_dict(self) -> Dict:
        return {
            'source': self.source.value,
            'lat': self.location.lat if self.location else None,
            'lng': self.location.lng if self.location else None,
        }


@dataclass(frozen=True)
class CandidatePOI:
    poi_id: str
    location: Coordinate
    type: str
    name: str
    address: str = ''

    def to_dict(self) -> Dict:
        return {
            'poi_id': self.poi_id,
            'name': self.name,
            'address': self.address,
            'type': self.type,
            'lat': self.location.lat,
            'lng': self.location.lng,
        }


@dataclass(frozen=True)
class TravelTime:
    duration_seconds: float
    distance_meters: Optional[float] = None


@dataclass(frozen=True)
class ScoredPOI:
    """A candidate enriched with travel times from both parties.

    ``total_time`` and ``time_difference`` are derived in ``__post_init__``
    and cannot be passed in. Both are None unless both times are known.
    """
    poi: CandidatePOI
    time_from_a: Optional[float] = None
    time_from_b: Optional[float] = None
    distance_from_a: Optional[float] = None
    distance_from_b: Optional[float] = None
    is_favorite: bool = False
    total_time: Optional[float] = field(init=False, default=None)
    time_difference: Optional[float] = field(init=False, default=None)

    def __post_init__(self):
        if self.time_from_a is not None and self.time_from_b is not None:
            object.__setattr__(self, 'total_time', self.time_from_a + self.time_from_b)
            object.__setattr__(self, 'time_difference', abs(self.time_from_a - self.time_from_b))

    def to_dict(self) -> Dict:
        def minutes(seconds):
            return round(seconds / 60, 1) if seconds is not None else None

        return {
            **self.poi.to_dict(),
            'time_from_address1_seconds': self.time_from_a,
            'time_from_address2_seconds': self.time_from_b,
            'time_from_address1_minutes': minutes(self.time_from_a),
            'time_from_address2_minutes': minutes(self.time_from_b),
            'distance_from_address1_meters': self.distance_from_a,
            'distance_from_address2_meters': self.distance_from_b,
            'total_travel_time_seconds': self.total_time,
            'total_travel_time_minutes': minutes(self.total_time),
            'time_difference_seconds': self.time_difference,
            'time_difference_minutes': minutes(self.time_difference),
            'is_favorite': self.is_favorite,
        }
