import asyncio
import os

import pytest

# keep the app from writing app.log or picking up a real key during tests
os.environ['LOG_FILE'] = ''
os.environ['GOOGLE_MAPS_API_KEY'] = ''

from meetmehalfway.errors import CollaboratorUnavailable
from meetmehalfway.models import CandidatePOI, Coordinate, Route, TravelTime


NYC = Coordinate(40.7128, -74.0060)
JERSEY_CITY = Coordinate(40.7178, -74.0431)


def straight_route(start: Coordinate, end: Coordinate, steps: int = 10, summary: str = 'main') -> Route:
    from meetmehalfway.geo import distance

    points = tuple(
        Coordinate(start.lat + (end.lat - start.lat) * i / steps, start.lng + (end.lng - start.lng) * i / steps)
        for i in range(steps + 1)
    )
    length = sum(distance(a, b) for a, b in zip(points, points[1:]))
    return Route(points=points, distance_meters=length, duration_seconds=length / 10, summary=summary)


class FakeMapsService:
    """Stands in for GoogleMapsService with canned answers"""

    def __init__(self, routes=None, places=None, times=None, geocodes=None, failing_destinations=()):
        self.routes = routes
        self.places = places or []
        self.times = times or {}
        self.geocodes = geocodes or {}
        self.in_flight = 0
        self.peak_in_flight = 0
        self.search_calls = []
        self.matrix_calls = []
        self.failing_destinations = set(failing_destinations)

    async def geocode_address_async(self, address):
        if isinstance(self.geocodes, Exception):
            raise self.geocodes
        return self.geocodes.get(address)

    async def get_routes_async(self, origin, destination):
        if isinstance(self.routes, Exception):
            raise self.routes
        if not self.routes:
            raise CollaboratorUnavailable("directions", "no route")
        return self.routes

    async def search_nearby_async(self, center, radius_meters, categories=None):
        self.search_calls.append((center, radius_meters))
        if isinstance(self.places, Exception):
            raise self.places
        return list(self.places)

    async def get_travel_times_async(self, origins, destinations):
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        self.matrix_calls.append(len(destinations))
        try:
            await asyncio.sleep(0)
            if isinstance(self.times, Exception):
                raise self.times
            if self.failing_destinations.intersection(destinations):
                raise CollaboratorUnavailable("distance matrix", "timeout")
            return [[self.times.get((o, d)) for d in destinations] for o in origins]
        finally:
            self.in_flight -= 1


def poi(poi_id, name, poi_type='restaurant', lat=40.715, lng=-74.02):
    return CandidatePOI(poi_id=poi_id, location=Coordinate(lat, lng), type=poi_type, name=name)


def times_for(places, origin_a, origin_b, table):
    """Build a FakeMapsService times dict from {poi_id: (seconds_a, seconds_b)}"""
    times = {}
    for p in places:
        a, b = table.get(p.poi_id, (None, None))
        if a is not None:
            times[(origin_a, p.location)] = TravelTime(a, a * 10)
        if b is not None:
            times[(origin_b, p.location)] = TravelTime(b, b * 10)
    return times


@pytest.fixture
def places():
    return [
        poi('p1', 'Blue Cafe', 'cafe', 40.7150, -74.0200),
        poi('p2', 'Harbor Park', 'park', 40.7151, -74.0201),
        poi('p3', 'Grand Hotel', 'hotel', 40.7152, -74.0202),
        poi('p4', 'Corner Library', 'library', 40.7153, -74.0203),
    ]


@pytest.fixture
def fake_service(places):
    route = straight_route(NYC, JERSEY_CITY, summary='main')
    alternate = straight_route(NYC, JERSEY_CITY, steps=7, summary='alternate')
    times = times_for(places, NYC, JERSEY_CITY, {
        'p1': (600, 900),
        'p2': (700, 720),
        'p3': (300, 2000),
        'p4': (800, None),
    })
    return FakeMapsService(
        routes=[route, alternate],
        places=places,
        times=times,
        geocodes={
            'New York, NY': ('New York, NY, USA', NYC),
            'Jersey City, NJ': ('Jersey City, NJ, USA', JERSEY_CITY),
        },
    )
