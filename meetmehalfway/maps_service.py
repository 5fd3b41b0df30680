import googlemaps
from googlemaps import exceptions as gmaps_exceptions
from typing import Dict, List, Optional, Tuple
import asyncio
import concurrent.futures
import logging

from .errors import CollaboratorUnavailable
from .models import CandidatePOI, Coordinate, Route, TravelTime

logger = logging.getLogger(__name__)

# --- Module-level constants ---
TRAVEL_MODE = "driving"
DEFAULT_POI_TYPES = ['restaurant', 'cafe', 'bar', 'park', 'library', 'movie_theater', 'museum', 'lodging']
MAX_PLACES_PER_TYPE = 20
DISTANCE_MATRIX_MAX_DEST = 25  # destinations per request; two origins keep it under 100 elements

# Google place types that the ranking pipeline knows under another tag
PLACE_TYPE_ALIASES = {
    'movie_theater': 'cinema',
    'lodging': 'hotel',
    'meal_takeaway': 'fast_food',
}

_CLIENT_ERRORS = (gmaps_exceptions.ApiError, gmaps_exceptions.TransportError, gmaps_exceptions.Timeout)


def _fmt(point: Coordinate) -> str:
    return f"{point.lat},{point.lng}"


class GoogleMapsService:
    """Routing, travel time, place search and geocoding over the Google Maps APIs"""

    def __init__(self, api_key: str, max_workers: int = 10):
        if not api_key or api_key == "your_api_key_here":
            raise ValueError("Valid Google Maps API key is required")
        self.client = googlemaps.Client(key=api_key)
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)

    def cleanup(self):
        """Clean up resources"""
        if hasattr(self, 'executor'):
            self.executor.shutdown(wait=True)

    def geocode_address(self, address: str) -> Optional[Tuple[str, Coordinate]]:
        """
        Geocode an address using Google Maps Geocoding API
        Returns (formatted address, coordinate), or None when nothing matched
        """
        try:
            result = self.client.geocode(address)
        except _CLIENT_ERRORS as e:
            raise CollaboratorUnavailable("geocoding", str(e))
        if not result:
            return None
        location = result[0]
        coords = location['geometry']['location']
        return location['formatted_address'], Coordinate(coords['lat'], coords['lng'])

    def get_routes(self, origin: Coordinate, destination: Coordinate) -> List[Route]:
        """
        Driving routes between two points, fastest first.
        Google returns up to three when alternatives are requested.
        """
        try:
            directions_result = self.client.directions(
                origin=_fmt(origin),
                destination=_fmt(destination),
                mode=TRAVEL_MODE,
                alternatives=True,
            )
        except _CLIENT_ERRORS as e:
            raise CollaboratorUnavailable("directions", str(e))

        if not directions_result:
            raise CollaboratorUnavailable("directions", f"no route between {_fmt(origin)} and {_fmt(destination)}")

        routes = []
        for raw in directions_result:
            route = self._parse_route(raw)
            if route is not None:
                routes.append(route)
        if not routes:
            raise CollaboratorUnavailable("directions", "routes returned without geometry")
        return routes

    def get_route(self, origin: Coordinate, destination: Coordinate) -> Route:
        return self.get_routes(origin, destination)[0]

    def get_alternate_route(self, origin: Coordinate, destination: Coordinate) -> Optional[Route]:
        """Second distinct route, or None if Google only knows one"""
        routes = self.get_routes(origin, destination)
        main = routes[0]
        for route in routes[1:]:
            if route.points != main.points:
                return route
        return None

    def _parse_route(self, route: Dict) -> Optional[Route]:
        # Distance/duration across all legs (usually 1)
        total_distance = 0
        total_duration = 0
        for leg in route.get('legs', []):
            if 'distance' in leg and 'value' in leg['distance']:
                total_distance += leg['distance']['value']
            if 'duration' in leg and 'value' in leg['duration']:
                total_duration += leg['duration']['value']

        overview_polyline = route.get('overview_polyline', {}).get('points')
        points = self.decode_polyline(overview_polyline)
        if len(points) < 2:
            return None
        return Route(
            points=tuple(points),
            distance_meters=total_distance,
            duration_seconds=total_duration,
            summary=route.get('summary', ''),
            polyline=overview_polyline,
        )

    def get_travel_time(self, origin: Coordinate, destination: Coordinate) -> TravelTime:
        """
        Driving time and distance between two points using the Distance Matrix API
        """
        value = self.get_travel_times([origin], [destination])[0][0]
        if value is None:
            raise CollaboratorUnavailable(
                "distance matrix", f"no driving time from {_fmt(origin)} to {_fmt(destination)}"
            )
        return value

    def get_travel_times(self, origins: List[Coordinate], destinations: List[Coordinate]) -> List[List[Optional[TravelTime]]]:
        """Batch driving times using the Distance Matrix API. Returns a rows x cols matrix
        where rows = len(origins) and cols = len(destinations); None where Google has no answer.
        Chunks destinations to respect API limits.
        """
        matrix: List[List[Optional[TravelTime]]] = [[None for _ in destinations] for _ in origins]
        if not origins or not destinations:
            return matrix

        origin_strs = [_fmt(o) for o in origins]
        for start in range(0, len(destinations), DISTANCE_MATRIX_MAX_DEST):
            dest_chunk = destinations[start:start + DISTANCE_MATRIX_MAX_DEST]
            try:
                dm = self.client.distance_matrix(
                    origins=origin_strs,
                    destinations=[_fmt(d) for d in dest_chunk],
                    mode=TRAVEL_MODE,
                )
            except _CLIENT_ERRORS as e:
                raise CollaboratorUnavailable("distance matrix", str(e))
            if not isinstance(dm, dict) or 'rows' not in dm:
                raise CollaboratorUnavailable("distance matrix", "malformed response")

            for i, row in enumerate(dm['rows'][:len(origins)]):
                elements = row.get('elements', [])[:len(dest_chunk)]
                for j, element in enumerate(elements):
                    matrix[i][start + j] = self._parse_element(element)
        return matrix

    @staticmethod
    def _parse_element(element: Dict) -> Optional[TravelTime]:
        if not element or element.get('status') != 'OK':
            return None
        duration = element.get('duration', {}).get('value')
        if duration is None:
            return None
        return TravelTime(
            duration_seconds=duration,
            distance_meters=element.get('distance', {}).get('value'),
        )

    def find_places_nearby(self, center: Coordinate, radius: int, place_type: str) -> List[CandidatePOI]:
        """
        Find places of one type around a point
        """
        try:
            places_result = self.client.places_nearby(
                location=center.as_tuple(),
                radius=radius,
                type=place_type,
            )
        except _CLIENT_ERRORS as e:
            raise CollaboratorUnavailable("places", str(e))

        tag = PLACE_TYPE_ALIASES.get(place_type, place_type)
        places = []
        for place in places_result.get('results', [])[:MAX_PLACES_PER_TYPE]:
            location = place['geometry']['location']
            places.append(CandidatePOI(
                poi_id=place.get('place_id') or f"{place['name']}@{location['lat']},{location['lng']}",
                location=Coordinate(location['lat'], location['lng']),
                type=tag,
                name=place['name'],
                address=place.get('vicinity', ''),
            ))
        return places

    def search_nearby(self, center: Coordinate, radius_meters: int, categories: List[str] = None) -> List[CandidatePOI]:
        """Sequential multi-type search; see search_nearby_async for the parallel form"""
        if categories is None:
            categories = DEFAULT_POI_TYPES
        results = []
        for category in categories:
            try:
                results.append(self.find_places_nearby(center, radius_meters, category))
            except CollaboratorUnavailable as e:
                results.append(e)
        return self._merge_place_results(categories, results)

    @staticmethod
    def _merge_place_results(categories: List[str], results: List) -> List[CandidatePOI]:
        merged: List[CandidatePOI] = []
        seen = set()
        failures = 0
        for category, result in zip(categories, results):
            if isinstance(result, Exception):
                failures += 1
                logger.warning("Places search failed for type %s: %s", category, result)
                continue
            for poi in result:
                if poi.poi_id in seen:
                    continue
                seen.add(poi.poi_id)
                merged.append(poi)
        if categories and failures == len(categories):
            raise CollaboratorUnavailable("places", "every place type search failed")
        return merged

    # Async wrapper methods for parallel execution
    async def geocode_address_async(self, address: str) -> Optional[Tuple[str, Coordinate]]:
        """Async wrapper for geocode_address"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.geocode_address, address)

    async def get_routes_async(self, origin: Coordinate, destination: Coordinate) -> List[Route]:
        """Async wrapper for get_routes"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.get_routes, origin, destination)

    async def get_travel_times_async(self, origins: List[Coordinate], destinations: List[Coordinate]) -> List[List[Optional[TravelTime]]]:
        """Async wrapper for get_travel_times"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.get_travel_times, origins, destinations)

    async def find_places_nearby_async(self, center: Coordinate, radius: int, place_type: str) -> List[CandidatePOI]:
        """Async wrapper for find_places_nearby"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.find_places_nearby, center, radius, place_type)

    async def search_nearby_async(self, center: Coordinate, radius_meters: int, categories: List[str] = None) -> List[CandidatePOI]:
        """Run one places search per type in parallel and merge the results"""
        if categories is None:
            categories = DEFAULT_POI_TYPES
        tasks = [self.find_places_nearby_async(center, radius_meters, category) for category in categories]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        return self._merge_place_results(categories, results)

    # --- Helpers ---
    @staticmethod
    def decode_polyline(polyline_str: Optional[str]) -> List[Coordinate]:
        """Decode a Google Maps encoded polyline string into a list of Coordinates."""
        if not polyline_str:
            return []

        index = 0
        lat = 0
        lng = 0
        coordinates: List[Coordinate] = []

        length = len(polyline_str)
        while index < length:
            deltas = []
            for _ in range(2):
                result = 0
                shift = 0
                while True:
                    b = ord(polyline_str[index]) - 63
                    index += 1
                    result |= (b & 0x1f) << shift
                    shift += 5
                    if b < 0x20:
                        break
                deltas.append(~(result >> 1) if (result & 1) else (result >> 1))
            lat += deltas[0]
            lng += deltas[1]
            coordinates.append(Coordinate(lat / 1e5, lng / 1e5))

        return coordinates
