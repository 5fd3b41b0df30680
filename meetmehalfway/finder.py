import asyncio
import logging
from typing import Dict, List, Optional, Tuple, Union

from .errors import CollaboratorUnavailable, InvalidInput, InvalidRoute
from .geo import parse_point
from .midpoint import resolve_geometric_midpoint, resolve_route_midpoint
from .models import Coordinate, Midpoint, Route
from .scoring import RankFilters, SortKey, lookup_travel_times, rank

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_RADIUS_M = 1500
DEFAULT_TRAVEL_TIME_CONCURRENCY = 8
ROUTE_CHOICES = ('main', 'alternate')

Location = Union[str, Dict]


class HalfwayFinder:
    """Finds a fair meeting point between two locations and ranks places around it"""

    def __init__(
        self,
        maps_service,
        search_radius: int = DEFAULT_SEARCH_RADIUS_M,
        max_concurrency: int = DEFAULT_TRAVEL_TIME_CONCURRENCY,
        max_results: Optional[int] = None,
    ):
        self.maps_service = maps_service
        self.search_radius = search_radius
        self.max_concurrency = max_concurrency
        self.max_results = max_results

    def _run(self, coro):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    async def locate_async(self, value: Location, name: str) -> Tuple[str, Coordinate]:
        """Turn a request value (address string or {lat, lng}) into a coordinate"""
        if isinstance(value, dict):
            point = parse_point(value, name)
            return value.get('address') or f"{point.lat},{point.lng}", point
        if isinstance(value, str) and value.strip():
            geocoded = await self.maps_service.geocode_address_async(value.strip())
            if not geocoded:
                raise InvalidInput(f"Could not geocode address: {value}")
            return geocoded
        raise InvalidInput(f"{name} must be an address or an object with lat and lng")

    async def resolve_midpoints_async(self, start: Coordinate, end: Coordinate) -> Dict:
        """Midpoints along the main and alternate driving routes.

        When routing fails the main midpoint falls back to the great-circle
        midpoint and is tagged geometric.
        """
        routes: List[Route] = []
        try:
            routes = await self.maps_service.get_routes_async(start, end)
        except CollaboratorUnavailable as e:
            logger.warning("Routing unavailable, using geometric midpoint: %s", e)

        main_route = routes[0] if routes else None
        alternate_route = None
        for candidate in routes[1:]:
            if candidate.points != main_route.points:
                alternate_route = candidate
                break

        midpoint = None
        if main_route is not None:
            try:
                midpoint = resolve_route_midpoint(main_route)
            except InvalidRoute as e:
                logger.warning("Main route unusable, using geometric midpoint: %s", e)
                main_route = None
        if midpoint is None:
            midpoint = resolve_geometric_midpoint(start, end)

        alternate_midpoint = Midpoint.not_computed()
        if alternate_route is not None:
            try:
                alternate_midpoint = resolve_route_midpoint(alternate_route)
            except InvalidRoute as e:
                logger.warning("Alternate route unusable: %s", e)
                alternate_route = None

        return {
            'route': main_route,
            'alternate_route': alternate_route,
            'midpoint': midpoint,
            'alternate_midpoint': alternate_midpoint,
        }

    def resolve_midpoints(self, start: Coordinate, end: Coordinate) -> Dict:
        return self._run(self.resolve_midpoints_async(start, end))

    async def find_meeting_places_async(
        self,
        location1: Location,
        location2: Location,
        filters: Optional[RankFilters] = None,
        sort_key: SortKey = SortKey.TOTAL_TIME,
        selected_route: str = 'main',
        search_radius: Optional[int] = None,
        categories: Optional[List[str]] = None,
    ) -> Dict:
        """
        Geocode both locations, find the route midpoint, search places near it
        and rank them by travel time symmetry.
        """
        if selected_route not in ROUTE_CHOICES:
            raise InvalidInput(f"route must be one of: {', '.join(ROUTE_CHOICES)}")
        radius = search_radius or self.search_radius

        (label1, start), (label2, end) = await asyncio.gather(
            self.locate_async(location1, 'address1'),
            self.locate_async(location2, 'address2'),
        )

        resolved = await self.resolve_midpoints_async(start, end)
        if selected_route == 'alternate' and not resolved['alternate_midpoint'].is_computed:
            logger.info("Alternate route requested but unavailable, using main route")
            selected_route = 'main'
        if selected_route == 'alternate':
            target = resolved['alternate_midpoint']
        else:
            target = resolved['midpoint']

        try:
            candidates = await self.maps_service.search_nearby_async(target.location, radius, categories)
        except CollaboratorUnavailable as e:
            logger.warning("Place search unavailable: %s", e)
            candidates = []
        logger.info("Found %d candidate places around %s", len(candidates), target.location)

        times = await lookup_travel_times(
            candidates, start, end, self.maps_service, max_concurrency=self.max_concurrency
        )
        ranked = rank(
            candidates,
            lambda poi: times.get(poi.poi_id, (None, None)),
            filters=filters,
            sort_key=sort_key,
        )
        if self.max_results:
            ranked = ranked[:self.max_results]

        route = resolved['route']
        alternate_route = resolved['alternate_route']
        return {
            'address1': {'input': location1, 'formatted_address': label1, 'location': start.to_dict()},
            'address2': {'input': location2, 'formatted_address': label2, 'location': end.to_dict()},
            'selected_route': selected_route,
            'route': route.to_dict() if route else None,
            'alternate_route': alternate_route.to_dict() if alternate_route else None,
            'midpoint': resolved['midpoint'].to_dict(),
            'alternate_midpoint': resolved['alternate_midpoint'].to_dict(),
            'search_radius': radius,
            'sort_by': sort_key.value,
            'candidate_count': len(candidates),
            'points_of_interest': [s.to_dict() for s in ranked],
        }

    def find_meeting_places(self, location1: Location, location2: Location, **kwargs) -> Dict:
        """Blocking form of find_meeting_places_async"""
        return self._run(self.find_meeting_places_async(location1, location2, **kwargs))
