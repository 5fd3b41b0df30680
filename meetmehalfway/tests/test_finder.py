import pytest

from conftest import JERSEY_CITY, NYC, FakeMapsService
from meetmehalfway.errors import CollaboratorUnavailable, InvalidInput
from meetmehalfway.finder import HalfwayFinder
from meetmehalfway.midpoint import resolve_geometric_midpoint, resolve_route_midpoint
from meetmehalfway.models import Route
from meetmehalfway.scoring import RankFilters, SortKey


def test_route_midpoints(fake_service):
    finder = HalfwayFinder(fake_service)

    resolved = finder.resolve_midpoints(NYC, JERSEY_CITY)

    assert resolved['midpoint'] == resolve_route_midpoint(fake_service.routes[0])
    assert resolved['alternate_midpoint'] == resolve_route_midpoint(fake_service.routes[1])
    assert resolved['route'].summary == 'main'
    assert resolved['alternate_route'].summary == 'alternate'


def test_routing_failure_falls_back_to_geometric():
    service = FakeMapsService(routes=CollaboratorUnavailable("directions", "timeout"))
    finder = HalfwayFinder(service)

    resolved = finder.resolve_midpoints(NYC, JERSEY_CITY)

    assert resolved['midpoint'] == resolve_geometric_midpoint(NYC, JERSEY_CITY)
    assert resolved['midpoint'].source.value == 'geometric'
    assert resolved['route'] is None
    assert not resolved['alternate_midpoint'].is_computed


def test_degenerate_route_falls_back_to_geometric():
    broken = Route(points=(NYC,), distance_meters=0, duration_seconds=0)
    finder = HalfwayFinder(FakeMapsService(routes=[broken]))

    resolved = finder.resolve_midpoints(NYC, JERSEY_CITY)

    assert resolved['midpoint'].source.value == 'geometric'
    assert resolved['route'] is None


def test_identical_alternate_is_ignored(fake_service):
    main = fake_service.routes[0]
    finder = HalfwayFinder(FakeMapsService(routes=[main, main]))

    resolved = finder.resolve_midpoints(NYC, JERSEY_CITY)

    assert resolved['alternate_route'] is None
    assert resolved['alternate_midpoint'].source.value == 'not-computed'


def test_find_meeting_places_ranks_by_total_time(fake_service):
    finder = HalfwayFinder(fake_service)

    data = finder.find_meeting_places('New York, NY', 'Jersey City, NJ')

    assert data['midpoint']['source'] == 'route-based'
    assert data['address1']['formatted_address'] == 'New York, NY, USA'
    assert data['candidate_count'] == 4
    ids = [p['poi_id'] for p in data['points_of_interest']]
    # p2 1420s, p1 1500s, p3 2300s, p4 unknown
    assert ids == ['p2', 'p1', 'p3', 'p4']
    p1 = data['points_of_interest'][1]
    assert p1['total_travel_time_seconds'] == 1500
    assert p1['time_difference_minutes'] == 5.0
    assert p1['distance_from_address1_meters'] == 6000


def test_find_meeting_places_applies_filters(fake_service):
    finder = HalfwayFinder(fake_service)

    data = finder.find_meeting_places(
        {'lat': NYC.lat, 'lng': NYC.lng},
        {'lat': JERSEY_CITY.lat, 'lng': JERSEY_CITY.lng},
        filters=RankFilters(max_time_difference_seconds=600),
        sort_key=SortKey.NAME,
    )

    names = [p['name'] for p in data['points_of_interest']]
    assert names == ['Blue Cafe', 'Corner Library', 'Harbor Park']


def test_alternate_route_searches_around_alternate_midpoint(fake_service):
    finder = HalfwayFinder(fake_service)

    data = finder.find_meeting_places('New York, NY', 'Jersey City, NJ', selected_route='alternate')

    assert data['selected_route'] == 'alternate'
    center, _ = fake_service.search_calls[-1]
    assert center == resolve_route_midpoint(fake_service.routes[1]).location


def test_missing_alternate_route_uses_main(fake_service):
    fake_service.routes = fake_service.routes[:1]
    finder = HalfwayFinder(fake_service)

    data = finder.find_meeting_places('New York, NY', 'Jersey City, NJ', selected_route='alternate')

    assert data['selected_route'] == 'main'
    assert data['alternate_route'] is None


def test_unknown_route_choice(fake_service):
    with pytest.raises(InvalidInput):
        HalfwayFinder(fake_service).find_meeting_places('New York, NY', 'Jersey City, NJ', selected_route='scenic')


def test_search_radius_override(fake_service):
    HalfwayFinder(fake_service, search_radius=1500).find_meeting_places(
        'New York, NY', 'Jersey City, NJ', search_radius=3000
    )
    assert fake_service.search_calls[-1][1] == 3000


def test_ungeocodable_address(fake_service):
    with pytest.raises(InvalidInput):
        HalfwayFinder(fake_service).find_meeting_places('Atlantis', 'Jersey City, NJ')


def test_invalid_coordinate(fake_service):
    with pytest.raises(InvalidInput):
        HalfwayFinder(fake_service).find_meeting_places({'lat': 100, 'lng': 0}, 'Jersey City, NJ')


def test_place_search_failure_returns_no_places(fake_service):
    fake_service.places = CollaboratorUnavailable("places", "quota")

    data = HalfwayFinder(fake_service).find_meeting_places('New York, NY', 'Jersey City, NJ')

    assert data['points_of_interest'] == []
    assert data['midpoint']['source'] == 'route-based'


def test_max_results(fake_service):
    data = HalfwayFinder(fake_service, max_results=2).find_meeting_places('New York, NY', 'Jersey City, NJ')
    assert len(data['points_of_interest']) == 2
