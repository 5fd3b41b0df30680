import pytest

from meetmehalfway.errors import InvalidRoute
from meetmehalfway.geo import distance
from meetmehalfway.midpoint import resolve_geometric_midpoint, resolve_route_midpoint
from meetmehalfway.models import Coordinate, MidpointSource, Route


NYC = Coordinate(40.7128, -74.0060)
LA = Coordinate(34.0522, -118.2437)


def make_route(points, length=None):
    points = tuple(points)
    if length is None:
        length = sum(distance(a, b) for a, b in zip(points, points[1:]))
    return Route(points=points, distance_meters=length, duration_seconds=0)


def test_three_point_straight_route():
    points = [Coordinate(0, 0), Coordinate(0, 1), Coordinate(0, 2)]
    route = make_route(points, length=distance(Coordinate(0, 0), Coordinate(0, 2)))

    midpoint = resolve_route_midpoint(route)

    assert midpoint.source is MidpointSource.ROUTE_BASED
    assert midpoint.location.lat == pytest.approx(0, abs=1e-9)
    assert midpoint.location.lng == pytest.approx(1, abs=1e-6)


def test_two_point_route_is_equidistant():
    a, b = Coordinate(40.70, -74.00), Coordinate(40.72, -73.97)
    midpoint = resolve_route_midpoint(make_route([a, b]))

    assert distance(a, midpoint.location) == pytest.approx(distance(midpoint.location, b), rel=1e-3)


def test_midpoint_interpolates_inside_segment():
    points = [Coordinate(0, 0), Coordinate(0, 1), Coordinate(0, 4)]
    midpoint = resolve_route_midpoint(make_route(points))

    assert midpoint.location.lng == pytest.approx(2, abs=1e-6)


def test_single_point_route_is_invalid():
    with pytest.raises(InvalidRoute):
        resolve_route_midpoint(make_route([NYC], length=0))


def test_empty_route_is_invalid():
    with pytest.raises(InvalidRoute):
        resolve_route_midpoint(make_route([], length=0))


def test_negative_length_is_invalid():
    with pytest.raises(InvalidRoute):
        resolve_route_midpoint(make_route([NYC, LA], length=-1))


def test_zero_length_route_returns_the_point():
    midpoint = resolve_route_midpoint(make_route([NYC, NYC, NYC], length=0))
    assert midpoint.location == NYC


def test_repeated_point_with_reported_length_returns_the_point():
    midpoint = resolve_route_midpoint(make_route([NYC, NYC], length=500))
    assert midpoint.location == NYC


def test_overstated_length_falls_back_to_middle_vertex():
    points = [Coordinate(0, 0), Coordinate(0, 1), Coordinate(0, 2), Coordinate(0, 3)]
    geometric = distance(points[0], points[-1])
    midpoint = resolve_route_midpoint(make_route(points, length=geometric * 10))

    assert midpoint.source is MidpointSource.ROUTE_BASED
    assert midpoint.location == points[2]


def test_zero_reported_length_returns_start():
    points = [Coordinate(0, 0), Coordinate(0, 1)]
    midpoint = resolve_route_midpoint(make_route(points, length=0))
    assert midpoint.location == points[0]


def test_geometric_midpoint_nyc_la():
    midpoint = resolve_geometric_midpoint(NYC, LA)

    assert midpoint.source is MidpointSource.GEOMETRIC
    assert 34 < midpoint.location.lat < 42
    assert -118.2437 < midpoint.location.lng < -74.0060
    to_nyc = distance(midpoint.location, NYC)
    to_la = distance(midpoint.location, LA)
    assert to_nyc == pytest.approx(to_la, rel=1e-6)


def test_geometric_midpoint_is_symmetric():
    forward = resolve_geometric_midpoint(NYC, LA).location
    backward = resolve_geometric_midpoint(LA, NYC).location

    assert forward.lat == pytest.approx(backward.lat, abs=1e-9)
    assert forward.lng == pytest.approx(backward.lng, abs=1e-9)


def test_geometric_midpoint_of_same_point():
    midpoint = resolve_geometric_midpoint(NYC, NYC).location
    assert midpoint.lat == pytest.approx(NYC.lat)
    assert midpoint.lng == pytest.approx(NYC.lng)


def test_geometric_midpoint_across_antimeridian():
    midpoint = resolve_geometric_midpoint(Coordinate(0, 179), Coordinate(0, -179)).location
    assert midpoint.lat == pytest.approx(0, abs=1e-9)
    assert abs(midpoint.lng) == pytest.approx(180, abs=1e-9)
