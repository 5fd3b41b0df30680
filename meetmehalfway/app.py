from flask import Flask, request, jsonify, g
from flask_cors import CORS
from dotenv import load_dotenv
from functools import wraps
import os
import logging
import json
import math
from time import perf_counter
from typing import Optional

from .errors import CollaboratorUnavailable, HalfwayError, InvalidInput, InvalidRoute, NotFound
from .finder import DEFAULT_SEARCH_RADIUS_M, DEFAULT_TRAVEL_TIME_CONCURRENCY, HalfwayFinder
from .geo import parse_point
from .maps_service import GoogleMapsService
from .midpoint import resolve_geometric_midpoint
from .models import Midpoint, MidpointSource
from .scoring import RankFilters, SortKey
from .storage import LocationStore

# Load environment variables
load_dotenv()

USER_HEADER = 'X-User-Id'
LOG_FILE = os.getenv('LOG_FILE', 'app.log')

# Configure logging
_handlers = [logging.StreamHandler()]
if LOG_FILE:
    _handlers.append(logging.FileHandler(LOG_FILE))
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=_handlers
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)  # Enable CORS for all routes


# Per-request timing: record start time and log duration on completion
@app.before_request
def _start_timer():
    g._start_time = perf_counter()


@app.after_request
def _log_request_duration(response):
    start = getattr(g, '_start_time', None)
    if start is not None:
        duration_ms = (perf_counter() - start) * 1000.0
        response.headers['X-Process-Time-ms'] = f"{duration_ms:.1f}"
        logger.info(
            "request completed: method=%s path=%s status=%s duration_ms=%.1f user=%s remote_addr=%s",
            request.method,
            request.full_path if request.query_string else request.path,
            response.status_code,
            duration_ms,
            'yes' if request.headers.get(USER_HEADER) else 'anonymous',
            request.remote_addr,
        )
    return response


@app.teardown_request
def _teardown_request_log(error=None):
    # If an unhandled exception occurred, ensure we still log duration
    if error is not None:
        start = getattr(g, '_start_time', None)
        duration_ms = (perf_counter() - start) * 1000.0 if start is not None else None
        logger.error(
            "request error: method=%s path=%s duration_ms=%s error=%s",
            request.method,
            request.path,
            f"{duration_ms:.1f}" if duration_ms is not None else 'unknown',
            repr(error),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


# Initialize services
api_key = os.getenv('GOOGLE_MAPS_API_KEY')
logger.info(f"API Key found: {'Yes' if api_key and api_key != 'your_api_key_here' else 'No'}")

store = LocationStore()
maps_service = None
finder = None

if not api_key or api_key == "your_api_key_here":
    logger.warning("GOOGLE_MAPS_API_KEY not found or not configured in environment variables")
else:
    try:
        logger.info("Initializing Google Maps service...")
        maps_service = GoogleMapsService(api_key)
        finder = HalfwayFinder(
            maps_service,
            search_radius=_int_env('POI_SEARCH_RADIUS', DEFAULT_SEARCH_RADIUS_M),
            max_concurrency=_int_env('TRAVEL_TIME_CONCURRENCY', DEFAULT_TRAVEL_TIME_CONCURRENCY),
            max_results=_int_env('MAX_POI_RESULTS', 20),
        )
        logger.info("Google Maps service initialized successfully")
    except ValueError as e:
        logger.error(f"Error initializing Google Maps service: {e}")
        maps_service = None
        finder = None


def require_user(view):
    """Reject requests without an identity header"""
    @wraps(view)
    def wrapper(*args, **kwargs):
        user_id = request.headers.get(USER_HEADER, '').strip()
        if not user_id:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        g.user_id = user_id
        return view(*args, **kwargs)
    return wrapper


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput('JSON data is required')
    return data


def _not_configured():
    logger.error("Google Maps API key not configured - cannot process request")
    return jsonify({'success': False, 'error': 'Google Maps API key not configured'}), 500


def _parse_search_radius(value) -> Optional[int]:
    """Meters; None keeps the configured radius"""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput('search_radius must be a number of meters')
    if not math.isfinite(value) or value < 100 or value > 10000:
        raise InvalidInput('search_radius must be between 100 and 10000 meters')
    return int(value)


def _query_number(name: str) -> Optional[float]:
    raw = request.args.get(name)
    if raw is None or raw == '':
        return None
    try:
        return float(raw)
    except ValueError:
        raise InvalidInput(f'{name} must be a number')


def _resolve_midpoints(start, end) -> dict:
    if finder is None:
        # no routing collaborator at all
        return {
            'route': None,
            'alternate_route': None,
            'midpoint': resolve_geometric_midpoint(start, end),
            'alternate_midpoint': Midpoint.not_computed(),
        }
    return finder.resolve_midpoints(start, end)


@app.errorhandler(InvalidInput)
@app.errorhandler(InvalidRoute)
def _bad_request(error):
    logger.warning(f"Rejected request: {error}")
    return jsonify({'success': False, 'error': str(error)}), 400


@app.errorhandler(NotFound)
def _missing_record(error):
    return jsonify({'success': False, 'error': str(error)}), 404


@app.errorhandler(CollaboratorUnavailable)
def _collaborator_down(error):
    logger.error(f"Collaborator unavailable: {error}")
    return jsonify({'success': False, 'error': str(error)}), 502


@app.route('/', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        'message': 'Meet Me Halfway API is running!',
        'endpoints': {
            'geocode': '/api/geocode',
            'midpoint': '/api/midpoint',
            'meet_me_halfway': '/api/meet-me-halfway',
            'saved_locations': '/api/saved-locations',
            'searches': '/api/searches',
            'search_results': '/api/searches/<id>/results',
            'health': '/'
        },
        'maps_configured': finder is not None,
        'status': 'healthy'
    })


@app.route('/api/geocode', methods=['POST'])
def geocode_address():
    """
    Geocode a single address
    Expected JSON: {"address": "123 Main St, City, State"}
    """
    if not maps_service:
        return _not_configured()

    data = _json_body()
    address = data.get('address')
    if not address or not isinstance(address, str):
        raise InvalidInput('Address is required')

    logger.info(f"Attempting to geocode address: '{address}'")
    result = maps_service.geocode_address(address)
    if not result:
        logger.warning(f"Failed to geocode address: '{address}'")
        return jsonify({
            'success': False,
            'error': 'Could not geocode the provided address'
        }), 404

    formatted_address, location = result
    return jsonify({
        'success': True,
        'data': {'formatted_address': formatted_address, **location.to_dict()}
    })


@app.route('/api/midpoint', methods=['POST'])
def calculate_midpoint():
    """
    Midpoints along the main and alternate driving routes
    Expected JSON: {
        "start": {"lat": 40.7128, "lng": -74.0060},
        "end": {"lat": 40.7589, "lng": -73.9851}
    }
    """
    data = _json_body()
    start = parse_point(data.get('start'), 'start')
    end = parse_point(data.get('end'), 'end')

    resolved = _resolve_midpoints(start, end)
    route = resolved['route']
    alternate_route = resolved['alternate_route']
    include_points = bool(data.get('include_points', False))
    return jsonify({
        'success': True,
        'data': {
            'midpoint': resolved['midpoint'].to_dict(),
            'alternate_midpoint': resolved['alternate_midpoint'].to_dict(),
            'route': route.to_dict(include_points) if route else None,
            'alternate_route': alternate_route.to_dict(include_points) if alternate_route else None,
        }
    })


@app.route('/api/meet-me-halfway', methods=['POST'])
def meet_me_halfway():
    """
    Find the halfway point between two locations and rank places around it
    Expected JSON: {
        "address1": "123 Main St, City, State" or {"lat": .., "lng": ..},
        "address2": "456 Oak Ave, City, State" or {"lat": .., "lng": ..},
        "category": "all|food|activities|lodging|other",  // optional
        "max_time_difference_minutes": 15,                 // optional, null = any
        "sort_by": "total_time",                           // optional
        "favorites_only": false, "favorite_ids": [],       // optional
        "route": "main|alternate",                         // optional
        "search_radius": 1500                              // optional, meters
    }
    """
    logger.info("=== MEET ME HALFWAY REQUEST ===")
    if not finder:
        return _not_configured()

    data = _json_body()
    logger.info(f"Request data received: {json.dumps(data)}")

    address1 = data.get('address1')
    address2 = data.get('address2')
    if not address1 or not address2:
        raise InvalidInput('Both address1 and address2 are required')

    search_radius = _parse_search_radius(data.get('search_radius'))

    filters = RankFilters.from_request(
        category=data.get('category'),
        max_time_difference_minutes=data.get('max_time_difference_minutes'),
        favorites_only=data.get('favorites_only', False),
        favorite_ids=data.get('favorite_ids'),
    )
    sort_key = SortKey.parse(data.get('sort_by'))

    _algo_start = perf_counter()
    result = finder.find_meeting_places(
        address1,
        address2,
        filters=filters,
        sort_key=sort_key,
        selected_route=data.get('route') or 'main',
        search_radius=search_radius,
    )
    _compute_ms = (perf_counter() - _algo_start) * 1000.0
    logger.info(
        "Time to find meeting places = %.1f ms (midpoint=%s, places=%d of %d)",
        _compute_ms,
        result['midpoint']['source'],
        len(result['points_of_interest']),
        result['candidate_count'],
    )

    response = jsonify({'success': True, 'data': result})
    response.headers['X-Compute-Time-ms'] = f"{_compute_ms:.1f}"
    return response


@app.route('/api/saved-locations', methods=['GET'])
@require_user
def list_saved_locations():
    locations = store.list_locations(g.user_id)
    return jsonify({'success': True, 'data': [loc.to_dict() for loc in locations]})


@app.route('/api/saved-locations', methods=['POST'])
@require_user
def create_saved_location():
    """
    Expected JSON: {"name": "Home", "address": "...", "lat": 40.7, "lng": -74.0}
    """
    data = _json_body()
    location = store.create_location(
        g.user_id, data.get('name'), data.get('address'), data.get('lat'), data.get('lng')
    )
    logger.info(f"Saved location {location.id}")
    return jsonify({'success': True, 'data': location.to_dict()}), 201


@app.route('/api/saved-locations/<location_id>', methods=['GET'])
@require_user
def get_saved_location(location_id):
    return jsonify({'success': True, 'data': store.get_location(g.user_id, location_id).to_dict()})


@app.route('/api/saved-locations/<location_id>', methods=['PUT', 'PATCH'])
@require_user
def update_saved_location(location_id):
    location = store.update_location(g.user_id, location_id, _json_body())
    return jsonify({'success': True, 'data': location.to_dict()})


@app.route('/api/saved-locations/<location_id>', methods=['DELETE'])
@require_user
def delete_saved_location(location_id):
    store.delete_location(g.user_id, location_id)
    return jsonify({'success': True, 'data': None})


def _parse_stored_midpoint(value) -> Midpoint:
    if value is None:
        return Midpoint.not_computed()
    if not isinstance(value, dict):
        raise InvalidInput("midpoint must have lat and lng properties")
    try:
        source = MidpointSource(value.get('source', MidpointSource.ROUTE_BASED.value))
    except ValueError:
        raise InvalidInput("midpoint source must be 'route-based' or 'geometric'")
    if source is MidpointSource.NOT_COMPUTED:
        return Midpoint.not_computed()
    return Midpoint(source, parse_point(value, 'midpoint'))


@app.route('/api/searches', methods=['GET'])
@require_user
def list_searches():
    searches = store.list_searches(g.user_id)
    return jsonify({'success': True, 'data': [s.to_dict() for s in searches]})


@app.route('/api/searches', methods=['POST'])
@require_user
def create_search():
    """
    Expected JSON: {
        "start": {"lat": .., "lng": .., "address": ".."},
        "end": {"lat": .., "lng": .., "address": ".."},
        "midpoint": {"lat": .., "lng": .., "source": "route-based"}  // optional
    }
    """
    data = _json_body()
    start = parse_point(data.get('start'), 'start')
    end = parse_point(data.get('end'), 'end')
    search = store.create_search(
        g.user_id,
        data['start'].get('address', ''),
        start,
        data['end'].get('address', ''),
        end,
        _parse_stored_midpoint(data.get('midpoint')),
    )
    return jsonify({'success': True, 'data': search.to_dict()}), 201


def _needs_midpoint(search) -> bool:
    """Missing, or a geometric fallback that a configured router can improve on"""
    if not search.midpoint.is_computed:
        return True
    return finder is not None and search.midpoint.source is MidpointSource.GEOMETRIC


@app.route('/api/searches/<search_id>', methods=['GET'])
@require_user
def get_search(search_id):
    """Stored search; its midpoint is computed on first read when missing"""
    search = store.get_search(g.user_id, search_id)
    if _needs_midpoint(search):
        midpoint = _resolve_midpoints(search.start, search.end)['midpoint']
        search = store.set_search_midpoint(g.user_id, search_id, midpoint)
    return jsonify({'success': True, 'data': search.to_dict()})


@app.route('/api/searches/<search_id>/results', methods=['GET'])
@require_user
def get_search_results(search_id):
    """
    Re-run a stored search: ranked places around its midpoint
    Query args: category, max_time_difference_minutes, sort_by, favorites_only,
    favorite_ids (comma separated), route, search_radius
    """
    search = store.get_search(g.user_id, search_id)
    if not finder:
        return _not_configured()

    args = request.args
    favorite_ids = [i for raw in args.getlist('favorite_ids') for i in raw.split(',') if i]
    filters = RankFilters.from_request(
        category=args.get('category'),
        max_time_difference_minutes=args.get('max_time_difference_minutes'),
        favorites_only=args.get('favorites_only', '').lower() in ('1', 'true', 'yes'),
        favorite_ids=favorite_ids,
    )
    sort_key = SortKey.parse(args.get('sort_by'))

    result = finder.find_meeting_places(
        {**search.start.to_dict(), 'address': search.start_address},
        {**search.end.to_dict(), 'address': search.end_address},
        filters=filters,
        sort_key=sort_key,
        selected_route=args.get('route') or 'main',
        search_radius=_parse_search_radius(_query_number('search_radius')),
    )
    midpoint = _parse_stored_midpoint(result['midpoint'])
    if _needs_midpoint(search) and midpoint.is_computed:
        search = store.set_search_midpoint(g.user_id, search_id, midpoint)
    logger.info(
        "Search %s re-run: midpoint=%s, places=%d of %d",
        search_id,
        search.midpoint.source.value,
        len(result['points_of_interest']),
        result['candidate_count'],
    )
    return jsonify({'success': True, 'data': {'search': search.to_dict(), **result}})


@app.errorhandler(HalfwayError)
def _halfway_error(error):
    logger.error(f"Unhandled application error: {error!r}")
    return jsonify({'success': False, 'error': str(error)}), 500


@app.errorhandler(404)
def not_found(error):
    return jsonify({'success': False, 'error': 'Endpoint not found'}), 404


@app.errorhandler(500)
def internal_error(error):
    return jsonify({'success': False, 'error': 'Internal server error'}), 500
