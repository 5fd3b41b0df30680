"""
In-process store for saved locations and searches.

Records are scoped to the opaque user id supplied by the identity header;
lookups for another user's record behave exactly like a missing record.
"""

import datetime as _dt
import threading
import uuid
from dataclasses import asdict, dataclass, replace
from typing import Dict, List, Optional

from .errors import InvalidInput, NotFound
from .geo import parse_coordinate
from .models import Coordinate, Midpoint, MidpointSource

UPDATABLE_LOCATION_FIELDS = ('name', 'address', 'lat', 'lng')


def _now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


@dataclass(frozen=True)
class SavedLocation:
    id: str
    user_id: str
    name: str
    address: str
    lat: float
    lng: float
    created_at: _dt.datetime
    updated_at: _dt.datetime

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        data['updated_at'] = self.updated_at.isoformat()
        return data


@dataclass(frozen=True)
class SavedSearch:
    id: str
    user_id: str
    start_address: str
    start: Coordinate
    end_address: str
    end: Coordinate
    midpoint: Midpoint
    created_at: _dt.datetime

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'start_address': self.start_address,
            'start': self.start.to_dict(),
            'end_address': self.end_address,
            'end': self.end.to_dict(),
            'midpoint': self.midpoint.to_dict(),
            'created_at': self.created_at.isoformat(),
        }


class LocationStore:
    def __init__(self):
        self._locations: Dict[str, SavedLocation] = {}
        self._searches: Dict[str, SavedSearch] = {}
        self._lock = threading.Lock()

    # --- saved locations ---
    def create_location(self, user_id: str, name: str, address: str, lat, lng) -> SavedLocation:
        if not name or not str(name).strip():
            raise InvalidInput("name is required")
        point = parse_coordinate(lat, lng)
        now = _now()
        location = SavedLocation(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=str(name).strip(),
            address=address or '',
            lat=point.lat,
            lng=point.lng,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._locations[location.id] = location
        return location

    def list_locations(self, user_id: str) -> List[SavedLocation]:
        """Newest first (dicts keep creation order)"""
        with self._lock:
            owned = [loc for loc in self._locations.values() if loc.user_id == user_id]
        return owned[::-1]

    def get_location(self, user_id: str, location_id: str) -> SavedLocation:
        with self._lock:
            location = self._locations.get(location_id)
        if location is None or location.user_id != user_id:
            raise NotFound("Location not found")
        return location

    def update_location(self, user_id: str, location_id: str, changes: Dict) -> SavedLocation:
        unknown = set(changes) - set(UPDATABLE_LOCATION_FIELDS)
        if unknown:
            raise InvalidInput(f"cannot update fields: {', '.join(sorted(unknown))}")
        with self._lock:
            current = self._locations.get(location_id)
            if current is None or current.user_id != user_id:
                raise NotFound("Location not found")
            point = parse_coordinate(changes.get('lat', current.lat), changes.get('lng', current.lng))
            name = changes.get('name', current.name)
            if not name or not str(name).strip():
                raise InvalidInput("name is required")
            updated = replace(
                current,
                name=str(name).strip(),
                address=changes.get('address', current.address) or '',
                lat=point.lat,
                lng=point.lng,
                updated_at=_now(),
            )
            self._locations[location_id] = updated
        return updated

    def delete_location(self, user_id: str, location_id: str):
        with self._lock:
            current = self._locations.get(location_id)
            if current is None or current.user_id != user_id:
                raise NotFound("Location not found")
            del self._locations[location_id]

    # --- saved searches ---
    def create_search(
        self,
        user_id: str,
        start_address: str,
        start: Coordinate,
        end_address: str,
        end: Coordinate,
        midpoint: Optional[Midpoint] = None,
    ) -> SavedSearch:
        search = SavedSearch(
            id=str(uuid.uuid4()),
            user_id=user_id,
            start_address=start_address or '',
            start=start,
            end_address=end_address or '',
            end=end,
            midpoint=midpoint or Midpoint.not_computed(),
            created_at=_now(),
        )
        with self._lock:
            self._searches[search.id] = search
        return search

    def list_searches(self, user_id: str) -> List[SavedSearch]:
        """Newest first"""
        with self._lock:
            owned = [s for s in self._searches.values() if s.user_id == user_id]
        return owned[::-1]

    def get_search(self, user_id: str, search_id: str) -> SavedSearch:
        with self._lock:
            search = self._searches.get(search_id)
        if search is None or search.user_id != user_id:
            raise NotFound("Search not found")
        return search

    def set_search_midpoint(self, user_id: str, search_id: str, midpoint: Midpoint) -> SavedSearch:
        if midpoint.source is MidpointSource.NOT_COMPUTED:
            raise InvalidInput("cannot store an uncomputed midpoint")
        with self._lock:
            current = self._searches.get(search_id)
            if current is None or current.user_id != user_id:
                raise NotFound("Search not found")
            updated = replace(current, midpoint=midpoint)
            self._searches[search_id] = updated
        return updated
