import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from .errors import CollaboratorUnavailable, InvalidInput
from .models import CandidatePOI, Coordinate, ScoredPOI, TravelTime

logger = logging.getLogger(__name__)

CATEGORY_ALL = 'all'
CATEGORY_OTHER = 'other'

POI_TYPE_CATEGORIES = {
    'restaurant': 'food',
    'cafe': 'food',
    'bar': 'food',
    'pub': 'food',
    'fast_food': 'food',
    'park': 'activities',
    'cinema': 'activities',
    'theatre': 'activities',
    'theater': 'activities',
    'museum': 'activities',
    'hotel': 'lodging',
    'hostel': 'lodging',
    'guest_house': 'lodging',
}
CATEGORIES = (CATEGORY_ALL, 'food', 'activities', 'lodging', CATEGORY_OTHER)

# destinations per travel time request
TRAVEL_TIME_BATCH_SIZE = 25

TimeValue = Union[TravelTime, float, int, None]
TimesLookup = Callable[[CandidatePOI], Tuple[TimeValue, TimeValue]]


def category_for_type(poi_type: str) -> str:
    return POI_TYPE_CATEGORIES.get((poi_type or '').lower(), CATEGORY_OTHER)


def score(
    poi: CandidatePOI,
    time_from_a: Optional[float],
    time_from_b: Optional[float],
    distance_from_a: Optional[float] = None,
    distance_from_b: Optional[float] = None,
    is_favorite: bool = False,
) -> ScoredPOI:
    """Attach travel times to a candidate.

    Total time and time difference are derived by ScoredPOI and stay unknown
    when either time is missing.
    """
    return ScoredPOI(
        poi=poi,
        time_from_a=time_from_a,
        time_from_b=time_from_b,
        distance_from_a=distance_from_a,
        distance_from_b=distance_from_b,
        is_favorite=is_favorite,
    )


class SortKey(str, Enum):
    NAME = 'name'
    DISTANCE_FROM_A = 'distance_from_a'
    DISTANCE_FROM_B = 'distance_from_b'
    TOTAL_TIME = 'total_time'
    TIME_DIFFERENCE = 'time_difference'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'SortKey':
        if value is None or value == '':
            return cls.TOTAL_TIME
        aliases = {
            'distanceFromStart': cls.DISTANCE_FROM_A,
            'distanceFromEnd': cls.DISTANCE_FROM_B,
            'totalTime': cls.TOTAL_TIME,
            'timeDifference': cls.TIME_DIFFERENCE,
        }
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            choices = ', '.join(k.value for k in cls)
            raise InvalidInput(f"sort_by must be one of: {choices}")


@dataclass(frozen=True)
class RankFilters:
    category: Optional[str] = None
    max_time_difference_seconds: Optional[float] = None
    favorites_only: bool = False
    favorite_ids: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_request(
        cls,
        category: Optional[str] = None,
        max_time_difference_minutes=None,
        favorites_only=False,
        favorite_ids: Optional[Iterable[str]] = None,
    ) -> 'RankFilters':
        """Build filters from request values (minutes, category names, id list)"""
        if category is not None:
            category = str(category).lower()
            if category not in CATEGORIES:
                raise InvalidInput(f"category must be one of: {', '.join(CATEGORIES)}")
            if category == CATEGORY_ALL:
                category = None

        max_seconds = None
        if max_time_difference_minutes not in (None, '', 'any'):
            try:
                minutes = float(max_time_difference_minutes)
            except (TypeError, ValueError):
                raise InvalidInput("max_time_difference_minutes must be a number or 'any'")
            if not math.isfinite(minutes) or minutes < 0:
                raise InvalidInput("max_time_difference_minutes must be a finite, non-negative number")
            max_seconds = minutes * 60

        if favorite_ids is None:
            favorite_ids = []
        if isinstance(favorite_ids, str) or not all(isinstance(i, str) for i in favorite_ids):
            raise InvalidInput("favorite_ids must be a list of strings")

        return cls(
            category=category,
            max_time_difference_seconds=max_seconds,
            favorites_only=bool(favorites_only),
            favorite_ids=frozenset(favorite_ids),
        )

    def accepts(self, scored: ScoredPOI) -> bool:
        if self.category and category_for_type(scored.poi.type) != self.category:
            return False
        if (
            self.max_time_difference_seconds is not None
            and scored.time_difference is not None
            and scored.time_difference > self.max_time_difference_seconds
        ):
            return False
        if self.favorites_only and not scored.is_favorite:
            return False
        return True


def _split(value: TimeValue) -> Tuple[Optional[float], Optional[float]]:
    if value is None:
        return None, None
    if isinstance(value, TravelTime):
        return value.duration_seconds, value.distance_meters
    return float(value), None


def _sort_key(key: SortKey):
    if key is SortKey.NAME:
        return lambda s: s.poi.name.casefold()
    attr = key.value

    def numeric(s: ScoredPOI):
        value = getattr(s, attr)
        # unknown values go after every known one
        return (value is None, value if value is not None else 0.0)
    return numeric


def rank(
    candidates: List[CandidatePOI],
    times_lookup: TimesLookup,
    filters: Optional[RankFilters] = None,
    sort_key: SortKey = SortKey.TOTAL_TIME,
) -> List[ScoredPOI]:
    """Score, filter and order candidate POIs.

    Sorting is stable, so candidates with equal keys keep their input order.
    """
    filters = filters or RankFilters()
    scored = []
    for poi in candidates:
        from_a, from_b = times_lookup(poi)
        time_a, dist_a = _split(from_a)
        time_b, dist_b = _split(from_b)
        scored.append(score(
            poi, time_a, time_b,
            distance_from_a=dist_a,
            distance_from_b=dist_b,
            is_favorite=poi.poi_id in filters.favorite_ids,
        ))

    kept = [s for s in scored if filters.accepts(s)]
    return sorted(kept, key=_sort_key(sort_key))


async def lookup_travel_times(
    candidates: List[CandidatePOI],
    origin_a: Coordinate,
    origin_b: Coordinate,
    travel_time_service,
    max_concurrency: int = 8,
    batch_size: int = TRAVEL_TIME_BATCH_SIZE,
) -> Dict[str, Tuple[Optional[TravelTime], Optional[TravelTime]]]:
    """Fetch travel times from both parties to every candidate.

    Candidates go out in batches of ``batch_size`` destinations, one matrix
    request per batch with both parties as origins, at most ``max_concurrency``
    requests in flight. A failed batch is retried one candidate at a time, so
    a failure leaves only that candidate's slots as None and never fails the
    whole lookup.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    slots: List[List[Optional[TravelTime]]] = [[None, None] for _ in candidates]
    origins = [origin_a, origin_b]

    async def fetch(start: int, size: int):
        batch = candidates[start:start + size]
        async with semaphore:
            try:
                matrix = await travel_time_service.get_travel_times_async(
                    origins, [poi.location for poi in batch]
                )
            except CollaboratorUnavailable as e:
                failure = e
            except Exception as e:
                logger.error("Unexpected travel time error for %s: %r", batch[0].poi_id, e, exc_info=True)
                failure = e
            else:
                failure = None

        if failure is None:
            for side, row in enumerate(matrix[:2]):
                for offset, value in enumerate(row[:len(batch)]):
                    slots[start + offset][side] = value
        elif len(batch) > 1:
            logger.warning("Travel time batch of %d failed, retrying one by one: %s", len(batch), failure)
            await asyncio.gather(*(fetch(start + offset, 1) for offset in range(len(batch))))
        else:
            logger.warning("Travel time lookup failed for %s (%s): %s", batch[0].poi_id, batch[0].name, failure)

    size = max(1, batch_size)
    await asyncio.gather(*(fetch(start, size) for start in range(0, len(candidates), size)))

    return {poi.poi_id: (slots[i][0], slots[i][1]) for i, poi in enumerate(candidates)}
