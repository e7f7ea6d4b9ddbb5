"""
Search service.
Substring full-text matching, conjunctive filters, sorting, exact facets,
whole-result caching and non-blocking analytics.
"""
import asyncio
import logging
import time
from collections import Counter
from typing import Callable, Dict, List, Optional, Set, Tuple

from pydantic import TypeAdapter

from app.config.ranking import RankingConfig
from app.core.cache import JsonCache
from app.core.circuit_breaker import CircuitBreaker
from app.core.telemetry import FALLBACKS
from app.core.timeouts import bounded
from app.models.interfaces import AnalyticsSink, BeatRepository, UserRepository
from app.models.schemas import (
    Beat,
    FacetCount,
    Producer,
    SearchAnalyticsEvent,
    SearchFacets,
    SearchFilters,
    SearchResult,
    SortMode,
)
from app.services.suggestions import SuggestionIndex

logger = logging.getLogger(__name__)

_RESULT = TypeAdapter(SearchResult)

Predicate = Callable[[Beat], bool]

# (label, lower bound inclusive, upper bound exclusive)
BPM_BUCKETS: List[Tuple[str, Optional[int], Optional[int]]] = [
    ("<60", None, 60),
    ("60-90", 60, 90),
    ("90-120", 90, 120),
    ("120-140", 120, 140),
    ("140-180", 140, 180),
    ("180+", 180, None),
]

PRICE_BUCKETS: List[Tuple[str, Optional[float], Optional[float]]] = [
    ("$1-$25", 0.0, 25.0),
    ("$25-$50", 25.0, 50.0),
    ("$50-$100", 50.0, 100.0),
    ("$100+", 100.0, None),
]


def bpm_bucket(beat: Beat) -> Optional[str]:
    if beat.bpm is None:
        return None
    for label, low, high in BPM_BUCKETS:
        if (low is None or beat.bpm >= low) and (high is None or beat.bpm < high):
            return label
    return None


def price_bucket(beat: Beat) -> str:
    if beat.is_free or beat.price <= 0:
        return "Free"
    for label, _, high in PRICE_BUCKETS:
        if high is None or beat.price < high:
            return label
    return PRICE_BUCKETS[-1][0]


def text_matches(beat: Beat, text: str, producer: Optional[Producer]) -> bool:
    """Case-insensitive substring match over title, description, tags and producer."""
    needle = text.lower()
    haystack = [beat.title, beat.description or ""] + list(beat.tags)
    if producer is not None:
        haystack += [producer.username or "", producer.full_name]
    return any(needle in field.lower() for field in haystack)


def build_predicates(filters: SearchFilters) -> Tuple[List[Predicate], Dict[str, Predicate]]:
    """
    Split the active filters into base predicates and facet-dimension predicates.

    Returns:
        (base predicates, {facet dimension: predicate})
    """
    base: List[Predicate] = []
    facet: Dict[str, Predicate] = {}

    if filters.genre:
        facet["genre"] = lambda b: b.genre == filters.genre
    if filters.mood:
        facet["mood"] = lambda b: b.mood == filters.mood
    if filters.key:
        facet["key"] = lambda b: b.key == filters.key
    if filters.bpm_min is not None or filters.bpm_max is not None:
        facet["bpm"] = lambda b: b.bpm is not None and (
            (filters.bpm_min is None or b.bpm >= filters.bpm_min)
            and (filters.bpm_max is None or b.bpm <= filters.bpm_max)
        )
    if filters.price_min is not None or filters.price_max is not None:
        facet["price"] = lambda b: (
            (filters.price_min is None or b.price >= filters.price_min)
            and (filters.price_max is None or b.price <= filters.price_max)
        )

    if filters.duration_min is not None or filters.duration_max is not None:
        base.append(lambda b: b.duration is not None and (
            (filters.duration_min is None or b.duration >= filters.duration_min)
            and (filters.duration_max is None or b.duration <= filters.duration_max)
        ))
    wanted_tags = {t.strip().lower() for t in filters.tags if t.strip()}
    if wanted_tags:
        base.append(lambda b: any(t.lower() in wanted_tags for t in b.tags))
    if filters.is_free is not None:
        base.append(lambda b: b.is_free == filters.is_free)
    if filters.is_exclusive is not None:
        base.append(lambda b: b.is_exclusive == filters.is_exclusive)
    if filters.producer_id:
        base.append(lambda b: b.producer_id == filters.producer_id)

    return base, facet


def sort_beats(beats: List[Beat], filters: SearchFilters) -> List[Beat]:
    """Order results by the requested sort mode. Stable for equal keys."""
    mode = filters.sort_by
    if mode == SortMode.NEWEST:
        return sorted(beats, key=lambda b: b.created_at, reverse=True)
    if mode == SortMode.PRICE_LOW:
        return sorted(beats, key=lambda b: b.price)
    if mode == SortMode.PRICE_HIGH:
        return sorted(beats, key=lambda b: b.price, reverse=True)
    if mode == SortMode.BPM:
        return sorted(beats, key=lambda b: (b.bpm is None, b.bpm or 0))
    if mode == SortMode.DURATION:
        return sorted(beats, key=lambda b: (b.duration is None, b.duration or 0))

    text = filters.text.lower()
    if mode == SortMode.RELEVANCE and text:
        # Title hits first, then play count, then like count
        return sorted(
            beats,
            key=lambda b: (0 if text in b.title.lower() else 1, -b.play_count, -b.like_count),
        )
    return sorted(beats, key=lambda b: (-b.play_count, -b.like_count))


def _value_facet(beats: List[Beat], attr: str) -> List[FacetCount]:
    counts = Counter(getattr(b, attr) for b in beats)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [FacetCount(value=value, count=count) for value, count in ordered]


def _bucket_facet(beats: List[Beat], labels: List[str], bucket: Callable[[Beat], Optional[str]]) -> List[FacetCount]:
    counts = Counter(bucket(b) for b in beats)
    return [FacetCount(value=label, count=counts.get(label, 0)) for label in labels]


def compute_facets(pool: List[Beat], facet_predicates: Dict[str, Predicate]) -> SearchFacets:
    """
    Per-dimension counts. Each dimension is counted over the beats matching
    every other active filter, ignoring the dimension's own filter.
    """

    def excluding(dimension: str) -> List[Beat]:
        others = [p for name, p in facet_predicates.items() if name != dimension]
        return [b for b in pool if all(p(b) for p in others)]

    return SearchFacets(
        genres=_value_facet(excluding("genre"), "genre"),
        moods=_value_facet(excluding("mood"), "mood"),
        keys=_value_facet(excluding("key"), "key"),
        bpm_ranges=_bucket_facet(
            excluding("bpm"), [label for label, _, _ in BPM_BUCKETS], bpm_bucket
        ),
        price_ranges=_bucket_facet(
            excluding("price"), ["Free"] + [label for label, _, _ in PRICE_BUCKETS], price_bucket
        ),
    )


class SearchService:
    """
    Faceted beat search.

    Responsibilities:
    - Filter, sort and paginate active beats
    - Compute facets consistent with the other active filters
    - Cache whole results by filter set
    - Emit analytics and learn suggestions without blocking the response
    """

    def __init__(
        self,
        beat_repo: BeatRepository,
        user_repo: UserRepository,
        suggestion_index: SuggestionIndex,
        analytics_sink: AnalyticsSink,
        cache: JsonCache,
        circuit_breaker: Optional[CircuitBreaker] = None,
        config: Optional[RankingConfig] = None,
    ) -> None:
        self._beat_repo = beat_repo
        self._user_repo = user_repo
        self._suggestions = suggestion_index
        self._analytics = analytics_sink
        self._cache = cache
        self._config = config or RankingConfig()
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name="search",
            failure_threshold=5,
            recovery_timeout_sec=30,
        )
        self._background: Set[asyncio.Task] = set()

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def search(self, filters: SearchFilters, user_id: Optional[str] = None) -> SearchResult:
        """
        Run a search. Never raises: failures return an empty result.

        Args:
            filters: Validated filter set
            user_id: Optional searching user, for analytics only
        """
        start_time = time.time()
        key = filters.cache_key()

        cached = await self._cache.get(key, _RESULT)
        if cached is not None:
            cached.search_time_ms = (time.time() - start_time) * 1000
            self._after_search(filters, cached, user_id)
            return cached

        degraded = []

        async def fallback() -> SearchResult:
            degraded.append(True)
            return await self._empty_result()

        result = await self._circuit_breaker.call(
            func=lambda: self._execute(filters),
            fallback=fallback,
        )
        result.search_time_ms = (time.time() - start_time) * 1000

        # Fallback results are never cached
        if not degraded:
            await self._cache.set(key, result.model_dump(mode="json"), self._config.ttls.search)

        self._after_search(filters, result, user_id)
        logger.info(
            f"Search served: query={filters.text!r}, total={result.total_count}, "
            f"elapsed_ms={result.search_time_ms:.2f}"
        )
        return result

    async def _execute(self, filters: SearchFilters) -> SearchResult:
        timeout = self._config.data_store_timeout_ms
        base, facet_predicates = build_predicates(filters)

        pool = await bounded(
            self._beat_repo.find_beats(lambda b: all(p(b) for p in base)),
            timeout,
            "search_beats",
        )

        text = filters.text
        if text:
            producers = await bounded(
                self._user_repo.get_users_by_ids({b.producer_id for b in pool}),
                timeout,
                "search_producers",
            )
            pool = [b for b in pool if text_matches(b, text, producers.get(b.producer_id))]

        matching = [b for b in pool if all(p(b) for p in facet_predicates.values())]
        ordered = sort_beats(matching, filters)

        limit = min(filters.limit, self._config.max_search_limit)
        page = ordered[filters.offset:filters.offset + limit]

        return SearchResult(
            beats=page,
            total_count=len(matching),
            facets=compute_facets(pool, facet_predicates),
            suggestions=await self._suggestions.get_suggestions(filters.query),
        )

    async def _empty_result(self) -> SearchResult:
        FALLBACKS.labels(operation="search").inc()
        return SearchResult()

    # -------------------------------------------------------------------------
    # Fire-and-forget side effects
    # -------------------------------------------------------------------------

    def _after_search(self, filters: SearchFilters, result: SearchResult, user_id: Optional[str]) -> None:
        event = SearchAnalyticsEvent(
            query=filters.text,
            user_id=user_id,
            result_count=result.total_count,
            search_type="text" if filters.text else "filter",
            filters=filters.model_dump(mode="json", exclude_none=True),
            response_time_ms=result.search_time_ms,
        )
        self._spawn(self._analytics.record_search(event), "track_search_analytics")
        if filters.text:
            self._spawn(
                self._suggestions.record_query(filters.text, result.total_count),
                "update_search_suggestions",
            )

    def _spawn(self, coro, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed: {exc}")

    async def drain(self) -> None:
        """Wait for pending analytics and suggestion updates."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
