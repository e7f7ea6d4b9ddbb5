"""
Suggestion and autocomplete index.
Popularity-ranked query suggestions learned from searches, plus live
prefix lookups over beat titles, producers, genres and tags.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from pydantic import TypeAdapter

from app.config.ranking import RankingConfig
from app.core.cache import JsonCache
from app.core.timeouts import bounded
from app.models.interfaces import BeatRepository, SuggestionRepository, UserRepository
from app.models.schemas import AutocompleteResult, Beat, SearchSuggestion, utcnow

logger = logging.getLogger(__name__)

_STRINGS = TypeAdapter(List[str])
_AUTOCOMPLETE = TypeAdapter(AutocompleteResult)

SUGGESTION_CATEGORY = "beat"
MIN_QUERY_LENGTH = 2
AUTOCOMPLETE_LIMIT = 5
DEFAULT_CATEGORIES = ("beat", "producer", "genre")


def normalize_query(query: Optional[str]) -> str:
    return (query or "").strip().lower()


def _unique(values: List[str], limit: int) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
        if len(seen) >= limit:
            break
    return seen


class SuggestionIndex:
    """Query suggestions, autocomplete and trending searches."""

    def __init__(
        self,
        suggestion_repo: SuggestionRepository,
        beat_repo: BeatRepository,
        user_repo: UserRepository,
        cache: JsonCache,
        config: Optional[RankingConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._suggestion_repo = suggestion_repo
        self._beat_repo = beat_repo
        self._user_repo = user_repo
        self._cache = cache
        self._config = config or RankingConfig()
        self._clock = clock

    async def get_suggestions(self, query: Optional[str] = None, limit: int = 10) -> List[str]:
        """
        Suggested queries for a partial query.

        Queries shorter than two characters get the most popular queries;
        longer ones get prefix matches ranked by popularity then result count.
        """
        if limit <= 0:
            return []

        prefix = normalize_query(query)
        key = f"suggestions:{prefix}:{limit}"
        cached = await self._cache.get(key, _STRINGS)
        if cached is not None:
            return cached

        timeout = self._config.data_store_timeout_ms
        try:
            if len(prefix) < MIN_QUERY_LENGTH:
                rows = await bounded(
                    self._suggestion_repo.most_popular(SUGGESTION_CATEGORY, limit),
                    timeout,
                    "most_popular_suggestions",
                )
            else:
                rows = await bounded(
                    self._suggestion_repo.find_by_prefix(prefix, SUGGESTION_CATEGORY, limit),
                    timeout,
                    "find_suggestions",
                )
        except Exception as e:
            logger.warning(f"Search suggestions failed: {e}")
            return []

        suggestions = [row.query for row in rows]
        await self._cache.set(key, suggestions, self._config.ttls.suggestions)
        return suggestions

    async def get_autocomplete(
        self,
        query: Optional[str],
        categories: Optional[Sequence[str]] = None,
    ) -> AutocompleteResult:
        """Live prefix matches over beat titles, producers, genres and tags."""
        prefix = normalize_query(query)
        if len(prefix) < MIN_QUERY_LENGTH:
            return AutocompleteResult()

        wanted = set(categories or DEFAULT_CATEGORIES)
        key = f"autocomplete:{prefix}:{','.join(sorted(wanted))}"
        cached = await self._cache.get(key, _AUTOCOMPLETE)
        if cached is not None:
            return cached

        try:
            result = await self._lookup(prefix, wanted)
        except Exception as e:
            logger.warning(f"Autocomplete failed: {e}")
            return AutocompleteResult()

        await self._cache.set(key, result.model_dump(mode="json"), self._config.ttls.suggestions)
        return result

    async def _lookup(self, prefix: str, wanted: set) -> AutocompleteResult:
        timeout = self._config.data_store_timeout_ms
        result = AutocompleteResult()

        def title_match(b: Beat) -> bool:
            return "beat" in wanted and b.title.lower().startswith(prefix)

        def genre_match(b: Beat) -> bool:
            return "genre" in wanted and b.genre.lower().startswith(prefix)

        def tag_match(b: Beat) -> bool:
            return "tag" in wanted and any(t.lower().startswith(prefix) for t in b.tags)

        if wanted & {"beat", "genre", "tag"}:
            beats = await bounded(
                self._beat_repo.find_beats(lambda b: title_match(b) or genre_match(b) or tag_match(b)),
                timeout,
                "autocomplete_beats",
            )
            by_plays = sorted(
                (b for b in beats if title_match(b)), key=lambda b: b.play_count, reverse=True
            )
            result.beats = [b.title for b in by_plays[:AUTOCOMPLETE_LIMIT]]
            result.genres = _unique([b.genre for b in beats if genre_match(b)], AUTOCOMPLETE_LIMIT)
            if "tag" in wanted:
                result.tags = _unique(
                    [t for b in beats for t in b.tags if t.lower().startswith(prefix)],
                    AUTOCOMPLETE_LIMIT,
                )

        if "producer" in wanted:
            producers = await bounded(
                self._user_repo.find_users_by_prefix(prefix, AUTOCOMPLETE_LIMIT),
                timeout,
                "autocomplete_producers",
            )
            result.producers = [p.display_name for p in producers if p.display_name]

        return result

    async def record_query(self, query: Optional[str], result_count: int) -> Optional[SearchSuggestion]:
        """
        Upsert a used query: insert with popularity 1, else increment.
        Never raises.
        """
        normalized = normalize_query(query)
        if not normalized:
            return None
        try:
            return await bounded(
                self._suggestion_repo.upsert(
                    normalized, SUGGESTION_CATEGORY, result_count, self._clock()
                ),
                self._config.data_store_timeout_ms,
                "upsert_suggestion",
            )
        except Exception as e:
            logger.warning(f"Failed to update search suggestions: {e}")
            return None

    async def get_trending_searches(self, limit: int = 10) -> List[str]:
        """Most popular queries overall."""
        if limit <= 0:
            return []

        key = f"trending_searches:{limit}"
        cached = await self._cache.get(key, _STRINGS)
        if cached is not None:
            return cached

        try:
            rows = await bounded(
                self._suggestion_repo.most_popular(SUGGESTION_CATEGORY, limit),
                self._config.data_store_timeout_ms,
                "trending_searches",
            )
        except Exception as e:
            logger.warning(f"Trending searches failed: {e}")
            return []

        trending = [row.query for row in rows]
        await self._cache.set(key, trending, self._config.ttls.trending_searches)
        return trending
