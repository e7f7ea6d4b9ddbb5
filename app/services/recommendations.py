"""
Recommendation service - main recommendation orchestrator.
Coordinates profiling, candidate retrieval, scoring, caching and fallbacks.
Every public operation degrades to a popularity list or an empty list
instead of raising.
"""
import hashlib
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Collection, List, Optional, Sequence, Union

from pydantic import TypeAdapter

from app.config.ranking import RankingConfig
from app.core.cache import JsonCache
from app.core.circuit_breaker import CircuitBreaker
from app.core.exceptions import RankingServiceError
from app.core.telemetry import FALLBACKS
from app.core.timeouts import bounded
from app.models.interfaces import BeatRepository, InteractionRepository
from app.models.schemas import (
    Beat,
    Interaction,
    InteractionAction,
    RecommendationScore,
    UserBehaviorProfile,
    utcnow,
)
from app.services.collaborative import CollaborativeFilter
from app.services.feature_flags import FeatureFlagService
from app.services.profiler import UserBehaviorProfiler
from app.services.scoring import ScoringEngine

logger = logging.getLogger(__name__)

_IDS = TypeAdapter(List[str])

DEFAULT_BPM = 120


def recommendations_cache_prefix(user_id: str) -> str:
    return f"recommendations:{user_id}:"


def recommendations_cache_key(
    user_id: str,
    limit: int,
    exclude_ids: Collection[str] = (),
) -> str:
    """Key per (user, limit); a digest is appended when exclusions are given."""
    key = f"{recommendations_cache_prefix(user_id)}{limit}"
    if exclude_ids:
        digest = hashlib.sha1(",".join(sorted(set(exclude_ids))).encode()).hexdigest()[:16]
        key = f"{key}:{digest}"
    return key


def trending_score(beat: Beat, recent_likes: int, recent_plays: int) -> float:
    """Short-term momentum blended with lifetime plays."""
    return 2 * recent_likes + recent_plays + 0.1 * beat.play_count


def beat_similarity(source: Beat, other: Beat) -> float:
    """Coarse content-based similarity between two beats."""
    score = 0.0
    if other.genre == source.genre:
        score += 40
    if other.mood == source.mood:
        score += 30
    if other.key == source.key:
        score += 20
    source_bpm = source.bpm or DEFAULT_BPM
    other_bpm = other.bpm or DEFAULT_BPM
    score += (100 - abs(other_bpm - source_bpm)) * 0.1
    score += (100 - abs(other.price - source.price)) * 0.05
    return score


class RecommendationService:
    """
    Personalized, trending, similar and genre recommendations.

    Responsibilities:
    - Check feature flags
    - Serve cached id lists
    - Run profile -> candidates -> score -> sort through the circuit breaker
    - Fall back to the popularity list on any failure
    - Invalidate caches when interactions are tracked
    """

    def __init__(
        self,
        beat_repo: BeatRepository,
        interaction_repo: InteractionRepository,
        profiler: UserBehaviorProfiler,
        scoring_engine: ScoringEngine,
        collaborative_filter: CollaborativeFilter,
        cache: JsonCache,
        feature_flag_service: Optional[FeatureFlagService] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        config: Optional[RankingConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize recommendation service with dependencies.

        Args:
            beat_repo: Catalogue access
            interaction_repo: Interaction log access
            profiler: Behavior profile builder
            scoring_engine: Multi-factor scorer
            collaborative_filter: Similar-user lookup
            cache: Best-effort JSON cache
            feature_flag_service: Optional personalization gate
            circuit_breaker: Optional circuit breaker for the personalized pipeline
            config: Ranking tuning
            clock: Source of "now" for the trending window
        """
        self._beat_repo = beat_repo
        self._interaction_repo = interaction_repo
        self._profiler = profiler
        self._scoring = scoring_engine
        self._collaborative = collaborative_filter
        self._cache = cache
        self._feature_flags = feature_flag_service
        self._config = config or RankingConfig()
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name="recommendations",
            failure_threshold=5,
            recovery_timeout_sec=30,
        )
        self._clock = clock

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    # -------------------------------------------------------------------------
    # Personalized recommendations
    # -------------------------------------------------------------------------

    async def get_personalized_recommendations(
        self,
        user_id: str,
        limit: int = 20,
        exclude_ids: Sequence[str] = (),
    ) -> List[Beat]:
        """
        Get personalized recommendations for a user.

        Args:
            user_id: User identifier
            limit: Maximum beats to return
            exclude_ids: Beats the caller does not want recommended

        Returns:
            Beats ordered by relevance, or the popularity fallback
        """
        if limit <= 0:
            return []

        if self._feature_flags and not self._feature_flags.is_personalization_enabled(user_id):
            logger.info("Personalization disabled, serving popular beats", extra={"user_id": user_id})
            return await self._popular_beats(limit)

        start_time = time.time()
        beats = await self._circuit_breaker.call(
            func=lambda: self._personalized(user_id, limit, exclude_ids),
            fallback=lambda: self._fallback("recommendations", limit),
        )
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Recommendations served: user={user_id}, items={len(beats)}, "
            f"elapsed_ms={elapsed_ms:.2f}"
        )
        return beats

    async def score_beat(
        self,
        beat: Beat,
        profile: UserBehaviorProfile,
        user_id: str,
    ) -> RecommendationScore:
        """Score a single beat for a user, including the collaborative factor."""
        neighbourhood = await self._collaborative.get_neighbourhood(user_id)
        return self._scoring.score(beat, self._scoring.context(profile, neighbourhood))

    async def _personalized(
        self,
        user_id: str,
        limit: int,
        exclude_ids: Sequence[str],
    ) -> List[Beat]:
        """Cache lookup, then the full pipeline on miss. Raises on failure."""
        key = recommendations_cache_key(user_id, limit, exclude_ids)
        cached = await self._cache.get(key, _IDS)
        if cached is not None:
            return await self._resolve(cached)

        timeout = self._config.data_store_timeout_ms
        profile = await self._profiler.get_profile(user_id)

        liked = await bounded(
            self._interaction_repo.get_liked_beat_ids(user_id), timeout, "get_liked_beat_ids"
        )
        excluded = set(liked) | set(exclude_ids)
        candidates = await bounded(
            self._beat_repo.list_active_beats(excluded, limit=self._config.candidate_pool_size),
            timeout,
            "list_active_beats",
        )

        neighbourhood = await self._collaborative.get_neighbourhood(user_id)
        try:
            ranked = self._scoring.rank(candidates, self._scoring.context(profile, neighbourhood))
        except Exception as e:
            raise RankingServiceError(str(e)) from e

        top_ids = [s.beat_id for s in ranked[:limit]]
        await self._cache.set(key, top_ids, self._config.ttls.recommendations)

        by_id = {b.id: b for b in candidates}
        return [by_id[beat_id] for beat_id in top_ids]

    # -------------------------------------------------------------------------
    # Trending, similar and genre lists
    # -------------------------------------------------------------------------

    async def get_trending_beats(self, limit: int = 20) -> List[Beat]:
        """Beats with the most momentum over the trending window."""
        if limit <= 0:
            return []

        key = f"trending:beats:{limit}"
        try:
            cached = await self._cache.get(key, _IDS)
            if cached is not None:
                return await self._resolve(cached)

            timeout = self._config.data_store_timeout_ms
            since = self._clock() - timedelta(days=self._config.trending_window_days)
            recent_likes = await bounded(
                self._interaction_repo.count_actions_since(InteractionAction.LIKE, since),
                timeout,
                "count_likes_since",
            )
            recent_plays = await bounded(
                self._interaction_repo.count_actions_since(InteractionAction.PLAY, since),
                timeout,
                "count_plays_since",
            )
            beats = await bounded(self._beat_repo.list_active_beats(), timeout, "list_active_beats")
        except Exception as e:
            logger.error(f"Trending beats failed: {e}")
            return await self._fallback("trending", limit)

        trending = sorted(
            beats,
            key=lambda b: trending_score(b, recent_likes.get(b.id, 0), recent_plays.get(b.id, 0)),
            reverse=True,
        )[:limit]
        await self._cache.set(key, [b.id for b in trending], self._config.ttls.trending_beats)
        return trending

    async def find_similar_beats(self, beat_id: str, limit: int = 10) -> List[Beat]:
        """Beats resembling `beat_id` by genre, mood, key, BPM and price."""
        if limit <= 0:
            return []

        key = f"similar:{beat_id}:{limit}"
        try:
            cached = await self._cache.get(key, _IDS)
            if cached is not None:
                return await self._resolve(cached)

            timeout = self._config.data_store_timeout_ms
            source = await bounded(self._beat_repo.get_beat(beat_id), timeout, "get_beat")
            if source is None:
                return []
            others = await bounded(
                self._beat_repo.find_beats(lambda b: b.id != beat_id), timeout, "find_beats"
            )
        except Exception as e:
            logger.error(f"Similar beats failed: {e}", extra={"beat_id": beat_id})
            FALLBACKS.labels(operation="similar").inc()
            return []

        similar = sorted(others, key=lambda b: beat_similarity(source, b), reverse=True)[:limit]
        await self._cache.set(key, [b.id for b in similar], self._config.ttls.similar_beats)
        return similar

    async def get_genre_recommendations(
        self,
        genre: str,
        user_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[Beat]:
        """Most played beats of a genre, minus the user's likes."""
        if limit <= 0:
            return []

        timeout = self._config.data_store_timeout_ms
        try:
            liked = set()
            if user_id:
                liked = set(await bounded(
                    self._interaction_repo.get_liked_beat_ids(user_id), timeout, "get_liked_beat_ids"
                ))
            beats = await bounded(
                self._beat_repo.find_beats(lambda b: b.genre == genre and b.id not in liked),
                timeout,
                "find_beats",
            )
        except Exception as e:
            logger.error(f"Genre recommendations failed: {e}", extra={"user_id": user_id})
            return []

        beats.sort(key=lambda b: (b.play_count, b.like_count), reverse=True)
        return beats[:limit]

    # -------------------------------------------------------------------------
    # Interaction tracking
    # -------------------------------------------------------------------------

    async def track_user_interaction(
        self,
        user_id: str,
        beat_id: str,
        action: Union[InteractionAction, str],
        duration: Optional[float] = None,
    ) -> None:
        """
        Record an interaction and invalidate the caches it makes stale.
        Fire-and-forget: failures are logged, never raised.
        """
        try:
            interaction = Interaction(
                user_id=user_id,
                beat_id=beat_id,
                action=InteractionAction(action),
                timestamp=self._clock(),
                duration=duration,
            )
            await bounded(
                self._interaction_repo.record(interaction),
                self._config.data_store_timeout_ms,
                "record_interaction",
            )
        except Exception as e:
            logger.error(
                f"Track user interaction failed: {e}",
                extra={"user_id": user_id, "beat_id": beat_id},
            )
            return

        await self._cache.delete_pattern(recommendations_cache_prefix(user_id))
        await self._profiler.invalidate(user_id)
        if interaction.action == InteractionAction.LIKE:
            await self._collaborative.invalidate(user_id)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _resolve(self, beat_ids: List[str]) -> List[Beat]:
        return await bounded(
            self._beat_repo.get_beats_by_ids(beat_ids),
            self._config.data_store_timeout_ms,
            "get_beats_by_ids",
        )

    async def _popular_beats(self, limit: int) -> List[Beat]:
        try:
            return await bounded(
                self._beat_repo.get_popular_beats(limit),
                self._config.data_store_timeout_ms,
                "get_popular_beats",
            )
        except Exception as e:
            logger.error(f"Popular beats unavailable, returning empty list: {e}")
            return []

    async def _fallback(self, operation: str, limit: int) -> List[Beat]:
        """Popularity-ordered list served when the primary computation fails."""
        FALLBACKS.labels(operation=operation).inc()
        beats = await self._popular_beats(limit)
        logger.info(f"Fallback served: operation={operation}, items={len(beats)}", extra={"fallback": True})
        return beats
