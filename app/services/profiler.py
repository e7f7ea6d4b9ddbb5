"""
User behavior profiler.
Builds a cached statistical summary of a user's taste from the interaction log.
"""
import logging
from collections import Counter
from typing import List, Optional

from pydantic import TypeAdapter

from app.config.ranking import RankingConfig
from app.core.cache import JsonCache
from app.core.timeouts import bounded
from app.models.interfaces import BeatRepository, InteractionRepository
from app.models.schemas import (
    Beat,
    BpmRange,
    GenreScore,
    Interaction,
    InteractionAction,
    MoodScore,
    UserBehaviorProfile,
)

logger = logging.getLogger(__name__)

_PROFILE = TypeAdapter(UserBehaviorProfile)


def profile_cache_key(user_id: str) -> str:
    return f"user_behavior:{user_id}"


class UserBehaviorProfiler:
    """
    Computes and caches UserBehaviorProfile instances.

    A profile is recomputed on cache miss and dropped from the cache whenever
    the user records a new interaction (see `invalidate`).
    """

    def __init__(
        self,
        beat_repo: BeatRepository,
        interaction_repo: InteractionRepository,
        cache: JsonCache,
        config: Optional[RankingConfig] = None,
    ) -> None:
        self._beat_repo = beat_repo
        self._interaction_repo = interaction_repo
        self._cache = cache
        self._config = config or RankingConfig()

    def default_profile(self, user_id: str) -> UserBehaviorProfile:
        """Profile of a user with no usable history."""
        return UserBehaviorProfile(
            user_id=user_id,
            preferred_bpm_range=BpmRange(
                min=self._config.default_bpm_min,
                max=self._config.default_bpm_max,
            ),
            average_session_length=self._config.default_session_length_sec,
        )

    async def get_profile(self, user_id: str) -> UserBehaviorProfile:
        """
        Get the behavior profile of a user.

        Never raises: data-access failures yield the default profile.
        """
        key = profile_cache_key(user_id)
        cached = await self._cache.get(key, _PROFILE)
        if cached is not None:
            return cached

        try:
            profile = await self._build_profile(user_id)
        except Exception as e:
            logger.warning(
                f"Profile computation failed, using default profile: {e}",
                extra={"user_id": user_id},
            )
            return self.default_profile(user_id)

        await self._cache.set(key, profile.model_dump(mode="json"), self._config.ttls.profile)
        return profile

    async def invalidate(self, user_id: str) -> None:
        await self._cache.delete(profile_cache_key(user_id))

    async def _build_profile(self, user_id: str) -> UserBehaviorProfile:
        timeout = self._config.data_store_timeout_ms
        interactions: List[Interaction] = await bounded(
            self._interaction_repo.get_user_interactions(user_id), timeout, "get_user_interactions"
        )
        if not interactions:
            return self.default_profile(user_id)

        liked_ids = await bounded(
            self._interaction_repo.get_liked_beat_ids(user_id), timeout, "get_liked_beat_ids"
        )
        liked_beats: List[Beat] = []
        if liked_ids:
            liked_beats = await bounded(
                self._beat_repo.get_beats_by_ids(liked_ids, include_inactive=True),
                timeout,
                "get_beats_by_ids",
            )

        counts = Counter(i.action for i in interactions)
        top = self._config.top_preferences

        # Counter.most_common keeps first-seen order for equal counts
        genre_counts = Counter(b.genre for b in liked_beats if b.genre)
        mood_counts = Counter(b.mood for b in liked_beats if b.mood)

        return UserBehaviorProfile(
            user_id=user_id,
            total_listens=counts[InteractionAction.PLAY],
            total_likes=len(liked_ids),
            total_purchases=counts[InteractionAction.PURCHASE],
            total_skips=counts[InteractionAction.SKIP],
            favorite_genres=[
                GenreScore(genre=g, score=n) for g, n in genre_counts.most_common(top)
            ],
            favorite_moods=[
                MoodScore(mood=m, score=n) for m, n in mood_counts.most_common(top)
            ],
            preferred_bpm_range=self._bpm_range(liked_beats),
            average_session_length=self._session_length(interactions),
            last_active=max(i.timestamp for i in interactions),
        )

    def _bpm_range(self, liked_beats: List[Beat]) -> BpmRange:
        bpms = [b.bpm for b in liked_beats if b.bpm]
        if not bpms:
            return BpmRange(min=self._config.default_bpm_min, max=self._config.default_bpm_max)
        return BpmRange(min=min(bpms), max=max(bpms))

    def _session_length(self, interactions: List[Interaction]) -> float:
        durations = [
            i.duration for i in interactions
            if i.action == InteractionAction.PLAY and i.duration
        ]
        if not durations:
            return self._config.default_session_length_sec
        return sum(durations) / len(durations)
