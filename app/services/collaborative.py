"""
Collaborative filter.
Finds users whose likes overlap with a given user's and summarises what they liked.
"""
import logging
from collections import Counter
from typing import List, Optional

from pydantic import TypeAdapter

from app.config.ranking import RankingConfig
from app.core.cache import JsonCache
from app.core.timeouts import bounded
from app.models.interfaces import InteractionRepository
from app.models.schemas import Neighbourhood, SimilarUser

logger = logging.getLogger(__name__)

_SIMILAR_USERS = TypeAdapter(List[SimilarUser])


def similar_users_cache_prefix(user_id: str) -> str:
    return f"similar_users:{user_id}:"


class CollaborativeFilter:
    """
    User-user collaborative filtering over likes.

    Similarity is Jaccard: co-liked beats / union of both users' liked beats,
    so it is symmetric and always within [0, 1].
    """

    def __init__(
        self,
        interaction_repo: InteractionRepository,
        cache: JsonCache,
        config: Optional[RankingConfig] = None,
    ) -> None:
        self._interaction_repo = interaction_repo
        self._cache = cache
        self._config = config or RankingConfig()

    async def find_similar_users(self, user_id: str, limit: int = 50) -> List[SimilarUser]:
        """
        Users sharing at least `min_common_likes` liked beats with `user_id`.

        Ordered by co-like count, then similarity, then user id. Never
        includes the user. Never raises (failures give []).
        """
        if limit <= 0:
            return []

        key = f"{similar_users_cache_prefix(user_id)}{limit}"
        cached = await self._cache.get(key, _SIMILAR_USERS)
        if cached is not None:
            return cached

        try:
            similar = await self._compute_similar_users(user_id, limit)
        except Exception as e:
            logger.warning(f"Similar users lookup failed: {e}", extra={"user_id": user_id})
            return []

        await self._cache.set(
            key,
            [s.model_dump(mode="json") for s in similar],
            self._config.ttls.similar_users,
        )
        return similar

    async def get_neighbourhood(self, user_id: str) -> Neighbourhood:
        """
        Top similar users and, per beat, how many of them liked it.
        Never raises (failures give an empty neighbourhood).
        """
        similar = await self.find_similar_users(user_id, self._config.collaborative_neighbours)
        if not similar:
            return Neighbourhood()

        try:
            liked = await bounded(
                self._interaction_repo.get_liked_beat_ids_for_users([s.user_id for s in similar]),
                self._config.data_store_timeout_ms,
                "get_liked_beat_ids_for_users",
            )
        except Exception as e:
            logger.warning(f"Neighbourhood likes lookup failed: {e}", extra={"user_id": user_id})
            return Neighbourhood()

        counts: Counter = Counter()
        for beat_ids in liked.values():
            counts.update(beat_ids)
        return Neighbourhood(similar_users=similar, liked_counts=dict(counts))

    async def invalidate(self, user_id: str) -> None:
        await self._cache.delete_pattern(similar_users_cache_prefix(user_id))

    async def _compute_similar_users(self, user_id: str, limit: int) -> List[SimilarUser]:
        timeout = self._config.data_store_timeout_ms
        own_likes = await bounded(
            self._interaction_repo.get_liked_beat_ids(user_id), timeout, "get_liked_beat_ids"
        )
        if not own_likes:
            return []
        own = set(own_likes)

        likers = await bounded(self._interaction_repo.get_likers(own), timeout, "get_likers")
        overlapping = {
            other: common
            for other, common in likers.items()
            if other != user_id and len(common) >= self._config.min_common_likes
        }
        if not overlapping:
            return []

        totals = await bounded(
            self._interaction_repo.get_liked_beat_ids_for_users(list(overlapping)),
            timeout,
            "get_liked_beat_ids_for_users",
        )

        similar = []
        for other, common in overlapping.items():
            union = own | totals.get(other, set()) | common
            similar.append(SimilarUser(
                user_id=other,
                similarity=len(common) / len(union),
                common_likes=len(common),
            ))

        similar.sort(key=lambda s: (-s.common_likes, -s.similarity, s.user_id))
        return similar[:limit]
