"""
Unit tests for the recommendation service.
"""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.config.ranking import RankingConfig
from app.core.cache import InMemoryCacheStore, JsonCache
from app.core.circuit_breaker import CircuitBreaker, CircuitState
from app.models.schemas import Interaction, InteractionAction
from app.repositories.memory import InMemoryBeatRepository, InMemoryInteractionRepository
from app.services.collaborative import CollaborativeFilter
from app.services.profiler import UserBehaviorProfiler, profile_cache_key
from app.services.recommendations import (
    RecommendationService,
    beat_similarity,
    recommendations_cache_key,
    trending_score,
)
from app.services.scoring import ScoringEngine
from tests.factories import NOW, fixed_clock, like, make_beat


def build_service(beat_repo, interaction_repo, cache=None, feature_flags=None, breaker=None):
    cache = cache or JsonCache(InMemoryCacheStore())
    config = RankingConfig()
    return RecommendationService(
        beat_repo=beat_repo,
        interaction_repo=interaction_repo,
        profiler=UserBehaviorProfiler(beat_repo, interaction_repo, cache, config),
        scoring_engine=ScoringEngine(config, clock=fixed_clock),
        collaborative_filter=CollaborativeFilter(interaction_repo, cache, config),
        cache=cache,
        feature_flag_service=feature_flags,
        circuit_breaker=breaker,
        config=config,
        clock=fixed_clock,
    )


class TestCacheKeys:
    def test_key_without_exclusions(self):
        assert recommendations_cache_key("u1", 20) == "recommendations:u1:20"

    def test_exclusion_order_does_not_matter(self):
        assert recommendations_cache_key("u1", 20, ["b2", "b1"]) == recommendations_cache_key(
            "u1", 20, ["b1", "b2", "b1"]
        )
        assert recommendations_cache_key("u1", 20, ["b1"]) != recommendations_cache_key("u1", 20)


class TestPersonalizedRecommendations:
    @pytest.mark.asyncio
    async def test_trap_fan_gets_trap_above_country(self):
        beats = InMemoryBeatRepository([
            make_beat("t1", genre="trap", bpm=130),
            make_beat("t2", genre="trap", bpm=140),
            make_beat("t3", genre="trap", bpm=150),
            make_beat("y", genre="country", mood="happy", bpm=140),
            make_beat("x", genre="trap", bpm=140),
        ])
        interactions = InMemoryInteractionRepository(
            [like("u", "t1"), like("u", "t2"), like("u", "t3")]
        )
        service = build_service(beats, interactions)

        result = await service.get_personalized_recommendations("u", 10)
        ids = [b.id for b in result]

        assert ids.index("x") < ids.index("y")
        assert not {"t1", "t2", "t3"} & set(ids)

    @pytest.mark.asyncio
    async def test_repeated_calls_return_identical_list(self, recommendation_service):
        first = await recommendation_service.get_personalized_recommendations("user_trap", 20)
        second = await recommendation_service.get_personalized_recommendations("user_trap", 20)

        assert [b.id for b in first] == [b.id for b in second]
        assert first

    @pytest.mark.asyncio
    async def test_result_is_cached_as_ids(self, recommendation_service, cache):
        result = await recommendation_service.get_personalized_recommendations("user_trap", 5)

        cached = await cache.get(recommendations_cache_key("user_trap", 5))

        assert cached == [b.id for b in result]

    @pytest.mark.asyncio
    async def test_excludes_liked_requested_and_inactive(self, recommendation_service):
        result = await recommendation_service.get_personalized_recommendations(
            "user_trap", 20, exclude_ids=["b2"]
        )
        ids = {b.id for b in result}

        assert not ids & {"b1", "b7", "b5"}
        assert "b2" not in ids
        assert "b9" not in ids

    @pytest.mark.asyncio
    async def test_limit(self, recommendation_service):
        assert len(await recommendation_service.get_personalized_recommendations("user_trap", 2)) == 2
        assert await recommendation_service.get_personalized_recommendations("user_trap", 0) == []

    @pytest.mark.asyncio
    async def test_falls_back_to_popular_when_store_fails(self, beat_repo, interaction_repo):
        popular = await beat_repo.get_popular_beats(5)
        beat_repo.list_active_beats = AsyncMock(side_effect=RuntimeError("db down"))
        service = build_service(beat_repo, interaction_repo)

        result = await service.get_personalized_recommendations("user_trap", 5)

        assert [b.id for b in result] == [b.id for b in popular]

    @pytest.mark.asyncio
    async def test_open_breaker_serves_fallback(self, beat_repo, interaction_repo):
        beat_repo.list_active_beats = AsyncMock(side_effect=RuntimeError("db down"))
        breaker = CircuitBreaker("recommendations", failure_threshold=2, recovery_timeout_sec=60)
        service = build_service(beat_repo, interaction_repo, breaker=breaker)

        for _ in range(2):
            await service.get_personalized_recommendations("user_trap", 5)
        assert breaker.state == CircuitState.OPEN

        calls = beat_repo.list_active_beats.await_count
        result = await service.get_personalized_recommendations("user_trap", 5)

        assert len(result) == 5
        assert beat_repo.list_active_beats.await_count == calls

    @pytest.mark.asyncio
    async def test_personalization_disabled_serves_popular(self, beat_repo, interaction_repo):
        flags = MagicMock()
        flags.is_personalization_enabled.return_value = False
        service = build_service(beat_repo, interaction_repo, feature_flags=flags)

        result = await service.get_personalized_recommendations("user_trap", 3)

        assert [b.id for b in result] == ["b8", "b3", "b1"]

    @pytest.mark.asyncio
    async def test_everything_down_returns_empty(self, beat_repo, interaction_repo):
        beat_repo.list_active_beats = AsyncMock(side_effect=RuntimeError("db down"))
        beat_repo.get_popular_beats = AsyncMock(side_effect=RuntimeError("db down"))
        service = build_service(beat_repo, interaction_repo)

        assert await service.get_personalized_recommendations("user_trap", 5) == []

    @pytest.mark.asyncio
    async def test_score_beat_matches_ranking(self, recommendation_service, profiler):
        profile = await profiler.get_profile("user_trap")
        beat = make_beat("z", genre="trap", mood="dark", bpm=145)

        first = await recommendation_service.score_beat(beat, profile, "user_trap")
        second = await recommendation_service.score_beat(beat, profile, "user_trap")

        assert first == second
        assert first.factors.bpm_match == 100.0


class TestTrendingAndSimilar:
    @pytest.mark.asyncio
    async def test_trending_uses_recent_momentum(self):
        beats = InMemoryBeatRepository([
            make_beat("old_hit", play_count=1000),
            make_beat("rising", play_count=10),
        ])
        recent = [like(f"u{i}", "rising") for i in range(60)]
        stale = [
            Interaction(
                user_id=f"v{i}",
                beat_id="old_hit",
                action=InteractionAction.LIKE,
                timestamp=NOW - timedelta(days=30),
            )
            for i in range(100)
        ]
        service = build_service(beats, InMemoryInteractionRepository(recent + stale))

        result = await service.get_trending_beats(10)

        assert [b.id for b in result] == ["rising", "old_hit"]

    def test_trending_score_formula(self):
        assert trending_score(make_beat("b", play_count=100), 3, 4) == 2 * 3 + 4 + 10

    @pytest.mark.asyncio
    async def test_trending_falls_back_on_failure(self, beat_repo, interaction_repo):
        interaction_repo.count_actions_since = AsyncMock(side_effect=RuntimeError("db down"))
        service = build_service(beat_repo, interaction_repo)

        result = await service.get_trending_beats(3)

        assert [b.id for b in result] == ["b8", "b3", "b1"]

    @pytest.mark.asyncio
    async def test_similar_beats(self, recommendation_service):
        result = await recommendation_service.find_similar_beats("b1", 3)
        ids = [b.id for b in result]

        assert ids[0] == "b7"
        assert "b1" not in ids
        assert "b9" not in ids

    @pytest.mark.asyncio
    async def test_similar_beats_unknown_id(self, recommendation_service):
        assert await recommendation_service.find_similar_beats("nope") == []

    @pytest.mark.asyncio
    async def test_similar_beats_failure_returns_empty(self, beat_repo, interaction_repo):
        beat_repo.get_beat = AsyncMock(side_effect=RuntimeError("db down"))
        service = build_service(beat_repo, interaction_repo)

        assert await service.find_similar_beats("b1") == []

    def test_similarity_missing_bpm_treated_as_default(self):
        source = make_beat("a", bpm=None, price=10.0)
        other = make_beat("b", bpm=120, price=10.0)

        assert beat_similarity(source, other) == 40 + 30 + 20 + 10 + 5

    @pytest.mark.asyncio
    async def test_genre_recommendations_skip_liked(self, recommendation_service):
        result = await recommendation_service.get_genre_recommendations("trap", user_id="user_trap")

        assert result == []

    @pytest.mark.asyncio
    async def test_genre_recommendations_by_plays(self, recommendation_service):
        result = await recommendation_service.get_genre_recommendations("trap")

        assert [b.id for b in result] == ["b1", "b7"]


class TestTrackUserInteraction:
    @pytest.mark.asyncio
    async def test_like_invalidates_user_caches(self, recommendation_service, cache, interaction_repo):
        before = await recommendation_service.get_personalized_recommendations("user_trap", 20)
        assert "b2" in [b.id for b in before]
        assert await cache.get(profile_cache_key("user_trap")) is not None

        await recommendation_service.track_user_interaction("user_trap", "b2", "like")

        assert await cache.get(recommendations_cache_key("user_trap", 20)) is None
        assert await cache.get(profile_cache_key("user_trap")) is None
        assert "b2" in await interaction_repo.get_liked_beat_ids("user_trap")

        after = await recommendation_service.get_personalized_recommendations("user_trap", 20)
        assert "b2" not in [b.id for b in after]

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, recommendation_service, interaction_repo, cache):
        await recommendation_service.get_personalized_recommendations("user_trap", 20)
        interaction_repo.record = AsyncMock(side_effect=RuntimeError("db down"))

        await recommendation_service.track_user_interaction("user_trap", "b2", InteractionAction.PLAY, 30.0)

        assert await cache.get(recommendations_cache_key("user_trap", 20)) is not None
