"""
Unit tests for the scoring engine.
"""
import math
from datetime import timedelta

import pytest

from app.config.ranking import RankingConfig, ScoreWeights
from app.models.schemas import (
    BpmRange,
    GenreScore,
    MoodScore,
    Neighbourhood,
    SimilarUser,
    UserBehaviorProfile,
)
from app.services.scoring import (
    BpmMatch,
    GenreMatch,
    NoveltyScore,
    PopularityBoost,
    RecencyBoost,
    ScoringEngine,
)
from tests.factories import NOW, fixed_clock, make_beat


@pytest.fixture
def trap_profile():
    return UserBehaviorProfile(
        user_id="u1",
        total_likes=4,
        favorite_genres=[GenreScore(genre="trap", score=3), GenreScore(genre="drill", score=1)],
        favorite_moods=[MoodScore(mood="dark", score=2)],
        preferred_bpm_range=BpmRange(min=90, max=130),
    )


@pytest.fixture
def engine():
    return ScoringEngine(RankingConfig(), clock=fixed_clock)


class TestScoreWeights:
    def test_default_weights_sum_to_one(self):
        weights = ScoreWeights()
        assert math.isclose(sum(weights.as_dict().values()), 1.0, abs_tol=1e-9)

    def test_engine_weights_sum_to_one(self, engine):
        assert math.isclose(sum(engine.weights.values()), 1.0, abs_tol=1e-9)

    def test_weights_not_summing_to_one_rejected(self):
        with pytest.raises(ValueError):
            ScoreWeights(genre=0.5)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            ScoreWeights(genre=0.45, novelty=-0.15)


class TestBpmMatch:
    @pytest.mark.parametrize(
        "bpm,expected",
        [(90, 100.0), (130, 100.0), (110, 100.0), (80, 90.0), (140, 90.0), (200, 30.0), (250, 0.0), (5, 15.0)],
    )
    def test_boundaries(self, engine, trap_profile, bpm, expected):
        ctx = engine.context(trap_profile)
        assert BpmMatch().compute(make_beat("b", bpm=bpm), ctx) == expected

    def test_missing_bpm_is_neutral(self, engine, trap_profile):
        ctx = engine.context(trap_profile)
        assert BpmMatch().compute(make_beat("b", bpm=None), ctx) == BpmMatch.NEUTRAL


class TestFactors:
    def test_genre_match_share_of_likes(self, engine, trap_profile):
        ctx = engine.context(trap_profile)
        factor = GenreMatch(baseline=10.0)

        assert factor.compute(make_beat("b", genre="trap"), ctx) == 75.0
        assert factor.compute(make_beat("b", genre="country"), ctx) == 10.0

    def test_genre_match_baseline_without_likes(self, engine):
        ctx = engine.context(UserBehaviorProfile(user_id="new"))
        assert GenreMatch(baseline=10.0).compute(make_beat("b"), ctx) == 10.0

    def test_popularity_caps(self, engine, trap_profile):
        ctx = engine.context(trap_profile)
        factor = PopularityBoost()

        assert factor.compute(make_beat("b", play_count=0, like_count=0), ctx) == 0.0
        assert factor.compute(make_beat("b", play_count=500, like_count=50), ctx) == 50.0
        assert factor.compute(make_beat("b", play_count=99999, like_count=99999), ctx) == 100.0

    def test_recency_decays_two_points_per_day(self, engine, trap_profile):
        ctx = engine.context(trap_profile)
        factor = RecencyBoost()

        assert factor.compute(make_beat("b", created_at=NOW), ctx) == 100.0
        assert factor.compute(make_beat("b", created_at=NOW - timedelta(days=10)), ctx) == 80.0
        assert factor.compute(make_beat("b", created_at=NOW - timedelta(days=365)), ctx) == 0.0

    def test_novelty(self, engine, trap_profile):
        ctx = engine.context(trap_profile)
        factor = NoveltyScore()

        assert factor.compute(make_beat("b", genre="trap", mood="dark"), ctx) == 0.0
        assert factor.compute(make_beat("b", genre="trap", mood="happy"), ctx) == 50.0
        assert factor.compute(make_beat("b", genre="country", mood="happy"), ctx) == 100.0

    def test_collaborative_share_of_neighbours(self, engine, trap_profile):
        neighbourhood = Neighbourhood(
            similar_users=[
                SimilarUser(user_id="u2", similarity=0.5, common_likes=2),
                SimilarUser(user_id="u3", similarity=0.4, common_likes=2),
            ],
            liked_counts={"b1": 1},
        )
        score = engine.score(make_beat("b1"), engine.context(trap_profile, neighbourhood))

        assert score.factors.collaborative_filtering == 50.0


class TestScoringEngine:
    def test_score_is_deterministic(self, engine, trap_profile):
        beat = make_beat("b1", bpm=120)
        ctx = engine.context(trap_profile)

        first = engine.score(beat, ctx)
        second = engine.score(beat, engine.context(trap_profile))

        assert first == second

    def test_score_is_weighted_sum(self, engine, trap_profile):
        score = engine.score(make_beat("b1"), engine.context(trap_profile))
        factors = score.factors.model_dump()
        weights = engine.weights
        expected = (
            factors["genre_match"] * weights["genre"]
            + factors["mood_match"] * weights["mood"]
            + factors["bpm_match"] * weights["bpm"]
            + factors["popularity_boost"] * weights["popularity"]
            + factors["recency_boost"] * weights["recency"]
            + factors["collaborative_filtering"] * weights["collaborative"]
            + factors["novelty_score"] * weights["novelty"]
        )
        assert math.isclose(score.score, expected)

    def test_rank_orders_by_score_desc(self, engine, trap_profile):
        trap = make_beat("x", genre="trap", mood="dark", bpm=120)
        country = make_beat("y", genre="country", mood="happy", bpm=120)

        ranked = engine.rank([country, trap], engine.context(trap_profile))

        assert [s.beat_id for s in ranked] == ["x", "y"]

    def test_rank_keeps_candidate_order_on_ties(self, engine, trap_profile):
        beats = [make_beat(beat_id) for beat_id in ("b3", "b1", "b2")]

        ranked = engine.rank(beats, engine.context(trap_profile))

        assert [s.beat_id for s in ranked] == ["b3", "b1", "b2"]
