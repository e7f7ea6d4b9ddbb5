"""
Scoring engine.
Combines seven independent 0-100 factors into one weighted relevance score.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from app.config.ranking import RankingConfig
from app.models.schemas import (
    Beat,
    Neighbourhood,
    RecommendationScore,
    ScoreFactors,
    UserBehaviorProfile,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringContext:
    """Request-wide inputs shared by every candidate."""

    profile: UserBehaviorProfile
    neighbourhood: Neighbourhood
    now: datetime


# =============================================================================
# Scoring Factors (Strategy Pattern)
# =============================================================================


class ScoringFactor(ABC):
    """One named factor. `compute` returns a value on a 0-100 scale."""

    name: str
    weight_key: str

    @abstractmethod
    def compute(self, beat: Beat, ctx: ScoringContext) -> float:
        pass


class GenreMatch(ScoringFactor):
    """Share of the user's likes that went to this beat's genre."""

    name = "genre_match"
    weight_key = "genre"

    def __init__(self, baseline: float = 10.0) -> None:
        self._baseline = baseline

    def compute(self, beat: Beat, ctx: ScoringContext) -> float:
        score = ctx.profile.genre_score(beat.genre)
        if score is None or ctx.profile.total_likes <= 0:
            return self._baseline
        return min(score / ctx.profile.total_likes, 1.0) * 100


class MoodMatch(ScoringFactor):
    """Share of the user's likes that went to this beat's mood."""

    name = "mood_match"
    weight_key = "mood"

    def __init__(self, baseline: float = 10.0) -> None:
        self._baseline = baseline

    def compute(self, beat: Beat, ctx: ScoringContext) -> float:
        score = ctx.profile.mood_score(beat.mood)
        if score is None or ctx.profile.total_likes <= 0:
            return self._baseline
        return min(score / ctx.profile.total_likes, 1.0) * 100


class BpmMatch(ScoringFactor):
    """100 inside the preferred range, minus one point per BPM outside it."""

    name = "bpm_match"
    weight_key = "bpm"

    NEUTRAL = 50.0

    def compute(self, beat: Beat, ctx: ScoringContext) -> float:
        if not beat.bpm:
            return self.NEUTRAL
        bpm_range = ctx.profile.preferred_bpm_range
        if bpm_range.contains(beat.bpm):
            return 100.0
        distance = min(abs(beat.bpm - bpm_range.min), abs(beat.bpm - bpm_range.max))
        return float(max(0, 100 - distance))


class PopularityBoost(ScoringFactor):
    """Up to 50 points for plays (1000 cap) plus 50 for likes (100 cap)."""

    name = "popularity_boost"
    weight_key = "popularity"

    def compute(self, beat: Beat, ctx: ScoringContext) -> float:
        play_score = min(beat.play_count / 1000, 1.0) * 50
        like_score = min(beat.like_count / 100, 1.0) * 50
        return min(play_score + like_score, 100.0)


class RecencyBoost(ScoringFactor):
    """Loses two points per day since creation."""

    name = "recency_boost"
    weight_key = "recency"

    POINTS_PER_DAY = 2.0

    def compute(self, beat: Beat, ctx: ScoringContext) -> float:
        created_at = beat.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        days = max(0.0, (ctx.now - created_at).total_seconds() / 86400)
        return max(0.0, 100 - days * self.POINTS_PER_DAY)


class CollaborativeFiltering(ScoringFactor):
    """Fraction of similar users who liked the beat."""

    name = "collaborative_filtering"
    weight_key = "collaborative"

    def compute(self, beat: Beat, ctx: ScoringContext) -> float:
        return ctx.neighbourhood.collaborative_score(beat.id)


class NoveltyScore(ScoringFactor):
    """Rewards genres and moods outside the user's favorites."""

    name = "novelty_score"
    weight_key = "novelty"

    def compute(self, beat: Beat, ctx: ScoringContext) -> float:
        new_genre = ctx.profile.genre_score(beat.genre) is None
        new_mood = ctx.profile.mood_score(beat.mood) is None
        return (50.0 if new_genre else 0.0) + (50.0 if new_mood else 0.0)


# =============================================================================
# Scoring Engine
# =============================================================================


class ScoringEngine:
    """
    Weighted multi-factor scorer.

    Pure and deterministic: identical (beat, profile, neighbourhood, clock)
    always yields an identical score.
    """

    def __init__(
        self,
        config: Optional[RankingConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or RankingConfig()
        self._clock = clock
        baseline = self._config.genre_baseline
        self._factors: List[ScoringFactor] = [
            GenreMatch(baseline),
            MoodMatch(baseline),
            BpmMatch(),
            PopularityBoost(),
            RecencyBoost(),
            CollaborativeFiltering(),
            NoveltyScore(),
        ]
        self._weights: Dict[str, float] = self._config.weights.as_dict()

    @property
    def weights(self) -> Dict[str, float]:
        return dict(self._weights)

    def context(
        self,
        profile: UserBehaviorProfile,
        neighbourhood: Optional[Neighbourhood] = None,
    ) -> ScoringContext:
        """Freeze request-wide inputs, including the clock reading."""
        return ScoringContext(
            profile=profile,
            neighbourhood=neighbourhood or Neighbourhood(),
            now=self._clock(),
        )

    def score(self, beat: Beat, ctx: ScoringContext) -> RecommendationScore:
        """Score one candidate."""
        breakdown: Dict[str, float] = {}
        total = 0.0
        for factor in self._factors:
            value = factor.compute(beat, ctx)
            breakdown[factor.name] = value
            total += value * self._weights[factor.weight_key]

        return RecommendationScore(
            beat_id=beat.id,
            score=total,
            factors=ScoreFactors(**breakdown),
        )

    def rank(self, candidates: List[Beat], ctx: ScoringContext) -> List[RecommendationScore]:
        """
        Score and sort candidates by score descending.
        Equal scores keep candidate order (sorted() is stable).
        """
        scored = [self.score(beat, ctx) for beat in candidates]
        ranked = sorted(scored, key=lambda s: s.score, reverse=True)
        logger.debug(f"Ranked {len(candidates)} candidates")
        return ranked
