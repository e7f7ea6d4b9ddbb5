"""
Ranking configuration value objects.
Gathers every tuning constant of the recommendation engine in one place so
scoring code never reads settings directly.
"""
import math
from typing import Dict

from pydantic import BaseModel, Field, model_validator

from app.config.settings import Settings


class ScoreWeights(BaseModel):
    """Weights of the seven scoring factors. Must sum to 1.0."""

    genre: float = 0.25
    mood: float = 0.20
    bpm: float = 0.15
    popularity: float = 0.15
    recency: float = 0.10
    collaborative: float = 0.10
    novelty: float = 0.05

    @model_validator(mode="after")
    def _check_sum(self) -> "ScoreWeights":
        total = sum(self.as_dict().values())
        if not math.isclose(total, 1.0, rel_tol=0.0, abs_tol=1e-9):
            raise ValueError(f"score weights must sum to 1.0, got {total}")
        if any(w < 0 for w in self.as_dict().values()):
            raise ValueError("score weights must be non-negative")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {
            "genre": self.genre,
            "mood": self.mood,
            "bpm": self.bpm,
            "popularity": self.popularity,
            "recency": self.recency,
            "collaborative": self.collaborative,
            "novelty": self.novelty,
        }


class CacheTTLs(BaseModel):
    """Cache lifetimes in seconds."""

    profile: int = 7200
    similar_users: int = 14400
    recommendations: int = 3600
    trending_beats: int = 1800
    similar_beats: int = 7200
    search: int = 300
    suggestions: int = 60
    trending_searches: int = 1800


class RankingConfig(BaseModel):
    """All recommendation and search tuning knobs."""

    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    ttls: CacheTTLs = Field(default_factory=CacheTTLs)
    candidate_pool_size: int = Field(default=200, ge=1)
    default_bpm_min: int = 80
    default_bpm_max: int = 140
    default_session_length_sec: float = 180.0
    genre_baseline: float = 10.0
    top_preferences: int = 5
    min_common_likes: int = Field(default=2, ge=1)
    collaborative_neighbours: int = Field(default=10, ge=1)
    trending_window_days: int = Field(default=7, ge=1)
    max_search_limit: int = Field(default=100, ge=1)
    data_store_timeout_ms: int = 500

    @classmethod
    def from_settings(cls, settings: Settings) -> "RankingConfig":
        return cls(
            weights=ScoreWeights(
                genre=settings.SCORE_WEIGHT_GENRE,
                mood=settings.SCORE_WEIGHT_MOOD,
                bpm=settings.SCORE_WEIGHT_BPM,
                popularity=settings.SCORE_WEIGHT_POPULARITY,
                recency=settings.SCORE_WEIGHT_RECENCY,
                collaborative=settings.SCORE_WEIGHT_COLLABORATIVE,
                novelty=settings.SCORE_WEIGHT_NOVELTY,
            ),
            ttls=CacheTTLs(
                profile=settings.PROFILE_TTL_SEC,
                similar_users=settings.SIMILAR_USERS_TTL_SEC,
                recommendations=settings.RECOMMENDATIONS_TTL_SEC,
                trending_beats=settings.TRENDING_BEATS_TTL_SEC,
                similar_beats=settings.SIMILAR_BEATS_TTL_SEC,
                search=settings.SEARCH_TTL_SEC,
                suggestions=settings.SUGGESTIONS_TTL_SEC,
                trending_searches=settings.TRENDING_SEARCHES_TTL_SEC,
            ),
            candidate_pool_size=settings.CANDIDATE_POOL_SIZE,
            default_bpm_min=settings.DEFAULT_BPM_MIN,
            default_bpm_max=settings.DEFAULT_BPM_MAX,
            default_session_length_sec=settings.DEFAULT_SESSION_LENGTH_SEC,
            min_common_likes=settings.SIMILAR_USER_MIN_COMMON_LIKES,
            collaborative_neighbours=settings.COLLABORATIVE_NEIGHBOURS,
            trending_window_days=settings.TRENDING_WINDOW_DAYS,
            max_search_limit=settings.MAX_SEARCH_LIMIT,
            data_store_timeout_ms=settings.DATA_STORE_TIMEOUT_MS,
        )
