"""
Centralized configuration using Pydantic BaseSettings.
All environment variables are loaded here - no hardcoded values.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Beat Discovery API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Feature Flags
    PERSONALIZATION_ENABLED: bool = True
    KILL_SWITCH_ACTIVE: bool = False

    # Rollout Configuration
    ROLLOUT_PERCENTAGE: int = 100  # Percentage of users to receive personalized recommendations

    # Telemetry
    ENABLE_OTEL: bool = False  # Default to False to prevent gRPC errors in dev
    ENABLE_PROMETHEUS: bool = True

    # Timeouts (milliseconds) - Strict budgets per dependency
    CACHE_TIMEOUT_MS: int = 50
    DATA_STORE_TIMEOUT_MS: int = 500

    # Circuit Breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC: int = 30

    # Cache backend: "redis", "memory" or "none"
    CACHE_BACKEND: str = "memory"
    REDIS_URL: Optional[str] = None

    # Cache TTLs (seconds)
    PROFILE_TTL_SEC: int = 7200  # 2 hours
    SIMILAR_USERS_TTL_SEC: int = 14400  # 4 hours
    RECOMMENDATIONS_TTL_SEC: int = 3600  # 1 hour
    TRENDING_BEATS_TTL_SEC: int = 1800  # 30 minutes
    SIMILAR_BEATS_TTL_SEC: int = 7200  # 2 hours
    SEARCH_TTL_SEC: int = 300  # 5 minutes
    SUGGESTIONS_TTL_SEC: int = 60  # 1 minute
    TRENDING_SEARCHES_TTL_SEC: int = 1800  # 30 minutes

    # Scoring weights (must sum to 1.0)
    SCORE_WEIGHT_GENRE: float = 0.25
    SCORE_WEIGHT_MOOD: float = 0.20
    SCORE_WEIGHT_BPM: float = 0.15
    SCORE_WEIGHT_POPULARITY: float = 0.15
    SCORE_WEIGHT_RECENCY: float = 0.10
    SCORE_WEIGHT_COLLABORATIVE: float = 0.10
    SCORE_WEIGHT_NOVELTY: float = 0.05

    # Recommendation tuning
    CANDIDATE_POOL_SIZE: int = 200
    DEFAULT_BPM_MIN: int = 80
    DEFAULT_BPM_MAX: int = 140
    DEFAULT_SESSION_LENGTH_SEC: float = 180.0
    SIMILAR_USER_MIN_COMMON_LIKES: int = 2
    COLLABORATIVE_NEIGHBOURS: int = 10
    TRENDING_WINDOW_DAYS: int = 7

    # Pagination
    MAX_SEARCH_LIMIT: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - singleton pattern."""
    return Settings()
