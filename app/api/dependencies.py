"""
Dependency injection container.
Creates and wires all application components.
Uses FastAPI's dependency injection system.
"""
from functools import lru_cache

from app.config import RankingConfig, get_settings
from app.core.cache import CacheStore, JsonCache, create_cache_store
from app.core.circuit_breaker import CircuitBreaker
from app.repositories.memory import (
    InMemoryAnalyticsSink,
    InMemoryBeatRepository,
    InMemoryInteractionRepository,
    InMemorySuggestionRepository,
    InMemoryUserRepository,
)
from app.services.collaborative import CollaborativeFilter
from app.services.feature_flags import ConfigBasedFeatureFlagService
from app.services.profiler import UserBehaviorProfiler
from app.services.recommendations import RecommendationService
from app.services.scoring import ScoringEngine
from app.services.search import SearchService
from app.services.suggestions import SuggestionIndex


# =============================================================================
# Singleton Instances (Application Lifetime)
# =============================================================================


@lru_cache()
def get_ranking_config() -> RankingConfig:
    """Ranking tuning derived from settings."""
    return RankingConfig.from_settings(get_settings())


@lru_cache()
def get_beat_repository() -> InMemoryBeatRepository:
    return InMemoryBeatRepository()


@lru_cache()
def get_interaction_repository() -> InMemoryInteractionRepository:
    return InMemoryInteractionRepository()


@lru_cache()
def get_user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@lru_cache()
def get_suggestion_repository() -> InMemorySuggestionRepository:
    return InMemorySuggestionRepository()


@lru_cache()
def get_analytics_sink() -> InMemoryAnalyticsSink:
    return InMemoryAnalyticsSink()


@lru_cache()
def get_cache_store() -> CacheStore:
    """Get singleton cache store for the configured backend."""
    settings = get_settings()
    return create_cache_store(settings.CACHE_BACKEND, settings.REDIS_URL)


@lru_cache()
def get_cache() -> JsonCache:
    return JsonCache(get_cache_store(), timeout_ms=get_settings().CACHE_TIMEOUT_MS)


@lru_cache()
def get_feature_flag_service() -> ConfigBasedFeatureFlagService:
    """Get singleton feature flag service."""
    return ConfigBasedFeatureFlagService(rollout_percentage=100.0)


@lru_cache()
def get_scoring_engine() -> ScoringEngine:
    return ScoringEngine(get_ranking_config())


@lru_cache()
def get_recommendations_circuit_breaker() -> CircuitBreaker:
    """Get singleton circuit breaker for the personalized pipeline."""
    settings = get_settings()
    return CircuitBreaker(
        name="recommendations",
        failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        recovery_timeout_sec=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC,
    )


@lru_cache()
def get_search_circuit_breaker() -> CircuitBreaker:
    """Get singleton circuit breaker for search."""
    settings = get_settings()
    return CircuitBreaker(
        name="search",
        failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        recovery_timeout_sec=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC,
    )


@lru_cache()
def get_profiler() -> UserBehaviorProfiler:
    return UserBehaviorProfiler(
        beat_repo=get_beat_repository(),
        interaction_repo=get_interaction_repository(),
        cache=get_cache(),
        config=get_ranking_config(),
    )


@lru_cache()
def get_collaborative_filter() -> CollaborativeFilter:
    return CollaborativeFilter(
        interaction_repo=get_interaction_repository(),
        cache=get_cache(),
        config=get_ranking_config(),
    )


@lru_cache()
def get_suggestion_index() -> SuggestionIndex:
    return SuggestionIndex(
        suggestion_repo=get_suggestion_repository(),
        beat_repo=get_beat_repository(),
        user_repo=get_user_repository(),
        cache=get_cache(),
        config=get_ranking_config(),
    )


@lru_cache()
def get_search_service() -> SearchService:
    """
    Get search service with all dependencies wired.
    Singleton so pending background tasks can be drained at shutdown.
    """
    return SearchService(
        beat_repo=get_beat_repository(),
        user_repo=get_user_repository(),
        suggestion_index=get_suggestion_index(),
        analytics_sink=get_analytics_sink(),
        cache=get_cache(),
        circuit_breaker=get_search_circuit_breaker(),
        config=get_ranking_config(),
    )


# =============================================================================
# Request-Scoped Dependencies (Per-Request Lifetime)
# =============================================================================


def get_recommendation_service() -> RecommendationService:
    """
    Get recommendation service with all dependencies wired.
    This is the main entry point for the recommendation endpoints.
    """
    return RecommendationService(
        beat_repo=get_beat_repository(),
        interaction_repo=get_interaction_repository(),
        profiler=get_profiler(),
        scoring_engine=get_scoring_engine(),
        collaborative_filter=get_collaborative_filter(),
        cache=get_cache(),
        feature_flag_service=get_feature_flag_service(),
        circuit_breaker=get_recommendations_circuit_breaker(),
        config=get_ranking_config(),
    )


# =============================================================================
# Cleanup Functions
# =============================================================================


def clear_caches() -> None:
    """Clear all cached singleton instances (for testing)."""
    for factory in (
        get_ranking_config,
        get_beat_repository,
        get_interaction_repository,
        get_user_repository,
        get_suggestion_repository,
        get_analytics_sink,
        get_cache_store,
        get_cache,
        get_feature_flag_service,
        get_scoring_engine,
        get_recommendations_circuit_breaker,
        get_search_circuit_breaker,
        get_profiler,
        get_collaborative_filter,
        get_suggestion_index,
        get_search_service,
    ):
        factory.cache_clear()
