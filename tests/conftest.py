"""
Pytest configuration and fixtures.
"""
import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import (
    get_recommendation_service,
    get_search_service,
    get_suggestion_index,
)
from app.config.ranking import RankingConfig
from app.core.cache import InMemoryCacheStore, JsonCache
from app.core.circuit_breaker import CircuitBreaker
from app.main import app
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
from tests.factories import fixed_clock


@pytest.fixture
def config():
    return RankingConfig()


@pytest.fixture
def cache_store():
    return InMemoryCacheStore()


@pytest.fixture
def cache(cache_store):
    return JsonCache(cache_store)


@pytest.fixture
def beat_repo():
    """Fixture for the mock catalogue."""
    return InMemoryBeatRepository()


@pytest.fixture
def interaction_repo():
    """Fixture for the mock interaction log."""
    return InMemoryInteractionRepository()


@pytest.fixture
def user_repo():
    return InMemoryUserRepository()


@pytest.fixture
def suggestion_repo():
    return InMemorySuggestionRepository()


@pytest.fixture
def analytics_sink():
    return InMemoryAnalyticsSink()


@pytest.fixture
def scoring_engine(config):
    return ScoringEngine(config, clock=fixed_clock)


@pytest.fixture
def profiler(beat_repo, interaction_repo, cache, config):
    return UserBehaviorProfiler(beat_repo, interaction_repo, cache, config)


@pytest.fixture
def collaborative_filter(interaction_repo, cache, config):
    return CollaborativeFilter(interaction_repo, cache, config)


@pytest.fixture
def recommendation_service(
    beat_repo,
    interaction_repo,
    profiler,
    scoring_engine,
    collaborative_filter,
    cache,
    config,
):
    return RecommendationService(
        beat_repo=beat_repo,
        interaction_repo=interaction_repo,
        profiler=profiler,
        scoring_engine=scoring_engine,
        collaborative_filter=collaborative_filter,
        cache=cache,
        feature_flag_service=ConfigBasedFeatureFlagService(),
        circuit_breaker=CircuitBreaker("recommendations", failure_threshold=5),
        config=config,
        clock=fixed_clock,
    )


@pytest.fixture
def suggestion_index(suggestion_repo, beat_repo, user_repo, cache, config):
    return SuggestionIndex(suggestion_repo, beat_repo, user_repo, cache, config, clock=fixed_clock)


@pytest.fixture
def search_service(beat_repo, user_repo, suggestion_index, analytics_sink, cache, config):
    return SearchService(
        beat_repo=beat_repo,
        user_repo=user_repo,
        suggestion_index=suggestion_index,
        analytics_sink=analytics_sink,
        cache=cache,
        circuit_breaker=CircuitBreaker("search", failure_threshold=5),
        config=config,
    )


@pytest.fixture
def test_client(recommendation_service, search_service, suggestion_index):
    """
    TestClient fixture with dependency overrides.
    Uses in-memory repositories and a private cache for isolation.
    """
    app.dependency_overrides[get_recommendation_service] = lambda: recommendation_service
    app.dependency_overrides[get_search_service] = lambda: search_service
    app.dependency_overrides[get_suggestion_index] = lambda: suggestion_index

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
