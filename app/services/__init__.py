"""Services package - business logic layer."""
from .collaborative import CollaborativeFilter
from .feature_flags import ConfigBasedFeatureFlagService, FeatureFlagService
from .profiler import UserBehaviorProfiler
from .recommendations import RecommendationService
from .scoring import ScoringEngine, ScoringFactor
from .search import SearchService
from .suggestions import SuggestionIndex

__all__ = [
    "CollaborativeFilter",
    "ConfigBasedFeatureFlagService",
    "FeatureFlagService",
    "RecommendationService",
    "ScoringEngine",
    "ScoringFactor",
    "SearchService",
    "SuggestionIndex",
    "UserBehaviorProfiler",
]
