"""Models package - domain entities and interfaces."""
from .interfaces import (
    AnalyticsSink,
    BeatRepository,
    InteractionRepository,
    SuggestionRepository,
    UserRepository,
)
from .schemas import (
    AutocompleteResult,
    Beat,
    BeatListResponse,
    BpmRange,
    ErrorResponse,
    FacetCount,
    GenreScore,
    Interaction,
    InteractionAction,
    InteractionAccepted,
    InteractionRequest,
    MoodScore,
    Neighbourhood,
    Producer,
    RecommendationScore,
    ScoreFactors,
    SearchAnalyticsEvent,
    SearchFacets,
    SearchFilters,
    SearchResult,
    SearchSuggestion,
    SimilarUser,
    SortMode,
    SuggestionsResponse,
    UserBehaviorProfile,
)

__all__ = [
    # Interfaces
    "AnalyticsSink",
    "BeatRepository",
    "InteractionRepository",
    "SuggestionRepository",
    "UserRepository",
    # Schemas
    "AutocompleteResult",
    "Beat",
    "BeatListResponse",
    "BpmRange",
    "ErrorResponse",
    "FacetCount",
    "GenreScore",
    "Interaction",
    "InteractionAction",
    "InteractionAccepted",
    "InteractionRequest",
    "MoodScore",
    "Neighbourhood",
    "Producer",
    "RecommendationScore",
    "ScoreFactors",
    "SearchAnalyticsEvent",
    "SearchFacets",
    "SearchFilters",
    "SearchResult",
    "SearchSuggestion",
    "SimilarUser",
    "SortMode",
    "SuggestionsResponse",
    "UserBehaviorProfile",
]
