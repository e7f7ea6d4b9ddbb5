"""
Domain models using Pydantic.
All data structures for the recommendation and search system.
"""
import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Catalogue & Interaction Models (read from the data store)
# =============================================================================


class InteractionAction(str, Enum):
    """Interaction types recorded in the append-only log."""

    PLAY = "play"
    LIKE = "like"
    PURCHASE = "purchase"
    SKIP = "skip"


class Beat(BaseModel):
    """A beat listed in the marketplace."""

    id: str = Field(..., description="Unique beat identifier")
    title: str = Field(..., description="Beat title")
    description: Optional[str] = Field(default=None)
    producer_id: str = Field(..., description="Owning producer's user id")
    genre: str
    mood: str
    key: str = Field(default="", description="Musical key, e.g. 'C#m'")
    bpm: Optional[int] = Field(default=None, ge=0)
    price: float = Field(default=0.0, ge=0)
    duration: Optional[int] = Field(default=None, ge=0, description="Seconds")
    is_free: bool = False
    is_exclusive: bool = False
    is_active: bool = True
    play_count: int = Field(default=0, ge=0)
    like_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    tags: List[str] = Field(default_factory=list, description="Unordered tag set")

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, tags: List[str]) -> List[str]:
        seen: Set[str] = set()
        unique = []
        for tag in tags:
            if tag not in seen:
                seen.add(tag)
                unique.append(tag)
        return unique


class Producer(BaseModel):
    """Marketplace user as seen by search (producer name matching)."""

    id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def display_name(self) -> str:
        return self.username or self.full_name


class Interaction(BaseModel):
    """Single user action on a beat."""

    user_id: str
    beat_id: str
    action: InteractionAction
    timestamp: datetime = Field(default_factory=utcnow)
    duration: Optional[float] = Field(default=None, ge=0, description="Seconds listened")


# =============================================================================
# Derived Recommendation Models
# =============================================================================


class GenreScore(BaseModel):
    genre: str
    score: int


class MoodScore(BaseModel):
    mood: str
    score: int


class BpmRange(BaseModel):
    min: int
    max: int

    def contains(self, bpm: int) -> bool:
        return self.min <= bpm <= self.max


class UserBehaviorProfile(BaseModel):
    """
    Statistical summary of a user's taste.
    Derived from the interaction log and cached; never the source of truth.
    """

    user_id: str
    total_listens: int = 0
    total_likes: int = 0
    total_purchases: int = 0
    total_skips: int = 0
    favorite_genres: List[GenreScore] = Field(default_factory=list)
    favorite_moods: List[MoodScore] = Field(default_factory=list)
    preferred_bpm_range: BpmRange = Field(default_factory=lambda: BpmRange(min=80, max=140))
    average_session_length: float = 180.0
    last_active: Optional[datetime] = None

    def genre_score(self, genre: str) -> Optional[int]:
        for entry in self.favorite_genres:
            if entry.genre == genre:
                return entry.score
        return None

    def mood_score(self, mood: str) -> Optional[int]:
        for entry in self.favorite_moods:
            if entry.mood == mood:
                return entry.score
        return None


class ScoreFactors(BaseModel):
    """Per-factor breakdown, each on a 0-100 scale."""

    genre_match: float
    mood_match: float
    bpm_match: float
    popularity_boost: float
    recency_boost: float
    collaborative_filtering: float
    novelty_score: float


class RecommendationScore(BaseModel):
    """Ephemeral score of one candidate for one user."""

    beat_id: str
    score: float
    factors: ScoreFactors


class SimilarUser(BaseModel):
    """Another user whose likes overlap with the requesting user's."""

    user_id: str
    similarity: float = Field(..., ge=0.0, le=1.0)
    common_likes: int = Field(..., ge=0)


class Neighbourhood(BaseModel):
    """Top similar users of a user and how many of them liked each beat."""

    similar_users: List[SimilarUser] = Field(default_factory=list)
    liked_counts: Dict[str, int] = Field(default_factory=dict)

    def collaborative_score(self, beat_id: str) -> float:
        if not self.similar_users:
            return 0.0
        return self.liked_counts.get(beat_id, 0) / len(self.similar_users) * 100


# =============================================================================
# Search Models
# =============================================================================


class SortMode(str, Enum):
    RELEVANCE = "relevance"
    NEWEST = "newest"
    POPULAR = "popular"
    PRICE_LOW = "price_low"
    PRICE_HIGH = "price_high"
    BPM = "bpm"
    DURATION = "duration"


class SearchFilters(BaseModel):
    """Request-scoped search filter set. Every supplied filter must match."""

    query: Optional[str] = None
    genre: Optional[str] = None
    mood: Optional[str] = None
    bpm_min: Optional[int] = None
    bpm_max: Optional[int] = None
    key: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    duration_min: Optional[int] = None
    duration_max: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    is_free: Optional[bool] = None
    is_exclusive: Optional[bool] = None
    producer_id: Optional[str] = None
    sort_by: SortMode = SortMode.RELEVANCE
    limit: int = Field(default=20, ge=0)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_ranges(self) -> "SearchFilters":
        for low, high in (
            ("bpm_min", "bpm_max"),
            ("price_min", "price_max"),
            ("duration_min", "duration_max"),
        ):
            lo, hi = getattr(self, low), getattr(self, high)
            if lo is not None and hi is not None and lo > hi:
                raise ValueError(f"{low} must not exceed {high}")
        return self

    @property
    def text(self) -> str:
        """Trimmed free-text query ('' when absent)."""
        return (self.query or "").strip()

    def cache_key(self) -> str:
        """Stable cache key for the full filter set."""
        canonical = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return "search:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class FacetCount(BaseModel):
    value: str
    count: int


class SearchFacets(BaseModel):
    genres: List[FacetCount] = Field(default_factory=list)
    moods: List[FacetCount] = Field(default_factory=list)
    keys: List[FacetCount] = Field(default_factory=list)
    bpm_ranges: List[FacetCount] = Field(default_factory=list)
    price_ranges: List[FacetCount] = Field(default_factory=list)


class SearchResult(BaseModel):
    """One page of search results plus facets and suggestions."""

    beats: List[Beat] = Field(default_factory=list)
    total_count: int = 0
    facets: SearchFacets = Field(default_factory=SearchFacets)
    suggestions: List[str] = Field(default_factory=list)
    search_time_ms: float = 0.0


class SearchSuggestion(BaseModel):
    """Learned query suggestion. Unique per (query, category)."""

    query: str
    category: str = "beat"
    popularity: int = Field(default=1, ge=0)
    result_count: int = 0
    last_used: datetime = Field(default_factory=utcnow)


class SearchAnalyticsEvent(BaseModel):
    query: str = ""
    user_id: Optional[str] = None
    result_count: int = 0
    search_type: str = "filter"
    filters: Dict[str, Any] = Field(default_factory=dict)
    response_time_ms: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)


class AutocompleteResult(BaseModel):
    beats: List[str] = Field(default_factory=list)
    producers: List[str] = Field(default_factory=list)
    genres: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


# =============================================================================
# API Models (External)
# =============================================================================


class InteractionRequest(BaseModel):
    """Body of POST /v1/interactions."""

    user_id: str = Field(..., min_length=1)
    beat_id: str = Field(..., min_length=1)
    action: InteractionAction
    duration: Optional[float] = Field(default=None, ge=0)


class BeatListResponse(BaseModel):
    """Ordered list of beats returned by the recommendation endpoints."""

    items: List[Beat] = Field(default_factory=list)
    count: int = Field(default=0, description="Number of items returned")

    @classmethod
    def of(cls, beats: List[Beat]) -> "BeatListResponse":
        return cls(items=beats, count=len(beats))


class SuggestionsResponse(BaseModel):
    suggestions: List[str] = Field(default_factory=list)


class InteractionAccepted(BaseModel):
    status: str = "accepted"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: Dict[str, Any] = Field(..., description="Error details")
