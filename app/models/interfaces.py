"""
Repository interfaces (abstractions).
Using Protocol for structural subtyping (duck typing with type hints).
These define the contracts that data access implementations must follow.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Collection, Dict, List, Optional, Protocol, Sequence, Set, runtime_checkable

from app.models.schemas import (
    Beat,
    Interaction,
    InteractionAction,
    Producer,
    SearchAnalyticsEvent,
    SearchSuggestion,
)


@runtime_checkable
class BeatRepository(Protocol):
    """
    Read-only access to the beat catalogue.
    Production: Postgres. Testing: in-memory implementation.
    """

    async def get_beat(self, beat_id: str) -> Optional[Beat]:
        """Fetch a single beat (active or not) by id."""
        ...

    async def get_beats_by_ids(
        self,
        beat_ids: Sequence[str],
        include_inactive: bool = False,
    ) -> List[Beat]:
        """
        Resolve ids to beats.

        Returns:
            Beats in the order of `beat_ids`; unknown ids are skipped
        """
        ...

    async def list_active_beats(
        self,
        exclude_ids: Collection[str] = (),
        limit: Optional[int] = None,
    ) -> List[Beat]:
        """Active beats in store order, minus exclusions, capped at limit."""
        ...

    async def find_beats(
        self,
        predicate: Callable[[Beat], bool],
        limit: Optional[int] = None,
    ) -> List[Beat]:
        """Active beats matching predicate, in store order."""
        ...

    async def get_popular_beats(self, limit: int) -> List[Beat]:
        """Active beats ordered by play count, then like count (descending)."""
        ...


@runtime_checkable
class InteractionRepository(Protocol):
    """
    Append-only interaction log (plays, likes, purchases, skips).
    """

    async def record(self, interaction: Interaction) -> None:
        """Append an interaction."""
        ...

    async def get_user_interactions(self, user_id: str) -> List[Interaction]:
        """All interactions of a user, oldest first."""
        ...

    async def get_liked_beat_ids(self, user_id: str) -> List[str]:
        """Distinct beats liked by a user, in first-like order."""
        ...

    async def get_likers(self, beat_ids: Collection[str]) -> Dict[str, Set[str]]:
        """For the given beats: user id -> subset of those beats the user liked."""
        ...

    async def get_liked_beat_ids_for_users(
        self,
        user_ids: Collection[str],
    ) -> Dict[str, Set[str]]:
        """User id -> every beat that user liked."""
        ...

    async def count_actions_since(
        self,
        action: InteractionAction,
        since: datetime,
    ) -> Dict[str, int]:
        """Beat id -> number of `action` interactions at or after `since`."""
        ...


@runtime_checkable
class UserRepository(Protocol):
    """Read-only access to marketplace users (producers)."""

    async def get_users_by_ids(self, user_ids: Collection[str]) -> Dict[str, Producer]:
        ...

    async def find_users_by_prefix(self, prefix: str, limit: int) -> List[Producer]:
        """Users whose username, first or last name starts with prefix (case-insensitive)."""
        ...


@runtime_checkable
class SuggestionRepository(Protocol):
    """Persisted search suggestions with upsert semantics."""

    async def upsert(
        self,
        query: str,
        category: str,
        result_count: int,
        used_at: datetime,
    ) -> SearchSuggestion:
        """Insert with popularity 1, or increment popularity in place."""
        ...

    async def get(self, query: str, category: str) -> Optional[SearchSuggestion]:
        ...

    async def find_by_prefix(
        self,
        prefix: str,
        category: str,
        limit: int,
    ) -> List[SearchSuggestion]:
        """Ordered by popularity, then result count (descending)."""
        ...

    async def most_popular(self, category: str, limit: int) -> List[SearchSuggestion]:
        ...


class AnalyticsSink(ABC):
    """Fire-and-forget sink for search analytics events."""

    @abstractmethod
    async def record_search(self, event: SearchAnalyticsEvent) -> None:
        """
        Append a search analytics event.

        Args:
            event: The event to store
        """
        pass
