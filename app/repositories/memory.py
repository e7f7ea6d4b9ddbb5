"""
In-memory repository implementations.
Used for prototyping and testing.
Production would replace these with Postgres-backed implementations.
"""
from collections import Counter
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Collection, Dict, List, Optional, Sequence, Set, Tuple

from app.models.interfaces import AnalyticsSink
from app.models.schemas import (
    Beat,
    Interaction,
    InteractionAction,
    Producer,
    SearchAnalyticsEvent,
    SearchSuggestion,
    utcnow,
)


class InMemoryBeatRepository:
    """
    In-memory implementation of BeatRepository.
    Store order is insertion order.
    """

    def __init__(self, beats: Optional[List[Beat]] = None) -> None:
        self._beats: Dict[str, Beat] = {}
        if beats is None:
            self._initialize_mock_data()
        else:
            for beat in beats:
                self._beats[beat.id] = beat

    def _initialize_mock_data(self) -> None:
        """Load mock catalogue for local development."""
        now = utcnow()
        day = timedelta(days=1)
        mock_beats = [
            Beat(id="b1", title="Midnight Drive", description="Dark synths over 808s",
                 producer_id="p1", genre="trap", mood="dark", key="F#m", bpm=140,
                 price=29.99, duration=180, play_count=1200, like_count=85,
                 created_at=now - 3 * day, tags=["808", "night", "synth"]),
            Beat(id="b2", title="Sunny Side", description="Feel-good bounce",
                 producer_id="p2", genre="pop", mood="happy", key="C", bpm=110,
                 price=19.99, duration=200, play_count=540, like_count=40,
                 created_at=now - 10 * day, tags=["summer", "guitar"]),
            Beat(id="b3", title="Concrete Jungle", description="Boom bap with vinyl crackle",
                 producer_id="p1", genre="hip-hop", mood="gritty", key="Am", bpm=92,
                 price=0.0, is_free=True, duration=150, play_count=2300, like_count=130,
                 created_at=now - 40 * day, tags=["boom bap", "vinyl"]),
            Beat(id="b4", title="Velvet Rain", description="Slow R&B ballad",
                 producer_id="p3", genre="r&b", mood="romantic", key="Eb", bpm=70,
                 price=49.99, duration=240, play_count=310, like_count=22,
                 created_at=now - 1 * day, tags=["smooth", "keys"]),
            Beat(id="b5", title="Drill Sergeant", description="UK drill slides",
                 producer_id="p2", genre="drill", mood="aggressive", key="Gm", bpm=144,
                 price=39.99, duration=170, play_count=980, like_count=70,
                 created_at=now - 6 * day, tags=["808", "slides", "uk"]),
            Beat(id="b6", title="Country Roads Remix", description="Banjo meets trap hats",
                 producer_id="p3", genre="country", mood="happy", key="G", bpm=140,
                 price=24.99, duration=190, play_count=150, like_count=9,
                 created_at=now - 20 * day, tags=["banjo", "crossover"]),
            Beat(id="b7", title="Neon Nights", description="Synthwave trap hybrid",
                 producer_id="p1", genre="trap", mood="energetic", key="Dm", bpm=150,
                 price=34.99, is_exclusive=True, duration=210, play_count=720, like_count=61,
                 created_at=now - 2 * day, tags=["synth", "night", "retro"]),
            Beat(id="b8", title="Lo-Fi Study", description="Chill loops for focus",
                 producer_id="p4", genre="lo-fi", mood="chill", key="F", bpm=85,
                 price=9.99, duration=160, play_count=3100, like_count=210,
                 created_at=now - 90 * day, tags=["study", "chill", "vinyl"]),
            Beat(id="b9", title="Retired Anthem", description="No longer listed",
                 producer_id="p4", genre="trap", mood="dark", key="Cm", bpm=135,
                 price=19.99, duration=175, play_count=5000, like_count=400,
                 is_active=False, created_at=now - 365 * day, tags=["808"]),
        ]
        for beat in mock_beats:
            self._beats[beat.id] = beat

    def add(self, beat: Beat) -> None:
        self._beats[beat.id] = beat

    async def get_beat(self, beat_id: str) -> Optional[Beat]:
        return self._beats.get(beat_id)

    async def get_beats_by_ids(
        self,
        beat_ids: Sequence[str],
        include_inactive: bool = False,
    ) -> List[Beat]:
        result = []
        for beat_id in beat_ids:
            beat = self._beats.get(beat_id)
            if beat is not None and (include_inactive or beat.is_active):
                result.append(beat)
        return result

    async def list_active_beats(
        self,
        exclude_ids: Collection[str] = (),
        limit: Optional[int] = None,
    ) -> List[Beat]:
        excluded = set(exclude_ids)
        return await self.find_beats(lambda b: b.id not in excluded, limit=limit)

    async def find_beats(
        self,
        predicate: Callable[[Beat], bool],
        limit: Optional[int] = None,
    ) -> List[Beat]:
        matches = [b for b in self._beats.values() if b.is_active and predicate(b)]
        return matches if limit is None else matches[:limit]

    async def get_popular_beats(self, limit: int) -> List[Beat]:
        active = [b for b in self._beats.values() if b.is_active]
        active.sort(key=lambda b: (b.play_count, b.like_count), reverse=True)
        return active[:limit]


class InMemoryInteractionRepository:
    """
    In-memory implementation of InteractionRepository.
    Simulates the analytics/likes tables.
    """

    def __init__(self, interactions: Optional[List[Interaction]] = None) -> None:
        self._log: List[Interaction] = []
        self._lock = Lock()
        if interactions is None:
            self._initialize_mock_data()
        else:
            self._log.extend(interactions)

    def _initialize_mock_data(self) -> None:
        """Load mock interaction history for local development."""
        now = utcnow()
        hour = timedelta(hours=1)
        likes = {
            "user_trap": ["b1", "b7", "b5"],
            "user_twin": ["b1", "b7", "b3"],
            "user_chill": ["b8", "b4", "b3"],
        }
        for user_id, beat_ids in likes.items():
            for offset, beat_id in enumerate(beat_ids):
                self._log.append(Interaction(
                    user_id=user_id, beat_id=beat_id,
                    action=InteractionAction.PLAY,
                    timestamp=now - (offset + 2) * hour, duration=150,
                ))
                self._log.append(Interaction(
                    user_id=user_id, beat_id=beat_id,
                    action=InteractionAction.LIKE,
                    timestamp=now - (offset + 1) * hour,
                ))

    def _liked_pairs(self) -> List[Tuple[str, str]]:
        return [(i.user_id, i.beat_id) for i in self._log if i.action == InteractionAction.LIKE]

    async def record(self, interaction: Interaction) -> None:
        with self._lock:
            self._log.append(interaction)

    async def get_user_interactions(self, user_id: str) -> List[Interaction]:
        return [i for i in self._log if i.user_id == user_id]

    async def get_liked_beat_ids(self, user_id: str) -> List[str]:
        liked: List[str] = []
        for uid, beat_id in self._liked_pairs():
            if uid == user_id and beat_id not in liked:
                liked.append(beat_id)
        return liked

    async def get_likers(self, beat_ids: Collection[str]) -> Dict[str, Set[str]]:
        wanted = set(beat_ids)
        likers: Dict[str, Set[str]] = {}
        for uid, beat_id in self._liked_pairs():
            if beat_id in wanted:
                likers.setdefault(uid, set()).add(beat_id)
        return likers

    async def get_liked_beat_ids_for_users(
        self,
        user_ids: Collection[str],
    ) -> Dict[str, Set[str]]:
        wanted = set(user_ids)
        liked: Dict[str, Set[str]] = {uid: set() for uid in wanted}
        for uid, beat_id in self._liked_pairs():
            if uid in wanted:
                liked[uid].add(beat_id)
        return liked

    async def count_actions_since(
        self,
        action: InteractionAction,
        since: datetime,
    ) -> Dict[str, int]:
        counts = Counter(
            i.beat_id for i in self._log
            if i.action == action and i.timestamp >= since
        )
        return dict(counts)


class InMemoryUserRepository:
    """In-memory implementation of UserRepository."""

    def __init__(self, users: Optional[List[Producer]] = None) -> None:
        if users is None:
            users = [
                Producer(id="p1", username="nightowl", first_name="Nina", last_name="Owens"),
                Producer(id="p2", username="sunbeam", first_name="Sam", last_name="Bright"),
                Producer(id="p3", username=None, first_name="Marcus", last_name="Velvet"),
                Producer(id="p4", username="lofilarry", first_name="Larry", last_name="Stone"),
            ]
        self._users: Dict[str, Producer] = {u.id: u for u in users}

    async def get_users_by_ids(self, user_ids: Collection[str]) -> Dict[str, Producer]:
        return {uid: self._users[uid] for uid in user_ids if uid in self._users}

    async def find_users_by_prefix(self, prefix: str, limit: int) -> List[Producer]:
        prefix = prefix.lower()
        matches = [
            u for u in self._users.values()
            if any(
                (name or "").lower().startswith(prefix)
                for name in (u.username, u.first_name, u.last_name)
            )
        ]
        return matches[:limit]


class InMemorySuggestionRepository:
    """In-memory implementation of SuggestionRepository keyed by (query, category)."""

    def __init__(self, suggestions: Optional[List[SearchSuggestion]] = None) -> None:
        self._rows: Dict[Tuple[str, str], SearchSuggestion] = {}
        self._lock = Lock()
        for suggestion in suggestions or []:
            self._rows[(suggestion.query, suggestion.category)] = suggestion

    async def upsert(
        self,
        query: str,
        category: str,
        result_count: int,
        used_at: datetime,
    ) -> SearchSuggestion:
        with self._lock:
            existing = self._rows.get((query, category))
            if existing is None:
                row = SearchSuggestion(
                    query=query, category=category, popularity=1,
                    result_count=result_count, last_used=used_at,
                )
            else:
                row = existing.model_copy(update={
                    "popularity": existing.popularity + 1,
                    "result_count": result_count,
                    "last_used": used_at,
                })
            self._rows[(query, category)] = row
            return row

    async def get(self, query: str, category: str) -> Optional[SearchSuggestion]:
        return self._rows.get((query, category))

    async def find_by_prefix(
        self,
        prefix: str,
        category: str,
        limit: int,
    ) -> List[SearchSuggestion]:
        prefix = prefix.lower()
        matches = [
            s for (q, c), s in self._rows.items()
            if c == category and q.startswith(prefix)
        ]
        matches.sort(key=lambda s: (s.popularity, s.result_count), reverse=True)
        return matches[:limit]

    async def most_popular(self, category: str, limit: int) -> List[SearchSuggestion]:
        rows = [s for (_, c), s in self._rows.items() if c == category]
        rows.sort(key=lambda s: s.popularity, reverse=True)
        return rows[:limit]


class InMemoryAnalyticsSink(AnalyticsSink):
    """Keeps search analytics events in a list."""

    def __init__(self) -> None:
        self.events: List[SearchAnalyticsEvent] = []

    async def record_search(self, event: SearchAnalyticsEvent) -> None:
        self.events.append(event)
