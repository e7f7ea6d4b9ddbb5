"""
Unit tests for the search service.
"""
from unittest.mock import AsyncMock

import pytest

from app.core.cache import InMemoryCacheStore, JsonCache
from app.models.schemas import SearchFilters, SortMode
from app.repositories.memory import (
    InMemoryAnalyticsSink,
    InMemoryBeatRepository,
    InMemorySuggestionRepository,
    InMemoryUserRepository,
)
from app.services.search import SearchService, bpm_bucket, price_bucket
from app.services.suggestions import SuggestionIndex
from tests.factories import make_beat


def facet_dict(facets):
    return {f.value: f.count for f in facets}


def build_search(beat_repo):
    cache = JsonCache(InMemoryCacheStore())
    users = InMemoryUserRepository()
    index = SuggestionIndex(InMemorySuggestionRepository(), beat_repo, users, cache)
    return SearchService(beat_repo, users, index, InMemoryAnalyticsSink(), cache)


class TestFiltering:
    @pytest.mark.asyncio
    async def test_all_filters_must_match(self):
        beats = InMemoryBeatRepository([
            make_beat("a", genre="trap", bpm=140),
            make_beat("b", genre="trap", bpm=90),
        ])
        service = build_search(beats)

        result = await service.search(SearchFilters(genre="trap", bpm_min=100))

        assert [b.id for b in result.beats] == ["a"]
        assert result.total_count == 1

    @pytest.mark.asyncio
    async def test_text_query_matches_title(self, search_service):
        result = await search_service.search(SearchFilters(query="midnight"))

        assert [b.id for b in result.beats] == ["b1"]

    @pytest.mark.asyncio
    async def test_text_query_matches_producer_and_ranks_titles_first(self, search_service):
        result = await search_service.search(SearchFilters(query="night"))

        # b3 only matches through its producer "nightowl"
        assert [b.id for b in result.beats] == ["b1", "b7", "b3"]

    @pytest.mark.asyncio
    async def test_producer_full_name_matches(self, search_service):
        result = await search_service.search(SearchFilters(query="marcus"))

        assert {b.id for b in result.beats} == {"b4", "b6"}

    @pytest.mark.asyncio
    async def test_tags_match_any(self, search_service):
        result = await search_service.search(SearchFilters(tags=["808", "banjo"]))

        assert {b.id for b in result.beats} == {"b1", "b5", "b6"}

    @pytest.mark.asyncio
    async def test_flags_and_producer(self, search_service):
        free = await search_service.search(SearchFilters(is_free=True))
        exclusive = await search_service.search(SearchFilters(is_exclusive=True))
        by_producer = await search_service.search(SearchFilters(producer_id="p4"))

        assert [b.id for b in free.beats] == ["b3"]
        assert [b.id for b in exclusive.beats] == ["b7"]
        assert [b.id for b in by_producer.beats] == ["b8"]

    @pytest.mark.asyncio
    async def test_inactive_beats_never_returned(self, search_service):
        result = await search_service.search(SearchFilters(query="retired"))

        assert result.beats == []
        assert result.total_count == 0

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            SearchFilters(bpm_min=150, bpm_max=100)


class TestSortingAndPaging:
    @pytest.mark.asyncio
    async def test_price_low(self, search_service):
        result = await search_service.search(SearchFilters(sort_by=SortMode.PRICE_LOW))
        prices = [b.price for b in result.beats]

        assert prices == sorted(prices)
        assert result.beats[0].id == "b3"

    @pytest.mark.asyncio
    async def test_popular(self, search_service):
        result = await search_service.search(SearchFilters(sort_by=SortMode.POPULAR, limit=3))

        assert [b.id for b in result.beats] == ["b8", "b3", "b1"]

    @pytest.mark.asyncio
    async def test_bpm_puts_missing_last(self):
        beats = InMemoryBeatRepository([
            make_beat("none", bpm=None),
            make_beat("fast", bpm=170),
            make_beat("slow", bpm=70),
        ])
        result = await build_search(beats).search(SearchFilters(sort_by=SortMode.BPM))

        assert [b.id for b in result.beats] == ["slow", "fast", "none"]

    @pytest.mark.asyncio
    async def test_limit_and_offset(self, search_service):
        everything = await search_service.search(SearchFilters(sort_by=SortMode.POPULAR))
        page = await search_service.search(
            SearchFilters(sort_by=SortMode.POPULAR, limit=2, offset=2)
        )

        assert page.total_count == everything.total_count == 8
        assert [b.id for b in page.beats] == [b.id for b in everything.beats[2:4]]

    @pytest.mark.asyncio
    async def test_limit_capped_at_maximum(self):
        beats = InMemoryBeatRepository([make_beat(f"b{i}") for i in range(130)])
        result = await build_search(beats).search(SearchFilters(limit=500))

        assert len(result.beats) == 100
        assert result.total_count == 130


class TestFacets:
    @pytest.mark.asyncio
    async def test_genre_facets_sum_to_total(self, search_service):
        result = await search_service.search(SearchFilters())

        assert sum(f.count for f in result.facets.genres) == result.total_count

    @pytest.mark.asyncio
    async def test_facet_ignores_its_own_filter(self, search_service):
        result = await search_service.search(SearchFilters(genre="trap"))
        genres = facet_dict(result.facets.genres)

        assert result.total_count == 2
        assert genres["trap"] == 2
        assert genres["pop"] == 1
        assert sum(f.count for f in result.facets.moods) == 2

    @pytest.mark.asyncio
    async def test_bucket_counts(self, search_service):
        result = await search_service.search(SearchFilters())

        assert facet_dict(result.facets.bpm_ranges) == {
            "<60": 0, "60-90": 2, "90-120": 2, "120-140": 0, "140-180": 4, "180+": 0,
        }
        assert facet_dict(result.facets.price_ranges) == {
            "Free": 1, "$1-$25": 3, "$25-$50": 4, "$50-$100": 0, "$100+": 0,
        }

    def test_bucket_boundaries(self):
        assert bpm_bucket(make_beat("b", bpm=140)) == "140-180"
        assert bpm_bucket(make_beat("b", bpm=180)) == "180+"
        assert bpm_bucket(make_beat("b", bpm=None)) is None
        assert price_bucket(make_beat("b", price=0.0)) == "Free"
        assert price_bucket(make_beat("b", price=25.0)) == "$25-$50"
        assert price_bucket(make_beat("b", price=100.0)) == "$100+"


class TestCachingAndSideEffects:
    @pytest.mark.asyncio
    async def test_results_are_cached(self, search_service, beat_repo):
        first = await search_service.search(SearchFilters(query="midnight"))
        beat_repo.find_beats = AsyncMock(side_effect=RuntimeError("should not be called"))

        second = await search_service.search(SearchFilters(query="midnight"))

        assert [b.id for b in second.beats] == [b.id for b in first.beats]
        await search_service.drain()

    @pytest.mark.asyncio
    async def test_records_analytics_and_suggestions(self, search_service, analytics_sink, suggestion_repo):
        await search_service.search(SearchFilters(query="Midnight"), user_id="u1")
        await search_service.search(SearchFilters(query="midnight"), user_id="u1")
        await search_service.search(SearchFilters(genre="trap"))
        await search_service.drain()

        assert len(analytics_sink.events) == 3
        assert analytics_sink.events[0].search_type == "text"
        assert analytics_sink.events[0].user_id == "u1"
        assert analytics_sink.events[2].search_type == "filter"

        suggestion = await suggestion_repo.get("midnight", "beat")
        assert suggestion.popularity == 2
        assert suggestion.result_count == 1

    @pytest.mark.asyncio
    async def test_failure_returns_empty_result(self, search_service, beat_repo, cache):
        beat_repo.find_beats = AsyncMock(side_effect=RuntimeError("db down"))
        filters = SearchFilters(genre="trap")

        result = await search_service.search(filters)
        await search_service.drain()

        assert result.beats == []
        assert result.total_count == 0
        assert await cache.get(filters.cache_key()) is None

    @pytest.mark.asyncio
    async def test_analytics_failure_does_not_break_search(self, search_service, analytics_sink):
        analytics_sink.record_search = AsyncMock(side_effect=RuntimeError("sink down"))

        result = await search_service.search(SearchFilters(query="midnight"))
        await search_service.drain()

        assert [b.id for b in result.beats] == ["b1"]
