"""
Search API router.
Faceted search, query suggestions, autocomplete and trending searches.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError

from app.api.dependencies import get_search_service, get_suggestion_index
from app.models.schemas import (
    AutocompleteResult,
    SearchFilters,
    SearchResult,
    SortMode,
    SuggestionsResponse,
)
from app.services.search import SearchService
from app.services.suggestions import SuggestionIndex

router = APIRouter(prefix="/v1/search", tags=["search"])


def _split(raw: Optional[str]) -> list:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def search_filters(
    q: Optional[str] = Query(default=None, description="Free-text query"),
    genre: Optional[str] = None,
    mood: Optional[str] = None,
    bpm_min: Optional[int] = Query(default=None, ge=0),
    bpm_max: Optional[int] = Query(default=None, ge=0),
    key: Optional[str] = None,
    price_min: Optional[float] = Query(default=None, ge=0),
    price_max: Optional[float] = Query(default=None, ge=0),
    duration_min: Optional[int] = Query(default=None, ge=0),
    duration_max: Optional[int] = Query(default=None, ge=0),
    tags: Optional[str] = Query(default=None, description="Comma-separated tags, any may match"),
    is_free: Optional[bool] = None,
    is_exclusive: Optional[bool] = None,
    producer_id: Optional[str] = None,
    sort_by: SortMode = SortMode.RELEVANCE,
    limit: int = Query(default=20, ge=0, description="Capped server-side"),
    offset: int = Query(default=0, ge=0),
) -> SearchFilters:
    """Build the filter set from query parameters. Inverted ranges are a 422."""
    try:
        return SearchFilters(
            query=q,
            genre=genre,
            mood=mood,
            bpm_min=bpm_min,
            bpm_max=bpm_max,
            key=key,
            price_min=price_min,
            price_max=price_max,
            duration_min=duration_min,
            duration_max=duration_max,
            tags=_split(tags),
            is_free=is_free,
            is_exclusive=is_exclusive,
            producer_id=producer_id,
            sort_by=sort_by,
            limit=limit,
            offset=offset,
        )
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))


@router.get("", response_model=SearchResult, summary="Search Beats")
async def search_beats(
    filters: SearchFilters = Depends(search_filters),
    user_id: Optional[str] = Query(default=None, description="Searching user, for analytics"),
    service: SearchService = Depends(get_search_service),
) -> SearchResult:
    return await service.search(filters, user_id=user_id)


@router.get("/suggestions", response_model=SuggestionsResponse, summary="Query Suggestions")
async def get_suggestions(
    q: Optional[str] = None,
    limit: int = Query(default=10, ge=0, le=50),
    index: SuggestionIndex = Depends(get_suggestion_index),
) -> SuggestionsResponse:
    return SuggestionsResponse(suggestions=await index.get_suggestions(q, limit))


@router.get("/autocomplete", response_model=AutocompleteResult, summary="Autocomplete")
async def get_autocomplete(
    q: str = Query(default=""),
    categories: Optional[str] = Query(
        default=None,
        description="Comma-separated subset of beat,producer,genre,tag",
    ),
    index: SuggestionIndex = Depends(get_suggestion_index),
) -> AutocompleteResult:
    return await index.get_autocomplete(q, _split(categories) or None)


@router.get("/trending", response_model=SuggestionsResponse, summary="Trending Searches")
async def get_trending_searches(
    limit: int = Query(default=10, ge=0, le=50),
    index: SuggestionIndex = Depends(get_suggestion_index),
) -> SuggestionsResponse:
    return SuggestionsResponse(suggestions=await index.get_trending_searches(limit))
