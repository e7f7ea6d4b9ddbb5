"""
Recommendation API router.
Personalized, trending, similar and genre beat lists plus interaction tracking.
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, Response, status

from app.api.dependencies import get_recommendation_service
from app.models.schemas import BeatListResponse, InteractionAccepted, InteractionRequest
from app.services.recommendations import RecommendationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["recommendations"])


def _split_ids(raw: Optional[str]) -> list:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


@router.get(
    "/recommendations/{user_id}",
    response_model=BeatListResponse,
    summary="Get Personalized Recommendations",
    description="""
    Beats ranked for a user by genre, mood and BPM affinity, popularity,
    recency, similar users' likes and novelty.

    **Features:**
    - Beats the user already liked are never recommended
    - Cached per user until the user's next interaction
    - Degrades to the most played beats on failure or when personalization is off
    """,
)
async def get_recommendations(
    response: Response,
    user_id: str = Path(..., min_length=1),
    limit: int = Query(default=20, ge=0, le=100, description="Number of beats to return"),
    exclude: Optional[str] = Query(
        default=None,
        description="Comma-separated beat ids to leave out",
    ),
    service: RecommendationService = Depends(get_recommendation_service),
) -> BeatListResponse:
    beats = await service.get_personalized_recommendations(
        user_id=user_id,
        limit=limit,
        exclude_ids=_split_ids(exclude),
    )
    response.headers["Cache-Control"] = "private, max-age=30"
    return BeatListResponse.of(beats)


@router.get("/beats/trending", response_model=BeatListResponse, summary="Get Trending Beats")
async def get_trending_beats(
    response: Response,
    limit: int = Query(default=20, ge=0, le=100),
    service: RecommendationService = Depends(get_recommendation_service),
) -> BeatListResponse:
    beats = await service.get_trending_beats(limit)
    response.headers["Cache-Control"] = "public, max-age=60, stale-while-revalidate=30"
    return BeatListResponse.of(beats)


@router.get("/beats/{beat_id}/similar", response_model=BeatListResponse, summary="Get Similar Beats")
async def get_similar_beats(
    beat_id: str = Path(..., min_length=1),
    limit: int = Query(default=10, ge=0, le=100),
    service: RecommendationService = Depends(get_recommendation_service),
) -> BeatListResponse:
    return BeatListResponse.of(await service.find_similar_beats(beat_id, limit))


@router.get("/beats/genre/{genre}", response_model=BeatListResponse, summary="Get Genre Picks")
async def get_genre_beats(
    genre: str = Path(..., min_length=1),
    user_id: Optional[str] = Query(default=None, description="Hide beats this user liked"),
    limit: int = Query(default=20, ge=0, le=100),
    service: RecommendationService = Depends(get_recommendation_service),
) -> BeatListResponse:
    return BeatListResponse.of(
        await service.get_genre_recommendations(genre, user_id=user_id, limit=limit)
    )


@router.post(
    "/interactions",
    response_model=InteractionAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Track Interaction",
)
async def track_interaction(
    body: InteractionRequest,
    background_tasks: BackgroundTasks,
    service: RecommendationService = Depends(get_recommendation_service),
) -> InteractionAccepted:
    """Record a play, like, purchase or skip after the response is sent."""
    background_tasks.add_task(
        service.track_user_interaction,
        body.user_id,
        body.beat_id,
        body.action,
        body.duration,
    )
    return InteractionAccepted()
