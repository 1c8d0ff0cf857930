from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas.ranking import (
    RankingCalculation,
    RankingLeaderboardEntry,
    RankingLeaderboardResponse,
    RankingStats,
    RecalculationSummary,
    UserRanking,
)
from src.db import get_db
from src.services.ranking_service import RankingService

router = APIRouter()


@router.get(
    "/leaderboard",
    response_model=RankingLeaderboardResponse,
    summary="Get user ranking leaderboard",
)
async def get_ranking_leaderboard(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> RankingLeaderboardResponse:
    """Users ordered by their stored total score."""
    service = RankingService(db)
    entries, total = await service.get_leaderboard(page, page_size)
    return RankingLeaderboardResponse(
        entries=[RankingLeaderboardEntry.model_validate(e) for e in entries],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/stats",
    response_model=RankingStats,
    summary="Get rank distribution",
)
async def get_ranking_stats(
    db: AsyncSession = Depends(get_db),
) -> RankingStats:
    service = RankingService(db)
    return RankingStats.model_validate(await service.get_ranking_stats())


@router.post(
    "/recalculate",
    response_model=RecalculationSummary,
    summary="Recalculate every user's ranking",
)
async def recalculate_rankings(
    db: AsyncSession = Depends(get_db),
) -> RecalculationSummary:
    """Recompute all users in turn. Failures are reported per user."""
    service = RankingService(db)
    return RecalculationSummary.model_validate(await service.recalculate_all())


@router.get(
    "/{user_id}",
    response_model=UserRanking,
    summary="Get a user's stored ranking",
)
async def get_user_ranking(
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> UserRanking:
    service = RankingService(db)
    ranking = await service.get_user_ranking(user_id)
    if ranking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found",
        )
    return UserRanking.model_validate(ranking)


@router.post(
    "/{user_id}",
    response_model=RankingCalculation,
    summary="Recalculate a user's ranking",
)
async def calculate_user_ranking(
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> RankingCalculation:
    """Compute the ranking from GitHub and platform data and store it."""
    service = RankingService(db)
    ranking = await service.recompute_user(user_id)
    if ranking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found",
        )
    return RankingCalculation.model_validate(ranking)
