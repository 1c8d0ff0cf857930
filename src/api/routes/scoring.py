from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas.scoring import ScoringWeightCreate, ScoringWeightResponse
from src.db import get_db
from src.services.scoring_service import ScoringService

router = APIRouter()


@router.get(
    "/scoring",
    response_model=list[ScoringWeightResponse],
    summary="Get current scoring weights",
)
async def get_scoring_weights(
    db: AsyncSession = Depends(get_db),
) -> list[ScoringWeightResponse]:
    """Get the base points for every activity type."""
    service = ScoringService(db)
    weights = await service.get_all_weights()
    return [ScoringWeightResponse.model_validate(w) for w in weights]


@router.put(
    "/scoring",
    response_model=list[ScoringWeightResponse],
    summary="Update scoring weights",
)
async def update_scoring_weights(
    weights: list[ScoringWeightCreate],
    db: AsyncSession = Depends(get_db),
) -> list[ScoringWeightResponse]:
    """Update base points. Activities already recorded keep their score."""
    service = ScoringService(db)
    try:
        updated = await service.update_weights(weights)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return [ScoringWeightResponse.model_validate(w) for w in updated]
