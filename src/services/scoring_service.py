from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas.scoring import ScoringWeightCreate
from src.core.scoring import (
    ACTIVITY_DESCRIPTIONS,
    DEFAULT_ACTIVITY_POINTS,
    DEFAULT_ACTIVITY_SCORING,
    ActivityScoringTable,
)
from src.db.models.scoring import ScoringWeight

logger = structlog.get_logger()


class ScoringService:
    """Service for managing activity base points."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_all_weights(self) -> list[ScoringWeight]:
        """Get all scoring weights, initializing defaults if needed."""
        result = await self.db.execute(select(ScoringWeight).order_by(ScoringWeight.id))
        weights = list(result.scalars().all())

        # Initialize defaults if empty
        if not weights:
            weights = await self._initialize_defaults()

        return weights

    async def _initialize_defaults(self) -> list[ScoringWeight]:
        """Initialize default scoring weights."""
        weights = []
        for activity_type, points in DEFAULT_ACTIVITY_POINTS.items():
            weight = ScoringWeight(
                activity_type=activity_type,
                base_points=Decimal(str(points)),
                description=ACTIVITY_DESCRIPTIONS.get(activity_type),
            )
            self.db.add(weight)
            weights.append(weight)

        await self.db.flush()
        logger.info("Initialized default scoring weights")
        return weights

    async def get_weight(self, activity_type: str) -> ScoringWeight | None:
        """Get scoring weight for a specific activity type."""
        result = await self.db.execute(
            select(ScoringWeight).where(ScoringWeight.activity_type == activity_type)
        )
        return result.scalar_one_or_none()

    async def update_weights(
        self,
        weights: list[ScoringWeightCreate],
    ) -> list[ScoringWeight]:
        """Update base points. Only activities recorded afterwards are affected."""
        updated = []

        for weight_data in weights:
            if weight_data.activity_type not in DEFAULT_ACTIVITY_POINTS:
                raise ValueError(f"Unknown activity type: {weight_data.activity_type}")

            existing = await self.get_weight(weight_data.activity_type)
            if existing:
                existing.base_points = weight_data.base_points
                if weight_data.description:
                    existing.description = weight_data.description
                updated.append(existing)
            else:
                new_weight = ScoringWeight(
                    activity_type=weight_data.activity_type,
                    base_points=weight_data.base_points,
                    description=weight_data.description
                    or ACTIVITY_DESCRIPTIONS.get(weight_data.activity_type),
                )
                self.db.add(new_weight)
                updated.append(new_weight)

        await self.db.flush()
        logger.info("Scoring weights updated", count=len(updated))
        return updated

    async def get_activity_table(self) -> ActivityScoringTable:
        """Default scoring table with stored base points applied on top."""
        result = await self.db.execute(select(ScoringWeight))
        overrides = {w.activity_type: float(w.base_points) for w in result.scalars().all()}
        if not overrides:
            return DEFAULT_ACTIVITY_SCORING
        return DEFAULT_ACTIVITY_SCORING.with_base_points(overrides)
