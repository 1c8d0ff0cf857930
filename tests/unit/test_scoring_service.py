from decimal import Decimal

import pytest

from src.api.schemas.scoring import ScoringWeightCreate
from src.core.scoring import DEFAULT_ACTIVITY_POINTS, DEFAULT_ACTIVITY_SCORING, ActivityType
from src.services.scoring_service import ScoringService


class TestScoringWeights:
    """Tests for stored activity base points."""

    @pytest.mark.asyncio
    async def test_defaults_initialized_on_first_read(self, db_session) -> None:
        weights = await ScoringService(db_session).get_all_weights()

        assert {w.activity_type: w.base_points for w in weights} == {
            key: Decimal(str(value)) for key, value in DEFAULT_ACTIVITY_POINTS.items()
        }
        assert all(w.description for w in weights)

    @pytest.mark.asyncio
    async def test_defaults_initialized_once(self, db_session) -> None:
        service = ScoringService(db_session)
        first = await service.get_all_weights()
        second = await service.get_all_weights()

        assert [w.id for w in first] == [w.id for w in second]

    @pytest.mark.asyncio
    async def test_update_existing_weight(self, db_session) -> None:
        service = ScoringService(db_session)
        await service.get_all_weights()

        updated = await service.update_weights(
            [ScoringWeightCreate(activity_type="commit", base_points=Decimal("4"))]
        )

        assert len(updated) == 1
        weight = await service.get_weight("commit")
        assert weight.base_points == Decimal("4")
        assert weight.description == "Base points per commit"

    @pytest.mark.asyncio
    async def test_update_creates_missing_weight(self, db_session) -> None:
        service = ScoringService(db_session)

        await service.update_weights(
            [ScoringWeightCreate(activity_type="pr_merged", base_points=Decimal("25"))]
        )

        weight = await service.get_weight("pr_merged")
        assert weight.base_points == Decimal("25")
        assert weight.description == "Points for a merged pull request"

    @pytest.mark.asyncio
    async def test_unknown_activity_type_rejected(self, db_session) -> None:
        with pytest.raises(ValueError, match="Unknown activity type"):
            await ScoringService(db_session).update_weights(
                [ScoringWeightCreate(activity_type="star", base_points=Decimal("1"))]
            )


class TestActivityTable:
    @pytest.mark.asyncio
    async def test_empty_store_uses_defaults(self, db_session) -> None:
        table = await ScoringService(db_session).get_activity_table()

        assert table is DEFAULT_ACTIVITY_SCORING

    @pytest.mark.asyncio
    async def test_stored_points_override_defaults(self, db_session) -> None:
        service = ScoringService(db_session)
        await service.update_weights(
            [ScoringWeightCreate(activity_type="commit", base_points=Decimal("5"))]
        )

        table = await service.get_activity_table()

        assert table.base_for(ActivityType.COMMIT) == 5
        assert table.base_for(ActivityType.PR_CREATED) == 10
        # 5 + 10 * 0.1
        assert table.points_for(ActivityType.COMMIT, lines_added=10) == 6


def test_negative_points_rejected_by_schema() -> None:
    with pytest.raises(ValueError):
        ScoringWeightCreate(activity_type="commit", base_points=Decimal("-1"))
