from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from src.core.scoring import DEFAULT_ACTIVITY_SCORING, ActivityType
from src.db.models import EventActivity
from src.services.activity_service import ActivityService

T0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def participation(make_user, make_event, make_participation):
    user = await make_user("octo")
    event = await make_event()
    return await make_participation(event, user)


async def count_activities(db_session) -> int:
    return await db_session.scalar(select(func.count(EventActivity.id)))


class TestRecord:
    @pytest.mark.asyncio
    async def test_record_commit_scores_and_stores(self, db_session, participation) -> None:
        service = ActivityService(db_session)

        activity = await service.record(
            participation_id=participation.id,
            event_id=participation.event_id,
            user_id=participation.user_id,
            activity_type=ActivityType.COMMIT,
            identity="sha1",
            message="Add parser",
            lines_added=10,
            files_changed=2,
            occurred_at=T0,
        )

        assert activity is not None
        assert activity.activity_type == "commit"
        # 2 + 1.0 + 1.0
        assert activity.score_earned == 4
        assert await count_activities(db_session) == 1

    @pytest.mark.asyncio
    async def test_duplicate_identity_is_skipped(self, db_session, participation) -> None:
        service = ActivityService(db_session)
        kwargs = dict(
            participation_id=participation.id,
            event_id=participation.event_id,
            user_id=participation.user_id,
            activity_type="commit",
            identity="sha1",
            occurred_at=T0,
        )

        first = await service.record(**kwargs)
        second = await service.record(**kwargs)

        assert first is not None
        assert second is None
        assert await count_activities(db_session) == 1

    @pytest.mark.asyncio
    async def test_same_identity_different_type_is_recorded(
        self, db_session, participation
    ) -> None:
        service = ActivityService(db_session)
        common = dict(
            participation_id=participation.id,
            event_id=participation.event_id,
            user_id=participation.user_id,
            identity="7",
            occurred_at=T0,
        )

        created = await service.record(activity_type=ActivityType.PR_CREATED, **common)
        merged = await service.record(activity_type=ActivityType.PR_MERGED, **common)

        assert created.score_earned == 10
        assert merged.score_earned == 20
        assert await count_activities(db_session) == 2

    @pytest.mark.asyncio
    async def test_activities_without_identity_are_not_deduplicated(
        self, db_session, participation
    ) -> None:
        service = ActivityService(db_session)
        for _ in range(2):
            await service.record(
                participation_id=participation.id,
                event_id=participation.event_id,
                user_id=participation.user_id,
                activity_type=ActivityType.FORK_CREATED,
                occurred_at=T0,
            )

        assert await count_activities(db_session) == 2

    @pytest.mark.asyncio
    async def test_custom_scoring_table(self, db_session, participation) -> None:
        table = DEFAULT_ACTIVITY_SCORING.with_base_points({"commit": 7})
        service = ActivityService(db_session, scoring=table)

        activity = await service.record(
            participation_id=participation.id,
            event_id=participation.event_id,
            user_id=participation.user_id,
            activity_type="commit",
            identity="sha9",
            occurred_at=T0,
        )
        assert activity.score_earned == 7


class TestQueries:
    @pytest.mark.asyncio
    async def test_recent_activities_newest_first_with_user(
        self, db_session, participation
    ) -> None:
        service = ActivityService(db_session)
        for index, sha in enumerate(["old", "mid", "new"]):
            await service.record(
                participation_id=participation.id,
                event_id=participation.event_id,
                user_id=participation.user_id,
                activity_type="commit",
                identity=sha,
                occurred_at=T0 + timedelta(hours=index),
            )

        feed = await service.get_recent_activities(participation.event_id, limit=2)

        assert [item["github_sha"] for item in feed] == ["new", "mid"]
        assert feed[0]["username"] == "octo"
        assert feed[0]["user_rank"] == "Code Novice"

    @pytest.mark.asyncio
    async def test_event_activity_stats(self, db_session, participation) -> None:
        service = ActivityService(db_session)
        base = dict(
            participation_id=participation.id,
            event_id=participation.event_id,
            user_id=participation.user_id,
            occurred_at=T0,
        )
        await service.record(activity_type="commit", identity="a", lines_added=10, **base)
        await service.record(activity_type="commit", identity="b", lines_deleted=4, **base)
        await service.record(activity_type="pr_created", identity="1", **base)

        stats = {row["activity_type"]: row for row in await service.get_event_activity_stats(
            participation.event_id
        )}

        assert stats["commit"]["count"] == 2
        assert stats["commit"]["total_lines_added"] == 10
        assert stats["commit"]["total_lines_deleted"] == 4
        # 3 + 2
        assert stats["commit"]["total_score"] == 5
        assert stats["pr_created"]["count"] == 1
        assert stats["pr_created"]["total_score"] == 10

    @pytest.mark.asyncio
    async def test_list_for_participation_filters_by_type(
        self, db_session, participation
    ) -> None:
        service = ActivityService(db_session)
        base = dict(
            participation_id=participation.id,
            event_id=participation.event_id,
            user_id=participation.user_id,
            occurred_at=T0,
        )
        await service.record(activity_type="commit", identity="a", **base)
        await service.record(activity_type="pr_created", identity="1", **base)

        commits = await service.list_for_participation(participation.id, activity_type="commit")

        assert [a.github_sha for a in commits] == ["a"]
        assert len(await service.list_for_participation(participation.id)) == 2
