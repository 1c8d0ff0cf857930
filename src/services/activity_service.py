from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.scoring import DEFAULT_ACTIVITY_SCORING, ActivityScoringTable, ActivityType
from src.db.models.activity import EventActivity
from src.db.models.user import User

logger = structlog.get_logger()


def _type_value(activity_type: ActivityType | str) -> str:
    return activity_type.value if isinstance(activity_type, ActivityType) else activity_type


class ActivityService:
    """Scores and records event activities.

    Activities are append-only; a record for an identity that is already
    logged is skipped rather than updated.
    """

    def __init__(
        self,
        db: AsyncSession,
        scoring: ActivityScoringTable = DEFAULT_ACTIVITY_SCORING,
    ) -> None:
        self.db = db
        self.scoring = scoring

    def score(
        self,
        activity_type: ActivityType | str,
        lines_added: int = 0,
        lines_deleted: int = 0,
        files_changed: int = 0,
    ) -> int:
        return self.scoring.points_for(
            activity_type,
            lines_added=lines_added,
            lines_deleted=lines_deleted,
            files_changed=files_changed,
        )

    async def exists(
        self,
        participation_id: int,
        activity_type: ActivityType | str,
        identity: str,
    ) -> bool:
        result = await self.db.execute(
            select(EventActivity.id)
            .where(
                EventActivity.participation_id == participation_id,
                EventActivity.activity_type == _type_value(activity_type),
                EventActivity.github_sha == identity,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def record(
        self,
        participation_id: int,
        event_id: int,
        user_id: int,
        activity_type: ActivityType | str,
        occurred_at: datetime,
        identity: str | None = None,
        message: str | None = None,
        lines_added: int = 0,
        lines_deleted: int = 0,
        files_changed: int = 0,
        extra_data: dict | None = None,
    ) -> EventActivity | None:
        """Score and insert one activity.

        Returns None when the (participation, type, identity) triple is
        already recorded. Activities without an identity are always inserted.
        """
        activity_type = _type_value(activity_type)
        if identity is not None and await self.exists(participation_id, activity_type, identity):
            logger.debug(
                "Activity already recorded",
                participation_id=participation_id,
                activity_type=activity_type,
                identity=identity,
            )
            return None

        activity = EventActivity(
            participation_id=participation_id,
            event_id=event_id,
            user_id=user_id,
            activity_type=activity_type,
            github_sha=identity,
            commit_message=message,
            files_changed=files_changed,
            lines_added=lines_added,
            lines_deleted=lines_deleted,
            score_earned=self.score(
                activity_type,
                lines_added=lines_added,
                lines_deleted=lines_deleted,
                files_changed=files_changed,
            ),
            extra_data=extra_data or {},
            activity_date=occurred_at,
        )
        self.db.add(activity)
        await self.db.flush()

        logger.info(
            "Activity recorded",
            participation_id=participation_id,
            activity_type=activity_type,
            identity=identity,
            score=activity.score_earned,
        )
        return activity

    async def list_for_participation(
        self,
        participation_id: int,
        activity_type: ActivityType | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[EventActivity]:
        query = select(EventActivity).where(EventActivity.participation_id == participation_id)
        if activity_type is not None:
            query = query.where(EventActivity.activity_type == _type_value(activity_type))

        result = await self.db.execute(
            query.order_by(EventActivity.activity_date.desc(), EventActivity.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def recorded_identities(
        self,
        participation_id: int,
        activity_type: ActivityType | str,
    ) -> set[str]:
        result = await self.db.execute(
            select(EventActivity.github_sha).where(
                EventActivity.participation_id == participation_id,
                EventActivity.activity_type == _type_value(activity_type),
                EventActivity.github_sha.is_not(None),
            )
        )
        return set(result.scalars().all())

    async def get_recent_activities(self, event_id: int, limit: int = 20) -> list[dict]:
        """Latest activities of an event with the acting user's name and rank."""
        result = await self.db.execute(
            select(EventActivity, User.username, User.rank)
            .join(User, EventActivity.user_id == User.id)
            .where(EventActivity.event_id == event_id)
            .order_by(EventActivity.activity_date.desc(), EventActivity.id.desc())
            .limit(limit)
        )

        return [
            {
                "id": activity.id,
                "participation_id": activity.participation_id,
                "user_id": activity.user_id,
                "username": username,
                "user_rank": rank,
                "activity_type": activity.activity_type,
                "github_sha": activity.github_sha,
                "commit_message": activity.commit_message,
                "files_changed": activity.files_changed,
                "lines_added": activity.lines_added,
                "lines_deleted": activity.lines_deleted,
                "score_earned": activity.score_earned,
                "activity_date": activity.activity_date,
            }
            for activity, username, rank in result.all()
        ]

    async def get_event_activity_stats(self, event_id: int) -> list[dict]:
        """Per activity type: count, total score, lines and files."""
        result = await self.db.execute(
            select(
                EventActivity.activity_type,
                func.count(EventActivity.id).label("activity_count"),
                func.coalesce(func.sum(EventActivity.score_earned), 0).label("total_score"),
                func.coalesce(func.sum(EventActivity.lines_added), 0).label("total_lines_added"),
                func.coalesce(func.sum(EventActivity.lines_deleted), 0).label(
                    "total_lines_deleted"
                ),
                func.coalesce(func.sum(EventActivity.files_changed), 0).label(
                    "total_files_changed"
                ),
            )
            .where(EventActivity.event_id == event_id)
            .group_by(EventActivity.activity_type)
            .order_by(func.count(EventActivity.id).desc(), EventActivity.activity_type)
        )

        return [
            {
                "activity_type": row.activity_type,
                "count": row.activity_count,
                "total_score": int(row.total_score),
                "total_lines_added": int(row.total_lines_added),
                "total_lines_deleted": int(row.total_lines_deleted),
                "total_files_changed": int(row.total_files_changed),
            }
            for row in result.all()
        ]
