from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.scoring import ActivityType
from src.db.models.activity import EventActivity
from src.db.models.event import Event
from src.db.models.participation import EventParticipation
from src.db.models.user import User
from src.services.activity_service import ActivityService
from src.services.github_service import GitHubService, parse_repo_url

logger = structlog.get_logger()

PR_ACTIVITY_TYPES = (ActivityType.PR_CREATED.value, ActivityType.PR_MERGED.value)


class ParticipationService:
    """Event participations: joining and rolling activities up into stats."""

    def __init__(
        self,
        db: AsyncSession,
        activities: ActivityService | None = None,
        github_factory: Callable[[str], GitHubService] = GitHubService,
    ) -> None:
        self.db = db
        self.activities = activities or ActivityService(db)
        self.github_factory = github_factory

    async def get(self, participation_id: int) -> EventParticipation | None:
        return await self.db.get(EventParticipation, participation_id)

    async def find_by_event_and_user(
        self,
        event_id: int,
        user_id: int,
    ) -> EventParticipation | None:
        """The user's active participation in an event, if any."""
        result = await self.db.execute(
            select(EventParticipation).where(
                EventParticipation.event_id == event_id,
                EventParticipation.user_id == user_id,
                EventParticipation.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: int,
        active_only: bool = True,
    ) -> list[EventParticipation]:
        query = select(EventParticipation).where(EventParticipation.user_id == user_id)
        if active_only:
            query = query.where(EventParticipation.is_active.is_(True))

        result = await self.db.execute(
            query.order_by(EventParticipation.participation_date.desc())
        )
        return list(result.scalars().all())

    async def refresh_stats(self, participation_id: int) -> EventParticipation | None:
        """Recompute the rollups of a participation from its activity log."""
        participation = await self.get(participation_id)
        if not participation:
            return None

        result = await self.db.execute(
            select(
                func.count(EventActivity.id)
                .filter(EventActivity.activity_type == ActivityType.COMMIT.value)
                .label("commits"),
                func.count(EventActivity.id)
                .filter(EventActivity.activity_type.in_(PR_ACTIVITY_TYPES))
                .label("prs"),
                func.coalesce(func.sum(EventActivity.lines_added), 0).label("lines_added"),
                func.coalesce(func.sum(EventActivity.lines_deleted), 0).label("lines_deleted"),
                func.coalesce(func.sum(EventActivity.score_earned), 0).label("score"),
                func.max(EventActivity.activity_date).label("last_activity_date"),
            ).where(EventActivity.participation_id == participation_id)
        )
        stats = result.one()

        participation.total_commits = stats.commits or 0
        participation.total_prs = stats.prs or 0
        participation.lines_added = int(stats.lines_added)
        participation.lines_deleted = int(stats.lines_deleted)
        participation.score = int(stats.score)
        participation.last_activity_date = stats.last_activity_date
        await self.db.flush()

        logger.debug(
            "Participation stats refreshed",
            participation_id=participation_id,
            commits=participation.total_commits,
            prs=participation.total_prs,
            score=participation.score,
        )
        return participation

    async def get_event_leaderboard(
        self,
        event_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        """Active participants of an event with their 1-based position."""
        position = (
            func.row_number()
            .over(
                order_by=(
                    EventParticipation.score.desc(),
                    EventParticipation.total_commits.desc(),
                    EventParticipation.participation_date.asc(),
                    EventParticipation.id.asc(),
                )
            )
            .label("position")
        )

        result = await self.db.execute(
            select(
                EventParticipation,
                User.username,
                User.display_name,
                User.avatar_url,
                User.rank,
                position,
            )
            .join(User, EventParticipation.user_id == User.id)
            .where(
                EventParticipation.event_id == event_id,
                EventParticipation.is_active.is_(True),
            )
            .order_by(position)
            .offset(offset)
            .limit(limit)
        )

        return [
            {
                "position": row.position,
                "participation_id": row.EventParticipation.id,
                "user_id": row.EventParticipation.user_id,
                "username": row.username,
                "display_name": row.display_name,
                "avatar_url": row.avatar_url,
                "user_rank": row.rank,
                "score": row.EventParticipation.score,
                "total_commits": row.EventParticipation.total_commits,
                "total_prs": row.EventParticipation.total_prs,
                "lines_added": row.EventParticipation.lines_added,
                "lines_deleted": row.EventParticipation.lines_deleted,
                "participation_date": row.EventParticipation.participation_date,
                "last_activity_date": row.EventParticipation.last_activity_date,
            }
            for row in result.all()
        ]

    async def join_event(self, event_id: int, user_id: int) -> EventParticipation | None:
        """Fork the event repository for the user, branch it, and start tracking.

        Returns None when the event or user does not exist.
        """
        event = await self.db.get(Event, event_id)
        if not event:
            return None
        if not event.active:
            raise ValueError("Event is not active")
        if event.is_expired():
            raise ValueError("Event has ended")

        user = await self.db.get(User, user_id)
        if not user:
            return None
        if not event.is_visible_to_rank(user.rank):
            raise PermissionError(f"Event is not open to rank {user.rank}")
        if not user.has_github_credential:
            raise PermissionError("GitHub account is not connected")

        if await self.find_by_event_and_user(event_id, user_id):
            raise ValueError("Already participating in this event")

        owner, repo = parse_repo_url(event.github_repo)
        now = datetime.now(timezone.utc)
        branch_name = f"event-{event_id}-{user.username}-{int(now.timestamp() * 1000)}"

        github = self.github_factory(user.access_token)
        branch = await github.create_branch_in_fork(owner, repo, branch_name)

        participation = EventParticipation(
            event_id=event_id,
            user_id=user_id,
            github_fork_url=branch["fork_url"],
            branch_name=branch_name,
            participation_date=now,
            is_active=True,
        )
        self.db.add(participation)
        await self.db.flush()

        await self.activities.record(
            participation_id=participation.id,
            event_id=event_id,
            user_id=user_id,
            activity_type=ActivityType.FORK_CREATED,
            occurred_at=now,
            message=f"Forked {owner}/{repo}",
            extra_data={"fork_url": branch["fork_url"], "clone_url": branch["clone_url"]},
        )
        await self.activities.record(
            participation_id=participation.id,
            event_id=event_id,
            user_id=user_id,
            activity_type=ActivityType.BRANCH_CREATED,
            occurred_at=now,
            message=f"Created branch {branch_name}",
            extra_data={"branch_url": branch["branch_url"]},
        )
        await self.refresh_stats(participation.id)

        logger.info(
            "User joined event",
            event_id=event_id,
            user_id=user_id,
            participation_id=participation.id,
            branch=branch_name,
        )
        return participation

    async def leave_event(self, event_id: int, user_id: int) -> EventParticipation | None:
        """Soft-delete the active participation; a later join starts fresh."""
        participation = await self.find_by_event_and_user(event_id, user_id)
        if not participation:
            return None

        participation.is_active = False
        await self.db.flush()
        logger.info("User left event", event_id=event_id, user_id=user_id)
        return participation
