from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.scoring import (
    DEFAULT_RANKING_WEIGHTS,
    RANK_THRESHOLDS,
    ActivityType,
    RankingWeights,
    rank_from_score,
    round_half_up,
)
from src.db.models.activity import EventActivity
from src.db.models.participation import EventParticipation
from src.db.models.proposal import Proposal
from src.db.models.proposal_activity import ProposalActivity
from src.db.models.user import User
from src.services.github_metrics import GitHubMetrics, GitHubMetricsProvider

logger = structlog.get_logger()

CONTRIBUTION_TYPES = (ActivityType.BRANCH_CREATED.value, ActivityType.PR_CREATED.value)


@dataclass(frozen=True)
class PlatformMetrics:
    proposals: int = 0
    contributions: int = 0


@dataclass(frozen=True)
class EventMetrics:
    active_participations: int = 0
    total_score: int = 0
    total_activities: int = 0
    recent_activities: int = 0


@dataclass
class RankingResult:
    total_score: float
    rank: str
    breakdown: dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_score": self.total_score,
            "rank": self.rank,
            "breakdown": self.breakdown,
        }


class RankingService:
    """Computes and stores user rankings.

    The composite score is the plain sum of nine capped sub-scores. It is
    not renormalized, so it can exceed 100; only the rank lookup clamps it.
    """

    def __init__(
        self,
        db: AsyncSession,
        metrics_provider: GitHubMetricsProvider | None = None,
        weights: RankingWeights = DEFAULT_RANKING_WEIGHTS,
    ) -> None:
        self.db = db
        self.metrics_provider = metrics_provider or GitHubMetricsProvider()
        self.weights = weights

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    async def get_platform_metrics(self, user_id: int) -> PlatformMetrics:
        proposals = await self.db.scalar(
            select(func.count(Proposal.id)).where(Proposal.created_by == user_id)
        )
        event_contributions = await self.db.scalar(
            select(func.count(EventActivity.id)).where(
                EventActivity.user_id == user_id,
                EventActivity.activity_type.in_(CONTRIBUTION_TYPES),
            )
        )
        proposal_contributions = await self.db.scalar(
            select(func.count(ProposalActivity.id)).where(
                ProposalActivity.user_id == user_id,
                ProposalActivity.activity_type.in_(CONTRIBUTION_TYPES),
            )
        )
        return PlatformMetrics(
            proposals=proposals or 0,
            contributions=(event_contributions or 0) + (proposal_contributions or 0),
        )

    async def get_event_metrics(self, user_id: int) -> EventMetrics:
        participation_stats = (
            await self.db.execute(
                select(
                    func.count(EventParticipation.id).label("participations"),
                    func.coalesce(func.sum(EventParticipation.score), 0).label("total_score"),
                ).where(
                    EventParticipation.user_id == user_id,
                    EventParticipation.is_active.is_(True),
                )
            )
        ).one()

        recent_cutoff = datetime.now(timezone.utc) - timedelta(
            days=settings.ranking_event_recent_days
        )
        activity_stats = (
            await self.db.execute(
                select(
                    func.count(EventActivity.id).label("total"),
                    func.count(EventActivity.id)
                    .filter(EventActivity.activity_date > recent_cutoff)
                    .label("recent"),
                )
                .join(
                    EventParticipation,
                    EventActivity.participation_id == EventParticipation.id,
                )
                .where(
                    EventParticipation.user_id == user_id,
                    EventParticipation.is_active.is_(True),
                )
            )
        ).one()

        return EventMetrics(
            active_participations=participation_stats.participations or 0,
            total_score=int(participation_stats.total_score),
            total_activities=activity_stats.total or 0,
            recent_activities=activity_stats.recent or 0,
        )

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def score_metrics(
        self,
        github: GitHubMetrics,
        platform: PlatformMetrics,
        events: EventMetrics,
    ) -> RankingResult:
        w = self.weights

        def entry(score: float, cap: float, value: int) -> dict:
            return {"score": score, "cap": cap, "value": value}

        breakdown = {
            "github_stars": entry(
                w.github_stars.apply(github.stars), w.github_stars.cap, github.stars
            ),
            "total_commits": entry(
                w.total_commits.apply(github.commits), w.total_commits.cap, github.commits
            ),
            "pull_requests": entry(
                w.pull_requests.apply(github.pull_requests),
                w.pull_requests.cap,
                github.pull_requests,
            ),
            "issues": entry(w.issues.apply(github.issues), w.issues.cap, github.issues),
            "recent_activity": entry(
                w.recent_activity.apply(github.recent_activity),
                w.recent_activity.cap,
                github.recent_activity,
            ),
            "proposals": entry(
                w.proposals.apply(platform.proposals), w.proposals.cap, platform.proposals
            ),
            "contributions": entry(
                w.contributions.apply(platform.contributions),
                w.contributions.cap,
                platform.contributions,
            ),
            "event_participation": entry(
                w.event_participations.apply(events.active_participations)
                + w.event_score.apply(events.total_score),
                w.event_participation_cap,
                events.active_participations,
            ),
            "event_activities": entry(
                w.event_activities_total.apply(events.total_activities)
                + w.event_activities_recent.apply(events.recent_activities),
                w.event_activities_cap,
                events.total_activities,
            ),
        }

        total = sum(item["score"] for item in breakdown.values())
        return RankingResult(
            total_score=round_half_up(total, 2),
            rank=rank_from_score(total).value,
            breakdown=breakdown,
        )

    async def calculate_user_ranking(self, user_id: int, username: str) -> RankingResult:
        """Score a user from GitHub and platform data. Does not persist."""
        github = await self.metrics_provider.fetch(username)
        platform = await self.get_platform_metrics(user_id)
        events = await self.get_event_metrics(user_id)

        result = self.score_metrics(github, platform, events)
        logger.info(
            "User ranking calculated",
            user_id=user_id,
            username=username,
            total_score=result.total_score,
            rank=result.rank,
        )
        return result

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def update_user_rank(self, user_id: int, ranking: RankingResult) -> None:
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                rank=ranking.rank,
                total_score=Decimal(str(ranking.total_score)),
                last_rank_update=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()

    async def recompute_user(self, user_id: int) -> dict | None:
        """Calculate and store a user's ranking; None if the user is missing."""
        user = await self.db.get(User, user_id)
        if not user:
            return None

        username = user.username
        ranking = await self.calculate_user_ranking(user_id, username)
        await self.update_user_rank(user_id, ranking)
        return {"user_id": user_id, "username": username, **ranking.to_dict()}

    async def recalculate_all(self) -> dict:
        """Recompute every user in turn; one failure does not stop the run."""
        result = await self.db.execute(select(User.id, User.username).order_by(User.id))
        users = result.all()

        summary: dict = {"processed": 0, "successful": 0, "failed": 0, "results": []}
        logger.info("Starting ranking recalculation", users=len(users))

        for user_id, username in users:
            summary["processed"] += 1
            try:
                ranking = await self.calculate_user_ranking(user_id, username)
                await self.update_user_rank(user_id, ranking)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                summary["failed"] += 1
                summary["results"].append(
                    {"user_id": user_id, "username": username, "success": False, "error": str(e)}
                )
                logger.error(
                    "Ranking recalculation failed",
                    user_id=user_id,
                    username=username,
                    error=str(e),
                )
                continue

            summary["successful"] += 1
            summary["results"].append(
                {
                    "user_id": user_id,
                    "username": username,
                    "success": True,
                    "total_score": ranking.total_score,
                    "rank": ranking.rank,
                }
            )

        logger.info(
            "Ranking recalculation completed",
            processed=summary["processed"],
            successful=summary["successful"],
            failed=summary["failed"],
        )
        return summary

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_user_ranking(self, user_id: int) -> dict | None:
        """Stored ranking of a user, as written by the last recompute."""
        user = await self.db.get(User, user_id)
        if not user:
            return None
        return {
            "user_id": user.id,
            "username": user.username,
            "rank": user.rank,
            "total_score": user.total_score,
            "last_rank_update": user.last_rank_update,
        }

    async def get_leaderboard(
        self,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[dict], int]:
        """Users ordered by stored score, with pagination."""
        offset = (page - 1) * page_size

        count_result = await self.db.execute(select(func.count(User.id)))
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(User)
            .order_by(User.total_score.desc(), User.id.asc())
            .offset(offset)
            .limit(page_size)
        )
        users = result.scalars().all()

        entries = [
            {
                "position": offset + index,
                "user_id": user.id,
                "username": user.username,
                "display_name": user.display_name,
                "avatar_url": user.avatar_url,
                "rank": user.rank,
                "total_score": user.total_score,
                "last_rank_update": user.last_rank_update,
            }
            for index, user in enumerate(users, start=1)
        ]
        return entries, total

    async def get_ranking_stats(self) -> dict:
        result = await self.db.execute(
            select(User.rank, func.count(User.id).label("users")).group_by(User.rank)
        )
        by_rank = {row.rank: row.users for row in result.all()}

        aggregates = (
            await self.db.execute(
                select(
                    func.count(User.id).label("total_users"),
                    func.avg(User.total_score).label("average_score"),
                    func.max(User.total_score).label("top_score"),
                )
            )
        ).one()

        return {
            "total_users": aggregates.total_users or 0,
            "rank_distribution": {
                tier.value: by_rank.get(tier.value, 0) for tier, _, _ in RANK_THRESHOLDS
            },
            "average_score": round(float(aggregates.average_score or 0), 2),
            "top_score": float(aggregates.top_score or 0),
        }
