"""Pulls new commits and pull requests for event participants from GitHub.

Each participation is synced on its own: one failing participant never
blocks the rest of a batch, and the activity log only grows, so running a
sync twice records nothing new the second time.
"""

import asyncio
import weakref
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.scoring import ActivityType
from src.db.models.base import as_utc
from src.db.models.event import Event
from src.db.models.participation import EventParticipation
from src.db.models.user import User
from src.services.activity_service import ActivityService
from src.services.github_service import GitHubService, parse_repo_url
from src.services.participation_service import ParticipationService

logger = structlog.get_logger()

# One writer per participation within the process. Entries disappear once
# no coroutine holds or waits on the lock.
_participation_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
    weakref.WeakValueDictionary()
)


def participation_lock(participation_id: int) -> asyncio.Lock:
    lock = _participation_locks.get(participation_id)
    if lock is None:
        lock = asyncio.Lock()
        _participation_locks[participation_id] = lock
    return lock


def parse_github_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class SyncTarget:
    """Everything needed to sync one participation, detached from the session."""

    participation_id: int
    event_id: int
    user_id: int
    username: str
    access_token: str
    github_repo: str
    branch_name: str
    participation_date: datetime
    last_activity_date: datetime | None = None

    @property
    def watermark(self) -> datetime:
        return as_utc(self.last_activity_date or self.participation_date)


@dataclass
class SyncOutcome:
    participation_id: int
    new_commits: int = 0
    new_pull_requests: int = 0
    new_merges: int = 0

    @property
    def new_activities(self) -> int:
        return self.new_commits + self.new_pull_requests + self.new_merges


@dataclass
class SyncReport:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    outcomes: list[SyncOutcome] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "new_activities": sum(o.new_activities for o in self.outcomes),
            "results": [
                {
                    "participation_id": o.participation_id,
                    "new_commits": o.new_commits,
                    "new_pull_requests": o.new_pull_requests,
                    "new_merges": o.new_merges,
                }
                for o in self.outcomes
            ],
            "errors": self.errors,
        }


class ActivitySyncService:
    """Service for syncing event participants' GitHub activity."""

    def __init__(
        self,
        db: AsyncSession,
        activities: ActivityService | None = None,
        github_factory: Callable[[str], GitHubService] = GitHubService,
    ) -> None:
        self.db = db
        self.activities = activities or ActivityService(db)
        self.participations = ParticipationService(
            db,
            activities=self.activities,
            github_factory=github_factory,
        )
        self.github_factory = github_factory

    async def find_participations_due_for_sync(
        self,
        event_id: int | None = None,
    ) -> list[SyncTarget]:
        """Active participations in running events whose user has a GitHub token."""
        now = datetime.now(timezone.utc)
        query = (
            select(EventParticipation, User.username, User.access_token, Event.github_repo)
            .join(User, EventParticipation.user_id == User.id)
            .join(Event, EventParticipation.event_id == Event.id)
            .where(
                EventParticipation.is_active.is_(True),
                Event.active.is_(True),
                Event.end_date > now,
                User.access_token.is_not(None),
                User.access_token != "",
            )
            .order_by(EventParticipation.id)
        )
        if event_id is not None:
            query = query.where(EventParticipation.event_id == event_id)

        result = await self.db.execute(query)
        return [
            SyncTarget(
                participation_id=participation.id,
                event_id=participation.event_id,
                user_id=participation.user_id,
                username=username,
                access_token=access_token,
                github_repo=github_repo,
                branch_name=participation.branch_name,
                participation_date=participation.participation_date,
                last_activity_date=participation.last_activity_date,
            )
            for participation, username, access_token, github_repo in result.all()
        ]

    async def sync_participation(self, target: SyncTarget) -> SyncOutcome:
        """Record new commits, pull requests and merges for one participation.

        Does not commit; the caller owns the transaction.
        """
        async with participation_lock(target.participation_id):
            outcome = SyncOutcome(participation_id=target.participation_id)
            owner, repo = parse_repo_url(target.github_repo)
            fork_owner = target.username
            since = target.watermark
            github = self.github_factory(target.access_token)

            commits = await github.get_branch_commits(
                fork_owner, repo, target.branch_name, since=since.isoformat()
            )
            for commit in commits:
                if await self._record_commit(github, target, fork_owner, repo, commit):
                    outcome.new_commits += 1

            pulls = await self._pull_requests_to_process(github, target, owner, repo, since)
            for pr in pulls:
                created, merged = await self._record_pull_request(target, pr)
                outcome.new_pull_requests += created
                outcome.new_merges += merged

            await self.participations.refresh_stats(target.participation_id)

        logger.info(
            "Participation synced",
            participation_id=target.participation_id,
            new_commits=outcome.new_commits,
            new_pull_requests=outcome.new_pull_requests,
            new_merges=outcome.new_merges,
        )
        return outcome

    async def _record_commit(
        self,
        github: GitHubService,
        target: SyncTarget,
        fork_owner: str,
        repo: str,
        commit: dict,
    ) -> bool:
        sha = commit["sha"]
        if await self.activities.exists(target.participation_id, ActivityType.COMMIT, sha):
            return False

        stats = commit.get("stats")
        files = commit.get("files")
        if not stats or not stats.get("total"):
            try:
                detail = await github.get_commit(fork_owner, repo, sha) or {}
            except Exception as e:
                logger.warning("Failed to fetch commit details", sha=sha, error=str(e))
                detail = {}
            stats = detail.get("stats") or {}
            files = detail.get("files") or []

        author = commit["commit"]["author"]
        activity = await self.activities.record(
            participation_id=target.participation_id,
            event_id=target.event_id,
            user_id=target.user_id,
            activity_type=ActivityType.COMMIT,
            identity=sha,
            message=commit["commit"].get("message"),
            lines_added=stats.get("additions") or 0,
            lines_deleted=stats.get("deletions") or 0,
            files_changed=len(files or []),
            extra_data={
                "commit_url": f"https://github.com/{fork_owner}/{repo}/commit/{sha}",
                "author": author,
            },
            occurred_at=parse_github_datetime(author["date"]),
        )
        return activity is not None

    async def _pull_requests_to_process(
        self,
        github: GitHubService,
        target: SyncTarget,
        owner: str,
        repo: str,
        since: datetime,
    ) -> list[dict]:
        """The fork owner's PRs opened after the watermark, plus recorded PRs
        that have not been seen merged yet."""
        pulls = await github.list_pull_requests(owner, repo, state="all")
        recorded = await self.activities.recorded_identities(
            target.participation_id, ActivityType.PR_CREATED
        )
        merged = await self.activities.recorded_identities(
            target.participation_id, ActivityType.PR_MERGED
        )
        awaiting_merge = recorded - merged

        selected = []
        for pr in pulls:
            if (pr.get("user") or {}).get("login") != target.username:
                continue
            number = str(pr["number"])
            if parse_github_datetime(pr["created_at"]) > since or number in awaiting_merge:
                selected.append(pr)
        return selected

    async def _record_pull_request(self, target: SyncTarget, pr: dict) -> tuple[int, int]:
        number = str(pr["number"])
        created = await self.activities.record(
            participation_id=target.participation_id,
            event_id=target.event_id,
            user_id=target.user_id,
            activity_type=ActivityType.PR_CREATED,
            identity=number,
            message=pr.get("title"),
            extra_data={
                "pr_url": pr.get("html_url"),
                "pr_title": pr.get("title"),
                "pr_body": pr.get("body"),
                "state": pr.get("state"),
            },
            occurred_at=parse_github_datetime(pr["created_at"]),
        )

        merged = None
        if pr.get("state") == "closed" and pr.get("merged_at"):
            merged = await self.activities.record(
                participation_id=target.participation_id,
                event_id=target.event_id,
                user_id=target.user_id,
                activity_type=ActivityType.PR_MERGED,
                identity=number,
                message=f"Merged: {pr.get('title')}",
                extra_data={
                    "pr_url": pr.get("html_url"),
                    "pr_title": pr.get("title"),
                    "merged_at": pr["merged_at"],
                },
                occurred_at=parse_github_datetime(pr["merged_at"]),
            )

        return int(created is not None), int(merged is not None)

    async def sync_all(self, event_id: int | None = None) -> SyncReport:
        """Sync every eligible participation, committing each one separately."""
        targets = await self.find_participations_due_for_sync(event_id)
        report = SyncReport()
        logger.info("Starting activity sync", event_id=event_id, participations=len(targets))

        for target in targets:
            report.processed += 1
            try:
                outcome = await self.sync_participation(target)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                report.failed += 1
                report.errors.append(
                    {"participation_id": target.participation_id, "error": str(e)}
                )
                logger.error(
                    "Participation sync failed",
                    participation_id=target.participation_id,
                    error=str(e),
                )
                continue

            report.successful += 1
            report.outcomes.append(outcome)

        logger.info(
            "Activity sync completed",
            event_id=event_id,
            processed=report.processed,
            successful=report.successful,
            failed=report.failed,
        )
        return report

    async def sync_event(self, event_id: int) -> SyncReport | None:
        """Sync one event's participants; None if the event does not exist."""
        event = await self.db.get(Event, event_id)
        if not event:
            return None
        return await self.sync_all(event_id=event_id)

    async def get_event_activity_summary(self, event_id: int) -> dict | None:
        event = await self.db.get(Event, event_id)
        if not event:
            return None

        return {
            "event_id": event_id,
            "stats": await self.activities.get_event_activity_stats(event_id),
            "recent_activities": await self.activities.get_recent_activities(event_id, limit=10),
            "top_participants": await self.participations.get_event_leaderboard(
                event_id, limit=10
            ),
        }
