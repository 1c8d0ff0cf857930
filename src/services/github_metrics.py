from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import httpx
import structlog

from src.core.config import settings
from src.services.github_service import GitHubService

logger = structlog.get_logger()


@dataclass(frozen=True)
class GitHubMetrics:
    stars: int = 0
    commits: int = 0
    pull_requests: int = 0
    issues: int = 0
    recent_activity: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def years_ago(years: int, now: datetime | None = None) -> datetime:
    """Same calendar date `years` back; Feb 29 falls back to Feb 28."""
    now = now or datetime.now(timezone.utc)
    try:
        return now.replace(year=now.year - years)
    except ValueError:
        return now.replace(year=now.year - years, day=28)


class GitHubMetricsProvider:
    """Read-only GitHub aggregates used by the ranking engine.

    Never raises: a repository that cannot be read is skipped, and if the
    user or repository listing fails every metric is zero.
    """

    def __init__(self, github: GitHubService | None = None) -> None:
        self.github = github or GitHubService()

    async def fetch(self, username: str) -> GitHubMetrics:
        try:
            return await self._collect(username)
        except Exception as e:
            logger.error("Failed to fetch GitHub metrics", username=username, error=str(e))
            return GitHubMetrics()

    async def _collect(self, username: str) -> GitHubMetrics:
        stars = await self.github.count_starred(username)
        repos = await self.github.list_user_repos(username)
        recent_since = years_ago(settings.ranking_recent_activity_years).isoformat()

        commits = pull_requests = issues = recent_activity = 0
        for repo in repos:
            owner = repo["owner"]["login"]
            name = repo["name"]
            try:
                repo_commits = await self.github.count_commits(owner, name, author=username)
                repo_prs = await self.github.count_pull_requests(owner, name, author=username)
                repo_issues = await self.github.count_issues(owner, name, creator=username)
                repo_recent = await self.github.count_commits(
                    owner, name, author=username, since=recent_since
                )
            except (httpx.HTTPError, KeyError, ValueError) as e:
                logger.warning("Skipping repository", repo=f"{owner}/{name}", error=str(e))
                continue

            commits += repo_commits
            pull_requests += repo_prs
            issues += repo_issues
            recent_activity += repo_recent

        metrics = GitHubMetrics(
            stars=stars,
            commits=commits,
            pull_requests=pull_requests,
            issues=issues,
            recent_activity=recent_activity,
        )
        logger.info("GitHub metrics fetched", username=username, **metrics.to_dict())
        return metrics
