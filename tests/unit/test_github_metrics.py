from datetime import datetime, timezone

import httpx
import pytest

from src.services.github_metrics import GitHubMetrics, GitHubMetricsProvider, years_ago


def status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.github.com/repos/octo/private")
    return httpx.HTTPStatusError(
        "error", request=request, response=httpx.Response(status_code, request=request)
    )


class FakeGitHub:
    def __init__(self, repos: list[dict], failing_repos: set[str] | None = None) -> None:
        self.repos = repos
        self.failing_repos = failing_repos or set()

    async def count_starred(self, username: str) -> int:
        return 12

    async def list_user_repos(self, username: str) -> list[dict]:
        return [{"name": name, "owner": {"login": username}} for name in self.repos]

    async def count_commits(self, owner, name, author, since=None) -> int:
        if name in self.failing_repos:
            raise status_error(403)
        return 3 if since else 10

    async def count_pull_requests(self, owner, name, author) -> int:
        return 1 if author == owner else 0

    async def count_issues(self, owner, name, creator) -> int:
        return 2


class BrokenGitHub(FakeGitHub):
    async def list_user_repos(self, username: str) -> list[dict]:
        raise httpx.ConnectError("connection refused")


class TestGitHubMetricsProvider:
    @pytest.mark.asyncio
    async def test_sums_metrics_across_repositories(self) -> None:
        provider = GitHubMetricsProvider(FakeGitHub(["tools", "site"]))

        metrics = await provider.fetch("octo")

        assert metrics == GitHubMetrics(
            stars=12, commits=20, pull_requests=2, issues=4, recent_activity=6
        )

    @pytest.mark.asyncio
    async def test_skips_repositories_that_fail(self) -> None:
        provider = GitHubMetricsProvider(FakeGitHub(["tools", "private"], {"private"}))

        metrics = await provider.fetch("octo")

        assert metrics.commits == 10
        assert metrics.pull_requests == 1
        assert metrics.issues == 2
        assert metrics.recent_activity == 3

    @pytest.mark.asyncio
    async def test_total_failure_returns_zeros(self) -> None:
        provider = GitHubMetricsProvider(BrokenGitHub(["tools"]))
        assert await provider.fetch("octo") == GitHubMetrics()

    @pytest.mark.asyncio
    async def test_user_without_repositories(self) -> None:
        metrics = await GitHubMetricsProvider(FakeGitHub([])).fetch("octo")
        assert metrics == GitHubMetrics(stars=12)


class TestYearsAgo:
    def test_same_calendar_date(self) -> None:
        now = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
        assert years_ago(4, now) == datetime(2022, 3, 15, 12, 0, tzinfo=timezone.utc)

    def test_leap_day(self) -> None:
        now = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert years_ago(1, now) == datetime(2023, 2, 28, tzinfo=timezone.utc)
