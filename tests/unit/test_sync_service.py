import asyncio
import gc
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import func, select

from src.db.models import EventActivity, EventParticipation
from src.services.sync_service import (
    ActivitySyncService,
    SyncTarget,
    _participation_locks,
    participation_lock,
)

JOINED = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(hours=2)


def iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def commit(sha: str, minutes: int, additions: int | None = None) -> dict:
    data = {
        "sha": sha,
        "commit": {
            "message": f"Commit {sha}",
            "author": {"name": "Octo", "date": iso(JOINED + timedelta(minutes=minutes))},
        },
    }
    if additions is not None:
        data["stats"] = {"total": additions, "additions": additions, "deletions": 0}
    return data


def pull_request(number: int, login: str, minutes: int, merged_minutes: int | None = None):
    merged = merged_minutes is not None
    return {
        "number": number,
        "title": f"PR {number}",
        "html_url": f"https://github.com/devforge/hackathon/pull/{number}",
        "user": {"login": login},
        "state": "closed" if merged else "open",
        "created_at": iso(JOINED + timedelta(minutes=minutes)),
        "merged_at": iso(JOINED + timedelta(minutes=merged_minutes)) if merged else None,
    }


class FakeGitHub:
    """In-memory stand-in for the GitHub read API."""

    def __init__(self, commits=None, pulls=None, details=None) -> None:
        self.commits = commits or []
        self.pulls = pulls or []
        self.details = details or {}
        self.commit_requests: list[tuple] = []

    async def get_branch_commits(self, owner, name, branch, since=None):
        self.commit_requests.append((owner, name, branch, since))
        if since is None:
            return list(self.commits)
        cutoff = datetime.fromisoformat(since)
        return [
            c
            for c in self.commits
            if datetime.fromisoformat(c["commit"]["author"]["date"].replace("Z", "+00:00"))
            >= cutoff
        ]

    async def get_commit(self, owner, name, sha):
        return self.details.get(sha)

    async def list_pull_requests(self, owner, name, state="all"):
        return list(self.pulls)


class FailingGitHub(FakeGitHub):
    async def get_branch_commits(self, owner, name, branch, since=None):
        request = httpx.Request("GET", "https://api.github.com/repos/x/y/commits")
        raise httpx.HTTPStatusError(
            "Forbidden", request=request, response=httpx.Response(403, request=request)
        )


@pytest.fixture
async def octo_participation(make_user, make_event, make_participation):
    user = await make_user("octo", access_token="gho_octo")
    event = await make_event(github_repo="https://github.com/devforge/hackathon")
    return await make_participation(event, user, joined_at=JOINED)


async def activity_rows(db_session, participation_id: int) -> list[tuple[str, str]]:
    result = await db_session.execute(
        select(EventActivity.activity_type, EventActivity.github_sha)
        .where(EventActivity.participation_id == participation_id)
        .order_by(EventActivity.id)
    )
    return [tuple(row) for row in result.all()]


class TestEligibility:
    @pytest.mark.asyncio
    async def test_only_running_events_with_credentials(
        self, db_session, make_user, make_event, make_participation
    ) -> None:
        running = await make_event()
        inactive = await make_event(active=False)
        ended = await make_event(end_date=datetime.now(timezone.utc) - timedelta(minutes=1))

        eligible = await make_participation(running, await make_user("ok"))
        await make_participation(running, await make_user("left"), is_active=False)
        await make_participation(running, await make_user("no-token", access_token=None))
        await make_participation(running, await make_user("blank", access_token=""))
        await make_participation(inactive, await make_user("inactive"))
        await make_participation(ended, await make_user("ended"))

        targets = await ActivitySyncService(db_session).find_participations_due_for_sync()

        assert [t.participation_id for t in targets] == [eligible.id]
        assert targets[0].username == "ok"
        assert targets[0].github_repo == running.github_repo

    @pytest.mark.asyncio
    async def test_filter_by_event(self, db_session, make_user, make_event, make_participation):
        first = await make_event()
        second = await make_event()
        await make_participation(first, await make_user())
        wanted = await make_participation(second, await make_user())

        service = ActivitySyncService(db_session)
        targets = await service.find_participations_due_for_sync(event_id=second.id)

        assert [t.participation_id for t in targets] == [wanted.id]


class TestSyncParticipation:
    @pytest.mark.asyncio
    async def test_first_sync_then_idempotent_rerun(self, db_session, octo_participation):
        participation_id = octo_participation.id
        github = FakeGitHub(
            commits=[
                commit("sha1", 10, additions=10),
                commit("sha2", 20, additions=5),
                commit("sha3", 30),
            ],
            pulls=[pull_request(7, "octo", 40), pull_request(8, "someone-else", 45)],
        )
        service = ActivitySyncService(db_session, github_factory=lambda token: github)

        report = await service.sync_all()

        assert report.successful == 1
        assert report.outcomes[0].new_commits == 3
        assert report.outcomes[0].new_pull_requests == 1
        assert await activity_rows(db_session, participation_id) == [
            ("commit", "sha1"),
            ("commit", "sha2"),
            ("commit", "sha3"),
            ("pr_created", "7"),
        ]
        participation = await db_session.get(EventParticipation, participation_id)
        assert participation.total_commits == 3
        assert participation.total_prs == 1
        scores = (
            await db_session.execute(
                select(EventActivity.score_earned).where(
                    EventActivity.participation_id == participation_id
                )
            )
        ).scalars().all()
        # 3 + 3 + 2 + 10
        assert participation.score == sum(scores) == 18

        # Nothing new upstream
        second = await service.sync_all()

        assert second.outcomes[0].new_activities == 0
        assert len(await activity_rows(db_session, participation_id)) == 4
        await db_session.refresh(participation)
        assert (participation.total_commits, participation.total_prs, participation.score) == (
            3,
            1,
            18,
        )

    @pytest.mark.asyncio
    async def test_commit_detail_used_when_list_has_no_stats(
        self, db_session, octo_participation
    ) -> None:
        participation_id = octo_participation.id
        github = FakeGitHub(
            commits=[commit("sha1", 10)],
            details={
                "sha1": {
                    "stats": {"total": 30, "additions": 20, "deletions": 10},
                    "files": [{"filename": "a.py"}, {"filename": "b.py"}],
                }
            },
        )
        service = ActivitySyncService(db_session, github_factory=lambda token: github)

        await service.sync_all()

        activity = (
            await db_session.execute(
                select(EventActivity).where(EventActivity.participation_id == participation_id)
            )
        ).scalar_one()
        assert (activity.lines_added, activity.lines_deleted, activity.files_changed) == (
            20,
            10,
            2,
        )
        # 2 + 2.0 + 0.5 + 1.0
        assert activity.score_earned == 6

    @pytest.mark.asyncio
    async def test_watermark_starts_at_join_date(self, db_session, octo_participation) -> None:
        github = FakeGitHub()
        service = ActivitySyncService(db_session, github_factory=lambda token: github)

        await service.sync_all()

        owner, repo, branch, since = github.commit_requests[0]
        assert (owner, repo) == ("octo", "hackathon")
        assert branch == octo_participation.branch_name
        assert datetime.fromisoformat(since) == JOINED

    @pytest.mark.asyncio
    async def test_pull_request_merged_later_gets_second_record(
        self, db_session, octo_participation
    ) -> None:
        participation_id = octo_participation.id
        github = FakeGitHub(pulls=[pull_request(7, "octo", 40)])
        service = ActivitySyncService(db_session, github_factory=lambda token: github)
        await service.sync_all()

        github.pulls = [pull_request(7, "octo", 40, merged_minutes=50)]
        report = await service.sync_all()

        assert report.outcomes[0].new_merges == 1
        assert await activity_rows(db_session, participation_id) == [
            ("pr_created", "7"),
            ("pr_merged", "7"),
        ]
        participation = await db_session.get(EventParticipation, participation_id)
        await db_session.refresh(participation)
        assert participation.total_prs == 2
        assert participation.score == 30

    @pytest.mark.asyncio
    async def test_already_merged_pull_request_yields_both_records(
        self, db_session, octo_participation
    ) -> None:
        participation_id = octo_participation.id
        github = FakeGitHub(pulls=[pull_request(3, "octo", 15, merged_minutes=25)])
        service = ActivitySyncService(db_session, github_factory=lambda token: github)

        await service.sync_all()

        assert await activity_rows(db_session, participation_id) == [
            ("pr_created", "3"),
            ("pr_merged", "3"),
        ]

    @pytest.mark.asyncio
    async def test_pull_requests_before_watermark_are_ignored(
        self, db_session, octo_participation
    ) -> None:
        participation_id = octo_participation.id
        github = FakeGitHub(pulls=[pull_request(1, "octo", -30)])
        service = ActivitySyncService(db_session, github_factory=lambda token: github)

        await service.sync_all()

        assert await activity_rows(db_session, participation_id) == []

    @pytest.mark.asyncio
    async def test_concurrent_syncs_of_same_participation_do_not_duplicate(
        self, db_session, octo_participation
    ) -> None:
        participation_id = octo_participation.id
        github = FakeGitHub(commits=[commit("sha1", 10), commit("sha2", 20)])
        service = ActivitySyncService(db_session, github_factory=lambda token: github)
        target = (await service.find_participations_due_for_sync())[0]

        outcomes = await asyncio.gather(
            service.sync_participation(target), service.sync_participation(target)
        )

        assert sorted(o.new_commits for o in outcomes) == [0, 2]
        assert len(await activity_rows(db_session, participation_id)) == 2

        gc.collect()
        assert participation_id not in _participation_locks


class TestSyncBatch:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(
        self, db_session, make_user, make_event, make_participation
    ) -> None:
        event = await make_event()
        broken = await make_participation(event, await make_user("broken", access_token="bad"))
        healthy = await make_participation(event, await make_user("octo", access_token="good"))
        broken_id, healthy_id = broken.id, healthy.id

        def factory(token: str):
            if token == "bad":
                return FailingGitHub()
            return FakeGitHub(commits=[commit("sha1", 90)])

        report = await ActivitySyncService(db_session, github_factory=factory).sync_all()

        assert (report.processed, report.successful, report.failed) == (2, 1, 1)
        assert report.errors[0]["participation_id"] == broken_id
        assert "Forbidden" in report.errors[0]["error"]
        assert await activity_rows(db_session, healthy_id) == [("commit", "sha1")]
        assert report.to_dict()["new_activities"] == 1

    @pytest.mark.asyncio
    async def test_sync_event_missing(self, db_session) -> None:
        assert await ActivitySyncService(db_session).sync_event(9999) is None

    @pytest.mark.asyncio
    async def test_event_summary(self, db_session, octo_participation) -> None:
        event_id = octo_participation.event_id
        github = FakeGitHub(commits=[commit("sha1", 10, additions=10)])
        service = ActivitySyncService(db_session, github_factory=lambda token: github)
        await service.sync_event(event_id)

        summary = await service.get_event_activity_summary(event_id)

        assert summary["stats"][0]["activity_type"] == "commit"
        assert summary["recent_activities"][0]["github_sha"] == "sha1"
        assert summary["top_participants"][0]["username"] == "octo"
        assert summary["top_participants"][0]["score"] == 3
        assert await service.get_event_activity_summary(9999) is None


def test_sync_target_watermark_prefers_last_activity() -> None:
    joined = datetime(2026, 1, 1)
    last = datetime(2026, 1, 5, tzinfo=timezone.utc)
    target = SyncTarget(
        participation_id=1,
        event_id=1,
        user_id=1,
        username="octo",
        access_token="t",
        github_repo="https://github.com/devforge/hackathon",
        branch_name="b",
        participation_date=joined,
    )

    assert target.watermark == joined.replace(tzinfo=timezone.utc)
    assert replace(target, last_activity_date=last).watermark == last


def test_participation_locks_are_shared_then_released() -> None:
    lock = participation_lock(4242)
    assert participation_lock(4242) is lock
    assert participation_lock(4243) is not lock

    del lock
    gc.collect()

    assert 4242 not in _participation_locks
    assert 4243 not in _participation_locks
