from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.scoring import ActivityType
from src.db.models.proposal import Proposal, ProposalStatus
from src.db.models.proposal_activity import ProposalActivity
from src.db.models.user import User
from src.services.github_service import GitHubNotFoundError, GitHubService, parse_repo_url

logger = structlog.get_logger()


class ProposalService:
    """Proposals and the fork/branch/pull request workflow around them.

    Collaborators (anyone but the owner) branch in their own fork and open
    pull requests against the proposal repository. Only the owner lists and
    merges them. Every branch, pull request and merge is logged as a
    ProposalActivity; the ranking counts branches and pull requests as
    contributions.
    """

    def __init__(
        self,
        db: AsyncSession,
        github_factory: Callable[[str], GitHubService] = GitHubService,
    ) -> None:
        self.db = db
        self.github_factory = github_factory

    async def get_proposal(self, proposal_id: int) -> Proposal | None:
        return await self.db.get(Proposal, proposal_id)

    async def create_proposal(
        self,
        created_by: int,
        title: str,
        repository_link: str,
        description: str | None = None,
        github_issue_link: str | None = None,
    ) -> Proposal:
        parse_repo_url(repository_link)

        proposal = Proposal(
            title=title,
            description=description,
            repository_link=repository_link,
            github_issue_link=github_issue_link,
            branch_name=None,
            created_by=created_by,
            status=ProposalStatus.PENDING.value,
        )
        self.db.add(proposal)
        await self.db.flush()

        logger.info("Proposal created", proposal_id=proposal.id, created_by=created_by)
        return proposal

    async def list_for_user(self, user_id: int) -> list[Proposal]:
        result = await self.db.execute(
            select(Proposal)
            .where(Proposal.created_by == user_id)
            .order_by(Proposal.id.desc())
        )
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Collaboration
    # -------------------------------------------------------------------------

    async def _load(self, proposal_id: int, user_id: int) -> tuple[Proposal, User] | None:
        proposal = await self.get_proposal(proposal_id)
        user = await self.db.get(User, user_id)
        if not proposal or not user:
            return None
        if not user.has_github_credential:
            raise PermissionError("GitHub account is not connected")
        if not proposal.repository_link:
            raise ValueError("Proposal has no repository")
        return proposal, user

    async def _log(
        self,
        proposal_id: int,
        user_id: int,
        activity_type: ActivityType,
        branch_name: str | None = None,
        pr_number: int | None = None,
        extra_data: dict | None = None,
    ) -> ProposalActivity:
        activity = ProposalActivity(
            proposal_id=proposal_id,
            user_id=user_id,
            activity_type=activity_type.value,
            branch_name=branch_name,
            pr_number=pr_number,
            extra_data=extra_data or {},
            activity_date=datetime.now(timezone.utc),
        )
        self.db.add(activity)
        await self.db.flush()
        return activity

    async def create_collaboration_branch(self, proposal_id: int, user_id: int) -> dict | None:
        """Branch `{username}-{user_id}-{millis}` in the collaborator's fork.

        Returns None when the proposal or user does not exist.
        """
        loaded = await self._load(proposal_id, user_id)
        if loaded is None:
            return None
        proposal, user = loaded
        if proposal.created_by == user_id:
            raise PermissionError(
                "Proposal owners cannot create branches. Only collaborators can contribute."
            )

        owner, repo = parse_repo_url(proposal.repository_link)
        now = datetime.now(timezone.utc)
        branch_name = f"{user.username}-{user_id}-{int(now.timestamp() * 1000)}"

        github = self.github_factory(user.access_token)
        branch = await github.create_branch_in_fork(owner, repo, branch_name)

        await self._log(
            proposal_id,
            user_id,
            ActivityType.BRANCH_CREATED,
            branch_name=branch_name,
            extra_data={"fork_url": branch["fork_url"], "branch_url": branch["branch_url"]},
        )
        proposal.branch_name = branch_name
        if proposal.status == ProposalStatus.PENDING.value:
            proposal.status = ProposalStatus.IN_PROGRESS.value
        await self.db.flush()

        logger.info(
            "Collaboration branch created",
            proposal_id=proposal_id,
            user_id=user_id,
            branch=branch_name,
        )
        return {
            "proposal_id": proposal_id,
            "branch_name": branch_name,
            "fork_owner": branch["fork_owner"],
            "original_repo": f"{owner}/{repo}",
            "clone_url": branch["clone_url"],
            "fork_url": branch["fork_url"],
            "branch_url": branch["branch_url"],
        }

    async def create_pull_request(
        self,
        proposal_id: int,
        user_id: int,
        branch_name: str,
        title: str,
        description: str | None = None,
    ) -> dict | None:
        """Open a PR from `fork_owner:branch_name` against the default branch."""
        if not branch_name or not title:
            raise ValueError("Branch name and title are required")

        loaded = await self._load(proposal_id, user_id)
        if loaded is None:
            return None
        proposal, user = loaded
        if proposal.created_by == user_id:
            raise PermissionError(
                "Proposal owners cannot create pull requests. Only collaborators can contribute."
            )

        owner, repo = parse_repo_url(proposal.repository_link)
        github = self.github_factory(user.access_token)

        fork_owner = (await github.get_authenticated_user())["login"]
        upstream = await github.get_repository(owner, repo)
        if upstream is None:
            raise GitHubNotFoundError(f"Repository not found: {owner}/{repo}")
        base = upstream["default_branch"]
        head = f"{fork_owner}:{branch_name}"

        pr = await github.create_pull_request(
            owner,
            repo,
            head=head,
            base=base,
            title=title,
            body=description
            or f"Pull request from {user.username} for proposal: {proposal.title}",
        )

        await self._log(
            proposal_id,
            user_id,
            ActivityType.PR_CREATED,
            branch_name=branch_name,
            pr_number=pr["number"],
            extra_data={"pr_url": pr.get("html_url"), "pr_title": pr.get("title", title)},
        )
        return {
            "number": pr["number"],
            "url": pr.get("html_url"),
            "title": pr.get("title", title),
            "head": head,
            "base": f"{owner}:{base}",
        }

    async def _load_as_owner(self, proposal_id: int, user_id: int, action: str):
        loaded = await self._load(proposal_id, user_id)
        if loaded is None:
            return None
        proposal, user = loaded
        if proposal.created_by != user_id:
            raise PermissionError(f"Only proposal owners can {action}")
        return proposal, user

    async def list_open_pull_requests(self, proposal_id: int, user_id: int) -> list[dict] | None:
        """Open PRs on the proposal repository, for its owner to review."""
        loaded = await self._load_as_owner(proposal_id, user_id, "view pull requests")
        if loaded is None:
            return None
        proposal, user = loaded

        owner, repo = parse_repo_url(proposal.repository_link)
        github = self.github_factory(user.access_token)
        pulls = await github.list_pull_requests(owner, repo, state="open")
        return [
            {
                "number": pr["number"],
                "title": pr.get("title"),
                "body": pr.get("body"),
                "head": (pr.get("head") or {}).get("ref"),
                "base": (pr.get("base") or {}).get("ref"),
                "author": (pr.get("user") or {}).get("login"),
                "html_url": pr.get("html_url"),
                "created_at": pr.get("created_at"),
                "updated_at": pr.get("updated_at"),
            }
            for pr in pulls
        ]

    async def merge_pull_request(
        self,
        proposal_id: int,
        user_id: int,
        pull_request_number: int,
        merge_method: str = "merge",
    ) -> dict | None:
        loaded = await self._load_as_owner(proposal_id, user_id, "merge pull requests")
        if loaded is None:
            return None
        proposal, user = loaded

        owner, repo = parse_repo_url(proposal.repository_link)
        github = self.github_factory(user.access_token)
        result = await github.merge_pull_request(
            owner, repo, pull_request_number, merge_method=merge_method
        )

        await self._log(
            proposal_id,
            user_id,
            ActivityType.PR_MERGED,
            pr_number=pull_request_number,
            extra_data={"merge_method": merge_method, "sha": result.get("sha")},
        )
        logger.info(
            "Proposal pull request merged",
            proposal_id=proposal_id,
            number=pull_request_number,
        )
        return result

    async def get_activity(self, proposal_id: int) -> dict | None:
        """Branches and pull requests logged for a proposal, newest first."""
        if await self.get_proposal(proposal_id) is None:
            return None

        result = await self.db.execute(
            select(ProposalActivity, User.username)
            .join(User, ProposalActivity.user_id == User.id)
            .where(ProposalActivity.proposal_id == proposal_id)
            .order_by(ProposalActivity.activity_date.desc(), ProposalActivity.id.desc())
        )

        branches, pull_requests = [], []
        for activity, username in result.all():
            entry = {
                "id": activity.id,
                "user_id": activity.user_id,
                "username": username,
                "activity_type": activity.activity_type,
                "branch_name": activity.branch_name,
                "pr_number": activity.pr_number,
                "activity_date": activity.activity_date,
            }
            if activity.activity_type == ActivityType.BRANCH_CREATED.value:
                branches.append(entry)
            else:
                pull_requests.append(entry)

        return {"proposal_id": proposal_id, "branches": branches, "pull_requests": pull_requests}
