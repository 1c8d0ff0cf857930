import asyncio
import re

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.core.config import settings

logger = structlog.get_logger()

REPO_URL_PATTERN = re.compile(r"github\.com/([^/]+)/([^/]+)")

MERGE_METHODS = ("merge", "squash", "rebase")


class GitHubNotFoundError(LookupError):
    """A repository or pull request the operation needs does not exist."""


def parse_repo_url(repository_link: str) -> tuple[str, str]:
    """Extract (owner, repo) from a GitHub repository URL."""
    clean_url = repository_link.strip()
    if clean_url.endswith(".git"):
        clean_url = clean_url[:-4]

    match = REPO_URL_PATTERN.search(clean_url)
    if not match:
        raise ValueError(f"Invalid GitHub repository URL format: {repository_link}")
    return match.group(1), match.group(2)


def total_count_from_response(response: httpx.Response) -> int:
    """Total item count of a list endpoint queried with per_page=1.

    GitHub advertises the number of pages in the `last` Link relation; with
    one item per page that is the item count. Without a Link header the
    body holds every item.
    """
    last = response.links.get("last")
    if last:
        page = httpx.URL(last["url"]).params.get("page")
        if page and page.isdigit():
            return int(page)

    data = response.json()
    return len(data) if isinstance(data, list) else 0


def github_error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.reason_phrase
    except ValueError:
        return response.reason_phrase


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


github_retry = retry(
    retry=retry_if_exception(_is_retryable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GitHubService:
    """Service for interacting with the GitHub API.

    Reads use the app token from settings unless a user token is given.
    Write operations (fork, branch) always need the user's own token.
    """

    def __init__(
        self,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = settings.github_api_base_url
        self.token = token or settings.github_token
        self.transport = transport
        self.headers = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": settings.github_api_version,
        }
        if self.token:
            self.headers["Authorization"] = f"token {self.token}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=settings.github_timeout_seconds,
            transport=self.transport,
        )

    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        async with self._client() as client:
            return await client.get(path, params=params)

    # -------------------------------------------------------------------------
    # Users and repositories
    # -------------------------------------------------------------------------

    @github_retry
    async def get_user(self, username: str) -> dict | None:
        """Fetch user details from GitHub API."""
        response = await self._get(f"/users/{username}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    @github_retry
    async def get_authenticated_user(self) -> dict:
        """Fetch the account that owns the current token."""
        response = await self._get("/user")
        response.raise_for_status()
        return response.json()

    @github_retry
    async def get_repository(self, owner: str, name: str) -> dict | None:
        """Fetch repository details from GitHub API."""
        response = await self._get(f"/repos/{owner}/{name}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    @github_retry
    async def list_user_repos(self, username: str) -> list[dict]:
        """First page of a user's public repositories."""
        response = await self._get(
            f"/users/{username}/repos",
            params={"per_page": settings.github_per_page},
        )
        if response.status_code == 404:
            return []
        response.raise_for_status()
        return response.json()

    # -------------------------------------------------------------------------
    # Counters (per_page=1 + Link header)
    # -------------------------------------------------------------------------

    @github_retry
    async def count_starred(self, username: str) -> int:
        response = await self._get(f"/users/{username}/starred", params={"per_page": 1})
        if response.status_code == 404:
            return 0
        response.raise_for_status()
        return total_count_from_response(response)

    @github_retry
    async def count_commits(
        self,
        owner: str,
        name: str,
        author: str,
        since: str | None = None,
    ) -> int:
        """Number of commits in a repository authored by `author`."""
        params: dict = {"author": author, "per_page": 1}
        if since:
            params["since"] = since

        response = await self._get(f"/repos/{owner}/{name}/commits", params=params)
        # Empty repositories answer 409
        if response.status_code in (404, 409):
            return 0
        response.raise_for_status()
        return total_count_from_response(response)

    @github_retry
    async def count_pull_requests(self, owner: str, name: str, author: str) -> int:
        """Pull requests in a repository opened by `author`.

        The pulls endpoint cannot filter by author, so this asks the search
        API, which reports the full count in `total_count`.
        """
        response = await self._get(
            "/search/issues",
            params={"q": f"type:pr author:{author} repo:{owner}/{name}", "per_page": 1},
        )
        # Search answers 422 for repositories it cannot see
        if response.status_code in (404, 422):
            return 0
        response.raise_for_status()
        return response.json().get("total_count", 0)

    @github_retry
    async def count_issues(self, owner: str, name: str, creator: str) -> int:
        response = await self._get(
            f"/repos/{owner}/{name}/issues",
            params={"creator": creator, "state": "all", "per_page": 1},
        )
        if response.status_code in (404, 410):
            return 0
        response.raise_for_status()
        return total_count_from_response(response)

    # -------------------------------------------------------------------------
    # Commits and pull requests
    # -------------------------------------------------------------------------

    @github_retry
    async def list_pull_requests(
        self,
        owner: str,
        name: str,
        state: str = "all",
        per_page: int | None = None,
        page: int = 1,
    ) -> list[dict]:
        """Fetch pull requests for a repository, most recently updated first."""
        response = await self._get(
            f"/repos/{owner}/{name}/pulls",
            params={
                "state": state,
                "sort": "updated",
                "direction": "desc",
                "per_page": per_page or settings.github_per_page,
                "page": page,
            },
        )
        if response.status_code == 404:
            return []
        response.raise_for_status()
        return response.json()

    @github_retry
    async def get_branch_commits(
        self,
        owner: str,
        name: str,
        branch: str,
        since: str | None = None,
    ) -> list[dict]:
        """Commits reachable from `branch`, newest first."""
        params: dict = {"sha": branch, "per_page": settings.github_per_page}
        if since:
            params["since"] = since

        response = await self._get(f"/repos/{owner}/{name}/commits", params=params)
        if response.status_code in (404, 409):
            return []
        response.raise_for_status()
        return response.json()

    @github_retry
    async def get_commit(self, owner: str, name: str, sha: str) -> dict | None:
        """Single commit including `stats` and `files`."""
        response = await self._get(f"/repos/{owner}/{name}/commits/{sha}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    # -------------------------------------------------------------------------
    # Writes (user token)
    # -------------------------------------------------------------------------

    async def fork_repository(self, owner: str, name: str) -> dict:
        """Fork a repository into the token owner's account.

        GitHub answers 422 when the fork already exists; the existing fork is
        returned in that case.
        """
        async with self._client() as client:
            response = await client.post(f"/repos/{owner}/{name}/forks", json={})

        if response.status_code == 404:
            raise GitHubNotFoundError(f"Repository not found: {owner}/{name}")
        if response.status_code == 422:
            logger.info("Fork already exists", owner=owner, repo=name)
            account = await self.get_authenticated_user()
            fork = await self.get_repository(account["login"], name)
            if fork is None:
                response.raise_for_status()
            return fork

        response.raise_for_status()
        return response.json()

    async def create_branch_in_fork(self, owner: str, name: str, branch_name: str) -> dict:
        """Fork `owner/name` (or reuse the fork) and create `branch_name` in it.

        The branch starts at the head of the upstream default branch as seen
        in the fork.
        """
        account = await self.get_authenticated_user()
        fork_owner = account["login"]

        await self.fork_repository(owner, name)
        # A fresh fork is not immediately readable
        await asyncio.sleep(settings.github_fork_ready_delay)

        upstream = await self.get_repository(owner, name)
        if upstream is None:
            raise GitHubNotFoundError(f"Repository not found: {owner}/{name}")
        default_branch = upstream["default_branch"]

        async with self._client() as client:
            base_ref = await client.get(
                f"/repos/{fork_owner}/{name}/git/ref/heads/{default_branch}"
            )
            base_ref.raise_for_status()
            sha = base_ref.json()["object"]["sha"]

            existing = await client.get(f"/repos/{fork_owner}/{name}/git/ref/heads/{branch_name}")
            if existing.status_code != 404:
                existing.raise_for_status()
                raise ValueError(f"Branch '{branch_name}' already exists in your fork")

            created = await client.post(
                f"/repos/{fork_owner}/{name}/git/refs",
                json={"ref": f"refs/heads/{branch_name}", "sha": sha},
            )
            created.raise_for_status()

        logger.info(
            "Branch created in fork",
            fork_owner=fork_owner,
            repo=name,
            branch=branch_name,
        )
        return {
            **created.json(),
            "fork_owner": fork_owner,
            "original_owner": owner,
            "original_repo": name,
            "default_branch": default_branch,
            "clone_url": f"https://github.com/{fork_owner}/{name}.git",
            "fork_url": f"https://github.com/{fork_owner}/{name}",
            "branch_url": f"https://github.com/{fork_owner}/{name}/tree/{branch_name}",
        }

    async def create_pull_request(
        self,
        owner: str,
        name: str,
        head: str,
        base: str,
        title: str,
        body: str | None = None,
    ) -> dict:
        """Open a pull request on `owner/name`.

        For a fork, `head` is `fork_owner:branch`. GitHub answers 422 when the
        branch has no commits beyond `base` or a PR for it is already open.
        """
        async with self._client() as client:
            response = await client.post(
                f"/repos/{owner}/{name}/pulls",
                json={
                    "title": title,
                    "head": head,
                    "base": base,
                    "body": body,
                    "maintainer_can_modify": True,
                },
            )

        if response.status_code == 404:
            raise GitHubNotFoundError(f"Repository not found: {owner}/{name}")
        if response.status_code == 422:
            raise ValueError(f"Cannot create pull request: {github_error_message(response)}")
        response.raise_for_status()

        pull_request = response.json()
        logger.info(
            "Pull request created",
            repo=f"{owner}/{name}",
            head=head,
            base=base,
            number=pull_request["number"],
        )
        return pull_request

    async def merge_pull_request(
        self,
        owner: str,
        name: str,
        number: int,
        merge_method: str = "merge",
    ) -> dict:
        if merge_method not in MERGE_METHODS:
            raise ValueError(f"Unknown merge method: {merge_method}")

        async with self._client() as client:
            response = await client.put(
                f"/repos/{owner}/{name}/pulls/{number}/merge",
                json={"merge_method": merge_method},
            )

        if response.status_code == 404:
            raise GitHubNotFoundError(f"Pull request not found: {owner}/{name}#{number}")
        # 405: not mergeable, 409: head moved
        if response.status_code in (405, 409, 422):
            raise ValueError(f"Cannot merge pull request: {github_error_message(response)}")
        response.raise_for_status()

        logger.info("Pull request merged", repo=f"{owner}/{name}", number=number)
        return response.json()
