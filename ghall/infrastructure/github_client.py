"""GitHub GraphQL/REST API client with rate limiting and retry logic."""

import time
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any
import requests

from ghall.domain.gist import Gist
from ghall.domain.repository import RemoteRepo
from ghall.infrastructure.git_client import GitClient

logger = logging.getLogger(__name__)


class GitHubAuthError(Exception):
    """Raised when no usable GitHub credentials are available."""
    pass


class GitHubApiError(Exception):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceeded(GitHubApiError):
    """Raised when GitHub API rate limit is exceeded."""
    pass


@dataclass(frozen=True)
class ApiResult:
    """Outcome of a mutating API call; ``stderr`` carries the raw diagnostic text."""

    success: bool
    stderr: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


def _parse_timestamp(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())


REPO_FIELDS = """
    name
    nameWithOwner
    url
    sshUrl
    isPrivate
    isFork
    isArchived
    pushedAt
    defaultBranchRef { name }
    parent { nameWithOwner defaultBranchRef { name } }
"""

VIEWER_QUERY = """
query($cursor: String) {
    viewer {
        login
        repositories(first: 100, after: $cursor, ownerAffiliations: OWNER) {
            pageInfo {
                hasNextPage
                endCursor
            }
            nodes {
                %s
            }
        }
    }
}
""" % REPO_FIELDS

ORGANIZATIONS_QUERY = """
query {
    viewer {
        organizations(first: 50) {
            nodes {
                login
                repositories(first: 100) {
                    nodes {
                        %s
                    }
                }
            }
        }
    }
}
""" % REPO_FIELDS

REPOSITORY_ID_QUERY = """
query($owner: String!, $name: String!) {
    repository(owner: $owner, name: $name) { id }
}
"""

ARCHIVE_MUTATION = """
mutation($id: ID!) {
    archiveRepository(input: {repositoryId: $id}) { clientMutationId }
}
"""

UNARCHIVE_MUTATION = """
mutation($id: ID!) {
    unarchiveRepository(input: {repositoryId: $id}) { clientMutationId }
}
"""


class GitHubClient:
    """Client for the GitHub API with rate limiting and retry mechanisms."""

    API_ENDPOINT = "https://api.github.com"
    GRAPHQL_ENDPOINT = "https://api.github.com/graphql"
    GIST_ENDPOINT = "https://gist.github.com"
    MAX_RETRIES = 5
    RETRY_DELAY_SECONDS = 1
    REQUEST_TIMEOUT = 30

    def __init__(self, token: Optional[str] = None, git_client: Optional[GitClient] = None):
        """
        Initialize GitHub client.

        Args:
            token: GitHub personal access token. If None, uses GITHUB_TOKEN or GH_TOKEN.
            git_client: Git client used for gist clones.
        """
        if token is None:
            token = os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")

        self.token = token
        self.git_client = git_client or GitClient()
        self.headers = {
            "Accept": "application/vnd.github+json",
            "Content-Type": "application/json",
        }

        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"

    def _request(
        self,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """
        Send an HTTP request with retry logic.

        Args:
            method: HTTP method
            url: Absolute request URL
            json: JSON body
            params: Query string parameters

        Returns:
            Successful response

        Raises:
            GitHubAuthError: If the token is missing or rejected
            RateLimitExceeded: If rate limit is exceeded after retries
            GitHubApiError: For any other non-success status
            requests.RequestException: If the request fails after retries
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                response = requests.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=self.headers,
                    timeout=self.REQUEST_TIMEOUT,
                )
            except requests.exceptions.RequestException as e:
                if attempt < self.MAX_RETRIES - 1:
                    delay = self.RETRY_DELAY_SECONDS * (2 ** attempt)  # Exponential backoff
                    logger.warning(f"Request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. Retrying in {delay}s...")
                    time.sleep(delay)
                    continue
                raise

            if response.status_code < 300:
                return response

            if response.status_code == 401:
                raise GitHubAuthError("Authentication failed. Check your GitHub token.")

            if response.status_code in (403, 429):
                remaining = int(response.headers.get("X-RateLimit-Remaining", 1))
                if remaining == 0:
                    reset_time = int(response.headers.get("X-RateLimit-Reset", 0))
                    wait_time = max(reset_time - int(time.time()), 0) + 10
                    if attempt < self.MAX_RETRIES - 1:
                        logger.warning(f"Rate limit exceeded. Waiting {wait_time} seconds...")
                        time.sleep(wait_time)
                        continue
                    raise RateLimitExceeded("Rate limit exceeded", response.status_code)

            raise GitHubApiError(
                f"{method} {url} failed ({response.status_code}): {response.text}",
                response.status_code,
            )

        raise GitHubApiError("Max retries exceeded")

    def _execute_query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a GraphQL query.

        Args:
            query: GraphQL query string
            variables: Query variables

        Returns:
            GraphQL response data
        """
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        data = self._request("POST", self.GRAPHQL_ENDPOINT, json=payload).json()
        if "errors" in data:
            error_messages = [err.get("message", "") for err in data["errors"]]
            if any("rate limit" in msg.lower() for msg in error_messages):
                raise RateLimitExceeded(f"Rate limit exceeded: {error_messages}")
            raise GitHubApiError(f"GraphQL errors: {error_messages}")
        return data.get("data") or {}

    def _mutate(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> ApiResult:
        """Run a mutating REST call, capturing failures instead of raising."""
        try:
            response = self._request(method, f"{self.API_ENDPOINT}{path}", json=json)
        except (GitHubAuthError, GitHubApiError, requests.RequestException) as e:
            logger.error(f"{method} {path} failed: {e}")
            return ApiResult(success=False, stderr=str(e))
        data = response.json() if response.content else {}
        return ApiResult(success=True, data=data if isinstance(data, dict) else {})

    # --- queries ---

    def authenticate(self) -> None:
        """
        Verify that the configured token is accepted.

        Raises:
            GitHubAuthError: If there is no token or GitHub rejects it
        """
        if not self.token:
            raise GitHubAuthError("GitHub token not found. Set GITHUB_TOKEN to load remote repositories.")
        try:
            self._request("GET", f"{self.API_ENDPOINT}/user")
        except GitHubApiError as e:
            raise GitHubAuthError(f"GitHub authentication check failed: {e}") from e
        except requests.RequestException as e:
            raise GitHubAuthError(f"GitHub is unreachable: {e}") from e

    def get_current_user(self) -> str:
        """Return the login of the authenticated user."""
        return self._request("GET", f"{self.API_ENDPOINT}/user").json()["login"]

    @staticmethod
    def _to_remote_repo(node: Dict[str, Any], owner: Optional[str] = None) -> RemoteRepo:
        name_with_owner = node["nameWithOwner"]
        parent = node.get("parent")
        is_fork = bool(node.get("isFork"))
        fork_parent = parent["nameWithOwner"] if parent else None
        if is_fork and fork_parent is None:
            # Upstream deleted or not visible to this token
            fork_parent = "unknown"
        default_branch = (node.get("defaultBranchRef") or {}).get("name")
        parent_branch = ((parent or {}).get("defaultBranchRef") or {}).get("name")

        return RemoteRepo(
            name=node["name"],
            owner=owner or name_with_owner.split("/", 1)[0],
            url=node["url"],
            ssh_url=node.get("sshUrl") or "",
            is_private=bool(node.get("isPrivate")),
            is_fork=is_fork,
            fork_parent=fork_parent,
            is_archived=bool(node.get("isArchived")),
            is_member=True,
            pushed_at=_parse_timestamp(node.get("pushedAt")),
            default_branch=default_branch,
            parent_default_branch=parent_branch,
        )

    def list_repositories(self) -> List[RemoteRepo]:
        """
        Fetch every repository the user owns plus the repositories of their organizations.

        Returns:
            List of remote repositories, user-owned first
        """
        repos: List[RemoteRepo] = []
        cursor = None
        while True:
            data = self._execute_query(VIEWER_QUERY, {"cursor": cursor})
            connection = data.get("viewer", {}).get("repositories", {})
            for node in connection.get("nodes", []):
                repos.append(self._to_remote_repo(node))

            page_info = connection.get("pageInfo", {})
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        data = self._execute_query(ORGANIZATIONS_QUERY)
        for org in data.get("viewer", {}).get("organizations", {}).get("nodes", []):
            for node in org.get("repositories", {}).get("nodes", []):
                repos.append(self._to_remote_repo(node, owner=org["login"]))

        logger.info(f"Fetched {len(repos)} repositories from GitHub")
        return repos

    def compare_fork_with_upstream(self, repo: RemoteRepo) -> tuple[int, int]:
        """
        Compare a fork's default branch with its upstream's default branch.

        Returns:
            Tuple of (commits ahead of upstream, commits behind upstream)
        """
        if not repo.is_fork or not repo.fork_parent or "/" not in repo.fork_parent:
            raise GitHubApiError(f"{repo.name_with_owner} has no known upstream")

        base = repo.parent_default_branch or "main"
        head = f"{repo.owner}:{repo.default_branch or base}"
        data = self._request(
            "GET", f"{self.API_ENDPOINT}/repos/{repo.fork_parent}/compare/{base}...{head}"
        ).json()
        return int(data.get("ahead_by", 0)), int(data.get("behind_by", 0))

    def list_gists(self) -> List[Gist]:
        """Fetch every gist of the authenticated user, following pagination."""
        gists: List[Gist] = []
        page = 1
        while True:
            batch = self._request(
                "GET", f"{self.API_ENDPOINT}/gists", params={"per_page": 100, "page": page}
            ).json()
            for item in batch:
                files = item.get("files") or {}
                file_names = tuple(f.get("filename", key) for key, f in files.items())
                description = item.get("description") or (file_names[0] if file_names else "Untitled")
                gists.append(
                    Gist(
                        id=item["id"],
                        description=description,
                        is_public=bool(item.get("public")),
                        file_names=file_names,
                        html_url=item.get("html_url", ""),
                    )
                )
            if len(batch) < 100:
                break
            page += 1
        return gists

    def list_user_orgs(self) -> List[str]:
        orgs = self._request("GET", f"{self.API_ENDPOINT}/user/orgs").json()
        return [org["login"] for org in orgs]

    # --- mutations ---

    def create_repository(
        self,
        name: str,
        description: Optional[str] = None,
        private: bool = True,
        org: Optional[str] = None,
    ) -> ApiResult:
        """
        Create an empty repository for the user or one of their organizations.

        Returns:
            ApiResult whose ``data`` holds the created repository (``clone_url`` among others)
        """
        body: Dict[str, Any] = {"name": name, "private": private}
        if description:
            body["description"] = description
        path = f"/orgs/{org}/repos" if org else "/user/repos"
        return self._mutate("POST", path, json=body)

    def delete_repository(self, name_with_owner: str) -> ApiResult:
        return self._mutate("DELETE", f"/repos/{name_with_owner}")

    def set_visibility(self, name_with_owner: str, private: bool) -> ApiResult:
        visibility = "private" if private else "public"
        return self._mutate("PATCH", f"/repos/{name_with_owner}", json={"visibility": visibility})

    def set_archived(self, name_with_owner: str, archived: bool) -> ApiResult:
        """Archive or unarchive a repository; the REST API cannot unarchive, so GraphQL is used."""
        owner, name = name_with_owner.split("/", 1)
        try:
            data = self._execute_query(REPOSITORY_ID_QUERY, {"owner": owner, "name": name})
            repo_id = data["repository"]["id"]
            mutation = ARCHIVE_MUTATION if archived else UNARCHIVE_MUTATION
            self._execute_query(mutation, {"id": repo_id})
        except (GitHubAuthError, GitHubApiError, requests.RequestException, KeyError, TypeError) as e:
            logger.error(f"Changing archived state of {name_with_owner} failed: {e}")
            return ApiResult(success=False, stderr=str(e))
        return ApiResult(success=True)

    def delete_gist(self, gist_id: str) -> ApiResult:
        return self._mutate("DELETE", f"/gists/{gist_id}")

    def clone_gist(self, gist_id: str, path: str) -> ApiResult:
        outcome = self.git_client.clone(f"{self.GIST_ENDPOINT}/{gist_id}.git", path)
        return ApiResult(success=outcome.success, stderr=outcome.stderr)
