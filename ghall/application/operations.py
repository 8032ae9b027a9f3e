"""Background units of work for repository and gist lifecycle actions."""

import errno
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Optional

from ghall.domain.messages import OrgsLoaded, TaskResult
from ghall.infrastructure.git_client import GitClient
from ghall.infrastructure.github_client import GitHubClient

logger = logging.getLogger(__name__)

VIEW_ERRORS_HINT = "(E: view errors)"


@dataclass(frozen=True)
class CreateRepoRequest:
    """What the upload form submits."""

    name: str
    path: str
    description: Optional[str] = None
    private: bool = True
    org: Optional[str] = None


def _result(
    operation: str,
    success: bool,
    done: str,
    failed: str,
    stderr: Optional[str],
    invalidates_github_cache: bool,
) -> TaskResult:
    if success:
        logger.info(f"{operation}: {done}")
    else:
        logger.error(f"{operation} failed: {stderr}")
    return TaskResult(
        success=success,
        message=done if success else failed,
        operation=operation,
        stderr=None if success else (stderr or ""),
        invalidates_github_cache=invalidates_github_cache,
    )


class RepoOperations:
    """
    Every method performs one blocking operation and returns its TaskResult.

    Methods are meant to run on a TaskExecutor thread and never raise for
    expected failures: git, API and filesystem errors become failed results.
    Local git and filesystem work requests a local-only refresh, GitHub
    mutations request a full one.
    """

    def __init__(self, github_client: GitHubClient, git_client: GitClient):
        self.github_client = github_client
        self.git_client = git_client

    # --- local git ---

    def pull(self, name: str, path: str) -> TaskResult:
        outcome = self.git_client.pull(path)
        return _result(f"pull {name}", outcome.success, f"Pulled {name}",
                       f"Pull failed {VIEW_ERRORS_HINT}", outcome.stderr, False)

    def push(self, name: str, path: str) -> TaskResult:
        outcome = self.git_client.push(path)
        return _result(f"push {name}", outcome.success, f"Pushed {name}",
                       f"Push failed {VIEW_ERRORS_HINT}", outcome.stderr, False)

    def sync(self, name: str, path: str) -> TaskResult:
        outcome = self.git_client.sync(path)
        return _result(f"sync {name}", outcome.success, f"Synced {name}",
                       f"Sync failed {VIEW_ERRORS_HINT}", outcome.stderr, False)

    def quicksync(self, name: str, path: str) -> TaskResult:
        outcome = self.git_client.quicksync(path)
        return _result(f"quicksync {name}", outcome.success, f"Quicksynced {name}",
                       f"Quicksync failed {VIEW_ERRORS_HINT}", outcome.stderr, False)

    def clone(self, name: str, url: str, path: str) -> TaskResult:
        outcome = self.git_client.clone(url, path)
        return _result(f"clone {name}", outcome.success, f"Cloned {name}",
                       f"Clone failed {VIEW_ERRORS_HINT}", outcome.stderr, False)

    def init(self, name: str, path: str) -> TaskResult:
        outcome = self.git_client.init(path)
        return _result(f"init {name}", outcome.success, f"Initialized git repo in {name}",
                       f"Git init failed {VIEW_ERRORS_HINT}", outcome.stderr, False)

    # --- local filesystem ---

    def delete_local(self, name: str, path: str) -> TaskResult:
        try:
            shutil.rmtree(path)
        except OSError as e:
            return _result(f"delete local {name}", False, "", f"Failed to delete {name}", str(e), False)
        return _result(f"delete local {name}", True, f"Deleted {name}", "", None, False)

    def reorganize(self, name: str, source: str, destination: str) -> TaskResult:
        """Move a clone to its ghq location, copying then removing when a rename is impossible."""
        operation = f"reorganize {name}"
        try:
            os.makedirs(os.path.dirname(destination), exist_ok=True)
            try:
                os.rename(source, destination)
            except OSError as e:
                if e.errno not in (errno.EXDEV, errno.ENOTEMPTY, errno.EEXIST):
                    raise
                shutil.copytree(source, destination, symlinks=True)
                shutil.rmtree(source)
        except OSError as e:
            return _result(operation, False, "", f"Reorganize failed {VIEW_ERRORS_HINT}", str(e), False)
        return _result(operation, True, f"Moved {name} to {destination}", "", None, False)

    # --- GitHub ---

    def delete_remote(self, name_with_owner: str) -> TaskResult:
        result = self.github_client.delete_repository(name_with_owner)
        return _result(f"delete remote {name_with_owner}", result.success, f"Deleted remote {name_with_owner}",
                       f"Failed to delete {name_with_owner} {VIEW_ERRORS_HINT}", result.stderr, True)

    def set_visibility(self, name_with_owner: str, private: bool, is_archived: bool) -> TaskResult:
        """
        Change visibility; archived repositories are unarchived first and re-archived afterwards.

        Re-archiving is attempted even when the visibility change failed.
        """
        operation = f"set visibility {name_with_owner}"
        visibility = "private" if private else "public"

        if is_archived:
            unarchived = self.github_client.set_archived(name_with_owner, False)
            if not unarchived.success:
                return _result(operation, False, "",
                               f"Failed to unarchive before visibility change {VIEW_ERRORS_HINT}",
                               unarchived.stderr, True)

        changed = self.github_client.set_visibility(name_with_owner, private)
        rearchived = self.github_client.set_archived(name_with_owner, True) if is_archived else None

        if changed.success and rearchived is None:
            return _result(operation, True, f"Set {name_with_owner} to {visibility}", "", None, True)
        if changed.success and rearchived.success:
            return _result(operation, True, f"Set {name_with_owner} to {visibility} (re-archived)", "", None, True)
        if changed.success:
            return _result(operation, False, "",
                           f"Set {name_with_owner} to {visibility} but re-archive failed {VIEW_ERRORS_HINT}",
                           rearchived.stderr, True)
        if rearchived is None:
            return _result(operation, False, "", f"Visibility change failed {VIEW_ERRORS_HINT}",
                           changed.stderr, True)
        if rearchived.success:
            return _result(operation, False, "",
                           f"Visibility change failed, repo re-archived {VIEW_ERRORS_HINT}",
                           changed.stderr, True)
        return _result(operation, False, "",
                       f"Visibility change failed, re-archive also failed {VIEW_ERRORS_HINT}",
                       f"{changed.stderr}\n\nRe-archive error:\n{rearchived.stderr}", True)

    def set_archived(self, name_with_owner: str, archived: bool) -> TaskResult:
        action = "Archiving" if archived else "Unarchiving"
        done = "Archived" if archived else "Unarchived"
        result = self.github_client.set_archived(name_with_owner, archived)
        return _result(f"{action.lower()} {name_with_owner}", result.success, f"{done} {name_with_owner}",
                       f"{action} failed {VIEW_ERRORS_HINT}", result.stderr, True)

    def create_repo(self, request: CreateRepoRequest) -> TaskResult:
        """Create the GitHub repository, then point the local folder at it and push."""
        operation = f"create repo {request.name}"
        created = self.github_client.create_repository(
            request.name, description=request.description, private=request.private, org=request.org
        )
        if not created.success:
            return _result(operation, False, "", f"Create repo failed {VIEW_ERRORS_HINT}", created.stderr, True)

        clone_url = created.data.get("clone_url")
        if not clone_url:
            return _result(operation, False, "", f"Create repo failed {VIEW_ERRORS_HINT}",
                           "GitHub did not return a clone URL", True)

        published = self.git_client.publish(request.path, clone_url)
        return _result(operation, published.success, f"Created {request.name}",
                       f"Created {request.name} but push failed {VIEW_ERRORS_HINT}", published.stderr, True)

    def fetch_orgs(self) -> OrgsLoaded:
        return OrgsLoaded(orgs=tuple(self.github_client.list_user_orgs()))

    # --- gists ---

    def clone_gist(self, gist_id: str, path: str) -> TaskResult:
        short = gist_id[:8]
        result = self.github_client.clone_gist(gist_id, path)
        return _result(f"clone gist {short}", result.success, f"Cloned gist {short}",
                       f"Clone gist failed {VIEW_ERRORS_HINT}", result.stderr, False)

    def delete_gist(self, gist_id: str) -> TaskResult:
        short = gist_id[:8]
        result = self.github_client.delete_gist(gist_id)
        return _result(f"delete gist {short}", result.success, f"Deleted gist {short}",
                       f"Failed to delete gist {short} {VIEW_ERRORS_HINT}", result.stderr, True)

    def pull_gist(self, gist_id: str, path: str) -> TaskResult:
        short = gist_id[:8]
        outcome = self.git_client.pull(path)
        return _result(f"pull gist {short}", outcome.success, f"Pulled gist {short}",
                       f"Pull gist failed {VIEW_ERRORS_HINT}", outcome.stderr, False)

    def push_gist(self, gist_id: str, path: str) -> TaskResult:
        short = gist_id[:8]
        outcome = self.git_client.push(path)
        return _result(f"push gist {short}", outcome.success, f"Pushed gist {short}",
                       f"Push gist failed {VIEW_ERRORS_HINT}", outcome.stderr, False)

    def sync_gist(self, gist_id: str, path: str) -> TaskResult:
        short = gist_id[:8]
        outcome = self.git_client.sync(path)
        return _result(f"sync gist {short}", outcome.success, f"Synced gist {short}",
                       f"Sync gist failed {VIEW_ERRORS_HINT}", outcome.stderr, False)
