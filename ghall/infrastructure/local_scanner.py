"""Repository discovery on the local filesystem."""

import logging
import os
from typing import List, Optional

from ghall.domain.identity import parse_owner_from_url
from ghall.domain.repository import GitStatus, LocalRepo
from ghall.infrastructure.git_client import GitClient

logger = logging.getLogger(__name__)


def _find_parent_repo(path: str, repo_paths: List[str]) -> Optional[str]:
    """Closest other repository whose directory contains ``path``."""
    parents = [other for other in repo_paths if other != path and path.startswith(other + os.sep)]
    return max(parents, key=len) if parents else None


class LocalScanner:
    """Finds git repositories under a root directory and describes their state."""

    MAX_DEPTH = 5  # deep enough for {root}/<host>/<owner>/<repo>/.git
    LOCAL_FOLDER = "local"

    def __init__(self, git_client: Optional[GitClient] = None):
        self.git_client = git_client or GitClient()

    def discover_repos(self, root: str) -> List[LocalRepo]:
        """
        Discover local repositories below ``root``.

        Args:
            root: Directory to scan

        Returns:
            Repositories sorted by name, with subrepo relationships flagged and
            non-git folders under ``{root}/local`` included
        """
        root = root.rstrip(os.sep) or os.sep
        repo_paths = self._find_git_roots(root)
        repos = []
        for path in repo_paths:
            parent = _find_parent_repo(path, repo_paths)
            repos.append(self._describe(path, is_subrepo=parent is not None, parent_repo=parent))

        known = set(repo_paths)
        local_dir = os.path.join(root, self.LOCAL_FOLDER)
        if os.path.isdir(local_dir):
            for entry in sorted(os.scandir(local_dir), key=lambda e: e.name):
                if not entry.is_dir() or entry.path in known:
                    continue
                if os.path.exists(os.path.join(entry.path, ".git")):
                    repos.append(self._describe(entry.path))
                else:
                    repos.append(
                        LocalRepo(name=entry.name, path=entry.path, status=GitStatus(), has_git=False)
                    )

        repos.sort(key=lambda r: r.name.lower())
        logger.info(f"Discovered {len(repos)} local repositories under {root}")
        return repos

    def _find_git_roots(self, root: str) -> List[str]:
        base_depth = root.count(os.sep)
        found = []

        for dirpath, dirnames, filenames in os.walk(root, followlinks=True, onerror=self._log_walk_error):
            depth = dirpath.count(os.sep) - base_depth
            if ".git" in dirnames or ".git" in filenames:
                found.append(dirpath)

            if depth + 1 >= self.MAX_DEPTH:
                dirnames[:] = []
            else:
                # Hidden directories (including .git itself) are never descended into
                dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))

        return found

    @staticmethod
    def _log_walk_error(error: OSError) -> None:
        logger.warning(f"Skipping unreadable directory: {error}")

    def _describe(self, path: str, is_subrepo: bool = False, parent_repo: Optional[str] = None) -> LocalRepo:
        remote_url = self.git_client.remote_url(path)
        return LocalRepo(
            name=os.path.basename(path) or path,
            path=path,
            status=self.git_client.status(path),
            remote_url=remote_url,
            remote_owner=parse_owner_from_url(remote_url) if remote_url else None,
            last_commit_time=self.git_client.last_commit_time(path),
            is_subrepo=is_subrepo,
            parent_repo=parent_repo,
        )
