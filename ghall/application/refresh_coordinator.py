"""Builds full or cache-assisted snapshots of GitHub and local repository state."""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Sequence

import requests

from ghall.application.repo_merger import merge_repos
from ghall.domain.gist import Gist
from ghall.domain.messages import RefreshSnapshot, RemoteDataCache
from ghall.domain.repository import LocalRepo, RemoteRepo
from ghall.infrastructure.git_client import GitClient
from ghall.infrastructure.github_client import GitHubApiError, GitHubAuthError, GitHubClient
from ghall.infrastructure.local_scanner import LocalScanner

logger = logging.getLogger(__name__)

REMOTE_ERRORS = (GitHubAuthError, GitHubApiError, requests.RequestException, KeyError, ValueError)


class SnapshotSlot:
    """
    Single-slot channel for refresh snapshots.

    Only the newest snapshot matters: a snapshot from a later-started refresh
    replaces one that has not been taken yet, and a snapshot from an
    earlier-started refresh never replaces a newer one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[RefreshSnapshot] = None

    def put(self, snapshot: RefreshSnapshot) -> None:
        with self._lock:
            held = self._snapshot
            if held is not None and held.generation > snapshot.generation:
                logger.info(f"Dropping snapshot {snapshot.generation}, newer snapshot {held.generation} is pending")
                return
            if held is not None:
                logger.info(f"Snapshot {held.generation} superseded before it was applied")
            self._snapshot = snapshot

    def take(self) -> Optional[RefreshSnapshot]:
        with self._lock:
            snapshot, self._snapshot = self._snapshot, None
            return snapshot


class RefreshCoordinator:
    """Produces RefreshSnapshots in the background and delivers them through a SnapshotSlot."""

    FORK_COMPARE_WORKERS = 8
    GISTS_FOLDER = "gists"

    def __init__(
        self,
        root: str,
        github_client: GitHubClient,
        scanner: Optional[LocalScanner] = None,
        git_client: Optional[GitClient] = None,
    ):
        """
        Initialize refresh coordinator.

        Args:
            root: Directory holding the local clones
            github_client: GitHub API client
            scanner: Local repository scanner
            git_client: Git client used for gist working copies
        """
        self.root = root
        self.github_client = github_client
        self.git_client = git_client or GitClient()
        self.scanner = scanner or LocalScanner(self.git_client)
        self.slot = SnapshotSlot()
        self._generation = 0

    # --- background entry points (called from the UI thread) ---

    def start_full(self) -> threading.Thread:
        generation = self._next_generation()
        return self._spawn(lambda: self.perform_full_refresh(generation), generation)

    def start_local(self, cache: RemoteDataCache) -> threading.Thread:
        generation = self._next_generation()
        return self._spawn(lambda: self.perform_local_refresh(cache, generation), generation)

    def poll(self) -> Optional[RefreshSnapshot]:
        """Non-blocking: the latest undelivered snapshot, if any."""
        return self.slot.take()

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _spawn(self, produce, generation: int) -> threading.Thread:
        def run():
            try:
                snapshot = produce()
            except Exception as e:
                logger.error(f"Refresh {generation} failed: {e}", exc_info=True)
                snapshot = self._local_only_snapshot(f"Refresh failed: {e}", generation)
            self.slot.put(snapshot)

        thread = threading.Thread(target=run, name=f"ghall-refresh-{generation}", daemon=True)
        thread.start()
        return thread

    def _local_only_snapshot(self, error: str, generation: int) -> RefreshSnapshot:
        """Snapshot of the local repositories alone, reporting ``error``."""
        try:
            repos = tuple(merge_repos([], self._discover_local()))
        except Exception as e:
            logger.error(f"Local discovery for refresh {generation} failed too: {e}")
            repos = ()
        return RefreshSnapshot(repos=repos, error=error, generation=generation)

    # --- snapshot builders ---

    def perform_full_refresh(self, generation: int = 0) -> RefreshSnapshot:
        """
        Query GitHub and the local filesystem and merge the results.

        Authentication failures still produce a snapshot of the local
        repositories, with the failure reported in ``error``.
        """
        logger.info(f"Starting full refresh {generation} of {self.root}")
        try:
            self.github_client.authenticate()
        except GitHubAuthError as e:
            logger.warning(f"GitHub unavailable, showing local repositories only: {e}")
            repos = merge_repos([], self._discover_local())
            return RefreshSnapshot(repos=tuple(repos), error=f"GitHub unavailable: {e}", generation=generation)

        username = None
        try:
            username = self.github_client.get_current_user()
        except REMOTE_ERRORS as e:
            logger.warning(f"Could not fetch GitHub username: {e}")

        remote_repos: List[RemoteRepo] = []
        try:
            remote_repos = self.fetch_fork_comparisons(self.github_client.list_repositories())
        except GitHubAuthError as e:
            # Credentials revoked after authenticate(); keep the previous cache
            logger.warning(f"GitHub rejected the token while listing repositories: {e}")
            return self._local_only_snapshot(f"GitHub unavailable: {e}", generation)
        except REMOTE_ERRORS as e:
            logger.error(f"Could not fetch GitHub repositories: {e}")

        repos = merge_repos(remote_repos, self._discover_local())

        gists: List[Gist] = []
        try:
            gists = self._attach_local_gists(self.github_client.list_gists())
        except REMOTE_ERRORS as e:
            logger.warning(f"Could not fetch gists: {e}")

        logger.info(f"Full refresh {generation} finished: {len(repos)} repositories, {len(gists)} gists")
        return RefreshSnapshot(
            repos=tuple(repos),
            gists=tuple(gists),
            username=username,
            cache=RemoteDataCache(repos=tuple(remote_repos), gists=tuple(gists)),
            generation=generation,
        )

    def perform_local_refresh(self, cache: RemoteDataCache, generation: int = 0) -> RefreshSnapshot:
        """Re-scan the filesystem and merge it against cached GitHub data; no network calls."""
        logger.info(f"Starting local refresh {generation} of {self.root}")
        repos = merge_repos(cache.repos, self._discover_local())
        return RefreshSnapshot(
            repos=tuple(repos),
            gists=cache.gists,
            cache=cache,
            generation=generation,
        )

    def fetch_fork_comparisons(self, repos: Sequence[RemoteRepo]) -> List[RemoteRepo]:
        """Fill ahead/behind counts for every fork, comparing concurrently."""
        forks = [i for i, repo in enumerate(repos) if repo.is_fork]
        if not forks:
            return list(repos)

        def compare(repo: RemoteRepo) -> RemoteRepo:
            try:
                ahead, behind = self.github_client.compare_fork_with_upstream(repo)
            except REMOTE_ERRORS as e:
                logger.warning(f"Could not compare fork {repo.name_with_owner} with upstream: {e}")
                return repo
            return replace(repo, fork_ahead=ahead, fork_behind=behind)

        result = list(repos)
        with ThreadPoolExecutor(max_workers=self.FORK_COMPARE_WORKERS) as executor:
            compared = executor.map(compare, [repos[i] for i in forks])
            for i, repo in zip(forks, compared):
                result[i] = repo
        return result

    def _discover_local(self) -> List[LocalRepo]:
        try:
            return self.scanner.discover_repos(self.root)
        except OSError as e:
            logger.error(f"Local discovery under {self.root} failed: {e}")
            return []

    def _attach_local_gists(self, gists: Sequence[Gist]) -> List[Gist]:
        gists_dir = os.path.join(self.root, self.GISTS_FOLDER)
        result = []
        for gist in gists:
            path = os.path.join(gists_dir, gist.id)
            if os.path.exists(path):
                gist = replace(gist, local_path=path, git_status=self.git_client.status(path))
            result.append(gist)
        return result
