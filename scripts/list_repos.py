#!/usr/bin/env python3
"""Script to run one full refresh and log the merged repository overview."""

import logging
import sys
import os

# Add the project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ghall.application.ghq import follows_ghq
from ghall.application.refresh_coordinator import RefreshCoordinator
from ghall.application.sort_engine import SortKey, sort_repos
from ghall.infrastructure.config_store import Config
from ghall.infrastructure.github_client import GitHubClient

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Refresh GitHub and local state once and log every repository row."""
    try:
        github_token = os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")
        if not github_token:
            logger.warning("GITHUB_TOKEN not found. Only local repositories will be listed.")

        root = os.path.expanduser(os.getenv("GHALL_ROOT", "~/code"))
        config = Config.load()

        coordinator = RefreshCoordinator(root, GitHubClient(token=github_token))
        snapshot = coordinator.perform_full_refresh()
        if snapshot.error:
            logger.warning(snapshot.error)

        repos = sort_repos(
            snapshot.repos,
            SortKey.from_string(config.sort_column),
            config.sort_ascending,
            snapshot.username,
            root,
        )
        for repo in repos:
            if repo.id in config.ignored_repos:
                continue
            status = repo.git_status.status_text if repo.git_status else "-"
            ghq = follows_ghq(repo, root)
            logger.info(
                f"{repo.owner or '-'}/{repo.name} | {status} | "
                f"ghq={'n/a' if ghq is None else ghq} | {repo.local_path or repo.github_url}"
            )

        logger.info(f"Listed {len(repos)} repositories and {len(snapshot.gists)} gists")
        return 0

    except Exception as e:
        logger.error(f"Listing failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
