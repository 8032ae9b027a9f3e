"""Merging of GitHub and locally discovered repositories into one entity list."""

import logging
from typing import Dict, List, Optional, Sequence

from ghall.domain.identity import normalize_remote_url
from ghall.domain.repository import LocalRepo, RemoteRepo, RepoEntity

logger = logging.getLogger(__name__)


def _local_only_entity(repo: LocalRepo, owner: Optional[str] = None, url: Optional[str] = None) -> RepoEntity:
    return RepoEntity(
        id=repo.path,
        name=repo.name,
        owner=owner,
        github_url=url,
        ssh_url=url,
        local_path=repo.path,
        is_member=False,
        last_commit_time=repo.last_commit_time,
        is_subrepo=repo.is_subrepo,
        parent_repo=repo.parent_repo,
        git_status=repo.status,
        has_git=repo.has_git,
    )


def _merged_entity(identity: str, remote: RemoteRepo, local: Optional[LocalRepo]) -> RepoEntity:
    last_commit_time = local.last_commit_time if local is not None else None
    if last_commit_time is None:
        last_commit_time = remote.pushed_at

    return RepoEntity(
        id=identity,
        name=remote.name,
        owner=remote.owner,
        github_url=remote.url,
        ssh_url=remote.ssh_url or None,
        local_path=local.path if local else None,
        is_private=remote.is_private,
        is_archived=remote.is_archived,
        is_member=remote.is_member,
        is_fork=remote.is_fork,
        fork_parent=remote.fork_parent,
        fork_ahead=remote.fork_ahead,
        fork_behind=remote.fork_behind,
        last_commit_time=last_commit_time,
        is_subrepo=local.is_subrepo if local else False,
        parent_repo=local.parent_repo if local else None,
        git_status=local.status if local else None,
        has_git=local.has_git if local else True,
    )


def _owner_name_key(entity: RepoEntity) -> tuple:
    # Owner-less entities sort after every owned one
    return (
        entity.owner is None,
        (entity.owner or "").lower(),
        entity.name.lower(),
        entity.id,
    )


def merge_repos(remote_repos: Sequence[RemoteRepo], local_repos: Sequence[LocalRepo]) -> List[RepoEntity]:
    """
    Combine GitHub repositories with local clones, matching them by normalized URL.

    Every input record appears in the output exactly once: remote repositories
    keyed by normalized URL (carrying their local clone when one matched),
    local repositories without a matching remote keyed by their path.

    The one exception is a remote repository listed twice (GitHub reports a
    repository under both the user and an organization). Both records name
    the same repository, so the first is kept and later ones are logged and
    skipped; identities stay unique.

    Args:
        remote_repos: Repositories reported by GitHub
        local_repos: Repositories discovered on disk

    Returns:
        Entities sorted by owner then name, owner-less entities last
    """
    result: List[RepoEntity] = []
    local_by_url: Dict[str, LocalRepo] = {}

    for repo in local_repos:
        if not repo.remote_url:
            result.append(_local_only_entity(repo))
            continue
        normalized = normalize_remote_url(repo.remote_url)
        if normalized in local_by_url:
            # A second clone of the same remote stays visible under its own path
            result.append(_local_only_entity(repo, repo.remote_owner, repo.remote_url))
            continue
        local_by_url[normalized] = repo

    seen_remote = set()
    for remote in remote_repos:
        normalized = normalize_remote_url(remote.url)
        if normalized in seen_remote:
            logger.warning(f"Skipping duplicate remote repository {remote.name_with_owner}")
            continue
        seen_remote.add(normalized)
        result.append(_merged_entity(normalized, remote, local_by_url.pop(normalized, None)))

    # Remotes on other hosts than the tracked service stay local-only entities
    for repo in local_by_url.values():
        result.append(_local_only_entity(repo, repo.remote_owner, repo.remote_url))

    result.sort(key=_owner_name_key)
    return result
