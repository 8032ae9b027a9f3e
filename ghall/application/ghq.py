"""Checks whether local clones follow the ghq layout ``{root}/<host>/{owner}/{name}``."""

import os
from typing import Optional

from ghall.domain.identity import DEFAULT_HOST
from ghall.domain.repository import RepoEntity


def _canonical(path: str) -> str:
    """Resolve symlinks and relative segments, keeping the raw string if that fails."""
    try:
        return os.path.realpath(path, strict=True)
    except (OSError, ValueError):
        return path.rstrip("/") or path


def expected_ghq_path(entity: RepoEntity, root: str, host: str = DEFAULT_HOST) -> Optional[str]:
    """Where ``entity`` should live under ``root``, or None for owner-less entities."""
    if entity.owner is None:
        return None
    return os.path.join(_canonical(root), host, entity.owner, entity.name)


def follows_ghq(entity: RepoEntity, root: str, host: str = DEFAULT_HOST) -> Optional[bool]:
    """
    Tell whether the entity's local copy sits at its ghq location.

    Returns:
        True or False for entities with both a local path and an owner,
        None when the check does not apply. Subrepos are always True because
        only their parent's placement matters.
    """
    if entity.is_subrepo:
        return True

    if entity.local_path is None or entity.owner is None:
        return None

    actual = _canonical(entity.local_path)
    expected = _canonical(expected_ghq_path(entity, root, host))
    return actual.lower() == expected.lower() or actual == expected
