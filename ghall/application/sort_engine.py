"""Deterministic ordering of repository entities by a user-selected column."""

from enum import Enum
from functools import cmp_to_key
from typing import Callable, List, Optional, Sequence

from ghall.application.ghq import follows_ghq
from ghall.domain.repository import RepoEntity
from ghall.infrastructure.config_store import Column


class SortKey(Enum):
    ORIGIN = "origin"
    NAME = "repository"
    TYPE = "type"
    STATUS = "status"
    LAST_UPDATED = "updated"
    PATH = "path"
    DIRTY = "dirty"
    PRIVATE = "private"
    ARCHIVED = "archived"
    GHQ = "ghq"

    @classmethod
    def from_string(cls, value: str) -> "SortKey":
        """Parse a config value; unknown values fall back to LAST_UPDATED."""
        return SORT_KEY_ALIASES.get(value.lower(), cls.LAST_UPDATED)

    def as_str(self) -> str:
        return self.value

    def to_column(self) -> Column:
        return Column(self.value)

    @classmethod
    def from_column(cls, column: Column) -> "SortKey":
        return cls(column.value)

    def next(self, visible: Sequence[Column]) -> "SortKey":
        """Following column in display order, wrapping around."""
        return self._step(visible, 1)

    def prev(self, visible: Sequence[Column]) -> "SortKey":
        return self._step(visible, -1)

    def _step(self, visible: Sequence[Column], offset: int) -> "SortKey":
        if not visible:
            return self
        column = self.to_column()
        if column not in visible:
            return SortKey.from_column(visible[0])
        idx = (list(visible).index(column) + offset) % len(visible)
        return SortKey.from_column(visible[idx])


SORT_KEY_ALIASES = {
    "origin": SortKey.ORIGIN,
    "repository": SortKey.NAME,
    "name": SortKey.NAME,
    "type": SortKey.TYPE,
    "status": SortKey.STATUS,
    "updated": SortKey.LAST_UPDATED,
    "lastupdated": SortKey.LAST_UPDATED,
    "path": SortKey.PATH,
    "dirty": SortKey.DIRTY,
    "private": SortKey.PRIVATE,
    "priv": SortKey.PRIVATE,
    "archived": SortKey.ARCHIVED,
    "arch": SortKey.ARCHIVED,
    "ghq": SortKey.GHQ,
}


# Type ranks
SOURCE, CLONE, FORK, LOCAL_ONLY, SUBREPO = range(5)

# Status ranks
DIRTY, DIVERGED, AHEAD, BEHIND, SYNCED, NO_REMOTE, NO_LOCAL_COPY = range(7)


def type_rank(entity: RepoEntity, username: Optional[str]) -> int:
    """Source (owned) < Clone < Fork < LocalOnly < Subrepo; subrepo wins over everything."""
    if entity.is_subrepo:
        return SUBREPO
    if entity.is_fork:
        return FORK
    if entity.github_url is not None:
        if username is not None and entity.owner is not None and username.lower() == entity.owner.lower():
            return SOURCE
        return CLONE
    return LOCAL_ONLY


def status_rank(entity: RepoEntity) -> int:
    status = entity.git_status
    if status is None:
        return NO_LOCAL_COPY
    if status.is_dirty:
        return DIRTY
    if status.ahead > 0 and status.behind > 0:
        return DIVERGED
    if status.ahead > 0:
        return AHEAD
    if status.behind > 0:
        return BEHIND
    if not status.has_remote:
        return NO_REMOTE
    return SYNCED


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _make_primary(key: SortKey, username: Optional[str]) -> Callable[[RepoEntity, RepoEntity], int]:
    if key is SortKey.ORIGIN:
        return lambda a, b: _cmp((a.owner or "~").lower(), (b.owner or "~").lower())
    if key is SortKey.NAME:
        return lambda a, b: _cmp(a.name.lower(), b.name.lower())
    if key is SortKey.TYPE:
        return lambda a, b: _cmp(type_rank(a, username), type_rank(b, username))
    if key is SortKey.STATUS:
        return lambda a, b: _cmp(status_rank(a), status_rank(b))
    if key is SortKey.LAST_UPDATED:
        return lambda a, b: _cmp(a.last_commit_time, b.last_commit_time)
    if key is SortKey.PATH:
        return lambda a, b: _cmp(a.local_path or "~", b.local_path or "~")
    if key is SortKey.DIRTY:
        return lambda a, b: _cmp(b.is_dirty, a.is_dirty)
    if key is SortKey.PRIVATE:
        return lambda a, b: _cmp(b.is_private, a.is_private)
    if key is SortKey.ARCHIVED:
        return lambda a, b: _cmp(b.is_archived, a.is_archived)
    raise ValueError(f"Unknown sort key: {key}")


def _ghq_rank(entity: RepoEntity, root: str) -> int:
    follows = follows_ghq(entity, root)
    if follows is None:
        return 2
    return 1 if follows else 0


def sort_repos(
    repos: Sequence[RepoEntity],
    key: SortKey,
    ascending: bool,
    username: Optional[str] = None,
    root: str = "",
) -> List[RepoEntity]:
    """
    Return ``repos`` in a total order for ``key`` and direction.

    The per-key comparison is reversed for descending order; ties always fall
    back to ascending identity. Missing timestamps stay last whatever the
    direction, and for the ghq column a known result always precedes "not
    applicable". The input sequence is left untouched.
    """
    primary = None if key is SortKey.GHQ else _make_primary(key, username)
    ghq_ranks = {}
    if key is SortKey.GHQ:
        ghq_ranks = {id(entity): _ghq_rank(entity, root) for entity in repos}

    def compare(a: RepoEntity, b: RepoEntity) -> int:
        if key is SortKey.LAST_UPDATED:
            if a.last_commit_time is None or b.last_commit_time is None:
                result = _cmp(a.last_commit_time is None, b.last_commit_time is None)
                return result or _cmp(a.id, b.id)
        if key is SortKey.GHQ:
            a_rank, b_rank = ghq_ranks[id(a)], ghq_ranks[id(b)]
            if (a_rank == 2) != (b_rank == 2):
                return _cmp(a_rank, b_rank)
            result = _cmp(a_rank, b_rank)
        else:
            result = primary(a, b)
        if not ascending:
            result = -result
        return result or _cmp(a.id, b.id)

    return sorted(repos, key=cmp_to_key(compare))
