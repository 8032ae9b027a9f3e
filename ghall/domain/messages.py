"""Immutable payloads exchanged between background units and the state owner."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from ghall.domain.gist import Gist
from ghall.domain.repository import RemoteRepo, RepoEntity


@dataclass(frozen=True)
class TaskResult:
    """Outcome of one background operation, consumed exactly once."""

    success: bool
    message: str
    operation: str
    stderr: Optional[str] = None
    invalidates_github_cache: bool = False


@dataclass(frozen=True)
class OrgsLoaded:
    """Organizations fetched for the upload form."""

    orgs: Tuple[str, ...]


@dataclass(frozen=True)
class RemoteDataCache:
    """Pre-merge GitHub data retained so a local-only refresh can skip the network."""

    repos: Tuple[RemoteRepo, ...]
    gists: Tuple[Gist, ...]


@dataclass(frozen=True)
class RefreshSnapshot:
    """Everything a refresh produced; applied to the state in one step."""

    repos: Tuple[RepoEntity, ...]
    gists: Tuple[Gist, ...] = ()
    username: Optional[str] = None
    cache: Optional[RemoteDataCache] = None
    error: Optional[str] = None
    generation: int = 0  # order in which the producing refresh was started


@dataclass(frozen=True)
class ErrorLogEntry:
    """One failed operation kept in the in-memory error log."""

    operation: str
    message: str
    timestamp: str = field(default_factory=lambda: datetime.now().strftime("%H:%M:%S"))
