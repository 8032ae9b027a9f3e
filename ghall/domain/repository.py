"""Domain entities for remote, local and merged repositories."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class GitStatus:
    """Snapshot of a working copy's state, replaced wholesale on every refresh."""

    branch: str = "HEAD"
    ahead: int = 0
    behind: int = 0
    dirty: bool = False
    untracked: int = 0
    staged: int = 0
    has_remote: bool = False

    @property
    def is_dirty(self) -> bool:
        return self.dirty or self.staged > 0 or self.untracked > 0

    @property
    def is_synced(self) -> bool:
        return self.has_remote and self.ahead == 0 and self.behind == 0 and not self.is_dirty

    @property
    def can_fast_forward(self) -> bool:
        return self.behind > 0 and self.ahead == 0 and not self.dirty and self.staged == 0

    @property
    def status_icon(self) -> str:
        if not self.has_remote:
            return "?"
        if self.is_dirty:
            return "*"
        if self.ahead > 0 and self.behind > 0:
            return "⇅"
        if self.ahead > 0:
            return "↑"
        if self.behind > 0:
            return "↓"
        return "✓"

    @property
    def status_text(self) -> str:
        if not self.has_remote:
            return "no remote"

        parts = []
        if self.ahead > 0 and self.behind > 0:
            parts.append(f"+{self.ahead}/-{self.behind}")
        elif self.ahead > 0:
            parts.append(f"+{self.ahead} ahead")
        elif self.behind > 0:
            parts.append(f"-{self.behind} behind")

        if self.dirty:
            parts.append("dirty")
        if self.staged > 0:
            parts.append(f"{self.staged} staged")
        if self.untracked > 0:
            parts.append(f"{self.untracked} untracked")

        return ", ".join(parts) if parts else "synced"


@dataclass(frozen=True)
class RemoteRepo:
    """Repository record as reported by GitHub, before merging."""

    name: str
    owner: str
    url: str
    ssh_url: str = ""
    is_private: bool = False
    is_fork: bool = False
    fork_parent: Optional[str] = None  # "owner/name" of the upstream
    is_archived: bool = False
    is_member: bool = True
    pushed_at: Optional[int] = None  # unix timestamp
    fork_ahead: Optional[int] = None
    fork_behind: Optional[int] = None
    default_branch: Optional[str] = None
    parent_default_branch: Optional[str] = None

    @property
    def name_with_owner(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class LocalRepo:
    """Repository (or plain folder) discovered on the local filesystem."""

    name: str
    path: str
    status: GitStatus = GitStatus()
    remote_url: Optional[str] = None
    remote_owner: Optional[str] = None
    last_commit_time: Optional[int] = None
    is_subrepo: bool = False
    parent_repo: Optional[str] = None
    has_git: bool = True


@dataclass(frozen=True)
class RepoEntity:
    """Unified repository row combining remote and local information.

    ``id`` is the normalized remote URL when the entity came from GitHub,
    otherwise the local path.
    """

    id: str
    name: str
    owner: Optional[str] = None
    github_url: Optional[str] = None
    ssh_url: Optional[str] = None
    local_path: Optional[str] = None
    is_private: bool = False
    is_archived: bool = False
    is_member: bool = False
    is_fork: bool = False
    fork_parent: Optional[str] = None
    fork_ahead: Optional[int] = None
    fork_behind: Optional[int] = None
    last_commit_time: Optional[int] = None
    is_subrepo: bool = False
    parent_repo: Optional[str] = None
    git_status: Optional[GitStatus] = None
    has_git: bool = True

    def __post_init__(self):
        if self.github_url is None and self.local_path is None:
            raise ValueError(f"Repository {self.id!r} has neither a remote URL nor a local path")
        if self.is_subrepo and self.parent_repo is None:
            raise ValueError(f"Subrepo {self.id!r} has no parent repository")
        if self.is_fork and self.fork_parent is None:
            raise ValueError(f"Fork {self.id!r} has no parent repository")

    @property
    def has_local(self) -> bool:
        return self.local_path is not None

    @property
    def is_local_only(self) -> bool:
        return self.local_path is not None and self.github_url is None

    @property
    def is_remote_only(self) -> bool:
        return self.github_url is not None and self.local_path is None

    @property
    def is_dirty(self) -> bool:
        return self.git_status is not None and self.git_status.is_dirty

    @property
    def fork_owner(self) -> Optional[str]:
        if self.fork_parent is None:
            return None
        return self.fork_parent.split("/", 1)[0]

    @property
    def name_with_owner(self) -> Optional[str]:
        if self.owner is None:
            return None
        return f"{self.owner}/{self.name}"
