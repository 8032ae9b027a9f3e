"""Domain entity for GitHub gists."""

from dataclasses import dataclass
from typing import Optional, Tuple

from ghall.domain.repository import GitStatus


@dataclass(frozen=True)
class Gist:
    """Immutable gist entity, optionally cloned under ``{root}/gists/<id>``."""

    id: str
    description: str
    is_public: bool
    file_names: Tuple[str, ...] = ()
    html_url: str = ""
    local_path: Optional[str] = None
    git_status: Optional[GitStatus] = None

    @property
    def has_local(self) -> bool:
        return self.local_path is not None

    @property
    def is_dirty(self) -> bool:
        return self.git_status is not None and self.git_status.is_dirty

    @property
    def short_id(self) -> str:
        return self.id[:8]
