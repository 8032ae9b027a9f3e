"""Popup kinds, each carrying its own payload, plus the upload form they host."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from ghall.application.ghq import expected_ghq_path, follows_ghq
from ghall.application.operations import CreateRepoRequest
from ghall.domain.gist import Gist
from ghall.domain.repository import RepoEntity

HELP_LINES = [
    "Navigation",
    "  j/k, up/down     move selection",
    "  g/G              first / last row",
    "  Tab              switch repositories / gists",
    "",
    "Git",
    "  p                pull",
    "  P                push",
    "  s                sync (fetch, pull, push)",
    "  S                quicksync (rebase, fixup commit, push)",
    "  c                clone",
    "  i                git init in a folder without .git",
    "",
    "Repository",
    "  d                delete local copy",
    "  D                delete on GitHub",
    "  v                toggle private / public",
    "  a                toggle archived",
    "  u                upload local repository to GitHub",
    "  o                move clone to its ghq location",
    "  x                hide repository",
    "",
    "View",
    "  < >              change sort column",
    "  /                toggle sort direction",
    "  [ ]              select column, { } move it",
    "  A                show / hide archived",
    "  V                show / hide private",
    "  I                ignored repositories",
    "  Enter            details",
    "  E                error log",
    "  r                refresh",
    "  ?                this help",
    "  q                quit",
]


def _format_time(timestamp: Optional[int]) -> str:
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def repo_details(entity: RepoEntity, root: str, username: Optional[str] = None) -> List[str]:
    """Detail lines shown for one repository row."""
    lines = [
        f"Name:        {entity.name}",
        f"Owner:       {entity.owner or '-'}",
        f"GitHub:      {entity.github_url or '-'}",
        f"SSH:         {entity.ssh_url or '-'}",
        f"Local path:  {entity.local_path or '-'}",
        f"Private:     {'yes' if entity.is_private else 'no'}",
        f"Archived:    {'yes' if entity.is_archived else 'no'}",
        f"Updated:     {_format_time(entity.last_commit_time)}",
    ]
    if username is not None and entity.owner is not None:
        lines.append(f"Yours:       {'yes' if entity.owner.lower() == username.lower() else 'no'}")

    if entity.is_fork:
        lines.append(f"Fork of:     {entity.fork_parent}")
        if entity.fork_ahead is not None and entity.fork_behind is not None:
            lines.append(f"Upstream:    +{entity.fork_ahead} / -{entity.fork_behind}")

    if entity.is_subrepo:
        lines.append(f"Inside:      {entity.parent_repo}")

    if entity.git_status is not None:
        status = entity.git_status
        lines.extend([
            f"Branch:      {status.branch}",
            f"Status:      {status.status_icon} {status.status_text}",
        ])
    elif entity.has_local and not entity.has_git:
        lines.append("Status:      not a git repository")

    compliant = follows_ghq(entity, root)
    if compliant is not None:
        lines.append(f"ghq layout:  {'yes' if compliant else 'no'}")
        if not compliant:
            lines.append(f"Expected:    {expected_ghq_path(entity, root)}")
    return lines


def gist_details(gist: Gist) -> List[str]:
    lines = [
        f"ID:          {gist.id}",
        f"Description: {gist.description or '-'}",
        f"Public:      {'yes' if gist.is_public else 'no'}",
        f"URL:         {gist.html_url or '-'}",
        f"Local path:  {gist.local_path or '-'}",
    ]
    if gist.git_status is not None:
        lines.append(f"Status:      {gist.git_status.status_icon} {gist.git_status.status_text}")
    lines.append("Files:")
    lines.extend(f"  {name}" for name in gist.file_names)
    return lines


class UploadField(Enum):
    NAME = "name"
    DESCRIPTION = "description"
    PRIVATE = "private"
    ORG = "org"


@dataclass
class UploadForm:
    """
    Editable state of the "create repository" form.

    ``org_index`` 0 means the user's own account; ``orgs`` fills in once the
    background organization fetch completes.
    """

    path: str
    name: str
    description: str = ""
    private: bool = True
    orgs: List[str] = field(default_factory=list)
    org_index: int = 0
    focus: UploadField = UploadField.NAME

    @property
    def owner_choices(self) -> List[str]:
        return ["(personal)"] + self.orgs

    @property
    def org(self) -> Optional[str]:
        if self.org_index == 0 or self.org_index > len(self.orgs):
            return None
        return self.orgs[self.org_index - 1]

    def next_field(self) -> None:
        fields = list(UploadField)
        self.focus = fields[(fields.index(self.focus) + 1) % len(fields)]

    def prev_field(self) -> None:
        fields = list(UploadField)
        self.focus = fields[(fields.index(self.focus) - 1) % len(fields)]

    def type_char(self, char: str) -> None:
        if self.focus is UploadField.NAME:
            if not char.isspace():
                self.name += char
        elif self.focus is UploadField.DESCRIPTION:
            self.description += char

    def backspace(self) -> None:
        if self.focus is UploadField.NAME:
            self.name = self.name[:-1]
        elif self.focus is UploadField.DESCRIPTION:
            self.description = self.description[:-1]

    def toggle(self) -> None:
        """Flip the privacy flag, or step to the next owner on the org field."""
        if self.focus is UploadField.PRIVATE:
            self.private = not self.private
        elif self.focus is UploadField.ORG:
            self.org_index = (self.org_index + 1) % len(self.owner_choices)

    def to_request(self) -> CreateRepoRequest:
        return CreateRepoRequest(
            name=self.name.strip(),
            path=self.path,
            description=self.description.strip() or None,
            private=self.private,
            org=self.org,
        )


@dataclass
class HelpPopup:
    scroll: int = 0

    @property
    def lines(self) -> List[str]:
        return HELP_LINES


@dataclass
class DetailsPopup:
    title: str
    lines: List[str]
    scroll: int = 0


@dataclass
class IgnoredPopup:
    selected: int = 0
    scroll: int = 0


@dataclass
class ErrorsPopup:
    scroll: int = 0


@dataclass
class UploadPopup:
    form: UploadForm
    scroll: int = 0


Popup = Union[HelpPopup, DetailsPopup, IgnoredPopup, ErrorsPopup, UploadPopup]
