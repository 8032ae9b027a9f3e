"""Single owner of the application state.

Every mutation happens here, on the thread that calls ``tick()`` and the
action methods. Background units only hand back immutable TaskResults and
RefreshSnapshots. Task results are applied in arrival order without staleness
checks: there is one global state, and the follow-up refresh they request
rebuilds the affected rows anyway.
"""

import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

from ghall.application.ghq import expected_ghq_path, follows_ghq
from ghall.application.operations import RepoOperations
from ghall.application.popups import (
    DetailsPopup,
    ErrorsPopup,
    HelpPopup,
    IgnoredPopup,
    Popup,
    UploadForm,
    UploadPopup,
    gist_details,
    repo_details,
)
from ghall.application.refresh_coordinator import RefreshCoordinator
from ghall.application.sort_engine import SortKey, sort_repos
from ghall.application.task_executor import ErrorLog, RefreshKind, RefreshLatch, TaskExecutor
from ghall.domain.gist import Gist
from ghall.domain.identity import clone_path_for_url
from ghall.domain.messages import OrgsLoaded, RefreshSnapshot, RemoteDataCache, TaskResult
from ghall.domain.repository import RepoEntity
from ghall.infrastructure.config_store import Column, Config

logger = logging.getLogger(__name__)

SPINNER_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
COMPLETED_DWELL_SECONDS = 2.0
CONFIRM_ANSWERS = ("y", "yes")


class ViewMode(Enum):
    REPOS = "repos"
    GISTS = "gists"


class InputMode(Enum):
    NORMAL = "normal"
    CONFIRM_DELETE = "confirm_delete"
    UPLOAD_FORM = "upload_form"


class DeleteType(Enum):
    LOCAL = "local"
    REMOTE = "remote"
    GIST = "gist"


class StatusKind(Enum):
    LOADING = "loading"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class StatusLine:
    kind: StatusKind
    text: str
    since: float


class StateMachine:
    """
    Applies user actions and background results to the application state.

    Args:
        config: Loaded user configuration; saved after every change to it
        coordinator: Produces refresh snapshots in the background
        executor: Runs background operations
        operations: The background operations themselves
        root: Directory holding the local clones
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        config: Config,
        coordinator: RefreshCoordinator,
        executor: TaskExecutor,
        operations: RepoOperations,
        root: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.coordinator = coordinator
        self.executor = executor
        self.operations = operations
        self.root = root.rstrip("/") or root
        self.clock = clock

        self.repos: List[RepoEntity] = []
        self.gists: List[Gist] = []
        self.username: Optional[str] = None
        self.cache: Optional[RemoteDataCache] = None
        self.last_generation = 0

        self.view_mode = ViewMode.REPOS
        self.input_mode = InputMode.NORMAL
        self.popup: Optional[Popup] = None
        self.selected = 0
        self.gist_selected = 0
        self.selected_column = 0

        self.sort_key = SortKey.from_string(config.sort_column)
        self.sort_ascending = config.sort_ascending

        self.status: Optional[StatusLine] = None
        self.spinner_frame = 0

        self.delete_type: Optional[DeleteType] = None
        self.delete_target: Optional[Union[RepoEntity, Gist]] = None
        self.delete_input = ""
        self.orgs: List[str] = []

        self.error_log = ErrorLog()
        self.latch = RefreshLatch()

    # --- status line ---

    def set_loading(self, text: str) -> None:
        self.status = StatusLine(StatusKind.LOADING, text, self.clock())
        self.spinner_frame = 0

    def set_completed(self, text: str) -> None:
        self.status = StatusLine(StatusKind.COMPLETED, text, self.clock())

    def set_error(self, text: str) -> None:
        self.status = StatusLine(StatusKind.ERROR, text, self.clock())

    def dismiss_status(self) -> None:
        self.status = None

    @property
    def spinner(self) -> str:
        return SPINNER_FRAMES[self.spinner_frame % len(SPINNER_FRAMES)]

    def _advance_status(self) -> None:
        if self.status is None:
            return
        if self.status.kind is StatusKind.LOADING:
            self.spinner_frame = (self.spinner_frame + 1) % len(SPINNER_FRAMES)
        elif self.status.kind is StatusKind.COMPLETED:
            if self.clock() - self.status.since >= COMPLETED_DWELL_SECONDS:
                self.status = None

    # --- loop ---

    def start(self) -> None:
        """Kick off the initial full refresh."""
        self.start_full_refresh()

    def tick(self) -> None:
        """
        One iteration of the UI loop.

        Advances the status line, applies every finished background result and
        the newest refresh snapshot, then starts the refresh the results asked for.
        """
        self._advance_status()
        self.poll_tasks()
        self.poll_refresh()
        self.dispatch_pending_refresh()

    def poll_tasks(self) -> int:
        messages = self.executor.drain()
        for message in messages:
            if isinstance(message, OrgsLoaded):
                self._apply_orgs(message)
            else:
                self.apply_task_result(message)
        return len(messages)

    def apply_task_result(self, result: TaskResult) -> None:
        if result.success:
            self.set_completed(result.message)
        else:
            self.error_log.append(result.operation, result.stderr or result.message)
            self.set_error(result.message)
        self.latch.latch(result.invalidates_github_cache)

    def _apply_orgs(self, message: OrgsLoaded) -> None:
        self.orgs = list(message.orgs)
        if isinstance(self.popup, UploadPopup):
            self.popup.form.orgs = list(message.orgs)
        logger.info(f"Loaded {len(self.orgs)} organizations")

    def dispatch_pending_refresh(self) -> Optional[RefreshKind]:
        kind = self.latch.take()
        if kind is RefreshKind.FULL:
            self.coordinator.start_full()
        elif kind is RefreshKind.LOCAL:
            self._start_local()
        return kind

    def start_full_refresh(self) -> None:
        self.set_loading("Refreshing...")
        self.coordinator.start_full()

    def start_local_refresh(self) -> None:
        self.set_loading("Refreshing local repositories...")
        self._start_local()

    def _start_local(self) -> None:
        if self.cache is None:
            self.coordinator.start_full()
        else:
            self.coordinator.start_local(self.cache)

    def poll_refresh(self) -> bool:
        snapshot = self.coordinator.poll()
        if snapshot is None:
            return False
        if snapshot.generation < self.last_generation:
            logger.info(f"Skipping snapshot {snapshot.generation}, {self.last_generation} already applied")
            return False
        self.apply_snapshot(snapshot)
        return True

    def apply_snapshot(self, snapshot: RefreshSnapshot) -> None:
        """Replace username, repositories, gists and cache in one step, then re-sort and clamp."""
        if snapshot.username is not None:
            self.username = snapshot.username
        if snapshot.cache is not None:
            self.cache = snapshot.cache
        self.repos = self._sorted(snapshot.repos)
        self.gists = list(snapshot.gists)
        self.last_generation = max(self.last_generation, snapshot.generation)
        self.clamp_selection()

        if snapshot.error is not None:
            self.set_error(snapshot.error)
        elif self.status is not None and self.status.kind is StatusKind.LOADING:
            self.set_completed(f"Loaded {len(self.repos)} repositories")
        logger.info(f"Applied snapshot {snapshot.generation}: {len(self.repos)} repositories, {len(self.gists)} gists")

    # --- visible rows and selection ---

    def _sorted(self, repos) -> List[RepoEntity]:
        return sort_repos(repos, self.sort_key, self.sort_ascending, self.username, self.root)

    def visible_repos(self) -> List[RepoEntity]:
        return [
            repo for repo in self.repos
            if repo.id not in self.config.ignored_repos
            and (self.config.show_archived or not repo.is_archived)
            and (self.config.show_private or not repo.is_private)
        ]

    def clamp_selection(self) -> None:
        self.selected = max(0, min(self.selected, len(self.visible_repos()) - 1))
        self.gist_selected = max(0, min(self.gist_selected, len(self.gists) - 1))

    def selected_repo(self) -> Optional[RepoEntity]:
        visible = self.visible_repos()
        if not visible:
            return None
        return visible[self.selected]

    def selected_gist(self) -> Optional[Gist]:
        if not self.gists:
            return None
        return self.gists[self.gist_selected]

    def move_selection(self, delta: int) -> None:
        if self.input_mode is not InputMode.NORMAL:
            return
        if isinstance(self.popup, IgnoredPopup):
            count = len(self.config.ignored_repos)
            self.popup.selected = max(0, min(self.popup.selected + delta, count - 1))
            return
        if self.view_mode is ViewMode.GISTS:
            self.gist_selected += delta
        else:
            self.selected += delta
        self.clamp_selection()

    def select_first(self) -> None:
        self.move_selection(-len(self.repos) - len(self.gists))

    def select_last(self) -> None:
        self.move_selection(len(self.repos) + len(self.gists))

    def switch_view(self) -> None:
        if self.input_mode is not InputMode.NORMAL:
            return
        self.view_mode = ViewMode.GISTS if self.view_mode is ViewMode.REPOS else ViewMode.REPOS

    # --- filters, sorting and columns ---

    def toggle_show_archived(self) -> None:
        self.config.show_archived = not self.config.show_archived
        self.config.save()
        self.clamp_selection()

    def toggle_show_private(self) -> None:
        self.config.show_private = not self.config.show_private
        self.config.save()
        self.clamp_selection()

    def cycle_sort(self, forward: bool = True) -> None:
        columns = self.config.columns
        self.sort_key = self.sort_key.next(columns) if forward else self.sort_key.prev(columns)
        self._apply_sort()

    def toggle_sort_direction(self) -> None:
        self.sort_ascending = not self.sort_ascending
        self._apply_sort()

    def _apply_sort(self) -> None:
        self.config.sort_column = self.sort_key.as_str()
        self.config.sort_ascending = self.sort_ascending
        self.config.save()
        self.repos = self._sorted(self.repos)
        self.clamp_selection()

    def select_column(self, delta: int) -> None:
        count = len(self.config.columns)
        if count:
            self.selected_column = (self.selected_column + delta) % count

    def current_column(self) -> Optional[Column]:
        if not self.config.columns:
            return None
        return self.config.columns[self.selected_column % len(self.config.columns)]

    def move_column(self, delta: int) -> None:
        """Shift the selected column one place; the selection follows it."""
        column = self.current_column()
        if column is None:
            return
        if delta < 0:
            self.config.move_column_left(column)
        else:
            self.config.move_column_right(column)
        self.selected_column = self.config.columns.index(column)
        self.config.save()

    # --- ignore list ---

    def toggle_ignore(self) -> None:
        repo = self.selected_repo()
        if repo is None:
            return
        if repo.id in self.config.ignored_repos:
            self.config.ignored_repos.discard(repo.id)
            self.set_completed(f"Unhid {repo.name}")
        else:
            self.config.ignored_repos.add(repo.id)
            self.set_completed(f"Hid {repo.name}")
        self.config.save()
        self.clamp_selection()

    def ignored_entries(self) -> List[str]:
        return sorted(self.config.ignored_repos)

    def unhide_selected_ignored(self) -> None:
        if not isinstance(self.popup, IgnoredPopup):
            return
        entries = self.ignored_entries()
        if not entries:
            return
        identity = entries[self.popup.selected]
        self.config.ignored_repos.discard(identity)
        self.config.save()
        self.popup.selected = max(0, min(self.popup.selected, len(entries) - 2))
        self.set_completed(f"Unhid {identity}")
        self.clamp_selection()

    # --- popups ---

    def show_help(self) -> None:
        self.popup = HelpPopup()

    def show_details(self) -> None:
        if self.view_mode is ViewMode.GISTS:
            gist = self.selected_gist()
            if gist is not None:
                self.popup = DetailsPopup(title=f"Gist {gist.short_id}", lines=gist_details(gist))
            return
        repo = self.selected_repo()
        if repo is not None:
            self.popup = DetailsPopup(
                title=repo.name_with_owner or repo.name,
                lines=repo_details(repo, self.root, self.username),
            )

    def show_ignored(self) -> None:
        self.popup = IgnoredPopup()

    def show_errors(self) -> None:
        if not len(self.error_log):
            self.set_completed("No errors logged")
            return
        self.popup = ErrorsPopup()

    def scroll_popup(self, delta: int) -> None:
        if self.popup is not None:
            self.popup.scroll = max(0, self.popup.scroll + delta)

    def close_popup(self) -> None:
        if isinstance(self.popup, UploadPopup):
            self.input_mode = InputMode.NORMAL
        self.popup = None

    # --- background actions ---

    def _can_act(self) -> bool:
        return self.input_mode is InputMode.NORMAL and self.popup is None

    def _spawn(self, operation: str, loading: str, work: Callable[[], TaskResult], invalidates: bool) -> bool:
        self.set_loading(loading)
        self.executor.spawn(operation, work, invalidates_github_cache=invalidates)
        return True

    def _local_git_target(self):
        """(label, path, gist id or None) for the selected row's working copy."""
        if self.view_mode is ViewMode.GISTS:
            gist = self.selected_gist()
            if gist is None or gist.local_path is None:
                return None
            return gist.short_id, gist.local_path, gist.id
        repo = self.selected_repo()
        if repo is None or repo.local_path is None or not repo.has_git:
            return None
        return repo.name, repo.local_path, None

    def _git_action(self, verb: str, repo_op, gist_op) -> bool:
        if not self._can_act():
            return False
        target = self._local_git_target()
        if target is None:
            self.set_error(f"Nothing to {verb.lower()}: no local git repository selected")
            return False
        label, path, gist_id = target
        if gist_id is not None:
            return self._spawn(f"{verb.lower()} gist {label}", f"{verb}ing gist {label}...",
                               lambda: gist_op(gist_id, path), False)
        return self._spawn(f"{verb.lower()} {label}", f"{verb}ing {label}...",
                           lambda: repo_op(label, path), False)

    def pull(self) -> bool:
        return self._git_action("Pull", self.operations.pull, self.operations.pull_gist)

    def push(self) -> bool:
        return self._git_action("Push", self.operations.push, self.operations.push_gist)

    def sync(self) -> bool:
        return self._git_action("Sync", self.operations.sync, self.operations.sync_gist)

    def quicksync(self) -> bool:
        if not self._can_act() or self.view_mode is not ViewMode.REPOS:
            return False
        target = self._local_git_target()
        if target is None:
            self.set_error("Nothing to quicksync: no local git repository selected")
            return False
        name, path, _ = target
        return self._spawn(f"quicksync {name}", f"Quicksyncing {name}...",
                           lambda: self.operations.quicksync(name, path), False)

    def clone(self) -> bool:
        if not self._can_act():
            return False
        if self.view_mode is ViewMode.GISTS:
            gist = self.selected_gist()
            if gist is None or gist.has_local:
                return False
            path = os.path.join(self.root, RefreshCoordinator.GISTS_FOLDER, gist.id)
            return self._spawn(f"clone gist {gist.short_id}", f"Cloning gist {gist.short_id}...",
                               lambda: self.operations.clone_gist(gist.id, path), False)

        repo = self.selected_repo()
        if repo is None or not repo.is_remote_only:
            self.set_error("Only repositories without a local copy can be cloned")
            return False
        path = clone_path_for_url(self.root, repo.github_url)
        # HTTPS so token credentials apply and no SSH prompt can block the worker
        url = repo.github_url
        return self._spawn(f"clone {repo.name}", f"Cloning {repo.name}...",
                           lambda: self.operations.clone(repo.name, url, path), False)

    def init_repo(self) -> bool:
        if not self._can_act() or self.view_mode is not ViewMode.REPOS:
            return False
        repo = self.selected_repo()
        if repo is None or repo.local_path is None or repo.has_git:
            self.set_error("Only folders without git can be initialized")
            return False
        return self._spawn(f"init {repo.name}", f"Initializing {repo.name}...",
                           lambda: self.operations.init(repo.name, repo.local_path), False)

    def reorganize(self) -> bool:
        """Move the selected clone to ``{root}/<host>/{owner}/{name}``."""
        if not self._can_act() or self.view_mode is not ViewMode.REPOS:
            return False
        repo = self.selected_repo()
        if repo is None or follows_ghq(repo, self.root) is not False:
            self.set_error("Repository already follows the ghq layout or cannot be placed")
            return False
        destination = expected_ghq_path(repo, self.root)
        if os.path.exists(destination):
            self.set_error(f"{destination} already exists")
            return False
        return self._spawn(f"reorganize {repo.name}", f"Moving {repo.name}...",
                           lambda: self.operations.reorganize(repo.name, repo.local_path, destination), False)

    def _member_repo(self) -> Optional[RepoEntity]:
        repo = self.selected_repo()
        if repo is None or repo.github_url is None or not repo.is_member:
            self.set_error("Only your own or your organizations' repositories can be changed")
            return None
        return repo

    def toggle_visibility(self) -> bool:
        if not self._can_act() or self.view_mode is not ViewMode.REPOS:
            return False
        repo = self._member_repo()
        if repo is None:
            return False
        private = not repo.is_private
        target = "private" if private else "public"
        return self._spawn(f"set visibility {repo.name_with_owner}", f"Making {repo.name} {target}...",
                           lambda: self.operations.set_visibility(repo.name_with_owner, private, repo.is_archived),
                           True)

    def toggle_archived(self) -> bool:
        if not self._can_act() or self.view_mode is not ViewMode.REPOS:
            return False
        repo = self._member_repo()
        if repo is None:
            return False
        archive = not repo.is_archived
        verb = "Archiving" if archive else "Unarchiving"
        return self._spawn(f"{verb.lower()} {repo.name_with_owner}", f"{verb} {repo.name}...",
                           lambda: self.operations.set_archived(repo.name_with_owner, archive), True)

    # --- delete confirmation ---

    def request_delete_local(self) -> bool:
        if not self._can_act() or self.view_mode is not ViewMode.REPOS:
            return False
        repo = self.selected_repo()
        if repo is None or repo.local_path is None:
            self.set_error("No local copy to delete")
            return False
        return self._enter_confirm(DeleteType.LOCAL, repo)

    def request_delete_remote(self) -> bool:
        if not self._can_act():
            return False
        if self.view_mode is ViewMode.GISTS:
            gist = self.selected_gist()
            if gist is None:
                return False
            return self._enter_confirm(DeleteType.GIST, gist)
        repo = self._member_repo()
        if repo is None:
            return False
        return self._enter_confirm(DeleteType.REMOTE, repo)

    def _enter_confirm(self, delete_type: DeleteType, target: Union[RepoEntity, Gist]) -> bool:
        """Remember what is being deleted; refreshes may reorder rows before the answer arrives."""
        self.input_mode = InputMode.CONFIRM_DELETE
        self.delete_type = delete_type
        self.delete_target = target
        self.delete_input = ""
        return True

    def confirm_type(self, char: str) -> None:
        if self.input_mode is InputMode.CONFIRM_DELETE:
            self.delete_input += char

    def confirm_backspace(self) -> None:
        if self.input_mode is InputMode.CONFIRM_DELETE:
            self.delete_input = self.delete_input[:-1]

    def cancel_delete(self) -> None:
        self.input_mode = InputMode.NORMAL
        self.delete_type = None
        self.delete_target = None
        self.delete_input = ""

    def confirm_delete(self) -> bool:
        """
        Run the pending delete when the typed answer is "y" or "yes".

        The target is the row that was selected when the delete was requested,
        not whatever row the selection points at now.
        """
        if self.input_mode is not InputMode.CONFIRM_DELETE:
            return False
        delete_type = self.delete_type
        target = self.delete_target
        answer = self.delete_input.strip().lower()
        self.cancel_delete()
        if answer not in CONFIRM_ANSWERS:
            self.set_completed("Delete cancelled")
            return False

        if delete_type is DeleteType.GIST:
            gist = target
            if gist is None or all(g.id != gist.id for g in self.gists):
                self.set_error("Gist to delete no longer exists")
                return False
            return self._spawn(f"delete gist {gist.short_id}", f"Deleting gist {gist.short_id}...",
                               lambda: self.operations.delete_gist(gist.id), True)

        repo = target
        if repo is None or all(r.id != repo.id for r in self.repos):
            self.set_error("Repository to delete no longer exists")
            return False
        if delete_type is DeleteType.LOCAL:
            return self._spawn(f"delete local {repo.name}", f"Deleting {repo.local_path}...",
                               lambda: self.operations.delete_local(repo.name, repo.local_path), False)
        return self._spawn(f"delete remote {repo.name_with_owner}", f"Deleting {repo.name_with_owner}...",
                           lambda: self.operations.delete_remote(repo.name_with_owner), True)

    # --- upload form ---

    def open_upload(self) -> bool:
        if not self._can_act() or self.view_mode is not ViewMode.REPOS:
            return False
        repo = self.selected_repo()
        if repo is None or not repo.is_local_only or not repo.has_git:
            self.set_error("Only local git repositories without a GitHub remote can be uploaded")
            return False
        form = UploadForm(path=repo.local_path, name=repo.name, orgs=list(self.orgs))
        self.popup = UploadPopup(form=form)
        self.input_mode = InputMode.UPLOAD_FORM
        self.executor.spawn_message("fetch orgs", self.operations.fetch_orgs)
        return True

    def _upload_form(self) -> Optional[UploadForm]:
        if self.input_mode is not InputMode.UPLOAD_FORM or not isinstance(self.popup, UploadPopup):
            return None
        return self.popup.form

    def upload_type(self, char: str) -> None:
        form = self._upload_form()
        if form is not None:
            form.type_char(char)

    def upload_backspace(self) -> None:
        form = self._upload_form()
        if form is not None:
            form.backspace()

    def upload_next_field(self) -> None:
        form = self._upload_form()
        if form is not None:
            form.next_field()

    def upload_prev_field(self) -> None:
        form = self._upload_form()
        if form is not None:
            form.prev_field()

    def upload_toggle(self) -> None:
        form = self._upload_form()
        if form is not None:
            form.toggle()

    def cancel_upload(self) -> None:
        if self._upload_form() is not None:
            self.close_popup()

    def submit_upload(self) -> bool:
        form = self._upload_form()
        if form is None:
            return False
        request = form.to_request()
        if not request.name:
            self.set_error("Repository name is required")
            return False
        self.close_popup()
        return self._spawn(f"create repo {request.name}", f"Creating {request.name}...",
                           lambda: self.operations.create_repo(request), True)
