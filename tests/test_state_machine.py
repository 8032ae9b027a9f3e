import json

import pytest

from ghall.application.operations import RepoOperations
from ghall.application.popups import ErrorsPopup, IgnoredPopup, UploadField, UploadPopup
from ghall.application.sort_engine import SortKey
from ghall.application.state_machine import (
    DeleteType,
    InputMode,
    StateMachine,
    StatusKind,
    ViewMode,
)
from ghall.domain.gist import Gist
from ghall.domain.messages import OrgsLoaded, RefreshSnapshot, RemoteDataCache, TaskResult
from ghall.domain.repository import GitStatus, RepoEntity
from ghall.infrastructure.git_client import CommandOutcome

from fakes import FakeGitClient, FakeGitHubClient, remote


class FakeCoordinator:
    def __init__(self):
        self.started = []
        self.pending = None

    def start_full(self):
        self.started.append("full")

    def start_local(self, cache):
        self.started.append(("local", cache))

    def poll(self):
        snapshot, self.pending = self.pending, None
        return snapshot


class InlineExecutor:
    """Runs work immediately and queues the results like TaskExecutor does."""

    def __init__(self):
        self.messages = []
        self.spawned = []

    def spawn(self, operation, work, invalidates_github_cache=False):
        self.spawned.append(operation)
        self.messages.append(work())

    def spawn_message(self, name, produce):
        self.messages.append(produce())

    def drain(self):
        messages, self.messages = self.messages, []
        return messages


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def repo(id, name=None, **kwargs):
    kwargs.setdefault("local_path", id if id.startswith("/") else None)
    kwargs.setdefault("github_url", None if id.startswith("/") else id)
    return RepoEntity(id=id, name=name or id.rsplit("/", 1)[-1], **kwargs)


SYNCED = GitStatus(branch="main", has_remote=True)

REPOS = (
    repo("https://github.com/alice/foo", owner="alice", is_member=True, local_path="/code/github.com/alice/foo",
         git_status=SYNCED, last_commit_time=300),
    repo("https://github.com/alice/old", owner="alice", is_member=True, is_archived=True, last_commit_time=200),
    repo("https://github.com/alice/secret", owner="alice", is_member=True, is_private=True, last_commit_time=100),
    repo("/code/local/notes", has_git=False, last_commit_time=50),
    repo("/code/scratch", git_status=GitStatus(), last_commit_time=10),
)


@pytest.fixture
def github():
    return FakeGitHubClient()


@pytest.fixture
def git():
    return FakeGitClient()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def machine(config, github, git, clock):
    state = StateMachine(
        config=config,
        coordinator=FakeCoordinator(),
        executor=InlineExecutor(),
        operations=RepoOperations(github, git),
        root="/code",
        clock=clock,
    )
    state.apply_snapshot(RefreshSnapshot(
        repos=REPOS,
        gists=(Gist(id="abcdef123456", description="notes", is_public=True, local_path="/code/gists/abcdef123456"),),
        username="alice",
        cache=RemoteDataCache(repos=(remote("alice", "foo"),), gists=()),
        generation=1,
    ))
    return state


def select(machine, name):
    names = [r.name for r in machine.visible_repos()]
    machine.selected = names.index(name)


def test_snapshot_is_applied_sorted_by_configured_key(machine):
    assert machine.sort_key is SortKey.LAST_UPDATED
    assert [r.name for r in machine.repos] == ["foo", "old", "secret", "notes", "scratch"]
    assert machine.username == "alice"


def test_selection_clamped_when_filter_shrinks_list(machine, config):
    machine.selected = 4
    machine.toggle_show_archived()
    machine.toggle_show_private()

    assert [r.name for r in machine.visible_repos()] == ["foo", "notes", "scratch"]
    assert machine.selected == 2
    saved = json.loads(config.path.read_text())
    assert saved["show_archived"] is False and saved["show_private"] is False


def test_refresh_shrinking_list_clamps_selection(machine):
    machine.selected = 4
    machine.coordinator.pending = RefreshSnapshot(repos=REPOS[:2], generation=2)

    machine.tick()

    assert machine.selected == 1
    assert machine.username == "alice"


def test_older_snapshot_is_skipped(machine):
    machine.coordinator.pending = RefreshSnapshot(repos=(), generation=0)

    assert machine.poll_refresh() is False
    assert len(machine.repos) == 5


def test_auth_error_snapshot_applies_local_data_and_shows_error(machine):
    machine.coordinator.pending = RefreshSnapshot(repos=REPOS[3:], error="token missing", generation=2)

    machine.tick()

    assert [r.name for r in machine.repos] == ["notes", "scratch"]
    assert machine.status.kind is StatusKind.ERROR
    assert "token missing" in machine.status.text
    assert machine.cache is not None


def test_failed_task_is_logged_and_requests_local_refresh(machine, git):
    git.outcome = CommandOutcome(success=False, stderr="fatal: not possible to fast-forward")
    select(machine, "foo")

    assert machine.pull() is True
    machine.tick()

    assert machine.status.kind is StatusKind.ERROR
    assert machine.status.text == "Pull failed (E: view errors)"
    assert machine.error_log.entries[0].message == "fatal: not possible to fast-forward"
    assert machine.coordinator.started == [("local", machine.cache)]


def test_full_refresh_wins_when_both_kinds_complete(machine):
    machine.executor.messages = [
        TaskResult(success=True, message="Pulled foo", operation="pull foo"),
        TaskResult(success=True, message="Archived alice/old", operation="archiving alice/old",
                   invalidates_github_cache=True),
    ]

    machine.tick()

    assert machine.coordinator.started == ["full"]
    assert machine.status.text == "Archived alice/old"


def test_local_refresh_without_cache_runs_full(machine):
    machine.cache = None
    machine.start_local_refresh()
    assert machine.coordinator.started == ["full"]


def test_completed_status_clears_after_dwell(machine, clock):
    machine.set_completed("Pulled foo")
    clock.now += 1.9
    machine.tick()
    assert machine.status is not None

    clock.now += 0.2
    machine.tick()
    assert machine.status is None


def test_loading_status_animates_until_replaced(machine, clock):
    machine.set_loading("Refreshing...")
    frames = set()
    for _ in range(3):
        clock.now += 5
        machine.tick()
        frames.add(machine.spinner)

    assert machine.status.kind is StatusKind.LOADING
    assert len(frames) == 3


def test_error_status_persists_until_dismissed(machine, clock):
    machine.set_error("Push failed")
    clock.now += 60
    machine.tick()
    assert machine.status.kind is StatusKind.ERROR

    machine.dismiss_status()
    assert machine.status is None


def test_ignore_hides_repo_and_unhide_restores_it(machine, config):
    select(machine, "scratch")
    machine.toggle_ignore()

    assert "scratch" not in [r.name for r in machine.visible_repos()]
    assert machine.selected == 3
    assert json.loads(config.path.read_text())["ignored_repos"] == ["/code/scratch"]

    machine.show_ignored()
    assert isinstance(machine.popup, IgnoredPopup)
    machine.unhide_selected_ignored()

    assert config.ignored_repos == set()
    assert "scratch" in [r.name for r in machine.visible_repos()]


def test_delete_requires_yes(machine):
    select(machine, "scratch")
    machine.request_delete_local()
    assert machine.input_mode is InputMode.CONFIRM_DELETE
    assert machine.delete_type is DeleteType.LOCAL

    assert machine.pull() is False
    for char in "nope":
        machine.confirm_type(char)
    assert machine.confirm_delete() is False
    assert machine.input_mode is InputMode.NORMAL
    assert machine.executor.spawned == []


def test_confirmed_remote_delete_spawns_and_requests_full_refresh(machine, github):
    select(machine, "secret")
    machine.request_delete_remote()
    for char in "YES":
        machine.confirm_type(char)

    assert machine.confirm_delete() is True
    machine.tick()

    assert ("delete_repository", "alice/secret") in github.calls
    assert machine.coordinator.started == ["full"]


def test_clone_guard_rejects_local_only(machine):
    select(machine, "scratch")
    assert machine.clone() is False
    assert machine.status.kind is StatusKind.ERROR
    assert machine.executor.spawned == []


def test_clone_remote_only_into_ghq_path(machine, git):
    select(machine, "old")
    assert machine.clone() is True
    assert git.calls == [("clone", "https://github.com/alice/old", "/code/github.com/alice/old")]


def test_init_only_for_folders_without_git(machine, git):
    select(machine, "foo")
    assert machine.init_repo() is False
    select(machine, "notes")
    assert machine.init_repo() is True
    assert git.calls == [("init", "/code/local/notes")]


def test_visibility_on_archived_repo_unarchives_and_rearchives(machine, github):
    select(machine, "old")
    assert machine.toggle_visibility() is True

    assert github.calls == [
        ("set_archived", "alice/old", False),
        ("set_visibility", "alice/old", True),
        ("set_archived", "alice/old", True),
    ]
    machine.tick()
    assert machine.status.text == "Set alice/old to private (re-archived)"


def test_upload_form_creates_repo_under_selected_org(machine, github, git):
    select(machine, "scratch")
    assert machine.open_upload() is True
    assert machine.input_mode is InputMode.UPLOAD_FORM
    machine.tick()
    assert machine.popup.form.orgs == ["acme"]

    machine.upload_backspace()
    machine.upload_type("2")
    machine.upload_next_field()
    for char in "my notes":
        machine.upload_type(char)
    machine.upload_next_field()
    machine.upload_toggle()
    machine.upload_next_field()
    assert machine.popup.form.focus is UploadField.ORG
    machine.upload_toggle()

    assert machine.submit_upload() is True
    assert machine.popup is None
    assert machine.input_mode is InputMode.NORMAL
    assert ("create_repository", "scratc2", "my notes", False, "acme") in github.calls
    assert git.calls == [("publish", "/code/scratch", "https://github.com/acme/scratc2.git")]


def test_upload_rejects_empty_name(machine):
    select(machine, "scratch")
    machine.open_upload()
    for _ in "scratch":
        machine.upload_backspace()

    assert machine.submit_upload() is False
    assert isinstance(machine.popup, UploadPopup)
    assert machine.status.text == "Repository name is required"


def test_orgs_arriving_after_form_closed_are_kept(machine):
    machine.executor.messages = [OrgsLoaded(orgs=("acme", "other"))]
    machine.tick()
    assert machine.orgs == ["acme", "other"]


def test_sort_cycle_and_direction_are_persisted(machine, config):
    machine.cycle_sort()
    machine.toggle_sort_direction()

    assert machine.sort_key is SortKey.from_column(config.columns[config.columns.index(
        SortKey.LAST_UPDATED.to_column()) + 1])
    saved = json.loads(config.path.read_text())
    assert saved["sort_column"] == machine.sort_key.as_str()
    assert saved["sort_ascending"] is True


def test_moving_column_keeps_it_selected(machine, config):
    machine.select_column(1)
    column = machine.current_column()
    machine.move_column(1)

    assert config.columns[2] is column
    assert machine.current_column() is column


def test_error_popup_only_with_errors(machine):
    machine.show_errors()
    assert machine.popup is None
    assert machine.status.text == "No errors logged"

    machine.apply_task_result(TaskResult(success=False, message="Push failed", operation="push foo", stderr="x"))
    machine.show_errors()
    assert isinstance(machine.popup, ErrorsPopup)


def test_actions_blocked_while_popup_open(machine):
    machine.show_help()
    select(machine, "foo")
    assert machine.pull() is False
    machine.close_popup()
    assert machine.pull() is True


def test_gist_view_pulls_gist_clone(machine, git):
    machine.switch_view()
    assert machine.view_mode is ViewMode.GISTS

    assert machine.pull() is True
    assert git.calls == [("pull", "/code/gists/abcdef123456")]
    machine.tick()
    assert machine.status.text == "Pulled gist abcdef12"


def test_details_popup_for_selected_repo(machine):
    select(machine, "foo")
    machine.show_details()

    assert machine.popup.title == "alice/foo"
    assert "ghq layout:  yes" in machine.popup.lines


def test_delete_confirmed_after_refresh_reorders_rows_hits_requested_repo(machine, github):
    select(machine, "secret")
    machine.request_delete_remote()
    newer = repo("https://github.com/alice/newer", owner="alice", is_member=True, last_commit_time=250)
    machine.coordinator.pending = RefreshSnapshot(repos=REPOS + (newer,), generation=2)
    machine.tick()
    assert machine.selected_repo().name == "old"

    for char in "yes":
        machine.confirm_type(char)

    assert machine.confirm_delete() is True
    deletes = [call for call in github.calls if call[0] == "delete_repository"]
    assert deletes == [("delete_repository", "alice/secret")]


def test_delete_of_repo_gone_after_refresh_is_refused(machine, github):
    select(machine, "secret")
    machine.request_delete_remote()
    machine.coordinator.pending = RefreshSnapshot(repos=REPOS[:2], generation=2)
    machine.tick()

    machine.confirm_type("y")

    assert machine.confirm_delete() is False
    assert machine.status.kind is StatusKind.ERROR
    assert all(call[0] != "delete_repository" for call in github.calls)


def test_gist_delete_uses_gist_selected_at_request(machine, github):
    machine.switch_view()
    machine.request_delete_remote()
    machine.coordinator.pending = RefreshSnapshot(
        repos=REPOS,
        gists=(Gist(id="000first", description="", is_public=True),
               Gist(id="abcdef123456", description="notes", is_public=True)),
        generation=2,
    )
    machine.tick()

    machine.confirm_type("y")

    assert machine.confirm_delete() is True
    assert ("delete_gist", "abcdef123456") in github.calls
    assert ("delete_gist", "000first") not in github.calls


def test_clone_uses_https_url_even_with_ssh_url_known(machine, git):
    with_ssh = repo("https://github.com/alice/tool", owner="alice", ssh_url="git@github.com:alice/tool.git",
                    last_commit_time=400)
    machine.apply_snapshot(RefreshSnapshot(repos=REPOS + (with_ssh,), generation=2))
    select(machine, "tool")

    assert machine.clone() is True
    assert git.calls == [("clone", "https://github.com/alice/tool", "/code/github.com/alice/tool")]


def test_snapshot_error_is_shown_as_delivered(machine):
    machine.coordinator.pending = RefreshSnapshot(repos=REPOS[3:], error="Refresh failed: boom", generation=2)

    machine.tick()

    assert machine.status.text == "Refresh failed: boom"
