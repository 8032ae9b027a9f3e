import os
import random

import pytest

from ghall.application.sort_engine import (
    CLONE,
    FORK,
    LOCAL_ONLY,
    SOURCE,
    SUBREPO,
    SortKey,
    sort_repos,
    status_rank,
    type_rank,
)
from ghall.domain.repository import GitStatus, RepoEntity
from ghall.infrastructure.config_store import Column


def entity(id, name=None, **kwargs):
    kwargs.setdefault("local_path", id if id.startswith("/") else None)
    kwargs.setdefault("github_url", None if id.startswith("/") else id)
    return RepoEntity(id=id, name=name or id.rsplit("/", 1)[-1], **kwargs)


@pytest.fixture
def repos():
    return [
        entity("https://github.com/alice/foo", owner="alice", last_commit_time=300,
               git_status=GitStatus(dirty=True, has_remote=True), is_private=True),
        entity("https://github.com/bob/bar", owner="bob", last_commit_time=None),
        entity("/code/scratch", last_commit_time=100, git_status=GitStatus()),
        entity("https://github.com/alice/fork", owner="alice", is_fork=True, fork_parent="up/fork",
               last_commit_time=200, is_archived=True,
               git_status=GitStatus(ahead=2, behind=1, has_remote=True), local_path="/code/fork"),
        entity("/code/parent/sub", is_subrepo=True, parent_repo="/code/parent", last_commit_time=50,
               git_status=GitStatus(has_remote=True)),
    ]


def test_dirty_sorts_before_synced_when_ascending_by_status():
    dirty = entity("/code/a", git_status=GitStatus(dirty=True, has_remote=True))
    synced = entity("/code/b", git_status=GitStatus(has_remote=True))

    assert sort_repos([synced, dirty], SortKey.STATUS, ascending=True) == [dirty, synced]


@pytest.mark.parametrize("key", list(SortKey))
@pytest.mark.parametrize("ascending", [True, False])
def test_sort_is_total_and_repeatable(repos, key, ascending):
    expected = sort_repos(repos, key, ascending, username="alice", root="/code")
    shuffled = list(repos)
    random.Random(7).shuffle(shuffled)

    assert sort_repos(shuffled, key, ascending, username="alice", root="/code") == expected


@pytest.mark.parametrize("key", [SortKey.NAME, SortKey.ORIGIN, SortKey.TYPE, SortKey.STATUS, SortKey.PATH])
def test_descending_reverses_ascending_without_ties(key):
    repos = [
        entity("/code/a", owner="zed", git_status=GitStatus(dirty=True, has_remote=True)),
        entity("https://github.com/bob/b", owner="bob"),
        entity("/code/c", owner="amy", git_status=GitStatus(ahead=1, has_remote=True), is_subrepo=True,
               parent_repo="/code"),
    ]

    ascending = sort_repos(repos, key, True, username="bob")
    descending = sort_repos(repos, key, False, username="bob")

    assert descending == list(reversed(ascending))


def test_missing_timestamp_is_last_in_both_directions(repos):
    newest_first = sort_repos(repos, SortKey.LAST_UPDATED, ascending=False)
    oldest_first = sort_repos(repos, SortKey.LAST_UPDATED, ascending=True)

    assert [r.last_commit_time for r in newest_first] == [300, 200, 100, 50, None]
    assert [r.last_commit_time for r in oldest_first] == [50, 100, 200, 300, None]


def test_booleans_rank_true_first(repos):
    by_private = sort_repos(repos, SortKey.PRIVATE, ascending=True)
    by_archived = sort_repos(repos, SortKey.ARCHIVED, ascending=True)
    by_dirty = sort_repos(repos, SortKey.DIRTY, ascending=True)

    assert by_private[0].is_private
    assert by_archived[0].is_archived
    assert by_dirty[0].is_dirty


def test_ties_break_on_identity_ascending():
    a = entity("/code/b/same")
    b = entity("/code/a/same")

    assert sort_repos([a, b], SortKey.NAME, ascending=True) == [b, a]
    assert sort_repos([a, b], SortKey.NAME, ascending=False) == [b, a]


def test_ghq_not_applicable_always_last(tmp_path):
    root = os.path.realpath(tmp_path)
    compliant = entity("https://github.com/alice/ok", owner="alice",
                       local_path=f"{root}/github.com/alice/ok")
    misplaced = entity("https://github.com/alice/off", owner="alice", local_path=f"{root}/off")
    remote_only = entity("https://github.com/alice/remote", owner="alice")

    ascending = sort_repos([remote_only, compliant, misplaced], SortKey.GHQ, True, root=root)
    descending = sort_repos([remote_only, compliant, misplaced], SortKey.GHQ, False, root=root)

    assert ascending == [misplaced, compliant, remote_only]
    assert descending == [compliant, misplaced, remote_only]


def test_input_is_not_mutated(repos):
    before = list(repos)
    sort_repos(repos, SortKey.NAME, ascending=True)
    assert repos == before


def test_type_rank():
    assert type_rank(entity("https://github.com/alice/a", owner="Alice"), "alice") == SOURCE
    assert type_rank(entity("https://github.com/bob/a", owner="bob"), "alice") == CLONE
    assert type_rank(entity("https://github.com/alice/f", owner="alice", is_fork=True, fork_parent="x/f"),
                     "alice") == FORK
    assert type_rank(entity("/code/a"), "alice") == LOCAL_ONLY
    assert type_rank(entity("https://github.com/alice/s", owner="alice", is_fork=True, fork_parent="x/s",
                            is_subrepo=True, parent_repo="/code", local_path="/code/s"), "alice") == SUBREPO


def test_status_rank_order():
    statuses = [
        GitStatus(dirty=True, has_remote=True),
        GitStatus(ahead=1, behind=1, has_remote=True),
        GitStatus(ahead=1, has_remote=True),
        GitStatus(behind=1, has_remote=True),
        GitStatus(has_remote=True),
        GitStatus(has_remote=False),
        None,
    ]
    ranks = [status_rank(entity(f"/code/{i}", git_status=s)) for i, s in enumerate(statuses)]
    assert ranks == sorted(ranks) and len(set(ranks)) == len(ranks)


def test_sort_key_parsing_and_cycling():
    assert SortKey.from_string("Name") is SortKey.NAME
    assert SortKey.from_string("bogus") is SortKey.LAST_UPDATED
    assert SortKey.from_string(SortKey.GHQ.as_str()) is SortKey.GHQ

    columns = [Column.REPOSITORY, Column.STATUS, Column.UPDATED]
    assert SortKey.NAME.next(columns) is SortKey.STATUS
    assert SortKey.LAST_UPDATED.next(columns) is SortKey.NAME
    assert SortKey.NAME.prev(columns) is SortKey.LAST_UPDATED
    assert SortKey.GHQ.next(columns) is SortKey.NAME
