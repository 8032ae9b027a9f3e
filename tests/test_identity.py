import pytest

from ghall.domain.identity import (
    clone_path_for_url,
    normalize_remote_url,
    parse_owner_from_url,
    url_path,
)


@pytest.mark.parametrize("url", [
    "https://github.com/alice/foo",
    "https://github.com/alice/foo.git",
    "https://github.com/Alice/Foo/",
    "git@github.com:alice/foo.git",
    "git@github.com:ALICE/foo",
    "ssh://git@github.com/alice/foo.git",
    "  https://github.com/alice/foo.git  ",
])
def test_variants_of_one_repo_normalize_identically(url):
    assert normalize_remote_url(url) == "https://github.com/alice/foo"


@pytest.mark.parametrize("url", [
    "git@github.com:alice/foo.git",
    "https://github.com/alice/foo.git.git",
    "HTTPS://GITHUB.COM/alice/foo.GIT/",
    "https://gitlab.example.com/group/project",
])
def test_normalization_is_idempotent(url):
    once = normalize_remote_url(url)
    assert normalize_remote_url(once) == once


def test_different_repos_stay_different():
    assert normalize_remote_url("https://github.com/alice/foo") != normalize_remote_url(
        "https://github.com/alice/foobar"
    )


def test_url_path_and_clone_path():
    assert url_path("git@github.com:alice/foo.git") == "github.com/alice/foo"
    assert clone_path_for_url("/code/", "https://github.com/alice/foo.git") == "/code/github.com/alice/foo"


@pytest.mark.parametrize("url,owner", [
    ("git@github.com:alice/foo.git", "alice"),
    ("https://github.com/bob/bar", "bob"),
    ("http://example.com/carol/baz.git", "carol"),
    ("/some/local/path", None),
    ("git@github.com", None),
])
def test_parse_owner_from_url(url, owner):
    assert parse_owner_from_url(url) == owner
