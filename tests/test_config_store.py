import json

from ghall.infrastructure.config_store import Column, Config, default_config_path


def test_missing_file_gives_defaults(tmp_path):
    config = Config.load(tmp_path / "config.json")

    assert config.columns == Column.default_order()
    assert config.sort_column == "updated"
    assert config.sort_ascending is False
    assert config.show_archived and config.show_private
    assert config.ignored_repos == set()


def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "nested" / "config.json"
    config = Config(path=path)
    config.ignored_repos.add("https://github.com/alice/foo")
    config.columns = [Column.STATUS, Column.REPOSITORY]
    config.sort_column = "status"
    config.show_private = False
    config.save()

    loaded = Config.load(path)

    assert loaded == config
    assert not path.with_suffix(".tmp").exists()


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    config = Config.load(path)

    assert config.columns == Column.default_order()
    assert config.path == path


def test_unknown_and_duplicate_columns_are_dropped(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"columns": ["Status", "bogus", "status", "path"]}))

    assert Config.load(path).columns == [Column.STATUS, Column.PATH]


def test_legacy_ignored_list_is_migrated(tmp_path):
    (tmp_path / "ignored.txt").write_text("https://github.com/alice/foo\n\n/code/scratch\n")

    config = Config.load(tmp_path / "config.json")

    assert config.ignored_repos == {"https://github.com/alice/foo", "/code/scratch"}
    assert not (tmp_path / "ignored.txt").exists()
    assert json.loads((tmp_path / "config.json").read_text())["ignored_repos"] == [
        "/code/scratch",
        "https://github.com/alice/foo",
    ]


def test_move_columns_within_bounds(tmp_path):
    config = Config(path=tmp_path / "config.json")
    first = config.columns[0]

    config.move_column_left(first)
    assert config.columns[0] is first

    config.move_column_right(first)
    assert config.columns[1] is first


def test_default_path_honours_xdg(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert default_config_path() == tmp_path / "ghall" / "config.json"


def test_column_labels():
    assert Column.GHQ.label == "ghq?"
    assert Column("repository") is Column.REPOSITORY
