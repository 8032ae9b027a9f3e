import pytest

from ghall.infrastructure.config_store import Config


@pytest.fixture
def config(tmp_path):
    return Config(path=tmp_path / "config.json")
