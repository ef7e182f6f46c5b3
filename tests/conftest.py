import asyncio

import pytest

from ctf_leaderboard.config import ScoreboardConfig
from ctf_leaderboard.scoreboard import ScoreboardSystem


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for env_var in ScoreboardConfig.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides):
        config = ScoreboardConfig(str(tmp_path / "ctf_config.json"))
        config.config["database"]["path"] = str(tmp_path / "leaderboard.db")
        config.config["admin"]["token"] = "s3cret"
        for dotted, value in overrides.items():
            section, key = dotted.split("__")
            config.config[section][key] = value
        return config

    return _make


@pytest.fixture
def make_system(make_config):
    def _make(seed=False, **overrides):
        system = ScoreboardSystem(config=make_config(**overrides))
        asyncio.run(system.init_db(seed=seed))
        return system

    return _make


@pytest.fixture
def system(make_system):
    return make_system()


@pytest.fixture
def seeded(make_system):
    return make_system(seed=True)


@pytest.fixture
def admin(system):
    return system.admin_operations("s3cret")
