"""Tests for configuration loading and saving."""

import json

import pytest
import yaml
from pydantic import ValidationError

from config.settings import AppConfig, DebateConfig, SystemConfig, get_template_config


def test_defaults():
    config = DebateConfig()
    assert config.max_turns == 40
    assert config.roster_size == 4
    assert config.max_skipped_turns == 3
    assert config.history_window == 10


def test_roster_size_must_allow_a_debate():
    with pytest.raises(ValidationError):
        DebateConfig(roster_size=1)


def test_load_from_json(tmp_path):
    path = tmp_path / "debate_config.json"
    path.write_text(
        json.dumps(
            {
                "debate": {"max_turns": 12},
                "system": {"database_path": "x.db"},
                "scheduler": {
                    "pools": {"Pets": {"models": ["a", "b", "c", "d"], "topics": ["Cats?"]}}
                },
            }
        )
    )

    config = AppConfig.load_from_file(path)

    assert config.debate.max_turns == 12
    assert config.system.database_path == "x.db"
    assert config.scheduler.pools["Pets"].split_halves is False


def test_missing_section(tmp_path):
    path = tmp_path / "debate_config.json"
    path.write_text(json.dumps({"debate": {}}))

    with pytest.raises(ValueError, match="system"):
        AppConfig.load_from_file(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load_from_file(tmp_path / "nope.json")


def test_save_to_yaml(tmp_path):
    config = AppConfig(debate=DebateConfig(max_turns=8), system=SystemConfig())
    path = tmp_path / "out" / "config.yaml"

    config.save_to_file(path)

    saved = yaml.safe_load(path.read_text())
    assert saved["debate"]["max_turns"] == 8


def test_server_token_from_environment(monkeypatch):
    monkeypatch.setenv("SERVER_TOKEN", "from-env")
    assert SystemConfig().resolve_server_token() == "from-env"
    assert SystemConfig(server_token="explicit").resolve_server_token() == "explicit"


def test_template_pools_can_fill_a_roster():
    config = get_template_config()
    for pool in config.scheduler.pools.values():
        assert len(pool.models) >= config.debate.roster_size
        assert pool.topics
