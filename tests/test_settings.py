from __future__ import annotations

import json
from pathlib import Path

import pytest

from codethread.config import ENV_CONFIG_PATH, EngineSettings, load_settings
from codethread.errors import ValidationError


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv(ENV_CONFIG_PATH, raising=False)
    settings = load_settings()

    assert settings == EngineSettings()
    assert settings.turn_limit == 10
    assert settings.code_block_limit == 5
    assert settings.similarity_threshold == 0.7
    assert settings.chars_per_token == 4


def test_yaml_file_with_section_and_overrides(tmp_path: Path) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text("codethread:\n  turn_limit: 4\n  max_prompt_tokens: 2000\n", encoding="utf-8")

    settings = load_settings(path, overrides={"turn_limit": 6})

    assert settings.turn_limit == 6
    assert settings.max_prompt_tokens == 2000


def test_env_var_points_at_json(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"code_block_limit": 2, "persist_turns": False}), encoding="utf-8")
    monkeypatch.setenv(ENV_CONFIG_PATH, str(path))

    settings = load_settings()

    assert settings.code_block_limit == 2
    assert settings.persist_turns is False


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "absent.yaml")


def test_bad_suffix_and_shape(tmp_path: Path) -> None:
    toml = tmp_path / "engine.toml"
    toml.write_text("turn_limit = 3", encoding="utf-8")
    listing = tmp_path / "engine.yaml"
    listing.write_text("- 1\n- 2\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        load_settings(toml)
    with pytest.raises(ValidationError):
        load_settings(listing)


@pytest.mark.parametrize(
    "overrides",
    [{"turn_limit": -1}, {"chars_per_token": 0}, {"similarity_threshold": 1.5}],
)
def test_invalid_values(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        load_settings(overrides=overrides)
