from __future__ import annotations

import json

import pytest

from conference_tracker.config import SettingsError, SettingsStore, validate_settings
from conference_tracker.const import (
    CONF_CLOUD_ACCESS_TOKEN,
    CONF_CLOUD_BASE_URL,
    CONF_CLOUD_SYNC_ENABLED,
    CONF_CLOUD_SYNC_INTERVAL,
    CONF_DATABASE_PATH,
    DEFAULT_CLOUD_SYNC_INTERVAL,
    DEFAULT_DATABASE_PATH,
    MIN_CLOUD_SYNC_INTERVAL,
)


def test_defaults_when_file_missing(tmp_path) -> None:
    options = SettingsStore(tmp_path / "missing.json", environ={}).options

    assert options[CONF_CLOUD_SYNC_ENABLED] is False
    assert options[CONF_CLOUD_BASE_URL] == ""
    assert options[CONF_CLOUD_SYNC_INTERVAL] == DEFAULT_CLOUD_SYNC_INTERVAL
    assert options[CONF_DATABASE_PATH] == DEFAULT_DATABASE_PATH


def test_validation_coerces_and_clamps() -> None:
    options = validate_settings(
        {
            CONF_CLOUD_SYNC_ENABLED: "yes",
            CONF_CLOUD_BASE_URL: "  https://cloud.example  ",
            CONF_CLOUD_SYNC_INTERVAL: "5",
            "unexpected": 1,
        }
    )

    assert options[CONF_CLOUD_SYNC_ENABLED] is True
    assert options[CONF_CLOUD_BASE_URL] == "https://cloud.example"
    assert options[CONF_CLOUD_SYNC_INTERVAL] == MIN_CLOUD_SYNC_INTERVAL
    assert "unexpected" not in options


def test_validation_rejects_bad_values() -> None:
    with pytest.raises(SettingsError):
        validate_settings({CONF_CLOUD_SYNC_INTERVAL: "often"})


def test_environment_overrides_file(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({CONF_CLOUD_BASE_URL: "https://file.example", CONF_CLOUD_SYNC_INTERVAL: 60}))

    options = SettingsStore(
        path, environ={"CONFERENCE_CLOUD_URL": "https://env.example", "CONFERENCE_SYNC_INTERVAL": "120"}
    ).options

    assert options[CONF_CLOUD_BASE_URL] == "https://env.example"
    assert options[CONF_CLOUD_SYNC_INTERVAL] == 120


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_invalid_file_raises(tmp_path, content: str) -> None:
    path = tmp_path / "settings.json"
    path.write_text(content)
    with pytest.raises(SettingsError):
        SettingsStore(path, environ={}).load()


def test_update_saves_and_removes_keys(tmp_path) -> None:
    path = tmp_path / "nested" / "settings.json"
    store = SettingsStore(path, environ={})

    store.update(**{CONF_CLOUD_ACCESS_TOKEN: "abc", CONF_CLOUD_SYNC_ENABLED: True})
    assert json.loads(path.read_text())[CONF_CLOUD_ACCESS_TOKEN] == "abc"
    assert SettingsStore(path, environ={}).options[CONF_CLOUD_SYNC_ENABLED] is True

    store.update(**{CONF_CLOUD_ACCESS_TOKEN: None})
    assert CONF_CLOUD_ACCESS_TOKEN not in json.loads(path.read_text())
    assert not path.with_suffix(".json.tmp").exists()
