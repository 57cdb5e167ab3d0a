from __future__ import annotations

import json

import pytest

from scripts import sync_agent


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch) -> None:
    for name in ("CONFERENCE_CLOUD_URL", "CONFERENCE_CLOUD_API_KEY", "CONFERENCE_SYNC_INTERVAL", "CONFERENCE_DB"):
        monkeypatch.delenv(name, raising=False)


def _argv(tmp_path, *command: str) -> list[str]:
    return ["--settings", str(tmp_path / "settings.json"), "--db", str(tmp_path / "conference.db"), *command]


def test_parse_args_requires_command() -> None:
    with pytest.raises(SystemExit):
        sync_agent.parse_args([])


def test_parse_args_run_interval(tmp_path) -> None:
    args = sync_agent.parse_args(_argv(tmp_path, "run", "--interval", "90"))
    assert args.command == "run"
    assert args.interval == 90


def test_status_prints_json(tmp_path, capsys) -> None:
    assert sync_agent.main(_argv(tmp_path, "status")) == 0

    status = json.loads(capsys.readouterr().out)
    assert status["configured"] is False
    assert status["signed_in"] is False
    assert status["pending_changes"] == 0
    assert (tmp_path / "conference.db").exists()


def test_sync_without_configuration_fails(tmp_path) -> None:
    assert sync_agent.main(_argv(tmp_path, "sync")) == 1


def test_login_without_configuration_fails(tmp_path) -> None:
    assert sync_agent.main(_argv(tmp_path, "login", "--email", "ada@example.com", "--password", "x")) == 1


def test_run_without_configuration_exits(tmp_path) -> None:
    assert sync_agent.main(_argv(tmp_path, "run")) == 2


def test_invalid_settings_file(tmp_path) -> None:
    (tmp_path / "settings.json").write_text("{not json")
    assert sync_agent.main(_argv(tmp_path, "status")) == 2
