from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from seriestrack.config import CONFIG_ENV_VAR, OFFLINE_ENV_VAR, default_config_path, load_config


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv(OFFLINE_ENV_VAR, raising=False)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.yaml")

    assert config.source is None
    settings = config.settings
    assert settings.player == "mpv"
    assert settings.percent_watched_to_progress == 0.5
    assert settings.reset_dates_on_rewatch is False
    assert settings.remote.enabled is False
    assert settings.database_path == settings.state_dir / "tracker.db"


def test_full_config(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("LIST_TOKEN", "abc123")
    path = _write(
        tmp_path / "config.yaml",
        f"""
        settings:
          series_dir: "{tmp_path}/series"
          state_dir: "{tmp_path}/state"
          player: vlc
          player_args: ["--fullscreen"]
          percent_watched_to_progress: 0.8
          seconds_before_next: 5
          reset_dates_on_rewatch: true
          remote:
            url: https://list.example.com/api
            token: ${{LIST_TOKEN}}
            timeout: 3
            push_timeout: 6
          watcher:
            debounce_seconds: 0.5
        """,
    )

    settings = load_config(path).settings

    assert settings.series_dir == tmp_path / "series"
    assert settings.state_dir == tmp_path / "state"
    assert settings.player == "vlc"
    assert settings.player_args == ["--fullscreen"]
    assert settings.percent_watched_to_progress == 0.8
    assert settings.seconds_before_next == 5.0
    assert settings.status_settings.reset_dates_on_rewatch is True
    assert settings.remote.url == "https://list.example.com/api"
    assert settings.remote.token == "abc123"
    assert settings.remote.push_timeout == 6.0
    assert settings.remote.enabled is True
    assert settings.watcher.debounce_seconds == 0.5


def test_offline_env_overrides_file(tmp_path: Path, monkeypatch) -> None:
    path = _write(
        tmp_path / "config.yaml",
        """
        settings:
          remote:
            url: https://list.example.com/api
        """,
    )
    monkeypatch.setenv(OFFLINE_ENV_VAR, "true")

    remote = load_config(path).settings.remote

    assert remote.offline is True
    assert remote.enabled is False


def test_config_path_from_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "custom.yaml"))
    assert default_config_path() == tmp_path / "custom.yaml"


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("percent_watched_to_progress: 1.5", "settings.percent_watched_to_progress"),
        ("percent_watched_to_progress: lots", "settings.percent_watched_to_progress"),
        ("seconds_before_next: -1", "settings.seconds_before_next"),
        ("player: ''", "settings.player"),
        ("player_args: 3", "settings.player_args"),
        ("reset_dates_on_rewatch: maybe", "settings.reset_dates_on_rewatch"),
        ("remote: {url: ftp://example.com}", "settings.remote.url"),
        ("remote: {timeout: 0}", "settings.remote"),
        ("watcher: {debounce_seconds: -2}", "settings.watcher.debounce_seconds"),
        ("watcher: []", "settings.watcher"),
    ],
)
def test_invalid_values_name_the_field(tmp_path: Path, body: str, message: str) -> None:
    path = _write(tmp_path / "config.yaml", f"settings:\n  {body}\n")
    with pytest.raises(ValueError, match=message.replace(".", r"\.")):
        load_config(path)


def test_top_level_must_be_mapping(tmp_path: Path) -> None:
    path = _write(tmp_path / "config.yaml", "- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        load_config(path)
