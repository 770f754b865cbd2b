from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .status import StatusSettings
from .utils import env_bool, expand_path, load_yaml_file, parse_env_bool

CONFIG_ENV_VAR = "SERIESTRACK_CONFIG"
OFFLINE_ENV_VAR = "SERIESTRACK_OFFLINE"
DEFAULT_CONFIG_PATH = Path("~/.config/seriestrack/config.yaml")
DEFAULT_STATE_DIR = Path("~/.local/share/seriestrack")


@dataclass
class RemoteSettings:
    url: str | None = None
    token: str | None = None
    timeout: float = 10.0
    push_timeout: float = 15.0
    offline: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.url) and not self.offline


@dataclass
class WatcherSettings:
    debounce_seconds: float = 2.0


@dataclass
class Settings:
    series_dir: Path = field(default_factory=lambda: expand_path("~/Videos"))
    state_dir: Path = field(default_factory=lambda: expand_path(DEFAULT_STATE_DIR))
    player: str = "mpv"
    player_args: list[str] = field(default_factory=list)
    percent_watched_to_progress: float = 0.5
    seconds_before_next: float = 3.0
    reset_dates_on_rewatch: bool = False
    remote: RemoteSettings = field(default_factory=RemoteSettings)
    watcher: WatcherSettings = field(default_factory=WatcherSettings)

    @property
    def status_settings(self) -> StatusSettings:
        return StatusSettings(reset_dates_on_rewatch=self.reset_dates_on_rewatch)

    @property
    def database_path(self) -> Path:
        return self.state_dir / "tracker.db"


@dataclass
class AppConfig:
    settings: Settings = field(default_factory=Settings)
    source: Path | None = None


def _as_float(value: Any, *, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be a number") from exc


def _as_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    parsed = parse_env_bool(str(value)) if value is not None else None
    if parsed is None:
        raise ValueError(f"'{field_name}' must be true or false")
    return parsed


def _ensure_string_list(value: Any, *, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be provided as a list of strings")
    result: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise ValueError(f"'{field_name}[{index}]' must be a string")
        result.append(item)
    return result


def _ensure_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{field_name}' must be provided as a mapping when specified")
    return value


def _build_remote_settings(data: dict[str, Any]) -> RemoteSettings:
    defaults = RemoteSettings()

    url = data.get("url")
    if url is not None and not isinstance(url, str):
        raise ValueError("'settings.remote.url' must be a string")
    if url and not url.startswith(("http://", "https://")):
        raise ValueError(f"'settings.remote.url' must be a valid http/https URL, got: {url}")

    timeout = _as_float(data.get("timeout", defaults.timeout), field_name="settings.remote.timeout")
    push_timeout = _as_float(data.get("push_timeout", defaults.push_timeout), field_name="settings.remote.push_timeout")
    if timeout <= 0 or push_timeout <= 0:
        raise ValueError("'settings.remote' timeouts must be greater than 0")

    offline = _as_bool(data.get("offline", defaults.offline), field_name="settings.remote.offline")
    env_offline = env_bool(OFFLINE_ENV_VAR)
    if env_offline is not None:
        offline = env_offline

    token = data.get("token")
    return RemoteSettings(
        url=url or None,
        token=str(token) if token else None,
        timeout=timeout,
        push_timeout=push_timeout,
        offline=offline,
    )


def _build_watcher_settings(data: dict[str, Any]) -> WatcherSettings:
    debounce = _as_float(data.get("debounce_seconds", 2.0), field_name="settings.watcher.debounce_seconds")
    if debounce < 0:
        raise ValueError("'settings.watcher.debounce_seconds' must be greater than or equal to 0")
    return WatcherSettings(debounce_seconds=debounce)


def _build_settings(data: dict[str, Any]) -> Settings:
    defaults = Settings()

    percent = _as_float(
        data.get("percent_watched_to_progress", defaults.percent_watched_to_progress),
        field_name="settings.percent_watched_to_progress",
    )
    if not 0.0 <= percent <= 1.0:
        raise ValueError("'settings.percent_watched_to_progress' must be between 0 and 1 (0 disables it)")

    seconds_before_next = _as_float(
        data.get("seconds_before_next", defaults.seconds_before_next),
        field_name="settings.seconds_before_next",
    )
    if seconds_before_next < 0:
        raise ValueError("'settings.seconds_before_next' must be greater than or equal to 0")

    player = data.get("player", defaults.player)
    if not isinstance(player, str) or not player.strip():
        raise ValueError("'settings.player' must be a non-empty string")

    return Settings(
        series_dir=expand_path(data["series_dir"]) if data.get("series_dir") else defaults.series_dir,
        state_dir=expand_path(data["state_dir"]) if data.get("state_dir") else defaults.state_dir,
        player=player,
        player_args=_ensure_string_list(data.get("player_args"), field_name="settings.player_args"),
        percent_watched_to_progress=percent,
        seconds_before_next=seconds_before_next,
        reset_dates_on_rewatch=_as_bool(
            data.get("reset_dates_on_rewatch", defaults.reset_dates_on_rewatch),
            field_name="settings.reset_dates_on_rewatch",
        ),
        remote=_build_remote_settings(_ensure_mapping(data.get("remote"), field_name="settings.remote")),
        watcher=_build_watcher_settings(_ensure_mapping(data.get("watcher"), field_name="settings.watcher")),
    )


def default_config_path() -> Path:
    return expand_path(os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)


def load_config(path: Path | None = None) -> AppConfig:
    """Load the YAML configuration; a missing file yields the defaults."""
    path = path or default_config_path()
    if not path.exists():
        return AppConfig(settings=_build_settings({}), source=None)

    data = load_yaml_file(path)
    settings = _build_settings(_ensure_mapping(data.get("settings"), field_name="settings"))
    return AppConfig(settings=settings, source=path)


__all__ = [
    "AppConfig",
    "RemoteSettings",
    "Settings",
    "WatcherSettings",
    "default_config_path",
    "load_config",
]
