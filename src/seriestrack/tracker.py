"""High level operations on tracked series.

:class:`Tracker` ties the pieces together: series configs and states live in
the :class:`TrackerStore`, episode files come from the scanner, and every
state change goes through the :class:`SyncCoordinator` so it reaches the
remote, or the offline queue, exactly like any other change.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
import time
from pathlib import Path
from typing import Optional

from .commands import SeriesParameters
from .config import Settings
from .logging_utils import render_fields_block
from .models import SeriesConfig, SeriesState, SeriesTrackError, SyncMutation, WatchStatus
from .naming import closest_matching_dir
from .pattern import compile_pattern
from .persistence import TrackerStore
from .playback import ProgressThreshold, build_player_command, play_file
from .remote import HttpTransport, OfflineTransport
from .scanner import EpisodeMap, detect_episodes
from .status import complete, regress, set_status
from .sync import RemoteTransport, SyncCoordinator, SyncOutcome, SyncResult
from .utils import ensure_directory

LOGGER = logging.getLogger(__name__)


class SeriesNotFoundError(SeriesTrackError):
    def __init__(self, nickname: Optional[str], detail: Optional[str] = None) -> None:
        if nickname is None:
            message = "No series given and no series watched yet"
        else:
            message = f"Series {nickname!r} is not tracked"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.nickname = nickname


class Tracker:
    def __init__(
        self,
        settings: Settings,
        store: TrackerStore,
        coordinator: SyncCoordinator,
        transport: Optional[RemoteTransport] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.coordinator = coordinator
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, *, offline: bool = False) -> "Tracker":
        ensure_directory(settings.state_dir)
        store = TrackerStore(settings.database_path)
        remote = settings.remote

        transport: RemoteTransport
        if remote.enabled and not offline:
            transport = HttpTransport(remote.url, token=remote.token, timeout=remote.timeout)
        else:
            transport = OfflineTransport()

        coordinator = SyncCoordinator(transport, store, push_timeout=remote.push_timeout)
        if isinstance(transport, HttpTransport):
            transport.add_connectivity_listener(coordinator.on_connectivity_restored)
        return cls(settings, store, coordinator, transport)

    def close(self) -> None:
        self.coordinator.close()
        close = getattr(self._transport, "close", None)
        if close is not None:
            close()
        self.store.close()

    # Series configs

    def get(self, nickname: Optional[str] = None) -> SeriesConfig:
        """Config for ``nickname``, or for the last watched series when omitted."""
        if nickname is None:
            nickname = self.store.get_last_watched()
            if nickname is None:
                raise SeriesNotFoundError(None)
        config = self.store.get_config(nickname)
        if config is None:
            raise SeriesNotFoundError(nickname)
        return config

    def list_series(self) -> list[tuple[SeriesConfig, SeriesState]]:
        return [(config, self.state(config)) for config in self.store.list_configs()]

    def add_series(
        self,
        nickname: str,
        series_id: int,
        *,
        path: Optional[Path] = None,
        pattern: Optional[str] = None,
        episodes: Optional[int] = None,
    ) -> SeriesConfig:
        """Start tracking a series; without ``path`` the closest directory is used."""
        if pattern is not None:
            compile_pattern(pattern)
        if path is None:
            path = closest_matching_dir(self.settings.series_dir, nickname)

        config = SeriesConfig.create(
            nickname,
            series_id,
            path,
            self.settings.series_dir,
            pattern=pattern,
            episodes=episodes,
        )
        self.store.save_config(config)
        if self.store.load_state(series_id) is None:
            self.store.save_state(SeriesState(series_id=series_id))

        LOGGER.info(
            render_fields_block(
                "Tracking Series",
                {
                    "Nickname": nickname,
                    "Series ID": series_id,
                    "Path": config.full_path(self.settings.series_dir),
                    "Pattern": pattern or "(automatic)",
                    "Episodes": episodes if episodes is not None else "unknown",
                },
            )
        )
        return config

    def update_series(self, nickname: str, params: SeriesParameters) -> SeriesConfig:
        current = self.get(nickname)
        if params.pattern is not None:
            compile_pattern(params.pattern)

        updated = current.with_parameters(params, self.settings.series_dir)
        self.store.save_config(updated)
        if self.store.load_state(updated.series_id) is None:
            self.store.save_state(SeriesState(series_id=updated.series_id))
        LOGGER.debug("Updated series %r: %s", nickname, updated)
        return updated

    def set_episode_count(self, nickname: str, episodes: Optional[int]) -> SeriesConfig:
        if episodes is not None and episodes <= 0:
            raise ValueError("Episode count must be positive")
        config = self.get(nickname)
        config.episodes = episodes
        self.store.save_config(config)
        return config

    def remove_series(self, nickname: str) -> None:
        if not self.store.delete_config(nickname):
            raise SeriesNotFoundError(nickname)

    # Episodes

    def episodes(
        self,
        nickname: Optional[str] = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> EpisodeMap:
        config = self.get(nickname)
        return detect_episodes(config.full_path(self.settings.series_dir), config.pattern, cancel=cancel)

    def episode_path(self, nickname: Optional[str] = None, episode: Optional[int] = None) -> Path:
        """File of ``episode``, or of the next unwatched episode when omitted."""
        config = self.get(nickname)
        episodes = self.episodes(config.nickname)
        if episode is None:
            episode = episodes.next_after(self.state(config).progress)
            if episode is None:
                raise SeriesNotFoundError(config.nickname, "no unwatched episode found")
        try:
            return episodes[episode]
        except KeyError:
            raise SeriesNotFoundError(config.nickname, f"episode {episode} not found") from None

    # Watch state

    def state(self, config: SeriesConfig) -> SeriesState:
        return self.store.load_state(config.series_id) or SeriesState(series_id=config.series_id)

    def episode_completed(self, nickname: Optional[str] = None) -> SyncResult:
        config = self.get(nickname)
        result = self.coordinator.record_episode_completed(
            config.series_id,
            config.episodes,
            self.settings.status_settings,
        )
        self.store.set_last_watched(config.nickname)
        _log_result(config, result)
        return result

    def change_status(
        self,
        nickname: Optional[str],
        status: WatchStatus,
        *,
        today: Optional[dt.date] = None,
    ) -> SyncResult:
        config = self.get(nickname)
        settings = self.settings.status_settings
        result = self.coordinator.update(
            config.series_id, lambda current: set_status(current, status, settings, today=today)
        )
        _log_result(config, result)
        return result

    def episode_regressed(self, nickname: Optional[str] = None, *, today: Optional[dt.date] = None) -> SyncResult:
        """Take back the last watched episode."""
        config = self.get(nickname)
        settings = self.settings.status_settings
        result = self.coordinator.update(config.series_id, lambda current: regress(current, settings, today=today))
        _log_result(config, result)
        return result

    def series_completed(self, nickname: Optional[str] = None, *, today: Optional[dt.date] = None) -> SyncResult:
        config = self.get(nickname)
        settings = self.settings.status_settings
        result = self.coordinator.update(config.series_id, lambda current: complete(current, settings, today=today))
        _log_result(config, result)
        return result

    def set_progress(self, nickname: Optional[str], progress: int) -> SyncResult:
        if progress < 0:
            raise ValueError("Progress must be >= 0")
        config = self.get(nickname)
        result = self.coordinator.update(config.series_id, lambda current: current.evolve(progress=progress))
        _log_result(config, result)
        return result

    def play(self, nickname: Optional[str] = None, *, count: int = 1) -> list[SyncResult]:
        """Play up to ``count`` next episodes, counting each cleanly finished one."""
        config = self.get(nickname)
        threshold = ProgressThreshold(self.settings.percent_watched_to_progress)
        player_args = [*self.settings.player_args, *config.player_args]
        results: list[SyncResult] = []

        for index in range(count):
            if index:
                time.sleep(self.settings.seconds_before_next)
            path = self.episode_path(config.nickname)
            self.store.set_last_watched(config.nickname)
            finished = play_file(build_player_command(self.settings.player, player_args, path))
            if not (finished and threshold.enabled):
                break
            results.append(self.episode_completed(config.nickname))
        return results

    # Sync

    def pending(self) -> list[SyncMutation]:
        return self.store.pending()

    def sync_pending(self) -> list[tuple[int, SyncOutcome]]:
        return self.coordinator.flush()


def _log_result(config: SeriesConfig, result: SyncResult) -> None:
    LOGGER.info(
        render_fields_block(
            "Updated Watch State",
            {
                "Series": config.nickname,
                "Progress": result.state.progress,
                "Status": result.state.status.label,
                "Sync": result.outcome.value,
            },
        )
    )


__all__ = ["SeriesNotFoundError", "Tracker"]
