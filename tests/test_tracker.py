from __future__ import annotations

import datetime as dt
import subprocess
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from seriestrack.commands import SeriesParameters
from seriestrack.config import RemoteSettings, Settings
from seriestrack.models import SeriesState, WatchStatus
from seriestrack.pattern import InvalidPattern
from seriestrack.persistence import TrackerStore
from seriestrack.remote import HttpTransport, OfflineTransport
from seriestrack.sync import SyncCoordinator, SyncOutcome, TransportError
from seriestrack.tracker import SeriesNotFoundError, Tracker


class FakeTransport:
    def __init__(self) -> None:
        self.online = True
        self.pushed: list[SeriesState] = []

    def push(self, series_id: int, state: SeriesState) -> SeriesState:
        if not self.online:
            raise TransportError("offline")
        self.pushed.append(state)
        return state


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    series_dir = tmp_path / "series"
    show = series_dir / "[Grp] My Show (2020)"
    show.mkdir(parents=True)
    for number in (1, 2, 3):
        (show / f"[Grp] My Show - {number:02d} [1080p].mkv").write_bytes(b"")
    return Settings(series_dir=series_dir, state_dir=tmp_path / "state", percent_watched_to_progress=0.9)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def tracker(settings: Settings, transport: FakeTransport):
    store = TrackerStore(settings.database_path)
    tracker = Tracker(settings, store, SyncCoordinator(transport, store), transport)
    yield tracker
    tracker.close()


class TestSeries:
    """Tests for adding and changing tracked series."""

    def test_add_finds_closest_directory(self, tracker: Tracker) -> None:
        config = tracker.add_series("my show", 21, episodes=3)

        assert config.path == Path("[Grp] My Show (2020)")
        assert tracker.store.load_state(21) == SeriesState(series_id=21)
        assert tracker.get("my show").episodes == 3

    def test_add_rejects_invalid_pattern(self, tracker: Tracker) -> None:
        with pytest.raises(InvalidPattern):
            tracker.add_series("show", 21, pattern="no marker")
        assert tracker.store.get_config("show") is None

    def test_update_series(self, tracker: Tracker, settings: Settings) -> None:
        tracker.add_series("show", 21)

        updated = tracker.update_series("show", SeriesParameters(series_id=22, pattern="*- #"))

        assert updated.series_id == 22
        assert updated.pattern == "*- #"
        assert tracker.store.load_state(22) is not None

    def test_unknown_series(self, tracker: Tracker) -> None:
        with pytest.raises(SeriesNotFoundError):
            tracker.get("nope")
        with pytest.raises(SeriesNotFoundError):
            tracker.get(None)

    def test_remove_series(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        tracker.remove_series("show")
        with pytest.raises(SeriesNotFoundError):
            tracker.remove_series("show")

    def test_episode_count_must_be_positive(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        with pytest.raises(ValueError):
            tracker.set_episode_count("show", 0)


class TestEpisodes:
    """Tests for locating episode files."""

    def test_episodes_and_next_episode(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)

        assert tracker.episodes("show").numbers() == [1, 2, 3]
        assert tracker.episode_path("show").name == "[Grp] My Show - 01 [1080p].mkv"

        tracker.set_progress("show", 2)
        assert tracker.episode_path("show").name == "[Grp] My Show - 03 [1080p].mkv"

    def test_no_unwatched_episode(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        tracker.set_progress("show", 3)
        with pytest.raises(SeriesNotFoundError, match="no unwatched episode"):
            tracker.episode_path("show")

    def test_missing_episode(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        with pytest.raises(SeriesNotFoundError, match="episode 9"):
            tracker.episode_path("show", 9)


class TestWatchState:
    """Tests for changing the watch state."""

    def test_episode_completed_syncs_and_remembers_series(self, tracker: Tracker, transport: FakeTransport) -> None:
        tracker.add_series("show", 21, episodes=3)

        result = tracker.episode_completed("show")

        assert result.outcome is SyncOutcome.SYNCED
        assert result.state.status is WatchStatus.WATCHING
        assert transport.pushed == [result.state]
        assert tracker.get(None).nickname == "show"

    def test_last_episode_completes(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21, episodes=3)
        for _ in range(3):
            result = tracker.episode_completed("show")
        assert result.state.status is WatchStatus.COMPLETED

    def test_offline_changes_are_queued_and_synced_later(self, tracker: Tracker, transport: FakeTransport) -> None:
        tracker.add_series("show", 21)
        transport.online = False

        tracker.episode_completed("show")
        result = tracker.episode_completed("show")

        assert result.outcome is SyncOutcome.QUEUED_OFFLINE
        assert [mutation.state.progress for mutation in tracker.pending()] == [2]

        transport.online = True
        assert tracker.sync_pending() == [(21, SyncOutcome.SYNCED)]
        assert tracker.pending() == []

    def test_change_status(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)

        result = tracker.change_status("show", WatchStatus.DROPPED, today=dt.date(2024, 3, 1))

        assert result.state.status is WatchStatus.DROPPED
        assert result.state.end_date == dt.date(2024, 3, 1)

    def test_episode_regressed(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21, episodes=3)
        tracker.set_progress("show", 3)
        tracker.change_status("show", WatchStatus.COMPLETED)

        result = tracker.episode_regressed("show")

        assert result.state.progress == 2
        assert result.state.status is WatchStatus.WATCHING

    def test_series_completed_counts_rewatch(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        tracker.change_status("show", WatchStatus.REWATCHING)

        result = tracker.series_completed("show", today=dt.date(2024, 3, 1))

        assert result.state.status is WatchStatus.COMPLETED
        assert result.state.rewatch_count == 1
        assert tracker.state(tracker.get("show")).rewatch_count == 1

    def test_status_changes_do_not_lose_completed_episodes(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        threads = []
        for _ in range(5):
            threads.append(threading.Thread(target=tracker.episode_completed, args=("show",)))
            threads.append(threading.Thread(target=tracker.change_status, args=("show", WatchStatus.ON_HOLD)))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert tracker.state(tracker.get("show")).progress == 5

    def test_negative_progress(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        with pytest.raises(ValueError):
            tracker.set_progress("show", -1)


class TestPlay:
    """Tests for playing episodes."""

    def test_clean_exit_counts_episode(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        runner_result = subprocess.CompletedProcess(["mpv"], 0)

        with patch("seriestrack.playback.subprocess.run", return_value=runner_result) as mock_run:
            results = tracker.play("show")

        assert [result.state.progress for result in results] == [1]
        command = mock_run.call_args.args[0]
        assert command[0] == "mpv"
        assert command[-1].endswith("[Grp] My Show - 01 [1080p].mkv")

    def test_player_failure_stops(self, tracker: Tracker) -> None:
        tracker.add_series("show", 21)
        with patch("seriestrack.playback.subprocess.run", return_value=subprocess.CompletedProcess(["mpv"], 1)):
            assert tracker.play("show", count=3) == []

    def test_disabled_auto_progress(self, tracker: Tracker, settings: Settings) -> None:
        settings.percent_watched_to_progress = 0.0
        tracker.add_series("show", 21)
        with patch("seriestrack.playback.subprocess.run", return_value=subprocess.CompletedProcess(["mpv"], 0)):
            assert tracker.play("show") == []
        assert tracker.state(tracker.get("show")).progress == 0


class TestFromSettings:
    """Tests for building a tracker from settings."""

    def test_offline_without_remote(self, settings: Settings) -> None:
        tracker = Tracker.from_settings(settings)
        try:
            assert isinstance(tracker._transport, OfflineTransport)
            assert settings.database_path.exists()
        finally:
            tracker.close()

    def test_http_transport_when_remote_configured(self, settings: Settings) -> None:
        settings.remote = RemoteSettings(url="https://list.example.com/api")
        with patch("seriestrack.remote.httpx.Client"):
            tracker = Tracker.from_settings(settings)
            try:
                assert isinstance(tracker._transport, HttpTransport)
            finally:
                tracker.close()

    def test_offline_flag_wins(self, settings: Settings) -> None:
        settings.remote = RemoteSettings(url="https://list.example.com/api")
        tracker = Tracker.from_settings(settings, offline=True)
        try:
            assert isinstance(tracker._transport, OfflineTransport)
        finally:
            tracker.close()

    def test_offline_remote_setting(self, settings: Settings) -> None:
        settings.remote = RemoteSettings(url="https://list.example.com/api", offline=True)
        tracker = Tracker.from_settings(settings)
        try:
            assert isinstance(tracker._transport, OfflineTransport)
        finally:
            tracker.close()
