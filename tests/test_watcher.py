from __future__ import annotations

from pathlib import Path
from queue import Queue
from unittest.mock import MagicMock, patch

import pytest

from seriestrack.config import WatcherSettings
from seriestrack.models import SeriesConfig
from seriestrack.scanner import DuplicateEpisode, EpisodeMap
from seriestrack.watcher import SeriesDirectoryWatcher, _VideoChangeHandler


@pytest.fixture
def mock_observer():
    """Mock watchdog Observer."""
    with patch("seriestrack.watcher.Observer") as mock_class:
        observer = MagicMock()
        mock_class.return_value = observer
        yield observer


@pytest.fixture
def series_dir(tmp_path: Path) -> Path:
    for name in ("Alpha", "Beta"):
        (tmp_path / name).mkdir()
    return tmp_path


@pytest.fixture
def mock_tracker(series_dir: Path):
    """Mock Tracker with two series, one of them without a directory."""
    tracker = MagicMock()
    tracker.settings.series_dir = series_dir
    configs = [
        SeriesConfig(nickname="alpha", series_id=1, path=Path("Alpha")),
        SeriesConfig(nickname="beta", series_id=2, path=Path("Beta")),
        SeriesConfig(nickname="gone", series_id=3, path=Path("Gone")),
    ]
    tracker.store.list_configs.return_value = configs
    tracker.get.side_effect = lambda nickname: next(config for config in configs if config.nickname == nickname)
    tracker.episodes.return_value = EpisodeMap({1: series_dir / "Alpha" / "ep01.mkv"})
    return tracker


def _event(src: str, *, is_directory: bool = False, dest: str | None = None):
    event = MagicMock()
    event.is_directory = is_directory
    event.src_path = src
    event.dest_path = dest
    return event


class TestVideoChangeHandler:
    """Tests for filtering filesystem events."""

    def test_created_video_is_queued(self) -> None:
        queue: Queue[Path] = Queue()
        _VideoChangeHandler(queue).on_created(_event("/series/Alpha/ep02.mkv"))
        assert queue.get_nowait() == Path("/series/Alpha/ep02.mkv")

    @pytest.mark.parametrize(
        "event",
        [
            _event("/series/Alpha/ep02.mkv.part"),
            _event("/series/Alpha/._ep02.mkv"),
            _event("/series/Alpha/Extras", is_directory=True),
        ],
    )
    def test_other_events_are_ignored(self, event) -> None:
        queue: Queue[Path] = Queue()
        handler = _VideoChangeHandler(queue)
        handler.on_created(event)
        handler.on_deleted(event)
        assert queue.empty()

    def test_moves_queue_both_ends(self) -> None:
        queue: Queue[Path] = Queue()
        _VideoChangeHandler(queue).on_moved(_event("/a/ep01.mkv", dest="/b/ep01.mkv"))
        assert [queue.get_nowait(), queue.get_nowait()] == [Path("/a/ep01.mkv"), Path("/b/ep01.mkv")]


class TestSeriesDirectoryWatcher:
    """Tests for the series directory watcher."""

    def test_schedules_existing_series_directories(self, mock_tracker, mock_observer, series_dir) -> None:
        watcher = SeriesDirectoryWatcher(mock_tracker, WatcherSettings())

        assert set(watcher.directories) == {series_dir / "Alpha", series_dir / "Beta"}
        scheduled = sorted(call.args[1] for call in mock_observer.schedule.call_args_list)
        assert scheduled == [str(series_dir / "Alpha"), str(series_dir / "Beta")]
        assert all(call.kwargs["recursive"] is False for call in mock_observer.schedule.call_args_list)

    def test_watches_only_requested_series(self, mock_tracker, mock_observer, series_dir) -> None:
        watcher = SeriesDirectoryWatcher(mock_tracker, WatcherSettings(), nicknames=["beta"])
        assert list(watcher.directories) == [series_dir / "Beta"]

    def test_rescan_reports_changed_series(self, mock_tracker, mock_observer, series_dir) -> None:
        rescanned = []
        watcher = SeriesDirectoryWatcher(
            mock_tracker,
            WatcherSettings(),
            on_rescan=lambda nickname, episodes: rescanned.append((nickname, len(episodes))),
        )

        changed = [series_dir / "Alpha" / "ep01.mkv", series_dir / "Alpha" / "ep02.mkv", Path("/elsewhere/x.mkv")]
        assert watcher.rescan(changed) == ["alpha"]
        assert rescanned == [("alpha", 1)]
        mock_tracker.episodes.assert_called_once_with("alpha")

    def test_rescan_failure_is_logged_and_skipped(self, mock_tracker, mock_observer, series_dir, caplog) -> None:
        mock_tracker.episodes.side_effect = DuplicateEpisode(1, Path("a.mkv"), Path("b.mkv"))
        watcher = SeriesDirectoryWatcher(mock_tracker, WatcherSettings())

        assert watcher.rescan([series_dir / "Beta" / "ep01.mkv"]) == ["beta"]
        assert "Rescan of beta failed" in caplog.text

    def test_run_forever_stops_observer(self, mock_tracker, mock_observer) -> None:
        watcher = SeriesDirectoryWatcher(mock_tracker, WatcherSettings(debounce_seconds=0))
        stop = MagicMock()
        stop.is_set.side_effect = [False, True]

        watcher.run_forever(stop)

        mock_observer.start.assert_called_once()
        mock_observer.stop.assert_called_once()
        mock_observer.join.assert_called_once_with(timeout=5)

    def test_run_forever_without_directories(self, mock_tracker, mock_observer) -> None:
        mock_tracker.store.list_configs.return_value = []
        watcher = SeriesDirectoryWatcher(mock_tracker, WatcherSettings())

        watcher.run_forever()

        mock_observer.start.assert_not_called()
