from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from queue import Empty, Queue
from typing import TYPE_CHECKING, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import WatcherSettings
from .models import SeriesTrackError
from .scanner import VIDEO_EXTENSIONS, EpisodeMap

if TYPE_CHECKING:  # pragma: no cover
    from .tracker import Tracker

LOGGER = logging.getLogger(__name__)

RescanCallback = Callable[[str, EpisodeMap], None]


class _VideoChangeHandler(FileSystemEventHandler):
    def __init__(self, queue: Queue[Path]) -> None:
        self._queue = queue

    def on_created(self, event) -> None:  # type: ignore[override]
        if getattr(event, "is_directory", False):
            return
        self._emit(Path(event.src_path))

    def on_deleted(self, event) -> None:  # type: ignore[override]
        if getattr(event, "is_directory", False):
            return
        self._emit(Path(event.src_path))

    def on_moved(self, event) -> None:  # type: ignore[override]
        if getattr(event, "is_directory", False):
            return
        self._emit(Path(event.src_path))
        self._emit(Path(event.dest_path))

    def _emit(self, path: Path) -> None:
        if path.name.startswith("._") or path.suffix.lower() not in VIDEO_EXTENSIONS:
            return
        self._queue.put(path)


class SeriesDirectoryWatcher:
    """Rescans a series whenever video files appear in or leave its directory.

    Changes are collected for ``debounce_seconds`` so that a batch download
    causes one rescan per series rather than one per file.
    """

    def __init__(
        self,
        tracker: Tracker,
        settings: WatcherSettings,
        *,
        nicknames: Optional[Iterable[str]] = None,
        on_rescan: Optional[RescanCallback] = None,
    ) -> None:
        self._tracker = tracker
        self._settings = settings
        self._on_rescan = on_rescan
        self._queue: Queue[Path] = Queue()
        self._handler = _VideoChangeHandler(self._queue)
        self._observer = Observer()
        self._directories = self._resolve_directories(nicknames)
        for directory in sorted(self._directories):
            self._observer.schedule(self._handler, str(directory), recursive=False)

    @property
    def directories(self) -> dict[Path, list[str]]:
        return {directory: list(names) for directory, names in self._directories.items()}

    def _resolve_directories(self, nicknames: Optional[Iterable[str]]) -> dict[Path, list[str]]:
        series_dir = self._tracker.settings.series_dir
        if nicknames is None:
            configs = self._tracker.store.list_configs()
        else:
            configs = [self._tracker.get(nickname) for nickname in nicknames]

        directories: dict[Path, list[str]] = {}
        for config in configs:
            directory = config.full_path(series_dir)
            if not directory.is_dir():
                LOGGER.warning("Not watching %s: %s is not a directory", config.nickname, directory)
                continue
            directories.setdefault(directory, []).append(config.nickname)
        return directories

    def rescan(self, changed: Iterable[Path]) -> list[str]:
        """Rescan every series owning one of the ``changed`` files."""
        nicknames: list[str] = []
        for directory in sorted({path.parent for path in changed}):
            for nickname in self._directories.get(directory, []):
                if nickname not in nicknames:
                    nicknames.append(nickname)

        for nickname in nicknames:
            try:
                episodes = self._tracker.episodes(nickname)
            except SeriesTrackError as exc:
                LOGGER.warning("Rescan of %s failed: %s", nickname, exc)
                continue
            LOGGER.info("%s: %d episode(s) available", nickname, len(episodes))
            if self._on_rescan is not None:
                self._on_rescan(nickname, episodes)
        return nicknames

    def run_forever(self, stop: Optional[threading.Event] = None) -> None:
        if not self._directories:
            LOGGER.warning("No series directories to watch")
            return
        self._observer.start()
        LOGGER.info("Watching %d series director(ies)", len(self._directories))

        pending: set[Path] = set()
        last_change = 0.0
        try:
            while stop is None or not stop.is_set():
                try:
                    pending.add(self._queue.get(timeout=1.0))
                    last_change = time.monotonic()
                    continue
                except Empty:
                    pass

                if pending and (time.monotonic() - last_change) >= self._settings.debounce_seconds:
                    self.rescan(pending)
                    pending.clear()
        finally:
            self._observer.stop()
            self._observer.join(timeout=5)


__all__ = ["SeriesDirectoryWatcher"]
