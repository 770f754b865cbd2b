"""Episode discovery for a single series directory.

Scanning lists one directory (no recursion), keeps regular video files, and
asks a matcher for each filename's episode number. Files the matcher does not
recognise are skipped; two files claiming the same episode abort the scan so a
human can decide which one is right.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Optional

from .heuristics import compile_default
from .logging_utils import render_fields_block
from .models import SeriesTrackError
from .pattern import Matcher, NoMatch, compile_pattern

LOGGER = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset(
    {
        ".mkv",
        ".mp4",
        ".m4v",
        ".avi",
        ".webm",
        ".mov",
        ".wmv",
        ".flv",
        ".ogm",
        ".ogv",
        ".mpg",
        ".mpeg",
        ".ts",
        ".m2ts",
    }
)


class DirectoryUnreadable(SeriesTrackError):
    def __init__(self, directory: Path, reason: str) -> None:
        super().__init__(f"Unable to read directory {directory}: {reason}")
        self.directory = directory
        self.reason = reason


class DuplicateEpisode(SeriesTrackError):
    def __init__(self, number: int, path_a: Path, path_b: Path) -> None:
        super().__init__(f"Episode {number} matches both '{path_a.name}' and '{path_b.name}'")
        self.number = number
        self.path_a = path_a
        self.path_b = path_b


class ScanCancelled(SeriesTrackError):
    """Raised when a scan is abandoned through its cancel event."""


class EpisodeMap(Mapping[int, Path]):
    """Read-only mapping of episode number to file path.

    Iteration is always in ascending episode order.
    """

    __slots__ = ("_episodes",)

    def __init__(self, episodes: Optional[Mapping[int, Path]] = None) -> None:
        self._episodes: dict[int, Path] = dict(sorted((episodes or {}).items()))

    def __getitem__(self, number: int) -> Path:
        return self._episodes[number]

    def __iter__(self) -> Iterator[int]:
        return iter(self._episodes)

    def __len__(self) -> int:
        return len(self._episodes)

    def __repr__(self) -> str:
        return f"EpisodeMap({self._episodes!r})"

    def numbers(self) -> list[int]:
        return list(self._episodes)

    def first(self) -> Optional[int]:
        return next(iter(self._episodes), None)

    def last(self) -> Optional[int]:
        return next(reversed(self._episodes), None) if self._episodes else None

    def next_after(self, progress: int) -> Optional[int]:
        """Lowest episode number greater than ``progress``."""
        for number in self._episodes:
            if number > progress:
                return number
        return None

    def missing(self) -> list[int]:
        """Episode numbers absent between 1 and the highest episode found."""
        last = self.last()
        if last is None:
            return []
        return [number for number in range(1, last + 1) if number not in self._episodes]


def is_video_file(path: Path) -> bool:
    if path.name.startswith("._"):
        return False
    return path.suffix.lower() in VIDEO_EXTENSIONS and path.is_file()


def _list_directory(directory: Path) -> list[Path]:
    try:
        return sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        raise DirectoryUnreadable(directory, exc.strerror or str(exc)) from exc


def scan(directory: Path, matcher: Matcher, *, cancel: Optional[threading.Event] = None) -> EpisodeMap:
    """Build the episode map of ``directory`` using ``matcher``.

    Raises:
        DirectoryUnreadable: the directory cannot be listed
        DuplicateEpisode: two files resolve to the same episode number
        ScanCancelled: ``cancel`` was set before the scan finished
    """
    found: dict[int, Path] = {}
    skipped = 0

    for path in _list_directory(directory):
        if cancel is not None and cancel.is_set():
            raise ScanCancelled(f"Scan of {directory} was cancelled")
        if not is_video_file(path):
            continue

        episode = matcher.try_match(path.name)
        if episode is None or episode <= 0:
            skipped += 1
            LOGGER.debug("Skipping %s: no episode number detected", path.name)
            continue

        existing = found.get(episode)
        if existing is not None:
            raise DuplicateEpisode(episode, existing, path)
        found[episode] = path

    LOGGER.debug(
        render_fields_block(
            "Scanned Series Directory",
            {
                "Directory": directory,
                "Episodes": len(found),
                "Skipped": skipped,
            },
        )
    )
    return EpisodeMap(found)


def detect_episodes(
    directory: Path,
    pattern: Optional[str] = None,
    *,
    cancel: Optional[threading.Event] = None,
) -> EpisodeMap:
    """Scan with a user pattern, or the built-in heuristic when none is given.

    A user pattern that matches nothing is only an error when the built-in
    heuristic does find episodes in the same directory; otherwise the
    directory simply has no episodes yet.
    """
    if pattern is None:
        return scan(directory, compile_default(), cancel=cancel)

    episodes = scan(directory, compile_pattern(pattern), cancel=cancel)
    if episodes:
        return episodes

    try:
        heuristic_found = bool(scan(directory, compile_default(), cancel=cancel))
    except DuplicateEpisode as exc:
        # Conflicting guesses still mean the directory holds episodes
        LOGGER.debug("Default detection in %s hit a duplicate: %s", directory, exc)
        heuristic_found = True
    if heuristic_found:
        raise NoMatch(
            f"Pattern {pattern!r} matched no files in {directory}, "
            "but the default detection found episodes there"
        )
    return episodes


__all__ = [
    "DirectoryUnreadable",
    "DuplicateEpisode",
    "EpisodeMap",
    "ScanCancelled",
    "VIDEO_EXTENSIONS",
    "detect_episodes",
    "is_video_file",
    "scan",
]
