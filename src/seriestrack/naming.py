"""Finding the directory of a series from a user-given nickname."""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from pathlib import Path

from .grouper import TAG_PATTERN, WHITESPACE_PATTERN, strip_name
from .models import SeriesTrackError
from .scanner import DirectoryUnreadable
from .utils import normalize_token

LOGGER = logging.getLogger(__name__)

MIN_DIRECTORY_SCORE = 0.6


class NoMatchingDirectory(SeriesTrackError):
    def __init__(self, nickname: str, series_dir: Path) -> None:
        super().__init__(f"No directory in {series_dir} resembles {nickname!r}")
        self.nickname = nickname
        self.series_dir = series_dir


@dataclass(frozen=True, slots=True)
class DirectoryCandidate:
    path: Path
    score: float


def strip_tags(name: str) -> str:
    """Remove bracketed release tags: ``[Group] Show (2019)`` becomes ``Show``."""
    return WHITESPACE_PATTERN.sub(" ", TAG_PATTERN.sub(" ", name)).strip()


def parse_folder_title(name: str) -> str:
    """Title of a folder such as ``[Group] My Show (2019) [1080p]``."""
    return strip_name(name, has_extension=False)


def rank_directories(series_dir: Path, nickname: str) -> list[DirectoryCandidate]:
    """Subdirectories of ``series_dir`` ranked by similarity to ``nickname``."""
    try:
        entries = [entry for entry in series_dir.iterdir() if entry.is_dir()]
    except OSError as exc:
        raise DirectoryUnreadable(series_dir, exc.strerror or str(exc)) from exc

    wanted = normalize_token(nickname)
    candidates: list[DirectoryCandidate] = []
    for entry in entries:
        title = normalize_token(parse_folder_title(entry.name))
        if not title:
            continue
        score = difflib.SequenceMatcher(None, wanted, title).ratio()
        if wanted and wanted in title:
            score = max(score, 0.9)
        candidates.append(DirectoryCandidate(path=entry, score=score))

    candidates.sort(key=lambda candidate: (-candidate.score, candidate.path.name))
    return candidates


def closest_matching_dir(series_dir: Path, nickname: str) -> Path:
    candidates = rank_directories(series_dir, nickname)
    if not candidates or candidates[0].score < MIN_DIRECTORY_SCORE:
        raise NoMatchingDirectory(nickname, series_dir)
    best = candidates[0]
    LOGGER.debug("Matched %r to %s (score %.2f)", nickname, best.path.name, best.score)
    return best.path


__all__ = [
    "DirectoryCandidate",
    "NoMatchingDirectory",
    "closest_matching_dir",
    "parse_folder_title",
    "rank_directories",
    "strip_tags",
]
