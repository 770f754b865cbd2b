from __future__ import annotations

import threading
from pathlib import Path

import pytest

from seriestrack.pattern import NoMatch, compile_pattern
from seriestrack.scanner import (
    DirectoryUnreadable,
    DuplicateEpisode,
    EpisodeMap,
    ScanCancelled,
    detect_episodes,
    is_video_file,
    scan,
)


def _touch(directory: Path, *names: str) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        (directory / name).write_bytes(b"")


class TestScan:
    """Tests for scanning a series directory."""

    def test_returns_only_matching_video_files(self, tmp_path: Path) -> None:
        _touch(
            tmp_path,
            "Show ep01.mkv",
            "Show ep02.mp4",
            "Show ep03.srt",
            "notes.txt",
            "Show extras.mkv",
            "._Show ep04.mkv",
        )
        (tmp_path / "Show ep05.mkv").mkdir()

        episodes = scan(tmp_path, compile_pattern("Show ep#"))

        assert episodes.numbers() == [1, 2]
        assert episodes[1].name == "Show ep01.mkv"

    @pytest.mark.parametrize("noise", [0, 1, 5])
    def test_entry_count_ignores_non_matching_files(self, tmp_path: Path, noise: int) -> None:
        _touch(tmp_path, *(f"ep{number:02d}.mkv" for number in (3, 1, 2)))
        _touch(tmp_path, *(f"extra {index}.mkv" for index in range(noise)))

        episodes = scan(tmp_path, compile_pattern("ep#"))

        assert len(episodes) == 3
        assert list(episodes) == [1, 2, 3]

    @pytest.mark.parametrize(
        "names",
        [
            ("ep01.mkv", "ep1.mkv"),
            ("ep1.mkv", "ep01.mkv"),
        ],
    )
    def test_duplicate_episode_fails_whatever_the_order(self, tmp_path: Path, names: tuple[str, str]) -> None:
        _touch(tmp_path, *names)

        with pytest.raises(DuplicateEpisode) as excinfo:
            scan(tmp_path, compile_pattern("ep#"))

        assert excinfo.value.number == 1
        assert {excinfo.value.path_a.name, excinfo.value.path_b.name} == set(names)

    def test_episode_zero_is_skipped(self, tmp_path: Path) -> None:
        _touch(tmp_path, "ep00.mkv", "ep01.mkv")
        assert scan(tmp_path, compile_pattern("ep#")).numbers() == [1]

    def test_unreadable_directory(self, tmp_path: Path) -> None:
        with pytest.raises(DirectoryUnreadable) as excinfo:
            scan(tmp_path / "missing", compile_pattern("ep#"))
        assert excinfo.value.directory == tmp_path / "missing"

    def test_cancelled_scan_returns_nothing(self, tmp_path: Path) -> None:
        _touch(tmp_path, "ep01.mkv")
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ScanCancelled):
            scan(tmp_path, compile_pattern("ep#"), cancel=cancel)


class TestDetectEpisodes:
    """Tests for scanning with a user pattern or the built-in detection."""

    def test_uses_default_detection_without_pattern(self, tmp_path: Path) -> None:
        _touch(tmp_path, "[Group] Show - 01 [1080p].mkv", "[Group] Show - 02 [1080p].mkv")
        assert detect_episodes(tmp_path).numbers() == [1, 2]

    def test_user_pattern_takes_precedence(self, tmp_path: Path) -> None:
        _touch(tmp_path, "Show 2019 ep01.mkv")
        assert detect_episodes(tmp_path, "*ep#").numbers() == [1]

    def test_bad_pattern_is_reported_when_default_finds_episodes(self, tmp_path: Path) -> None:
        _touch(tmp_path, "Show - 01.mkv", "Show - 02.mkv")
        with pytest.raises(NoMatch):
            detect_episodes(tmp_path, "ep#")

    def test_bad_pattern_is_reported_when_default_finds_conflicting_episodes(self, tmp_path: Path) -> None:
        _touch(tmp_path, "Show - 01.mkv", "Show - 01.mp4")
        with pytest.raises(NoMatch):
            detect_episodes(tmp_path, "ep#")

    def test_empty_directory_is_not_an_error(self, tmp_path: Path) -> None:
        _touch(tmp_path, "readme.txt")
        assert len(detect_episodes(tmp_path, "ep#")) == 0


class TestEpisodeMap:
    """Tests for the episode map helpers."""

    def test_navigation_helpers(self) -> None:
        episodes = EpisodeMap({4: Path("d"), 1: Path("a"), 2: Path("b")})

        assert list(episodes) == [1, 2, 4]
        assert episodes.first() == 1
        assert episodes.last() == 4
        assert episodes.next_after(2) == 4
        assert episodes.next_after(4) is None
        assert episodes.missing() == [3]

    def test_empty_map(self) -> None:
        episodes = EpisodeMap()
        assert episodes.first() is None
        assert episodes.last() is None
        assert episodes.missing() == []


def test_is_video_file(tmp_path: Path) -> None:
    _touch(tmp_path, "a.MKV", "b.txt")
    assert is_video_file(tmp_path / "a.MKV")
    assert not is_video_file(tmp_path / "b.txt")
