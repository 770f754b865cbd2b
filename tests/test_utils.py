from __future__ import annotations

from pathlib import Path

import pytest

from seriestrack.utils import (
    env_bool,
    expand_env,
    expand_path,
    link_file,
    load_yaml_file,
    normalize_token,
    parse_env_bool,
    sanitize_component,
    words,
)


def test_normalize_token_removes_non_alphanumerics() -> None:
    assert normalize_token("Steins;Gate 0!") == "steinsgate0"


def test_words_splits_on_punctuation() -> None:
    assert words("Mob Psycho-100 (S2)") == ["mob", "psycho", "100", "s2"]


def test_sanitize_component_replaces_disallowed_characters() -> None:
    assert sanitize_component("  weird*name?.mkv  ") == "weird_name_.mkv"
    assert sanitize_component("???") == "untitled"


def test_sanitize_component_keeps_unicode_titles() -> None:
    assert sanitize_component("進撃の巨人 Season 1") == "進撃の巨人 Season 1"
    assert sanitize_component("Fate/Zero: Part 2") == "Fate_Zero_ Part 2"


def test_sanitize_component_rejects_dot_segments() -> None:
    assert sanitize_component(".") == "untitled"
    assert sanitize_component("..") == "untitled"


def test_expand_env_walks_nested_values(monkeypatch) -> None:
    monkeypatch.setenv("SHOW_HOME", "/srv/shows")
    assert expand_env({"a": ["$SHOW_HOME/x", 3], "b": "${SHOW_HOME}"}) == {
        "a": ["/srv/shows/x", 3],
        "b": "/srv/shows",
    }


def test_expand_path_expands_user(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    assert expand_path("~/series") == tmp_path / "series"


def test_load_yaml_file_empty_is_mapping(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_yaml_file(path) == {}


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1", True), ("Yes", True), (" on ", True), ("0", False), ("off", False), ("maybe", None), (None, None)],
)
def test_parse_env_bool(value, expected) -> None:
    assert parse_env_bool(value) is expected


def test_env_bool_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("SERIESTRACK_FLAG", "true")
    assert env_bool("SERIESTRACK_FLAG") is True
    monkeypatch.delenv("SERIESTRACK_FLAG")
    assert env_bool("SERIESTRACK_FLAG") is None


class TestLinkFile:
    """Tests for creating links to episode files."""

    def test_symlink(self, tmp_path: Path) -> None:
        source = tmp_path / "source.mkv"
        source.write_bytes(b"data")
        destination = tmp_path / "nested" / "link.mkv"

        result = link_file(source, destination)

        assert result.created
        assert destination.is_symlink()
        assert destination.resolve() == source.resolve()

    def test_missing_source_is_not_linked(self, tmp_path: Path) -> None:
        destination = tmp_path / "link.mkv"

        result = link_file(tmp_path / "missing.mkv", destination)

        assert not result.created
        assert result.reason == "missing-source"
        assert not destination.is_symlink()

    def test_existing_destination_is_left_alone(self, tmp_path: Path) -> None:
        source = tmp_path / "source.mkv"
        source.write_bytes(b"data")
        destination = tmp_path / "dest.mkv"
        destination.write_bytes(b"other")

        result = link_file(source, destination)

        assert not result.created
        assert result.reason == "destination-exists"
        assert destination.read_bytes() == b"other"
