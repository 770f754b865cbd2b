"""Classifying a directory's files into separate series for splitting.

Downloads often bundle a main series with its specials, OVAs and movies, or
keep two seasons in one folder. The functions here only decide which files
belong together; creating the per-group directories of symbolic links is left
to :func:`create_links`, which delegates to the filesystem helpers.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .logging_utils import render_section_block
from .utils import LinkResult, link_file, sanitize_component, words

LOGGER = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r"[\[\(\{][^\]\)\}]*[\]\)\}]")
SEPARATOR_PATTERN = re.compile(r"[_.]+")
WHITESPACE_PATTERN = re.compile(r"\s+")
EPISODE_SPLIT_PATTERN = re.compile(
    r"(?:^|[\s-])(?:s\d{1,2}\s*)?(?:e|ep|episode)?\s*\d{1,4}(?:v\d{1,2})?(?=\s|$)",
    re.IGNORECASE,
)

# Ordered: the first keyword found in a name decides its group
AUXILIARY_KINDS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Specials", re.compile(r"\b(?:specials?|sp\d*)\b", re.IGNORECASE)),
    ("OVA", re.compile(r"\b(?:ova|oav|oad)s?\d*\b", re.IGNORECASE)),
    ("ONA", re.compile(r"\bonas?\d*\b", re.IGNORECASE)),
    ("Movie", re.compile(r"\b(?:movie|film|gekijouban)s?\b", re.IGNORECASE)),
)


@dataclass(frozen=True, slots=True)
class SeriesGroup:
    label: str
    files: tuple[str, ...]
    auxiliary: bool = False


@dataclass(frozen=True, slots=True)
class SeasonSplit:
    """A consecutive range of a merged season, renumbered from 1."""

    label: str
    first_episode: int
    last_episode: Optional[int]
    episodes: Mapping[int, Path]


@dataclass(frozen=True, slots=True)
class LinkPlan:
    source: Path
    destination: Path


@dataclass
class _MainGroup:
    title_words: list[str]
    label: str
    files: list[str] = field(default_factory=list)


def strip_name(filename: str, *, has_extension: bool = True) -> str:
    """Filename stem without tag brackets, with separators turned into spaces."""
    stem = Path(filename).stem if has_extension else filename
    stem = TAG_PATTERN.sub(" ", stem)
    stem = SEPARATOR_PATTERN.sub(" ", stem)
    return WHITESPACE_PATTERN.sub(" ", stem).strip()


def title_of(stripped: str) -> str:
    """The part of a stripped name before its episode number."""
    found = EPISODE_SPLIT_PATTERN.search(stripped)
    title = stripped[: found.start()] if found else stripped
    return title.strip(" -")


def auxiliary_kind(stripped: str) -> Optional[str]:
    for kind, pattern in AUXILIARY_KINDS:
        if pattern.search(stripped):
            return kind
    return None


def _is_word_prefix(left: Sequence[str], right: Sequence[str]) -> bool:
    shorter, longer = (left, right) if len(left) <= len(right) else (right, left)
    if not shorter:
        return not longer
    return list(longer[: len(shorter)]) == list(shorter)


def group_files(filenames: Iterable[str], *, default_label: str = "Episodes") -> list[SeriesGroup]:
    """Partition filenames into a main series and its auxiliary works.

    Files naming an auxiliary keyword (specials, OVA, ONA, movie) are grouped
    by kind. Everything else is grouped by title: two files belong together
    when the shorter title is a word-for-word prefix of the longer one, so a
    season suffix ("Title S2 - 01") stays with its series ("Title - 13").
    """
    auxiliary: dict[str, list[str]] = {}
    candidates: list[tuple[list[str], str, str]] = []

    for filename in filenames:
        stripped = strip_name(filename)
        kind = auxiliary_kind(stripped)
        if kind is not None:
            auxiliary.setdefault(kind, []).append(filename)
            continue
        title = title_of(stripped)
        candidates.append((words(title), title, filename))

    main_groups: list[_MainGroup] = []
    for title_words, title, filename in sorted(candidates, key=lambda item: (len(item[0]), item[2])):
        for group in main_groups:
            if _is_word_prefix(group.title_words, title_words):
                group.files.append(filename)
                break
        else:
            main_groups.append(_MainGroup(title_words=title_words, label=title or default_label, files=[filename]))

    groups = [
        SeriesGroup(label=group.label, files=tuple(sorted(group.files)))
        for group in sorted(main_groups, key=lambda group: (-len(group.files), group.label.lower()))
    ]
    for kind, _ in AUXILIARY_KINDS:
        if kind in auxiliary:
            groups.append(SeriesGroup(label=kind, files=tuple(sorted(auxiliary[kind])), auxiliary=True))

    LOGGER.debug(
        render_section_block(
            "Grouped Series Files",
            [(f"{group.label} ({len(group.files)})", group.files) for group in groups],
        )
    )
    return groups


def split_merged_seasons(episodes: Mapping[int, Path], season_lengths: Sequence[int]) -> list[SeasonSplit]:
    """Split one continuous episode numbering into seasons of the given lengths.

    Episodes past the last given season end up in one more, open-ended split.
    """
    if any(length <= 0 for length in season_lengths):
        raise ValueError("Season lengths must be positive")

    splits: list[SeasonSplit] = []
    start = 1
    for index, length in enumerate(season_lengths, start=1):
        end = start + length - 1
        members = {number - start + 1: path for number, path in sorted(episodes.items()) if start <= number <= end}
        splits.append(SeasonSplit(label=f"Season {index}", first_episode=start, last_episode=end, episodes=members))
        start = end + 1

    remaining = {number - start + 1: path for number, path in sorted(episodes.items()) if number >= start}
    if remaining:
        splits.append(
            SeasonSplit(
                label=f"Season {len(season_lengths) + 1}",
                first_episode=start,
                last_episode=None,
                episodes=remaining,
            )
        )
    return splits


def plan_group_links(groups: Iterable[SeriesGroup], source_dir: Path, destination_root: Path) -> list[LinkPlan]:
    plan: list[LinkPlan] = []
    for group in groups:
        target_dir = destination_root / sanitize_component(group.label)
        for filename in group.files:
            plan.append(LinkPlan(source=source_dir / filename, destination=target_dir / filename))
    return plan


def plan_season_links(splits: Iterable[SeasonSplit], destination_root: Path, title: str) -> list[LinkPlan]:
    plan: list[LinkPlan] = []
    for split in splits:
        target_dir = destination_root / sanitize_component(f"{title} {split.label}")
        for number, source in sorted(split.episodes.items()):
            filename = sanitize_component(f"{title} - {number:02d}") + source.suffix
            plan.append(LinkPlan(source=source, destination=target_dir / filename))
    return plan


def create_links(plan: Iterable[LinkPlan]) -> list[tuple[LinkPlan, LinkResult]]:
    results: list[tuple[LinkPlan, LinkResult]] = []
    for item in plan:
        result = link_file(item.source, item.destination)
        if not result.created:
            LOGGER.warning("Could not link %s -> %s: %s", item.destination, item.source, result.reason)
        results.append((item, result))
    return results


__all__ = [
    "LinkPlan",
    "SeasonSplit",
    "SeriesGroup",
    "auxiliary_kind",
    "create_links",
    "group_files",
    "plan_group_links",
    "plan_season_links",
    "split_merged_seasons",
    "strip_name",
    "title_of",
]
