from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .commands import SeriesParameters


class SeriesTrackError(Exception):
    """Base class for errors raised by seriestrack."""


class WatchStatus(str, Enum):
    PLAN_TO_WATCH = "plan_to_watch"
    WATCHING = "watching"
    REWATCHING = "rewatching"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    DROPPED = "dropped"

    @classmethod
    def parse(cls, value: str) -> "WatchStatus":
        """Parse a status from its value, its name, or a one-letter alias."""
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        if key in _STATUS_ALIASES:
            return _STATUS_ALIASES[key]
        for status in cls:
            if key in (status.value, status.name.lower()):
                return status
        raise ValueError(f"Unknown watch status: {value!r}")

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


_STATUS_ALIASES: Dict[str, WatchStatus] = {
    "w": WatchStatus.WATCHING,
    "c": WatchStatus.COMPLETED,
    "h": WatchStatus.ON_HOLD,
    "hold": WatchStatus.ON_HOLD,
    "d": WatchStatus.DROPPED,
    "p": WatchStatus.PLAN_TO_WATCH,
    "ptw": WatchStatus.PLAN_TO_WATCH,
    "r": WatchStatus.REWATCHING,
}


def _format_date(value: Optional[dt.date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Any) -> Optional[dt.date]:
    if value is None or value == "":
        return None
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value))


@dataclass(frozen=True, slots=True)
class SeriesState:
    """Watch-list entry for one series.

    Instances are immutable; transitions return new values through
    :meth:`evolve`.
    """

    series_id: int
    progress: int = 0
    status: WatchStatus = WatchStatus.PLAN_TO_WATCH
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    rewatch_count: int = 0

    def __post_init__(self) -> None:
        if self.progress < 0:
            raise ValueError(f"progress must be >= 0, got {self.progress}")
        if self.rewatch_count < 0:
            raise ValueError(f"rewatch_count must be >= 0, got {self.rewatch_count}")

    def evolve(self, **changes: Any) -> "SeriesState":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "series_id": self.series_id,
            "progress": self.progress,
            "status": self.status.value,
            "start_date": _format_date(self.start_date),
            "end_date": _format_date(self.end_date),
            "rewatch_count": self.rewatch_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeriesState":
        try:
            return cls(
                series_id=int(data["series_id"]),
                progress=int(data.get("progress", 0)),
                status=WatchStatus.parse(str(data.get("status", WatchStatus.PLAN_TO_WATCH.value))),
                start_date=_parse_date(data.get("start_date")),
                end_date=_parse_date(data.get("end_date")),
                rewatch_count=int(data.get("rewatch_count", 0)),
            )
        except KeyError as exc:
            raise ValueError(f"Series state is missing required field {exc}") from exc


@dataclass(frozen=True, slots=True)
class SyncMutation:
    """A local state change the remote has not acknowledged yet."""

    series_id: int
    state: SeriesState
    sequence: int


@dataclass(slots=True)
class SeriesConfig:
    """Local configuration of a tracked series.

    ``path`` is stored relative to the configured series directory whenever
    the series lives inside it, so the library can be moved as a whole.
    """

    nickname: str
    series_id: int
    path: Path
    pattern: Optional[str] = None
    episodes: Optional[int] = None
    player_args: List[str] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        nickname: str,
        series_id: int,
        path: Path,
        series_dir: Path,
        *,
        pattern: Optional[str] = None,
        episodes: Optional[int] = None,
    ) -> "SeriesConfig":
        return cls(
            nickname=nickname,
            series_id=series_id,
            path=stripped_path(path, series_dir),
            pattern=pattern,
            episodes=episodes,
        )

    def full_path(self, series_dir: Path) -> Path:
        if self.path.is_absolute():
            return self.path
        return series_dir / self.path

    def with_parameters(self, params: "SeriesParameters", series_dir: Path) -> "SeriesConfig":
        return SeriesConfig(
            nickname=self.nickname,
            series_id=params.series_id if params.series_id is not None else self.series_id,
            path=stripped_path(params.path, series_dir) if params.path is not None else self.path,
            pattern=params.pattern if params.pattern is not None else self.pattern,
            episodes=self.episodes,
            player_args=list(self.player_args),
        )


def stripped_path(path: Path, series_dir: Path) -> Path:
    try:
        return path.relative_to(series_dir)
    except ValueError:
        return path
