"""Watch status transitions.

Everything here is a pure function of its inputs: states go in, new states
come out, and "today" can be passed explicitly so results are reproducible.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional

from .models import SeriesState, WatchStatus

_RESUMES_TO_WATCHING = frozenset({WatchStatus.PLAN_TO_WATCH, WatchStatus.ON_HOLD, WatchStatus.DROPPED})


@dataclass(frozen=True, slots=True)
class StatusSettings:
    reset_dates_on_rewatch: bool = False


def _total_reached(progress: int, total_episodes: Optional[int]) -> bool:
    return total_episodes is not None and progress >= total_episodes


def advance(
    state: SeriesState,
    total_episodes: Optional[int],
    settings: StatusSettings,
    *,
    today: Optional[dt.date] = None,
) -> SeriesState:
    """Apply one completed episode to ``state``.

    The progress count goes up by exactly one before any status rule is
    looked at. Paused, planned and dropped series resume as watching, a
    completed series starts a rewatch, and a watching or rewatching series
    completes once the new progress equals ``total_episodes``. An unknown
    total never completes a series automatically.
    """
    today = today or dt.date.today()
    status = state.status
    progress = state.progress
    start_date = state.start_date
    end_date = state.end_date
    rewatch_count = state.rewatch_count

    if status is WatchStatus.DROPPED:
        progress = 0
    progress += 1

    if status in _RESUMES_TO_WATCHING:
        if status is WatchStatus.PLAN_TO_WATCH and start_date is None:
            start_date = today
        status = WatchStatus.WATCHING
    elif status is WatchStatus.COMPLETED and not _total_reached(state.progress, total_episodes):
        if settings.reset_dates_on_rewatch:
            start_date = None
            end_date = None
        status = WatchStatus.REWATCHING

    if status in (WatchStatus.WATCHING, WatchStatus.REWATCHING) and progress == total_episodes:
        if status is WatchStatus.REWATCHING:
            rewatch_count += 1
        if end_date is None:
            end_date = today
        status = WatchStatus.COMPLETED

    return SeriesState(
        series_id=state.series_id,
        progress=progress,
        status=status,
        start_date=start_date,
        end_date=end_date,
        rewatch_count=rewatch_count,
    )


def set_status(
    state: SeriesState,
    status: WatchStatus,
    settings: StatusSettings,
    *,
    today: Optional[dt.date] = None,
) -> SeriesState:
    """Change the status by hand, filling in dates the way a user would expect.

    Finishing a rewatch this way counts it, as an automatic completion does.
    """
    today = today or dt.date.today()
    start_date = state.start_date
    end_date = state.end_date
    rewatch_count = state.rewatch_count
    previous = state.status

    if status is WatchStatus.WATCHING:
        if start_date is None:
            start_date = today
    elif status is WatchStatus.REWATCHING:
        if start_date is None or (previous is WatchStatus.COMPLETED and settings.reset_dates_on_rewatch):
            start_date = today
    elif status is WatchStatus.COMPLETED:
        if previous is WatchStatus.REWATCHING:
            rewatch_count += 1
        if end_date is None or (previous is WatchStatus.REWATCHING and settings.reset_dates_on_rewatch):
            end_date = today
    elif status is WatchStatus.DROPPED:
        if end_date is None:
            end_date = today

    return state.evolve(status=status, start_date=start_date, end_date=end_date, rewatch_count=rewatch_count)


def regress(state: SeriesState, settings: StatusSettings, *, today: Optional[dt.date] = None) -> SeriesState:
    """Take back one watched episode.

    Progress never drops below zero. A series that was being rewatched, or a
    completed one that has been rewatched before, stays a rewatch; anything
    else goes back to watching.
    """
    if state.status is WatchStatus.REWATCHING or (
        state.status is WatchStatus.COMPLETED and state.rewatch_count > 0
    ):
        status = WatchStatus.REWATCHING
    else:
        status = WatchStatus.WATCHING
    regressed = state.evolve(progress=max(state.progress - 1, 0))
    return set_status(regressed, status, settings, today=today)


def complete(state: SeriesState, settings: StatusSettings, *, today: Optional[dt.date] = None) -> SeriesState:
    """Mark the series completed regardless of progress."""
    return set_status(state, WatchStatus.COMPLETED, settings, today=today)


__all__ = ["StatusSettings", "advance", "complete", "regress", "set_status"]
