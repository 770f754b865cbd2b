from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.table import Table

from .models import WatchStatus

if TYPE_CHECKING:  # pragma: no cover
    from .grouper import SeriesGroup
    from .models import SeriesConfig, SeriesState, SyncMutation
    from .scanner import EpisodeMap
    from .sync import SyncOutcome


SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"
DIM_COLOR = "dim"

SUCCESS_SYMBOL = "✓"
WARNING_SYMBOL = "⚠"
ERROR_SYMBOL = "✗"

STATUS_COLORS = {
    WatchStatus.WATCHING: SUCCESS_COLOR,
    WatchStatus.REWATCHING: SUCCESS_COLOR,
    WatchStatus.COMPLETED: "blue",
    WatchStatus.ON_HOLD: WARNING_COLOR,
    WatchStatus.DROPPED: ERROR_COLOR,
    WatchStatus.PLAN_TO_WATCH: DIM_COLOR,
}


class SummaryTableRenderer:
    """Renders series, episodes and sync results as Rich Tables."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    @staticmethod
    def _status_cell(status: WatchStatus) -> str:
        color = STATUS_COLORS[status]
        return f"[{color}]{status.label}[/{color}]"

    @staticmethod
    def _progress_cell(progress: int, total: Optional[int]) -> str:
        return f"{progress}/{total}" if total is not None else f"{progress}/?"

    def render_episode_table(self, title: str, episodes: EpisodeMap, progress: int = 0) -> Table:
        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("Episode", justify="right", style="cyan", no_wrap=True)
        table.add_column("File")
        table.add_column("Watched", justify="center")

        for number, path in episodes.items():
            watched = f"[{SUCCESS_COLOR}]{SUCCESS_SYMBOL}[/{SUCCESS_COLOR}]" if number <= progress else ""
            table.add_row(str(number), path.name, watched)

        missing = episodes.missing()
        if missing:
            table.caption = f"[{WARNING_COLOR}]{WARNING_SYMBOL} missing: {', '.join(map(str, missing))}[/{WARNING_COLOR}]"
        return table

    def render_group_table(self, groups: Sequence[SeriesGroup]) -> Table:
        table = Table(title="Detected Series", show_header=True, header_style="bold")
        table.add_column("#", justify="right", style="cyan", no_wrap=True)
        table.add_column("Group")
        table.add_column("Files", justify="right")
        table.add_column("Example")

        for index, group in enumerate(groups, start=1):
            label = f"[{DIM_COLOR}]{group.label}[/{DIM_COLOR}]" if group.auxiliary else group.label
            table.add_row(str(index), label, str(len(group.files)), group.files[0] if group.files else "")
        return table

    def render_series_table(self, rows: Iterable[tuple[SeriesConfig, SeriesState]]) -> Table:
        table = Table(title="Tracked Series", show_header=True, header_style="bold")
        table.add_column("Nickname", style="cyan", no_wrap=True)
        table.add_column("ID", justify="right")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Path")

        for config, state in rows:
            table.add_row(
                config.nickname,
                str(config.series_id),
                self._status_cell(state.status),
                self._progress_cell(state.progress, config.episodes),
                str(config.path),
            )
        return table

    def render_state_table(self, config: SeriesConfig, state: SeriesState) -> Table:
        table = Table(title=config.nickname, show_header=True, header_style="bold")
        table.add_column("Field", style="cyan", no_wrap=True)
        table.add_column("Value")

        table.add_row("Series ID", str(config.series_id))
        table.add_row("Status", self._status_cell(state.status))
        table.add_row("Progress", self._progress_cell(state.progress, config.episodes))
        table.add_row("Started", state.start_date.isoformat() if state.start_date else "-")
        table.add_row("Finished", state.end_date.isoformat() if state.end_date else "-")
        table.add_row("Rewatched", str(state.rewatch_count))
        return table

    def render_pending_table(self, pending: Sequence[SyncMutation]) -> Table:
        table = Table(title="Pending Changes", show_header=True, header_style="bold")
        table.add_column("Seq", justify="right", style="cyan", no_wrap=True)
        table.add_column("Series", justify="right")
        table.add_column("Status")
        table.add_column("Progress", justify="right")

        for mutation in pending:
            table.add_row(
                str(mutation.sequence),
                str(mutation.series_id),
                self._status_cell(mutation.state.status),
                str(mutation.state.progress),
            )
        if not pending:
            table.caption = f"[{DIM_COLOR}]nothing queued[/{DIM_COLOR}]"
        return table

    def render_sync_table(self, results: Sequence[tuple[int, SyncOutcome]]) -> Table:
        table = Table(title="Sync Results", show_header=True, header_style="bold")
        table.add_column("Series", justify="right", style="cyan", no_wrap=True)
        table.add_column("Result")

        for series_id, outcome in results:
            if outcome.value == "synced":
                cell = f"[{SUCCESS_COLOR}]{SUCCESS_SYMBOL} synced[/{SUCCESS_COLOR}]"
            else:
                cell = f"[{ERROR_COLOR}]{ERROR_SYMBOL} {outcome.value}[/{ERROR_COLOR}]"
            table.add_row(str(series_id), cell)
        return table

    def print(self, table: Table) -> None:
        self.console.print(table)


__all__ = ["SummaryTableRenderer"]
