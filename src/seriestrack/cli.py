from __future__ import annotations

import argparse
import contextlib
import logging
import sys
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

import yaml
from rich.console import Console

from .commands import parse_set_tokens
from .config import AppConfig, load_config
from .grouper import create_links, group_files, plan_group_links, plan_season_links, split_merged_seasons
from .logging_utils import configure_logging, render_fields_block
from .models import SeriesTrackError, WatchStatus
from .naming import parse_folder_title
from .scanner import DirectoryUnreadable, detect_episodes, is_video_file
from .summary_table import SummaryTableRenderer
from .sync import SyncOutcome, SyncResult
from .tracker import Tracker
from .version import __version__
from .watcher import SeriesDirectoryWatcher

LOGGER = logging.getLogger(__name__)
CONSOLE = Console()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


def _renderer() -> SummaryTableRenderer:
    return SummaryTableRenderer(CONSOLE)


@contextlib.contextmanager
def _open_tracker(args: argparse.Namespace, config: AppConfig) -> Iterator[Tracker]:
    tracker = Tracker.from_settings(config.settings, offline=getattr(args, "offline", False))
    try:
        yield tracker
    finally:
        tracker.close()


def _report_result(result: SyncResult) -> None:
    if result.outcome is SyncOutcome.QUEUED_OFFLINE:
        CONSOLE.print(
            f"[yellow]⚠ Saved locally; the remote update is queued ({result.state.status.label}, "
            f"progress {result.state.progress})[/yellow]"
        )
    else:
        CONSOLE.print(f"[green]✓ {result.state.status.label}, progress {result.state.progress}[/green]")


def _video_files(directory: Path) -> list[str]:
    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        raise DirectoryUnreadable(directory, exc.strerror or str(exc)) from exc
    return [entry.name for entry in entries if is_video_file(entry)]


# Commands that only look at the filesystem


def run_scan(args: argparse.Namespace, config: AppConfig) -> int:
    episodes = detect_episodes(args.directory, args.pattern)
    _renderer().print(_renderer().render_episode_table(args.directory.name, episodes))
    if not episodes:
        CONSOLE.print("[dim]No episodes detected[/dim]")
    return EXIT_OK


def run_groups(args: argparse.Namespace, config: AppConfig) -> int:
    groups = group_files(_video_files(args.directory))
    _renderer().print(_renderer().render_group_table(groups))
    return EXIT_OK


def run_split(args: argparse.Namespace, config: AppConfig) -> int:
    title = args.title or parse_folder_title(args.directory.name)
    if args.seasons:
        episodes = detect_episodes(args.directory, args.pattern)
        plan = plan_season_links(split_merged_seasons(episodes, args.seasons), args.destination, title)
    else:
        groups = group_files(_video_files(args.directory))
        plan = plan_group_links(groups, args.directory, args.destination)

    if args.dry_run:
        for item in plan:
            CONSOLE.print(f"{item.destination} -> {item.source.name}")
        return EXIT_OK

    results = create_links(plan)
    created = sum(1 for _, result in results if result.created)
    LOGGER.info(
        render_fields_block(
            "Split Series",
            {
                "Source": args.directory,
                "Destination": args.destination,
                "Links Created": created,
                "Links Skipped": len(results) - created,
            },
        )
    )
    return EXIT_OK if created == len(results) else EXIT_ERROR


# Commands on tracked series


def run_add(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        series = tracker.add_series(
            args.nickname,
            args.series_id,
            path=args.path,
            pattern=args.pattern,
            episodes=args.episodes,
        )
        CONSOLE.print(f"[green]✓ Tracking {series.nickname} in {series.full_path(config.settings.series_dir)}[/green]")
    return EXIT_OK


def run_set(args: argparse.Namespace, config: AppConfig) -> int:
    params = parse_set_tokens(args.assignments)
    with _open_tracker(args, config) as tracker:
        if params.is_empty and args.episodes is None:
            CONSOLE.print("[yellow]Nothing to change[/yellow]")
            return EXIT_ERROR
        if not params.is_empty:
            tracker.update_series(args.nickname, params)
        if args.episodes is not None:
            tracker.set_episode_count(args.nickname, args.episodes)
        series = tracker.get(args.nickname)
        _renderer().print(_renderer().render_state_table(series, tracker.state(series)))
    return EXIT_OK


def run_remove(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        tracker.remove_series(args.nickname)
    CONSOLE.print(f"Stopped tracking {args.nickname}")
    return EXIT_OK


def run_list(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        _renderer().print(_renderer().render_series_table(tracker.list_series()))
    return EXIT_OK


def run_episodes(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        series = tracker.get(args.series)
        episodes = tracker.episodes(series.nickname)
        renderer = _renderer()
        renderer.print(renderer.render_episode_table(series.nickname, episodes, tracker.state(series).progress))
    return EXIT_OK


def run_watched(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        _report_result(tracker.episode_completed(args.series))
    return EXIT_OK


def run_regress(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        _report_result(tracker.episode_regressed(args.series))
    return EXIT_OK


def run_complete(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        _report_result(tracker.series_completed(args.series))
    return EXIT_OK


def run_progress(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        _report_result(tracker.set_progress(args.series, args.progress))
    return EXIT_OK


def run_status(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        if args.status is None:
            series = tracker.get(args.series)
            _renderer().print(_renderer().render_state_table(series, tracker.state(series)))
            return EXIT_OK
        _report_result(tracker.change_status(args.series, WatchStatus.parse(args.status)))
    return EXIT_OK


def run_play(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        for result in tracker.play(args.series, count=args.count):
            _report_result(result)
    return EXIT_OK


# Sync


def run_pending(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        _renderer().print(_renderer().render_pending_table(tracker.pending()))
    return EXIT_OK


def run_sync(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        results = tracker.sync_pending()
        if not results:
            CONSOLE.print("[dim]Nothing to sync[/dim]")
            return EXIT_OK
        _renderer().print(_renderer().render_sync_table(results))
    failed = any(outcome is not SyncOutcome.SYNCED for _, outcome in results)
    return EXIT_ERROR if failed else EXIT_OK


def run_watch(args: argparse.Namespace, config: AppConfig) -> int:
    with _open_tracker(args, config) as tracker:
        watcher = SeriesDirectoryWatcher(tracker, config.settings.watcher, nicknames=args.series or None)
        stop = threading.Event()
        try:
            watcher.run_forever(stop)
        except KeyboardInterrupt:
            stop.set()
            LOGGER.info("Watcher stopped")
    return EXIT_OK


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {number}")
    return number


def _non_negative_int(value: str) -> int:
    if value == "0":
        return 0
    return _positive_int(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="seriestrack", description="Track watched episodes of local series.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="Path to the YAML config file")
    parser.add_argument("--offline", action="store_true", help="Queue remote updates instead of sending them")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Detect the episodes in a directory")
    scan.add_argument("directory", type=Path)
    scan.add_argument("--pattern", help="Filename pattern; * matches anything, # is the episode number")
    scan.set_defaults(handler=run_scan)

    groups = subparsers.add_parser("groups", help="Show the separate series mixed in a directory")
    groups.add_argument("directory", type=Path)
    groups.set_defaults(handler=run_groups)

    split = subparsers.add_parser("split", help="Link the series of a directory into separate directories")
    split.add_argument("directory", type=Path)
    split.add_argument("destination", type=Path)
    split.add_argument("--seasons", type=_positive_int, nargs="+", help="Episode counts of merged seasons")
    split.add_argument("--pattern", help="Filename pattern used with --seasons")
    split.add_argument("--title", help="Title used for season directories")
    split.add_argument("--dry-run", action="store_true", help="Only print the planned links")
    split.set_defaults(handler=run_split)

    add = subparsers.add_parser("add", help="Start tracking a series")
    add.add_argument("nickname")
    add.add_argument("series_id", type=_positive_int)
    add.add_argument("--path", type=Path, help="Series directory (default: closest match in series_dir)")
    add.add_argument("--pattern")
    add.add_argument("--episodes", type=_positive_int, help="Total number of episodes")
    add.set_defaults(handler=run_add)

    set_parser = subparsers.add_parser("set", help="Change id=, path= or pattern= of a series")
    set_parser.add_argument("nickname")
    set_parser.add_argument("assignments", nargs="*", metavar="key=value")
    set_parser.add_argument("--episodes", type=_positive_int, help="Total number of episodes")
    set_parser.set_defaults(handler=run_set)

    remove = subparsers.add_parser("remove", help="Stop tracking a series")
    remove.add_argument("nickname")
    remove.set_defaults(handler=run_remove)

    list_parser = subparsers.add_parser("list", help="List tracked series")
    list_parser.set_defaults(handler=run_list)

    def add_series_option(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("-s", "--series", help="Series nickname (default: last watched)")

    episodes = subparsers.add_parser("episodes", help="List the episodes of a tracked series")
    add_series_option(episodes)
    episodes.set_defaults(handler=run_episodes)

    watched = subparsers.add_parser("watched", help="Count one more episode as watched")
    add_series_option(watched)
    watched.set_defaults(handler=run_watched)

    regress = subparsers.add_parser("regress", help="Take back the last watched episode")
    add_series_option(regress)
    regress.set_defaults(handler=run_regress)

    complete = subparsers.add_parser("complete", help="Mark the series completed")
    add_series_option(complete)
    complete.set_defaults(handler=run_complete)

    progress = subparsers.add_parser("progress", help="Set the number of watched episodes")
    progress.add_argument("progress", type=_non_negative_int)
    add_series_option(progress)
    progress.set_defaults(handler=run_progress)

    status = subparsers.add_parser("status", help="Show or change the watch status")
    status.add_argument("status", nargs="?", help="watching, completed, on_hold, dropped, plan_to_watch, rewatching")
    add_series_option(status)
    status.set_defaults(handler=run_status)

    play = subparsers.add_parser("play", help="Play the next unwatched episode")
    play.add_argument("--count", type=_positive_int, default=1, help="Episodes to play back to back")
    add_series_option(play)
    play.set_defaults(handler=run_play)

    pending = subparsers.add_parser("pending", help="Show changes waiting for the remote")
    pending.set_defaults(handler=run_pending)

    sync = subparsers.add_parser("sync", help="Send queued changes to the remote")
    sync.set_defaults(handler=run_sync)

    watch = subparsers.add_parser("watch", help="Rescan series directories when files change")
    watch.add_argument("series", nargs="*", help="Nicknames to watch (default: all)")
    watch.set_defaults(handler=run_watch)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        LOGGER.error("Failed to load config: %s", exc)
        return EXIT_ERROR

    try:
        return args.handler(args, config)
    except SeriesTrackError as exc:
        LOGGER.error("%s", exc)
        return EXIT_ERROR
    except ValueError as exc:
        LOGGER.error("Invalid value: %s", exc)
        return EXIT_ERROR
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
