"""Seriestrack core package.

The package is organized into focused modules:

- **pattern**: Wildcard filename patterns (``*`` and ``#``) and matcher chains
- **heuristics**: Built-in regex rules used when a series has no pattern
- **scanner**: Episode discovery for one series directory
- **grouper**: Splitting mixed directories into series, auxiliaries and seasons
- **status**: Pure watch status transitions
- **sync**: Local-first synchronization with an offline queue
- **remote**: HTTP and offline transports for the remote watch list
- **persistence**: SQLite storage of series, states and pending changes
- **tracker**: High level operations used by the command line

The command line entry point lives in ``seriestrack.cli``.
"""

from .pattern import InvalidPattern, NoMatch, compile_pattern
from .scanner import detect_episodes, scan
from .status import StatusSettings, advance
from .sync import SyncCoordinator
from .tracker import Tracker
from .version import __version__

__all__ = [
    "__version__",
    "InvalidPattern",
    "NoMatch",
    "StatusSettings",
    "SyncCoordinator",
    "Tracker",
    "advance",
    "compile_pattern",
    "detect_episodes",
    "scan",
]
