"""Playing episodes and turning playback into progress events."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Optional

from .models import SeriesTrackError

LOGGER = logging.getLogger(__name__)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class PlayerError(SeriesTrackError):
    """The media player could not be started."""


class ProgressThreshold:
    """Turns "percent watched" samples into a single episode-completed event.

    A ``percent`` of 0 disables automatic progress; the event then only comes
    from a manual progress command.
    """

    def __init__(self, percent: float) -> None:
        if not 0.0 <= percent <= 1.0:
            raise ValueError(f"percent must be between 0 and 1, got {percent}")
        self.percent = percent
        self._fired = False

    @property
    def enabled(self) -> bool:
        return self.percent > 0.0

    @property
    def fired(self) -> bool:
        return self._fired

    def update(self, position: float, duration: float) -> bool:
        """Record a playback sample; True exactly once, when the threshold is crossed."""
        if not self.enabled or self._fired or duration <= 0:
            return False
        watched = min(max(position / duration, 0.0), 1.0)
        if watched < self.percent:
            return False
        self._fired = True
        LOGGER.debug("Watched %.0f%% of episode; counting it as completed", watched * 100)
        return True

    def reset(self) -> None:
        self._fired = False


def build_player_command(player: str, player_args: Sequence[str], path: Path) -> list[str]:
    return [player, *player_args, str(path)]


def play_file(command: Sequence[str], *, runner: Optional[Runner] = None) -> bool:
    """Run the player until it exits; True when it exited cleanly.

    Players without a position feed only report how they ended, so a clean
    exit is treated as the whole episode having been watched.
    """
    runner = runner or subprocess.run
    LOGGER.debug("Starting player: %s", " ".join(command))
    try:
        completed = runner(list(command), check=False)
    except FileNotFoundError as exc:
        raise PlayerError(f"Player {command[0]!r} was not found") from exc
    except OSError as exc:
        raise PlayerError(f"Unable to start {command[0]!r}: {exc}") from exc

    if completed.returncode != 0:
        LOGGER.warning("Player exited with status %d", completed.returncode)
        return False
    return True


__all__ = ["PlayerError", "ProgressThreshold", "build_player_command", "play_file"]
