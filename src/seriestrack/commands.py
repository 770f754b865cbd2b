from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .models import SeriesTrackError

SET_KEYS = ("id", "path", "pattern")


class CommandParseError(SeriesTrackError):
    """Raised when command arguments cannot be parsed."""


@dataclass(frozen=True, slots=True)
class SeriesParameters:
    series_id: Optional[int] = None
    path: Optional[Path] = None
    pattern: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.series_id is None and self.path is None and self.pattern is None


def parse_set_command(text: str) -> SeriesParameters:
    """Parse ``key=value`` tokens such as ``id=21 path="My Show" pattern="ep#"``.

    Keys may appear in any order and any subset; a repeated key keeps its
    last value.
    """
    try:
        tokens = shlex.split(text)
    except ValueError as exc:
        raise CommandParseError(f"Unable to parse arguments: {exc}") from exc
    return parse_set_tokens(tokens)


def parse_set_tokens(tokens: list[str]) -> SeriesParameters:
    values: dict[str, str] = {}
    for token in tokens:
        key, separator, value = token.partition("=")
        key = key.strip().lower()
        if not separator:
            raise CommandParseError(f"Expected key=value, got {token!r}")
        if key not in SET_KEYS:
            raise CommandParseError(f"Unknown key {key!r}; expected one of: {', '.join(SET_KEYS)}")
        values[key] = value

    series_id: Optional[int] = None
    if "id" in values:
        try:
            series_id = int(values["id"])
        except ValueError as exc:
            raise CommandParseError(f"'id' must be an integer, got {values['id']!r}") from exc
        if series_id <= 0:
            raise CommandParseError(f"'id' must be positive, got {series_id}")

    return SeriesParameters(
        series_id=series_id,
        path=Path(values["path"]).expanduser() if "path" in values else None,
        pattern=values.get("pattern"),
    )


__all__ = ["CommandParseError", "SeriesParameters", "parse_set_command", "parse_set_tokens"]
