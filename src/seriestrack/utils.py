from __future__ import annotations

import functools
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


NORMALIZE_PATTERN = re.compile(r"[^a-z0-9]+")
WORD_PATTERN = re.compile(r"[a-z0-9]+")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@functools.lru_cache(maxsize=2048)
def normalize_token(value: str) -> str:
    """Return a normalized token suitable for fuzzy comparisons."""
    return NORMALIZE_PATTERN.sub("", value.lower())


def words(value: str) -> list[str]:
    """Split text into lowercase alphanumeric words."""
    return WORD_PATTERN.findall(value.lower())


# Characters that are unsafe in a directory or file name on common filesystems
UNSAFE_FILENAME_PATTERN = re.compile(r'[\x00-\x1f/\\:*?"<>|]')


def sanitize_component(component: str, replacement: str = "_") -> str:
    """Make a series title usable as a single path component.

    Non-ASCII titles are kept as they are; only separators, reserved
    characters and control characters are replaced.
    """
    cleaned = UNSAFE_FILENAME_PATTERN.sub(replacement, component.strip())
    if replacement:
        cleaned = re.sub(f"{re.escape(replacement)}{{2,}}", replacement, cleaned).strip(replacement)
    if cleaned in {"", ".", ".."}:
        return "untitled"
    return cleaned


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def expand_path(value: str | Path) -> Path:
    text = os.path.expandvars(str(value))
    try:
        return Path(text).expanduser()
    except RuntimeError:
        # expanduser() fails for unknown users (~nobody); keep the literal path
        return Path(text)


def expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: expand_env(val) for key, val in value.items()}
    return value


def load_yaml_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a YAML mapping at the top level")
    return expand_env(data)


@dataclass
class LinkResult:
    created: bool
    reason: Optional[str] = None


def link_file(source: Path, destination: Path) -> LinkResult:
    """Create a symlink at ``destination`` pointing at ``source``.

    The source is never touched; an existing destination is left alone.
    """
    if not source.exists():
        return LinkResult(created=False, reason="missing-source")
    if destination.exists() or destination.is_symlink():
        return LinkResult(created=False, reason="destination-exists")

    try:
        ensure_directory(destination.parent)
        destination.symlink_to(source.resolve())
    except OSError as exc:
        return LinkResult(created=False, reason=str(exc))
    return LinkResult(created=True)


def parse_env_bool(value: Optional[str]) -> Optional[bool]:
    """Parse a boolean from an environment variable string.

    Returns None if value is None or not a recognized boolean string.
    """
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def env_bool(name: str) -> Optional[bool]:
    return parse_env_bool(os.getenv(name))
