"""Built-in episode detection used when a series has no explicit pattern.

The rules live in ``default_patterns.yaml`` next to this module. Each rule is a
regular expression with an ``episode`` named group; regex fragments declared
under ``regex_tokens`` can be referenced as ``<name>`` placeholders.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from typing import Any, Optional

from .pattern import InvalidPattern, MatcherChain, NoMatch
from .utils import load_yaml_file

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"(?<!\?P)<([A-Za-z0-9_]+)>")
EPISODE_GROUP = "episode"


@dataclass(frozen=True, slots=True)
class RegexMatcher:
    """A heuristic rule backed by a regular expression."""

    name: str
    regex: re.Pattern[str]
    description: Optional[str] = None

    @classmethod
    def compile(cls, name: str, pattern: str, description: Optional[str] = None) -> "RegexMatcher":
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as exc:
            raise InvalidPattern(pattern, f"rule '{name}' is not a valid regex: {exc}") from exc
        if EPISODE_GROUP not in compiled.groupindex:
            raise InvalidPattern(pattern, f"rule '{name}' must define a '(?P<{EPISODE_GROUP}>...)' group")
        return cls(name=name, regex=compiled, description=description)

    def try_match(self, filename: str) -> Optional[int]:
        found = self.regex.search(filename.replace("_", " "))
        if found is None:
            return None
        return int(found.group(EPISODE_GROUP))

    def match(self, filename: str) -> int:
        episode = self.try_match(filename)
        if episode is None:
            raise NoMatch(f"{filename!r} does not match rule {self.name!r}")
        return episode


def resolve_regex_tokens(raw_tokens: dict[str, str]) -> dict[str, str]:
    resolved: dict[str, str] = {}

    def resolve(name: str, stack: list[str]) -> str:
        if name in resolved:
            return resolved[name]
        if name not in raw_tokens:
            raise ValueError(f"Unknown regex token <{name}> referenced")
        if name in stack:
            cycle = " -> ".join(stack + [name])
            raise ValueError(f"Circular regex token reference detected: {cycle}")

        def replace(match: re.Match[str]) -> str:
            return resolve(match.group(1), stack + [name])

        expanded = PLACEHOLDER_RE.sub(replace, raw_tokens[name])
        resolved[name] = expanded
        return expanded

    for token_name in raw_tokens:
        resolve(token_name, [])

    return resolved


def expand_placeholders(text: str, tokens: dict[str, str]) -> str:
    def replace(match: re.Match[str]) -> str:
        token_name = match.group(1)
        if token_name not in tokens:
            raise ValueError(f"Unknown regex token <{token_name}> referenced in rule: {text}")
        return tokens[token_name]

    return PLACEHOLDER_RE.sub(replace, text)


def build_rules(data: dict[str, Any]) -> list[RegexMatcher]:
    raw_tokens = data.get("regex_tokens") or {}
    if not isinstance(raw_tokens, dict):
        raise ValueError("'regex_tokens' must be a mapping of token -> regex fragment when provided")
    tokens = resolve_regex_tokens({str(key): str(value) for key, value in raw_tokens.items()})

    raw_rules = data.get("rules")
    if not isinstance(raw_rules, list) or not raw_rules:
        raise ValueError("'rules' must be a non-empty list")

    rules: list[RegexMatcher] = []
    for index, entry in enumerate(raw_rules):
        if not isinstance(entry, dict) or not isinstance(entry.get("regex"), str):
            raise ValueError(f"'rules[{index}]' must be a mapping with a 'regex' string")
        name = str(entry.get("name") or f"rule-{index}")
        pattern = expand_placeholders(entry["regex"], tokens)
        rules.append(RegexMatcher.compile(name, pattern, entry.get("description")))
    return rules


@lru_cache
def _load_default_rules() -> tuple[RegexMatcher, ...]:
    with resources.as_file(resources.files(__package__) / "default_patterns.yaml") as path:
        data = load_yaml_file(path)
    rules = tuple(build_rules(data))
    LOGGER.debug("Loaded %d built-in episode rules: %s", len(rules), ", ".join(rule.name for rule in rules))
    return rules


def default_rules() -> tuple[RegexMatcher, ...]:
    return _load_default_rules()


def compile_default() -> MatcherChain:
    """Return the built-in matcher chain."""
    return MatcherChain(default_rules())


__all__ = [
    "RegexMatcher",
    "build_rules",
    "compile_default",
    "default_rules",
    "expand_placeholders",
    "resolve_regex_tokens",
]
