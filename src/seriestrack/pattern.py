"""Wildcard episode patterns.

A pattern is a compact, user-facing grammar for locating the episode number
inside a filename:

- ``*`` skips ahead to the earliest place the next element can match
- ``#`` captures one or more ASCII digits as the episode number
- ``\\*``, ``\\#`` and ``\\\\`` match the literal character
- anything else matches itself, case-insensitively

Patterns are compiled once into a token sequence and evaluated by a small,
deterministic interpreter. Matching is anchored at the start of the filename
and never backtracks past the first continuation a wildcard finds.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from .models import SeriesTrackError

WILDCARD_CHAR = "*"
MARKER_CHAR = "#"
ESCAPE_CHAR = "\\"
_ESCAPABLE = frozenset({WILDCARD_CHAR, MARKER_CHAR, ESCAPE_CHAR})


class InvalidPattern(SeriesTrackError):
    """Raised when pattern text cannot be compiled."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class NoMatch(SeriesTrackError):
    """Raised when a filename (or a whole directory) does not satisfy a matcher."""


class Matcher(Protocol):
    def try_match(self, filename: str) -> Optional[int]: ...

    def match(self, filename: str) -> int: ...


class TokenKind(Enum):
    LITERAL = "literal"
    WILDCARD = "wildcard"
    MARKER = "marker"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    char: str = ""

    def starts_at(self, text: str, index: int) -> bool:
        """Whether this token could begin matching at ``index``."""
        if index >= len(text):
            return False
        if self.kind is TokenKind.MARKER:
            return _is_digit(text[index])
        if self.kind is TokenKind.LITERAL:
            return _same_char(text[index], self.char)
        return True


def _is_digit(char: str) -> bool:
    return "0" <= char <= "9"


def _same_char(left: str, right: str) -> bool:
    return left == right or left.lower() == right.lower()


def tokenize(text: str) -> tuple[Token, ...]:
    if not text:
        raise InvalidPattern(text, "pattern is empty")

    tokens: list[Token] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char == ESCAPE_CHAR:
            if index + 1 >= len(text):
                raise InvalidPattern(text, "dangling escape at end of pattern")
            escaped = text[index + 1]
            if escaped not in _ESCAPABLE:
                raise InvalidPattern(text, f"unknown escape sequence '\\{escaped}' at position {index}")
            tokens.append(Token(TokenKind.LITERAL, escaped))
            index += 2
            continue
        if char == WILDCARD_CHAR:
            # Adjacent wildcards behave exactly like a single one
            if not tokens or tokens[-1].kind is not TokenKind.WILDCARD:
                tokens.append(Token(TokenKind.WILDCARD))
        elif char == MARKER_CHAR:
            tokens.append(Token(TokenKind.MARKER))
        else:
            tokens.append(Token(TokenKind.LITERAL, char))
        index += 1

    if not any(token.kind is TokenKind.MARKER for token in tokens):
        raise InvalidPattern(text, f"pattern must contain at least one '{MARKER_CHAR}' episode marker")
    return tuple(tokens)


@dataclass(frozen=True, slots=True)
class PatternMatcher:
    """Compiled wildcard pattern."""

    text: str
    tokens: tuple[Token, ...]

    @property
    def marker_count(self) -> int:
        return sum(1 for token in self.tokens if token.kind is TokenKind.MARKER)

    def try_match(self, filename: str) -> Optional[int]:
        position = 0
        episode: Optional[int] = None
        tokens = self.tokens

        for index, token in enumerate(tokens):
            if token.kind is TokenKind.LITERAL:
                if not token.starts_at(filename, position):
                    return None
                position += 1
            elif token.kind is TokenKind.MARKER:
                end = position
                while end < len(filename) and _is_digit(filename[end]):
                    end += 1
                if end == position:
                    return None
                episode = int(filename[position:end])
                position = end
            else:
                if index + 1 >= len(tokens):
                    position = len(filename)
                    continue
                following = tokens[index + 1]
                while position < len(filename) and not following.starts_at(filename, position):
                    position += 1
                if position >= len(filename):
                    return None

        return episode

    def match(self, filename: str) -> int:
        episode = self.try_match(filename)
        if episode is None:
            raise NoMatch(f"{filename!r} does not match pattern {self.text!r}")
        return episode

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class MatcherChain:
    """Ordered matchers; the first one that matches a filename wins."""

    matchers: tuple[Matcher, ...]

    @classmethod
    def of(cls, matchers: Iterable[Matcher]) -> "MatcherChain":
        return cls(tuple(matchers))

    def try_match(self, filename: str) -> Optional[int]:
        for matcher in self.matchers:
            episode = matcher.try_match(filename)
            if episode is not None:
                return episode
        return None

    def match(self, filename: str) -> int:
        episode = self.try_match(filename)
        if episode is None:
            raise NoMatch(f"{filename!r} does not match any of {len(self.matchers)} matcher(s)")
        return episode


def compile_pattern(text: str) -> PatternMatcher:
    """Compile wildcard pattern text into a reusable matcher."""
    return PatternMatcher(text=text, tokens=tokenize(text))


__all__ = [
    "InvalidPattern",
    "Matcher",
    "MatcherChain",
    "NoMatch",
    "PatternMatcher",
    "Token",
    "TokenKind",
    "compile_pattern",
    "tokenize",
]
