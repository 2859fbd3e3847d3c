"""Glob-style matching for file paths and member names.

Patterns are translated once into anchored regular expressions. Separators are
normalized to '/' on both sides so Windows and POSIX paths behave the same.

Supported syntax:
    *       any run of characters except '/'
    **      any run of characters including '/' (zero or more segments)
    ?       exactly one character except '/'
    [...]   character class, passed through
"""
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Union

from loguru import logger


def normalize_path(path: str) -> str:
    """Normalize a path to forward slashes without redundant segments."""
    if not path:
        return ''
    normalized = path.replace('\\', '/')
    normalized = os.path.normpath(normalized).replace('\\', '/')
    return normalized


def glob_to_regex(pattern: str) -> str:
    """Translate a glob pattern into an anchored regular expression string.

    The result is not compiled here; malformed character classes surface as
    ``re.error`` when the caller compiles it.

    Args:
        pattern: Glob pattern using '/' or '\\' as separator

    Returns:
        Regular expression source anchored with ^ and $
    """
    pattern = pattern.replace('\\', '/')
    parts = []
    i = 0
    n = len(pattern)

    while i < n:
        char = pattern[i]
        if char == '*':
            if pattern.startswith('**', i):
                at_segment_start = i == 0 or pattern[i - 1] == '/'
                followed_by_slash = pattern.startswith('**/', i)
                if at_segment_start and followed_by_slash:
                    # "a/**/b" also matches "a/b"
                    parts.append('(?:.*/)?')
                    i += 3
                    continue
                if i + 2 == n and i > 0 and pattern[i - 1] == '/':
                    # "dir/**" also matches "dir" itself
                    parts.pop()
                    parts.append('(?:/.*)?')
                    i += 2
                    continue
                parts.append('.*')
                i += 2
                continue
            parts.append('[^/]*')
        elif char == '?':
            parts.append('[^/]')
        elif char == '[':
            end = pattern.find(']', i + 1)
            if end == -1:
                # Left unbalanced on purpose, compile() reports it
                parts.append('[')
            else:
                body = pattern[i + 1:end]
                if body.startswith('!'):
                    body = '^' + body[1:]
                parts.append('[' + body.replace('\\', '\\\\') + ']')
                i = end
        else:
            parts.append(re.escape(char))
        i += 1

    return '^' + ''.join(parts) + '$'


@dataclass(frozen=True)
class CompiledPattern:
    """A glob pattern together with its compiled matcher."""
    source: str
    regex: 're.Pattern[str]'
    basename_only: bool = False

    def matches(self, path: str) -> bool:
        normalized = path.replace('\\', '/')
        if self.regex.match(normalized):
            return True
        if self.basename_only:
            return bool(self.regex.match(normalized.rsplit('/', 1)[-1]))
        return False


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> Optional[CompiledPattern]:
    try:
        regex = re.compile(glob_to_regex(pattern))
    except re.error:
        return None
    # Patterns without a separator also match the final path segment
    basename_only = '/' not in pattern.replace('\\', '/')
    return CompiledPattern(source=pattern, regex=regex, basename_only=basename_only)


def compile_patterns(patterns: Iterable[str],
                     warnings: Optional[List[str]] = None) -> List[CompiledPattern]:
    """Compile glob patterns, dropping invalid ones.

    Args:
        patterns: Glob patterns to compile
        warnings: Optional list that receives one message per invalid pattern

    Returns:
        Compiled patterns in input order, invalid entries omitted
    """
    compiled = []
    for pattern in patterns or ():
        if not isinstance(pattern, str) or not pattern:
            continue
        result = _compile(pattern)
        if result is None:
            message = f"Invalid pattern skipped: {pattern!r}"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
            continue
        compiled.append(result)
    return compiled


def matches(path: str, patterns: Sequence[Union[str, CompiledPattern]]) -> bool:
    """Return True if ``path`` matches any of ``patterns``.

    An empty pattern list never matches. Invalid patterns are treated as
    non-matching and logged.
    """
    if not patterns or not path:
        return False
    for pattern in patterns:
        if isinstance(pattern, str):
            compiled = compile_patterns([pattern])
            if not compiled:
                continue
            pattern = compiled[0]
        if pattern.matches(path):
            return True
    return False


class PatternMatcher:
    """Reusable matcher over a fixed list of glob patterns."""

    def __init__(self, patterns: Iterable[str] = ()):
        self.warnings: List[str] = []
        self.sources = tuple(p for p in (patterns or ()) if isinstance(p, str) and p)
        self.compiled = compile_patterns(self.sources, self.warnings)

    def __bool__(self) -> bool:
        return bool(self.compiled)

    @property
    def invalid_patterns(self) -> List[str]:
        valid = {p.source for p in self.compiled}
        return [p for p in self.sources if p not in valid]

    def matches(self, *candidates: str) -> bool:
        """Return True if any candidate string matches any compiled pattern."""
        for candidate in candidates:
            if candidate and matches(candidate, self.compiled):
                return True
        return False
