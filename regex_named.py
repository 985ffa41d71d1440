#!/usr/bin/env python3
"""
Named capture groups for Python's re module.

Wraps a compiled pattern with lookups that return capture groups keyed by
name instead of by position:

    find_named              find_index_named
    find_all_named          find_all_index_named

Each works for str patterns (text subjects) and bytes patterns (bytes
subjects), mirroring re.Pattern.search and re.Pattern.finditer.

Example:

    rn = compile(r'(?P<name>\\w+) (?P<age>\\d+)')
    m0, m = rn.find_named("foo 42")

m0 is "foo 42" and m is {"name": "foo", "age": "42"}. A named group that
did not take part in the match maps to an empty value (or to (-1, -1) for
the index forms) instead of being left out.
"""

import argparse
import json
import logging
import re
import sys
from dataclasses import dataclass, field
from itertools import islice
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

logger = logging.getLogger(__name__)

AnyStr = Union[str, bytes]

# =============================================================================
# Errors
# =============================================================================

class PatternError(ValueError):
    """A pattern rejected while resolving its group names."""


class TrailingEscape(PatternError):
    """The pattern ends with an unterminated backslash."""

    def __init__(self, offset: int):
        super().__init__(f"trailing backslash at end of expression (position {offset})")
        self.offset = offset


class InvalidEscape(PatternError):
    """The bytes after a backslash are not valid UTF-8."""

    def __init__(self, offset: int):
        super().__init__(f"incorrect character after backslash (position {offset})")
        self.offset = offset


class DuplicateName(PatternError):
    """A group name is declared more than once."""

    def __init__(self, name: str, offset: int):
        super().__init__(f"duplicate group name {name!r} (position {offset})")
        self.name = name
        self.offset = offset


class GroupNumberingMismatch(PatternError):
    """Scanned group numbering disagrees with the compiled pattern."""


# =============================================================================
# Group Descriptors
# =============================================================================

@dataclass(frozen=True)
class Unnamed:
    """A capturing group without a name; still takes a group number."""
    offset: int

    def __repr__(self):
        return f"Unnamed(@{self.offset})"


@dataclass(frozen=True)
class Named:
    """A capturing group opened with (?P<name>...)."""
    name: str
    offset: int

    def __repr__(self):
        return f"Named({self.name!r}@{self.offset})"


GroupDescriptor = Union[Unnamed, Named]


# =============================================================================
# Pattern Scanner
# =============================================================================

# Marker patterns are matched right after an opening '('.
_NAMED_MARKER = re.compile(r'\?P<(.*?)>')
_COMMENT_MARKER = re.compile(r'\?#')
_CONDITION_MARKER = re.compile(r'\?\([^)]*\)')
# (?flags) applies globally, (?flags-flags:...) only to its own group.
_FLAGS_MARKER = re.compile(r'\?([aiLmsux]*)(?:-([imsx]*))?([:)])')
# Every other (?...) extension is non-capturing in re.
_NON_CAPTURING_MARKER = re.compile(r'\?:?')


class _VerboseRestart(Exception):
    """A global (?x) was found after scanning had started."""


class GroupScanner:
    """
    Single left-to-right scan that lists the capturing groups of a pattern.

    Only group-opening syntax is interpreted; everything else is skipped.
    Escapes, character classes, (?#...) comments, conditional references
    and verbose-mode comments are consumed without opening groups, so the
    numbering matches the one re assigns.

    Each open group pushes the verbose state of its enclosing level onto
    the pending stack; its closer pops and restores it, so scoped (?x:...)
    and (?-x:...) groups only affect their own body. Like re, a global (?x)
    restarts the scan in verbose mode. Unbalanced parentheses are left for
    re to report.
    """

    def __init__(self, pattern: AnyStr, verbose: bool = False):
        if isinstance(pattern, bytes):
            # Undecodable bytes survive as lone surrogates
            self.text = pattern.decode('utf-8', 'surrogateescape')
            self.from_bytes = True
        else:
            self.text = pattern
            self.from_bytes = False
        self.length = len(self.text)
        self.initial_verbose = verbose
        self._reset()

    def _reset(self):
        self.pos = 0
        self.pending: List[bool] = []
        self.verbose = self.initial_verbose

    def scan(self) -> List[GroupDescriptor]:
        try:
            return self._scan()
        except _VerboseRestart:
            self.initial_verbose = True
            self._reset()
            return self._scan()

    def _scan(self) -> List[GroupDescriptor]:
        groups = []
        while self.pos < self.length:
            ch = self._next()
            if ch == ')' and self.pending:
                self.verbose = self.pending.pop()
            elif ch == '\\':
                self._skip_escaped()
            elif ch == '[':
                self._skip_class()
            elif ch == '(':
                group = self._open_group()
                if group is not None:
                    groups.append(group)
            elif ch == '#' and self.verbose:
                self._skip_line_comment()
        return groups

    def _peek(self) -> Optional[str]:
        if self.pos < self.length:
            return self.text[self.pos]
        return None

    def _next(self) -> str:
        ch = self.text[self.pos]
        self.pos += 1
        return ch

    def _source_offset(self, pos: int) -> int:
        """Offset of pos in the caller's pattern (bytes for bytes patterns)."""
        if self.from_bytes:
            return len(self.text[:pos].encode('utf-8', 'surrogateescape'))
        return pos

    def _skip_escaped(self):
        """Consume the character after a backslash, whatever it is."""
        start = self.pos - 1
        ch = self._peek()
        if ch is None:
            raise TrailingEscape(self._source_offset(start))
        if self.from_bytes and '\udc80' <= ch <= '\udcff':
            raise InvalidEscape(self._source_offset(start))
        self.pos += 1

    def _open_group(self) -> Optional[GroupDescriptor]:
        offset = self._source_offset(self.pos - 1)
        self.pending.append(self.verbose)

        m = _NAMED_MARKER.match(self.text, self.pos)
        if m:
            self.pos = m.end()
            return Named(m.group(1), offset)

        m = _COMMENT_MARKER.match(self.text, self.pos)
        if m:
            self.pos = m.end()
            self._skip_comment()
            return None

        m = _FLAGS_MARKER.match(self.text, self.pos)
        if m:
            self.pos = m.end()
            added, removed, kind = m.groups()
            if kind == ')':
                # Global flags: the group is already closed
                self.verbose = self.pending.pop()
                if 'x' in added and not self.verbose:
                    raise _VerboseRestart()
            elif 'x' in added:
                self.verbose = True
            elif removed and 'x' in removed:
                self.verbose = False
            return None

        m = _CONDITION_MARKER.match(self.text, self.pos) or _NON_CAPTURING_MARKER.match(self.text, self.pos)
        if m:
            self.pos = m.end()
            return None

        return Unnamed(offset)

    def _skip_comment(self):
        """Skip a (?#...) body, including its closer."""
        while self.pos < self.length:
            ch = self._next()
            if ch == '\\':
                self._skip_escaped()
            elif ch == ')':
                self.verbose = self.pending.pop()
                return

    def _skip_class(self):
        """Skip a [...] set; a leading ']' is literal."""
        if self._peek() == '^':
            self.pos += 1
        if self._peek() == ']':
            self.pos += 1
        while self.pos < self.length:
            ch = self._next()
            if ch == '\\':
                self._skip_escaped()
            elif ch == ']':
                return

    def _skip_line_comment(self):
        end = self.text.find('\n', self.pos)
        self.pos = self.length if end < 0 else end + 1


def scan_groups(pattern: AnyStr, flags: int = 0) -> List[GroupDescriptor]:
    """List the capturing groups of pattern in open-paren order."""
    return GroupScanner(pattern, verbose=bool(flags & re.VERBOSE)).scan()


# =============================================================================
# Group Table Builder
# =============================================================================

def build_name_table(descriptors: Iterable[GroupDescriptor]) -> Dict[str, int]:
    """Map each group name to its 1-based group number.

    Unnamed groups are not entered but still use up a number. Raises
    DuplicateName on the second declaration of a name.
    """
    table: Dict[str, int] = {}
    for index, group in enumerate(descriptors, start=1):
        if isinstance(group, Unnamed):
            continue
        if group.name in table:
            raise DuplicateName(group.name, group.offset)
        table[group.name] = index
    return table


# =============================================================================
# Match Projection
# =============================================================================

class NamedMatch(NamedTuple):
    """The whole match and the named groups of a single match."""
    base: object
    groups: Dict[str, object]


class NamedMatches(NamedTuple):
    """Parallel lists for repeated matches, in match order."""
    bases: list
    groups: list

    def pairs(self) -> List[NamedMatch]:
        return [NamedMatch(base, groups) for base, groups in zip(self.bases, self.groups)]


def group_value(match: re.Match, index: int) -> AnyStr:
    """Text of group index, or an empty value if it did not participate."""
    value = match.group(index)
    if value is None:
        return match.string[:0]
    return value


def group_span(match: re.Match, index: int) -> Tuple[int, int]:
    """(start, end) of group index; (-1, -1) if it did not participate."""
    return match.span(index)


Extract = Callable[[re.Match, int], object]


def project_match(match: Optional[re.Match], names: Mapping[str, int],
                  extract: Extract) -> Optional[NamedMatch]:
    """Key a single match by group name. None means there was no match."""
    if match is None:
        return None
    groups = {name: extract(match, index) for name, index in names.items()}
    return NamedMatch(extract(match, 0), groups)


def project_all(matches: Iterable[re.Match], names: Mapping[str, int],
                extract: Extract) -> NamedMatches:
    """Key every match by group name, keeping order and count."""
    bases = []
    groups = []
    for match in matches:
        base, named = project_match(match, names, extract)
        bases.append(base)
        groups.append(named)
    return NamedMatches(bases, groups)


# =============================================================================
# Named Pattern
# =============================================================================

@dataclass(frozen=True, eq=False)
class NamedPattern:
    """
    A compiled re pattern together with its name -> group number table.

    Immutable after construction, so a single instance can be shared between
    threads. Attributes not defined here (search, match, finditer, sub,
    pattern, flags, ...) are delegated to the compiled pattern unchanged.
    """
    matcher: re.Pattern
    names: Mapping[str, int]
    descriptors: Tuple[GroupDescriptor, ...] = field(default=(), repr=False)

    def __getattr__(self, attr):
        if attr == 'matcher' or attr.startswith('__'):
            raise AttributeError(attr)
        return getattr(self.matcher, attr)

    @property
    def group_names(self) -> List[str]:
        """Names in group-number order."""
        return sorted(self.names, key=self.names.__getitem__)

    def find_named(self, subject: AnyStr) -> Optional[NamedMatch]:
        """First match as (whole match, {name: group text})."""
        return project_match(self.matcher.search(subject), self.names, group_value)

    def find_index_named(self, subject: AnyStr) -> Optional[NamedMatch]:
        """First match as ((start, end), {name: (start, end)})."""
        return project_match(self.matcher.search(subject), self.names, group_span)

    def find_all_named(self, subject: AnyStr, limit: int = -1) -> NamedMatches:
        """Successive matches as parallel lists of texts and name maps.

        A negative limit means no limit.
        """
        return project_all(self._search_all(subject, limit), self.names, group_value)

    def find_all_index_named(self, subject: AnyStr, limit: int = -1) -> NamedMatches:
        """Successive matches as parallel lists of spans and name -> span maps."""
        return project_all(self._search_all(subject, limit), self.names, group_span)

    def _search_all(self, subject: AnyStr, limit: int) -> Iterable[re.Match]:
        matches = self.matcher.finditer(subject)
        if limit >= 0:
            matches = islice(matches, limit)
        return matches


def _check_numbering(matcher: re.Pattern, descriptors: List[GroupDescriptor],
                     names: Dict[str, int]):
    if matcher.groups != len(descriptors):
        raise GroupNumberingMismatch(
            f"found {len(descriptors)} capturing groups, re compiled {matcher.groups}")
    if dict(matcher.groupindex) != names:
        raise GroupNumberingMismatch(
            f"group names {names} do not match re's {dict(matcher.groupindex)}")


def compile(pattern: AnyStr, flags: int = 0) -> NamedPattern:
    """Compile pattern and resolve its group names.

    Raises a PatternError subclass if the group syntax is malformed or a name
    is duplicated, and re.error if re rejects the pattern.
    """
    descriptors = scan_groups(pattern, flags)
    names = build_name_table(descriptors)
    matcher = re.compile(pattern, flags)
    _check_numbering(matcher, descriptors, names)
    logger.debug("Compiled %r: %d groups, names %s", pattern, len(descriptors), names)
    return NamedPattern(matcher, MappingProxyType(names), tuple(descriptors))


def compile_or_abort(pattern: AnyStr, flags: int = 0) -> NamedPattern:
    """Like compile, but any failure becomes a RuntimeError.

    Meant for fixed patterns built at import time, never for user input.
    """
    try:
        return compile(pattern, flags)
    except (ValueError, re.error) as e:
        raise RuntimeError(f"regex_named: compile({_quote(pattern)}): {e}") from e


must_compile = compile_or_abort


def _quote(pattern: AnyStr) -> str:
    if isinstance(pattern, str) and '`' not in pattern and pattern.isprintable():
        return f"`{pattern}`"
    return repr(pattern)


# =============================================================================
# Result Rendering
# =============================================================================

def _plain(value):
    """Make a projected value JSON friendly."""
    if isinstance(value, bytes):
        return value.decode('utf-8', 'replace')
    if isinstance(value, tuple):
        return list(value)
    return value


def _plain_match(base, groups) -> dict:
    return {
        "match": _plain(base),
        "groups": {name: _plain(value) for name, value in groups.items()},
    }


def collect_results(named: NamedPattern, subject: AnyStr, find_all: bool = False,
                    limit: int = -1, index: bool = False) -> dict:
    """Run one of the four lookups and return plain data.

    Single lookups give {"match": ..., "groups": {...}} or {"match": None};
    repeated lookups give {"matches": [...]}.
    """
    if find_all:
        if index:
            result = named.find_all_index_named(subject, limit)
        else:
            result = named.find_all_named(subject, limit)
        return {"matches": [_plain_match(base, groups) for base, groups in result.pairs()]}

    result = named.find_index_named(subject) if index else named.find_named(subject)
    if result is None:
        return {"match": None}
    return _plain_match(result.base, result.groups)


# =============================================================================
# Main
# =============================================================================

def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Match a regular expression and report capture groups by name"
    )
    parser.add_argument(
        "--pattern", "-p",
        required=True,
        help="The regular expression, using (?P<name>...) for named groups"
    )
    parser.add_argument(
        "--subject", "-s",
        help="Text to search (default: stdin)"
    )
    parser.add_argument("--all", "-a", action="store_true", help="Report every match, not just the first")
    parser.add_argument("--limit", "-n", type=int, default=-1,
                        help="Maximum number of matches with --all (default: no limit)")
    parser.add_argument("--index", "-i", action="store_true", help="Report (start, end) offsets instead of text")
    parser.add_argument("--bytes", "-b", action="store_true", help="Match UTF-8 bytes instead of text")
    parser.add_argument("--ignore-case", action="store_true", help="Compile with re.IGNORECASE")
    parser.add_argument("--verbose-regex", "-x", action="store_true", help="Compile with re.VERBOSE")

    args = parser.parse_args(argv)

    flags = 0
    if args.ignore_case:
        flags |= re.IGNORECASE
    if args.verbose_regex:
        flags |= re.VERBOSE

    pattern = args.pattern.encode('utf-8') if args.bytes else args.pattern
    try:
        named = compile(pattern, flags)
    except (ValueError, re.error) as e:
        print(f"Error compiling pattern: {e}", file=sys.stderr)
        sys.exit(1)

    subject = args.subject if args.subject is not None else sys.stdin.read()
    if args.bytes:
        subject = subject.encode('utf-8')

    result = collect_results(named, subject, find_all=args.all, limit=args.limit, index=args.index)
    print(json.dumps(result, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
