"""
Textual patterns.

Two flavours:

    RegexPattern  — strict: the pattern must compile, or construction fails.
    TextPattern   — regex-or-literal: compile as a regex; if that fails, the
                    original string is used as a literal substring instead.

Both use Python ``re`` syntax, including inline flags such as ``(?i)``,
``(?m)`` and ``(?s)``.
"""

from __future__ import annotations

import logging
import re

from tripwire.core.rules.span import (
    LabeledSpan,
    Match,
    Matches,
    Span,
    labeled,
    unlabeled,
)

logger = logging.getLogger(__name__)


def _regex_labels(regex: re.Pattern[str]) -> frozenset[str]:
    """Capture labels a match of ``regex`` can carry (``"0"`` always)."""
    return frozenset({str(i) for i in range(regex.groups + 1)} | set(regex.groupindex))


def _regex_find_all(regex: re.Pattern[str], target: str) -> Matches:
    """
    Run ``regex`` over ``target``.

    A regex without groups yields plain spans. With groups, every match
    carries positional captures labeled ``"0"``..``"N"`` (``"0"`` being the
    whole match) plus one capture per named group that participated.
    """
    if regex.groups == 0:
        return unlabeled(Span(m.start(), m.end()) for m in regex.finditer(target))

    names = {idx: name for name, idx in regex.groupindex.items()}
    matches: list[Match] = []
    for m in regex.finditer(target):
        captures: list[LabeledSpan] = []
        for idx in range(regex.groups + 1):
            start, end = m.span(idx)
            if start < 0:
                continue
            span = Span(start, end)
            if idx in names:
                captures.append(LabeledSpan(names[idx], span))
            captures.append(LabeledSpan(str(idx), span))
        matches.append(Match(span=Span(m.start(), m.end()), captures=tuple(captures)))
    return labeled(matches)


class RegexPattern:
    """A strictly compiled regular expression. Raises ``re.error`` if invalid."""

    __slots__ = ("_regex",)

    def __init__(self, pattern: str) -> None:
        self._regex = re.compile(pattern)

    def as_str(self) -> str:
        return self._regex.pattern

    @property
    def capture_labels(self) -> frozenset[str]:
        return _regex_labels(self._regex)

    def __repr__(self) -> str:
        return f"RegexPattern({self.as_str()!r})"

    def find_all(self, target: str) -> Matches:
        return _regex_find_all(self._regex, target)

    def is_match(self, target: str) -> bool:
        return self._regex.search(target) is not None

    def is_exact_match(self, target: str) -> bool:
        return self._regex.fullmatch(target) is not None


class TextPattern:
    """
    A regex-or-literal pattern.

    ``TextPattern(".*")`` matches everything; ``TextPattern("a(")`` is not a
    valid regex and therefore matches only text containing ``"a("``.
    """

    __slots__ = ("_source", "_regex")

    def __init__(self, pattern: str) -> None:
        self._source = pattern
        try:
            self._regex: re.Pattern[str] | None = re.compile(pattern)
        except re.error as exc:
            logger.debug("Pattern %r is not a valid regex (%s); matching literally", pattern, exc)
            self._regex = None

    @property
    def is_literal(self) -> bool:
        return self._regex is None

    def as_str(self) -> str:
        return self._source

    @property
    def capture_labels(self) -> frozenset[str]:
        if self._regex is None:
            return frozenset({"0"})
        return _regex_labels(self._regex)

    def __repr__(self) -> str:
        kind = "literal" if self.is_literal else "regex"
        return f"TextPattern({self._source!r}, {kind})"

    def find_all(self, target: str) -> Matches:
        if self._regex is not None:
            return _regex_find_all(self._regex, target)
        spans: list[Span] = []
        step = max(len(self._source), 1)
        pos = target.find(self._source)
        while pos != -1:
            spans.append(Span(pos, pos + len(self._source)))
            pos = target.find(self._source, pos + step)
        return unlabeled(spans)

    def is_match(self, target: str) -> bool:
        if self._regex is not None:
            return self._regex.search(target) is not None
        return self._source in target

    def is_exact_match(self, target: str) -> bool:
        if self._regex is not None:
            return self._regex.fullmatch(target) is not None
        return self._source == target
