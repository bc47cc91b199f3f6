"""
Span model shared by every matcher.

Offsets index the Python ``str`` being matched (code points), so a span can
never split a character. Matchers backed by byte-oriented engines
(tree-sitter) convert their offsets before building spans.

The result of one matcher run is one of three variants:

    NoMatches           — the matcher found nothing
    UnlabeledMatches    — the matcher has no capture concept (plain spans)
    LabeledMatches      — each match carries zero or more labeled captures
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field


@dataclass(frozen=True, order=True)
class Span:
    """A half-open ``[start, end)`` range into a specific source string."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.start > self.end:
            raise ValueError(f"invalid span {self.start}..{self.end}")

    def __str__(self) -> str:
        return f"{self.start}..{self.end}"

    @property
    def length(self) -> int:
        return self.end - self.start

    def text(self, source: str) -> str:
        return source[self.start : self.end]

    @classmethod
    def union(cls, spans: Iterable[Span]) -> Span:
        spans = list(spans)
        if not spans:
            raise ValueError("cannot take the union of zero spans")
        return cls(min(s.start for s in spans), max(s.end for s in spans))


@dataclass(frozen=True)
class LabeledSpan:
    """One named capture: a regex group or a tree-sitter query capture."""

    label: str
    span: Span


@dataclass(frozen=True)
class Match:
    """One match: an overall span plus any labeled captures inside it."""

    span: Span
    captures: tuple[LabeledSpan, ...] = ()

    @classmethod
    def from_captures(cls, captures: Sequence[LabeledSpan]) -> Match | None:
        """Build a match whose span is the union of its captures; None if empty."""
        if not captures:
            return None
        return cls(span=Span.union(c.span for c in captures), captures=tuple(captures))

    def capture(self, label: str) -> LabeledSpan | None:
        """First capture with the given label, if any."""
        for cap in self.captures:
            if cap.label == label:
                return cap
        return None


# ---------------------------------------------------------------------------
# Matcher results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoMatches:
    def __bool__(self) -> bool:
        return False

    def spans(self) -> list[Span]:
        return []

    def as_matches(self) -> list[Match]:
        return []


@dataclass(frozen=True)
class UnlabeledMatches:
    items: tuple[Span, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return bool(self.items)

    def spans(self) -> list[Span]:
        return list(self.items)

    def as_matches(self) -> list[Match]:
        return [Match(span=s) for s in self.items]


@dataclass(frozen=True)
class LabeledMatches:
    items: tuple[Match, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return bool(self.items)

    def spans(self) -> list[Span]:
        return [m.span for m in self.items]

    def as_matches(self) -> list[Match]:
        return list(self.items)


Matches = NoMatches | UnlabeledMatches | LabeledMatches


def unlabeled(spans: Iterable[Span]) -> Matches:
    """Sorted ``UnlabeledMatches``, or ``NoMatches`` when empty."""
    ordered = tuple(sorted(spans))
    return UnlabeledMatches(ordered) if ordered else NoMatches()


def labeled(matches: Iterable[Match]) -> Matches:
    """``LabeledMatches`` sorted by start offset, or ``NoMatches`` when empty."""
    ordered = tuple(sorted(matches, key=lambda m: (m.span.start, m.span.end)))
    return LabeledMatches(ordered) if ordered else NoMatches()


def is_exact_cover(matches: Matches, target: str) -> bool:
    """True when the union of all match spans is exactly ``[0, len(target))``."""
    spans = matches.spans()
    if not spans:
        return False
    return Span.union(spans) == Span(0, len(target))
