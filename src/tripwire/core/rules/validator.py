"""
Relational checks over the captures of a single match.

Validators state what SHOULD be true about a match. A validator that does
not hold produces a :class:`Failure`, which the rule reports as a violation:

    exists        — the match existing is fine (always passes)
    not_exists    — the match existing is the problem (always fails)
    contains      — text between two captures must contain a pattern
    not_contains  — text between two captures must not contain a pattern
    equals        — text between two captures must equal a pattern exactly

The text "between" captures ``from`` and ``to`` runs from the end of
``from`` to the start of ``to``. Missing labels and a ``from`` capture that
ends after ``to`` starts are configuration errors (:class:`ValidatorError`),
never a silent pass or fail.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from tripwire.core.exceptions import ValidatorError
from tripwire.core.rules.pattern import TextPattern
from tripwire.core.rules.span import LabeledSpan, Span


class ValidatorKind(StrEnum):
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EQUALS = "equals"


@dataclass(frozen=True)
class BetweenCaptures:
    from_label: str
    to_label: str
    pattern: TextPattern


@dataclass(frozen=True)
class Failure:
    """Why a match violated a validator, and where."""

    expected: str
    actual: str
    span: Span


@dataclass(frozen=True)
class Validator:
    kind: ValidatorKind
    between: BetweenCaptures | None = None

    def __post_init__(self) -> None:
        relational = self.kind in (
            ValidatorKind.CONTAINS,
            ValidatorKind.NOT_CONTAINS,
            ValidatorKind.EQUALS,
        )
        if relational and self.between is None:
            raise ValueError(f"{self.kind.value} validator requires from/to/pattern")
        if not relational and self.between is not None:
            raise ValueError(f"{self.kind.value} validator takes no from/to/pattern")

    # -- constructors -----------------------------------------------------

    @classmethod
    def exists(cls) -> Validator:
        return cls(ValidatorKind.EXISTS)

    @classmethod
    def not_exists(cls) -> Validator:
        return cls(ValidatorKind.NOT_EXISTS)

    @classmethod
    def contains(cls, from_label: str, to_label: str, pattern: str) -> Validator:
        return cls(
            ValidatorKind.CONTAINS, BetweenCaptures(from_label, to_label, TextPattern(pattern))
        )

    @classmethod
    def not_contains(cls, from_label: str, to_label: str, pattern: str) -> Validator:
        return cls(
            ValidatorKind.NOT_CONTAINS, BetweenCaptures(from_label, to_label, TextPattern(pattern))
        )

    @classmethod
    def equals(cls, from_label: str, to_label: str, pattern: str) -> Validator:
        return cls(
            ValidatorKind.EQUALS, BetweenCaptures(from_label, to_label, TextPattern(pattern))
        )

    # -- evaluation -------------------------------------------------------

    def describe(self) -> str:
        if self.between is None:
            return self.kind.value
        bc = self.between
        pattern = bc.pattern.as_str()
        return f"{self.kind.value} {pattern!r} between {bc.from_label!r} and {bc.to_label!r}"

    def validate(self, source: str, captures: Sequence[LabeledSpan]) -> Failure | None:
        """
        Check one match's captures against ``source``.

        Returns None when the validator holds, a :class:`Failure` when it
        does not, and raises :class:`ValidatorError` on malformed captures.
        """
        if self.kind is ValidatorKind.EXISTS:
            return None

        if self.kind is ValidatorKind.NOT_EXISTS:
            if not captures:
                return None
            return Failure(
                expected="pattern should not exist",
                actual="pattern found",
                span=captures[0].span,
            )

        assert self.between is not None
        bc = self.between
        between, span = _between(source, captures, bc.from_label, bc.to_label)

        if self.kind is ValidatorKind.CONTAINS:
            if bc.pattern.is_match(between):
                return None
            expected = f"contains {bc.pattern.as_str()!r}"
        elif self.kind is ValidatorKind.NOT_CONTAINS:
            if not bc.pattern.is_match(between):
                return None
            expected = f"does not contain {bc.pattern.as_str()!r}"
        else:
            if bc.pattern.is_exact_match(between):
                return None
            expected = f"equals {bc.pattern.as_str()!r}"

        return Failure(expected=expected, actual=between, span=span)


def _find(captures: Sequence[LabeledSpan], label: str) -> LabeledSpan:
    for cap in captures:
        if cap.label == label:
            return cap
    present = sorted({c.label for c in captures})
    raise ValidatorError(f"capture {label!r} not found in match (captures: {present})")


def _between(
    source: str,
    captures: Sequence[LabeledSpan],
    from_label: str,
    to_label: str,
) -> tuple[str, Span]:
    start = _find(captures, from_label).span.end
    end = _find(captures, to_label).span.start
    if start > end:
        raise ValidatorError(
            f"capture {from_label!r} ends at {start}, after capture {to_label!r} starts at {end}"
        )
    return source[start:end], Span(start, end)
