"""Tests for tripwire.core.rules.span — spans, matches and match results."""

from __future__ import annotations

import pytest

from tripwire.core.rules.span import (
    LabeledMatches,
    LabeledSpan,
    Match,
    NoMatches,
    Span,
    UnlabeledMatches,
    is_exact_cover,
    labeled,
    unlabeled,
)

# ---------------------------------------------------------------------------
# Span
# ---------------------------------------------------------------------------


class TestSpan:
    def test_text_slices_source(self):
        assert Span(4, 9).text("fn x(y: u32)") == "(y: u"

    def test_zero_length_is_valid(self):
        span = Span(3, 3)
        assert span.length == 0
        assert span.text("abcdef") == ""

    def test_negative_start_rejected(self):
        with pytest.raises(ValueError):
            Span(-1, 2)

    def test_start_after_end_rejected(self):
        with pytest.raises(ValueError, match="invalid span 5..3"):
            Span(5, 3)

    def test_str(self):
        assert str(Span(2, 7)) == "2..7"

    def test_union(self):
        assert Span.union([Span(5, 8), Span(1, 3), Span(6, 12)]) == Span(1, 12)

    def test_union_of_nothing_rejected(self):
        with pytest.raises(ValueError):
            Span.union([])

    def test_ordering(self):
        assert sorted([Span(4, 5), Span(1, 9), Span(1, 2)]) == [
            Span(1, 2),
            Span(1, 9),
            Span(4, 5),
        ]


# ---------------------------------------------------------------------------
# Match
# ---------------------------------------------------------------------------


class TestMatch:
    def test_from_captures_spans_union(self):
        caps = [LabeledSpan("a", Span(2, 4)), LabeledSpan("b", Span(10, 14))]
        match = Match.from_captures(caps)
        assert match is not None
        assert match.span == Span(2, 14)
        assert match.captures == tuple(caps)

    def test_from_no_captures_is_none(self):
        assert Match.from_captures([]) is None

    def test_capture_lookup_first_wins(self):
        match = Match(
            Span(0, 10),
            (LabeledSpan("x", Span(0, 1)), LabeledSpan("x", Span(5, 6))),
        )
        cap = match.capture("x")
        assert cap is not None
        assert cap.span == Span(0, 1)
        assert match.capture("missing") is None


# ---------------------------------------------------------------------------
# Match results
# ---------------------------------------------------------------------------


class TestMatches:
    def test_no_matches_is_falsy(self):
        assert not NoMatches()
        assert NoMatches().spans() == []
        assert NoMatches().as_matches() == []

    def test_unlabeled_empty_collapses_to_no_matches(self):
        assert isinstance(unlabeled([]), NoMatches)

    def test_unlabeled_sorted(self):
        result = unlabeled([Span(8, 9), Span(0, 2)])
        assert isinstance(result, UnlabeledMatches)
        assert result.spans() == [Span(0, 2), Span(8, 9)]
        assert [m.captures for m in result.as_matches()] == [(), ()]

    def test_labeled_sorted_by_start(self):
        late = Match(Span(10, 12), (LabeledSpan("a", Span(10, 12)),))
        early = Match(Span(1, 3), (LabeledSpan("a", Span(1, 3)),))
        result = labeled([late, early])
        assert isinstance(result, LabeledMatches)
        assert result.as_matches() == [early, late]

    def test_labeled_empty_collapses_to_no_matches(self):
        assert isinstance(labeled([]), NoMatches)


class TestExactCover:
    def test_whole_source(self):
        assert is_exact_cover(unlabeled([Span(0, 5)]), "hello")

    def test_partial(self):
        assert not is_exact_cover(unlabeled([Span(0, 4)]), "hello")

    def test_pieces_union_to_whole(self):
        assert is_exact_cover(unlabeled([Span(0, 2), Span(3, 5)]), "hello")

    def test_nothing(self):
        assert not is_exact_cover(NoMatches(), "hello")
