"""Tests for tripwire.core.rules.template — single-pass message interpolation."""

from __future__ import annotations

from tripwire.core.rules.template import interpolate, placeholders


class TestInterpolate:
    def test_positional_and_named(self):
        out = interpolate("{{ $0 }} / {{ $name }}", {"0": "whole", "name": "part"})
        assert out == "whole / part"

    def test_dotted_and_hyphenated_names(self):
        out = interpolate(
            "Rename {{ $fn.name }} ({{ $type-id }})", {"fn.name": "foo", "type-id": "T"}
        )
        assert out == "Rename foo (T)"

    def test_whitespace_inside_braces_is_optional(self):
        assert interpolate("{{$x}}-{{   $x   }}", {"x": "1"}) == "1-1"

    def test_missing_placeholder_left_verbatim(self):
        assert interpolate("use {{ $missing }} here", {}) == "use {{ $missing }} here"

    def test_bare_suggestion_alias(self):
        assert interpolate("Hint: {{ suggestion }}", {"suggestion": "hoist it"}) == "Hint: hoist it"

    def test_values_are_not_expanded_again(self):
        out = interpolate("{{ $a }} {{ $b }}", {"a": "{{ $b }}", "b": "B"})
        assert out == "{{ $b }} B"

    def test_text_without_placeholders_unchanged(self):
        assert interpolate("plain {text} {{ not a placeholder }}", {"x": "y"}) == (
            "plain {text} {{ not a placeholder }}"
        )


class TestPlaceholders:
    def test_in_order_without_duplicates(self):
        assert placeholders("{{ $b }} {{ $a }} {{ $b }} {{ suggestion }}") == [
            "b",
            "a",
            "suggestion",
        ]

    def test_dotted_capture_label(self):
        assert placeholders("{{ $fn.name }} in {{ $file_path }}") == ["fn.name", "file_path"]
