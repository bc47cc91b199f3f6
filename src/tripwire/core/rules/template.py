"""
Message templates.

Placeholders look like ``{{ $name }}`` where ``name`` is a positional
capture (``0``, ``1``, ...), a named capture, or a context value such as
``file_path``. Names may contain any character other than whitespace and
braces, so tree-sitter labels such as ``fn.name`` work as written.
``{{ suggestion }}`` is accepted as an alias of ``{{ $suggestion }}``.

Substitution is one left-to-right pass: a value that itself looks like a
placeholder is emitted verbatim, never expanded again. Placeholders with no
value are left in the output untouched.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

Captures = Mapping[str, str]

# Values every rule can reference whatever its matchers capture.
BUILTIN_KEYS = frozenset({"hook", "tool_name", "file_path", "suggestion"})

_PLACEHOLDER = re.compile(r"\{\{\s*(?:\$(?P<name>[^\s{}$]+)|(?P<bare>suggestion))\s*\}\}")


def interpolate(template: str, captures: Captures) -> str:
    """Render ``template`` with ``captures``; unknown placeholders stay as-is."""

    def _substitute(m: re.Match[str]) -> str:
        key = m.group("name") or m.group("bare")
        value = captures.get(key)
        return m.group(0) if value is None else value

    return _PLACEHOLDER.sub(_substitute, template)


def placeholders(template: str) -> list[str]:
    """Names referenced by ``template``, in order of first appearance."""
    seen: dict[str, None] = {}
    for m in _PLACEHOLDER.finditer(template):
        seen.setdefault(m.group("name") or m.group("bare"), None)
    return list(seen)
