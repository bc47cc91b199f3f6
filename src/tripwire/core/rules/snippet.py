"""
Compiler-style rendering of violations against the checked text.

Output looks like::

    error: Rule violation. Fix this error and immediately retry.
      |
    5 |     let foo = bar.unwrap();
      |               ^^^^^^^^^^^^ Do not use `.unwrap()`.
      |

The output is plain text: it is read by the agent as well as by people.
"""

from __future__ import annotations

import bisect
from collections.abc import Sequence

from tripwire.core.rules.span import Span

TITLE_ONE = "Rule violation. Fix this error and immediately retry."
TITLE_MANY = "Rule violations. Fix these errors and immediately retry."
DEFAULT_LABEL = "matched pattern"

_TAB = "    "


def annotate(source: str, annotations: Sequence[tuple[Span, str]]) -> str:
    """Render ``source`` with a caret line under each annotated span."""
    if not annotations:
        return ""

    line_starts = [0]
    for i, ch in enumerate(source):
        if ch == "\n":
            line_starts.append(i + 1)
    lines = source.split("\n")

    # line index -> [(start column, end column, label)]
    marks: dict[int, list[tuple[int, int, str]]] = {}
    for span, label in sorted(annotations, key=lambda a: (a.span.start, a.span.end)):
        row = bisect.bisect_right(line_starts, span.start) - 1
        last_row = bisect.bisect_right(line_starts, max(span.end - 1, span.start)) - 1
        col = span.start - line_starts[row]
        end_col = min(span.end - line_starts[row], len(lines[row]))
        text = label or DEFAULT_LABEL
        if last_row > row:
            text += f" (through line {last_row + 1})"
        marks.setdefault(row, []).append((col, max(end_col, col), text))

    width = len(str(max(marks) + 1))
    gutter = " " * width + " |"
    title = TITLE_ONE if len(annotations) == 1 else TITLE_MANY
    out = [f"error: {title}", gutter]

    previous: int | None = None
    for row in sorted(marks):
        if previous is not None and row > previous + 1:
            out.append("...")
        line = lines[row]
        out.append(f"{row + 1:>{width}} | {line.replace(chr(9), _TAB)}".rstrip())
        for col, end_col, text in marks[row]:
            pad = _display_width(line[:col])
            carets = max(_display_width(line[col:end_col]), 1)
            out.append(f"{gutter} {' ' * pad}{'^' * carets} {text}")
        previous = row
    out.append(gutter)
    return "\n".join(out)


def _display_width(text: str) -> int:
    return len(text.replace("\t", _TAB))
