"""
Structural matching with tree-sitter queries.

A :class:`StructuralQuery` is compiled once against a grammar and then run
against any number of source strings::

    query = StructuralQuery(Language.RUST, "(function_item name: (identifier) @name)")
    matches = query.find_all("fn main() {}")

Source that does not parse cleanly (the tree contains ERROR or MISSING
nodes) yields ``NoMatches``: code being edited is often incomplete and that
must never read as a violation.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable
from enum import StrEnum
from functools import cache

from tree_sitter import Language as TsLanguage
from tree_sitter import Node, Parser, Query, QueryCursor, Tree

from tripwire.core.exceptions import MatcherError
from tripwire.core.rules.span import (
    LabeledSpan,
    Match,
    Matches,
    NoMatches,
    Span,
    is_exact_cover,
    labeled,
    unlabeled,
)

logger = logging.getLogger(__name__)


class Language(StrEnum):
    """Grammars available to structural queries."""

    RUST = "rust"
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    TSX = "tsx"
    GO = "go"
    JAVA = "java"
    CSHARP = "csharp"
    KOTLIN = "kotlin"
    HASKELL = "haskell"


# language -> (grammar module, factory attribute)
_GRAMMARS: dict[Language, tuple[str, str]] = {
    Language.RUST: ("tree_sitter_rust", "language"),
    Language.PYTHON: ("tree_sitter_python", "language"),
    Language.JAVASCRIPT: ("tree_sitter_javascript", "language"),
    Language.TYPESCRIPT: ("tree_sitter_typescript", "language_typescript"),
    Language.TSX: ("tree_sitter_typescript", "language_tsx"),
    Language.GO: ("tree_sitter_go", "language"),
    Language.JAVA: ("tree_sitter_java", "language"),
    Language.CSHARP: ("tree_sitter_c_sharp", "language"),
    Language.KOTLIN: ("tree_sitter_kotlin", "language"),
    Language.HASKELL: ("tree_sitter_haskell", "language"),
}


class GrammarUnavailableError(LookupError):
    """Raised when the grammar package for a language is not installed."""


@cache
def grammar(language: Language) -> TsLanguage:
    """Load (once) the tree-sitter grammar for ``language``."""
    module_name, factory = _GRAMMARS[language]
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        package = module_name.replace("_", "-")
        raise GrammarUnavailableError(
            f"grammar for {language.value!r} is not installed (pip install {package})"
        ) from exc
    return TsLanguage(getattr(module, factory)())


def parse(language: Language, source: str) -> Tree:
    """Parse ``source`` with the grammar for ``language``, errors and all."""
    return Parser(grammar(language)).parse(_encode(source))


def _encode(source: str) -> bytes:
    return source.encode("utf-8", errors="surrogatepass")


def _char_offsets(source: str, data: bytes) -> Callable[[int], int]:
    """Map UTF-8 byte offsets from tree-sitter back to ``str`` indices."""
    if len(data) == len(source):
        return lambda offset: offset
    table = [0] * (len(data) + 1)
    byte_pos = 0
    for char_pos, ch in enumerate(source):
        width = len(_encode(ch))
        for k in range(width):
            table[byte_pos + k] = char_pos
        byte_pos += width
    table[byte_pos] = len(source)
    return table.__getitem__


def _capture_nodes(value: object) -> list[Node]:
    if isinstance(value, list):
        return [node for node in value if isinstance(node, Node)]
    if isinstance(value, Node):
        return [value]
    return []


class StructuralQuery:
    """
    A tree-sitter query bound to one grammar.

    Raises ``QueryError`` at construction if the query does not compile for
    the grammar, and :class:`GrammarUnavailableError` if the grammar package
    is missing.
    """

    def __init__(self, language: Language, source: str) -> None:
        self.language = Language(language)
        self.source = source
        self._query = Query(grammar(self.language), source)
        self._capture_names = tuple(
            self._query.capture_name(i) for i in range(self._query.capture_count)
        )

    def __repr__(self) -> str:
        return f"StructuralQuery({self.language.value}, {self.source!r})"

    @property
    def capture_names(self) -> tuple[str, ...]:
        return self._capture_names

    @property
    def capture_labels(self) -> frozenset[str]:
        # A captureless query reports whole-source spans, seen by validators as "0".
        return frozenset(self._capture_names or ("0",))

    def find_all(self, target: str) -> Matches:
        tree = parse(self.language, target)
        if tree.root_node.has_error:
            logger.debug("Source does not parse cleanly as %s; no matches", self.language)
            return NoMatches()

        to_char = _char_offsets(target, _encode(target))
        cursor = QueryCursor(self._query)
        results: list[Match] = []
        captureless = 0
        for _pattern_index, capture_map in cursor.matches(tree.root_node):
            captures: list[LabeledSpan] = []
            for name, value in capture_map.items():
                if name not in self._capture_names:
                    raise MatcherError(
                        f"capture {name!r} is not declared by query {self.source!r} "
                        f"(declared: {list(self._capture_names)})"
                    )
                for node in _capture_nodes(value):
                    span = Span(to_char(node.start_byte), to_char(node.end_byte))
                    captures.append(LabeledSpan(name, span))
            captures.sort(key=lambda c: (c.span.start, c.span.end, c.label))
            match = Match.from_captures(captures)
            if match is None:
                captureless += 1
            else:
                results.append(match)

        if not self._capture_names:
            # Nothing to locate precisely: each match points at the whole source.
            return unlabeled([Span(0, len(target))] * min(captureless, 1))
        return labeled(results)

    def is_match(self, target: str) -> bool:
        return bool(self.find_all(target))

    def is_exact_match(self, target: str) -> bool:
        return is_exact_cover(self.find_all(target), target)


def render_tree(language: Language, source: str) -> str:
    """
    Render the parse tree of ``source`` as an indented outline of named nodes.

    Helps with writing queries: each line shows ``field: kind [row:col]``.
    """
    tree = parse(language, source)
    lines: list[str] = []
    cursor = tree.walk()
    depth = 0
    while True:
        node = cursor.node
        if node is not None and node.is_named:
            field_name = cursor.field_name
            prefix = f"{field_name}: " if field_name else ""
            row, col = node.start_point
            marker = " (ERROR)" if node.is_error else " (MISSING)" if node.is_missing else ""
            lines.append(f"{'  ' * depth}{prefix}{node.type} [{row + 1}:{col + 1}]{marker}")
        if cursor.goto_first_child():
            depth += 1
            continue
        while not cursor.goto_next_sibling():
            if not cursor.goto_parent():
                return "\n".join(lines)
            depth -= 1
