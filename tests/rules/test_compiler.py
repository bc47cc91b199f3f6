"""Tests for tripwire.core.rules.compiler."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from tripwire.core.exceptions import RuleCompileError
from tripwire.core.rules.compiler import CompiledRule, MatcherKind, compile_rules
from tripwire.core.rules.model import HookKind, Rule
from tripwire.core.rules.pattern import TextPattern


def _rule(on: Any, name: str = "r", message: str = "m") -> Rule:
    return Rule.model_validate({"name": name, "message": message, "on": on})


def _compile_error(on: Any) -> RuleCompileError:
    with pytest.raises(RuleCompileError) as excinfo:
        CompiledRule.compile(_rule(on, name="bad"))
    return excinfo.value


# ---------------------------------------------------------------------------
# Compile errors name the offending field
# ---------------------------------------------------------------------------


class TestCompileErrors:
    def test_invalid_regex(self):
        err = _compile_error(
            {"hook": "PreToolUse", "content": [{"kind": "Regex", "pattern": "a("}]}
        )
        assert err.rule == "bad"
        assert err.field == "on[0].content[0].pattern"
        assert str(err).startswith("rule 'bad': invalid on[0].content[0].pattern:")

    def test_invalid_tool_regex(self):
        err = _compile_error({"hook": "PreToolUse", "tool": "Write|("})
        assert err.field == "on[0].tool"

    def test_unsupported_language(self):
        err = _compile_error(
            {
                "hook": "PreToolUse",
                "content": [{"kind": "SyntaxTree", "language": "cobol", "query": "(x)"}],
            }
        )
        assert err.field == "on[0].content[0].language"
        assert "cobol" in err.reason

    def test_invalid_query(self):
        err = _compile_error(
            {
                "hook": "PreToolUse",
                "content": [
                    {"kind": "Regex", "pattern": "x"},
                    {"kind": "SyntaxTree", "language": "rust", "query": "(no_such_node) @n"},
                ],
            }
        )
        assert err.field == "on[0].content[1].query"

    def test_validator_label_never_captured(self):
        err = _compile_error(
            {
                "hook": "PreToolUse",
                "content": [
                    {
                        "kind": "Regex",
                        "pattern": "(a)-(b)",
                        "validate": [{"type": "contains", "from": "1", "to": "9", "pattern": "-"}],
                    }
                ],
            }
        )
        assert err.field == "on[0].content[0].validate[0].to"
        assert "'9'" in err.reason

    def test_invalid_branch_regex(self):
        err = _compile_error(
            {
                "hook": "PreToolUse",
                "project_state": [{"kind": "Git", "branch": [{"kind": "Regex", "pattern": "["}]}],
            }
        )
        assert err.field == "on[0].project_state[0].branch[0].pattern"

    def test_error_in_second_entry(self):
        err = _compile_error(
            [
                {"hook": "PreToolUse", "tool": "Write"},
                {"hook": "PreToolUse", "command": [{"kind": "Regex", "pattern": "*"}]},
            ]
        )
        assert err.field == "on[1].command[0].pattern"


# ---------------------------------------------------------------------------
# Successful compilation
# ---------------------------------------------------------------------------


class TestCompile:
    def test_text_pattern_falls_back_to_literal(self):
        rule = CompiledRule.compile(
            _rule({"hook": "PreToolUse", "content": [{"kind": "Text", "pattern": "a("}]})
        )
        (matcher,) = rule.entries[0].fields[0].matchers
        assert matcher.kind is MatcherKind.TEXT
        assert isinstance(matcher.pattern, TextPattern)
        assert matcher.pattern.is_literal

    def test_every_text_field_is_checked(self):
        rule = CompiledRule.compile(
            _rule(
                {
                    "hook": "PreToolUse",
                    "command": [{"kind": "Regex", "pattern": "rm"}],
                    "content": [{"kind": "Regex", "pattern": "x"}],
                }
            )
        )
        assert {check.field for check in rule.entries[0].fields} == {"content", "command"}

    def test_external_matcher(self):
        rule = CompiledRule.compile(
            _rule(
                {
                    "hook": "PreToolUse",
                    "content": [{"kind": "External", "command": ["grep", "-q", "x"]}],
                }
            )
        )
        (matcher,) = rule.entries[0].fields[0].matchers
        assert matcher.kind is MatcherKind.EXTERNAL
        assert matcher.describe() == "External 'grep -q x'"

    def test_prompt_rule_defaults_to_continue(self):
        rule = CompiledRule.compile(_rule({"hook": "UserPromptSubmit"}))
        assert rule.action.value == "continue"
        assert rule.entries[0].hook is HookKind.USER_PROMPT_SUBMIT

    def test_source_is_recorded(self):
        rule = CompiledRule.compile(_rule({"hook": "PreToolUse"}), source="a.yaml")
        assert rule.source == "a.yaml"

    def test_describe_with_validators(self):
        rule = CompiledRule.compile(
            _rule(
                {
                    "hook": "PreToolUse",
                    "content": [
                        {"kind": "Regex", "pattern": "todo", "validate": [{"type": "not_exists"}]}
                    ],
                }
            )
        )
        (matcher,) = rule.entries[0].fields[0].matchers
        assert matcher.describe() == "Regex 'todo' validate(not_exists)"


class TestCompileRules:
    def _rules(self) -> list[Rule]:
        return [
            _rule({"hook": "PreToolUse"}, name="good-1"),
            _rule({"hook": "PreToolUse", "tool": "("}, name="broken"),
            _rule({"hook": "PreToolUse"}, name="good-2"),
        ]

    def test_strict_raises(self):
        with pytest.raises(RuleCompileError, match="broken"):
            compile_rules(self._rules())

    def test_lenient_skips_invalid(self):
        compiled = compile_rules(self._rules(), source="rules.yaml", strict=False)
        assert [r.name for r in compiled] == ["good-1", "good-2"]


class TestPlaceholderWarnings:
    def _compile(self, message: str, on: Any, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="tripwire"):
            CompiledRule.compile(_rule(on, name="typo", message=message))

    def test_unknown_placeholder_is_reported(self, caplog):
        on = {"hook": "PreToolUse", "content": [{"kind": "Regex", "pattern": r"(?P<var>\w+)"}]}
        self._compile("Rename {{ $vra }} in {{ $file_path }}", on, caplog)
        assert "Rule 'typo' references {{ $vra }}" in caplog.text

    def test_known_placeholders_are_quiet(self, caplog):
        on = [
            {"hook": "PreToolUse", "content": [{"kind": "Regex", "pattern": r"(?P<var>\w+)"}]},
            {"hook": "PreToolUse", "command": [{"kind": "External", "command": ["false"]}]},
            {
                "hook": "PreToolUse",
                "content": [
                    {
                        "kind": "SyntaxTree",
                        "language": "rust",
                        "query": "(function_item name: (identifier) @fn.name)",
                    }
                ],
            },
        ]
        message = (
            "{{ $var }} {{ $1 }} {{ $stdout }} {{ $fn.name }} {{ $tool_name }} {{ suggestion }}"
        )
        self._compile(message, on, caplog)
        assert "references" not in caplog.text


# ---------------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------------


class TestActivation:
    def _entry(self, **on: Any):
        return CompiledRule.compile(_rule({"hook": "PreToolUse", **on})).entries[0]

    def test_tool_must_match_entirely(self):
        entry = self._entry(tool="Write|Edit")
        assert entry.tool_matches("Write")
        assert entry.tool_matches("Edit")
        assert not entry.tool_matches("NotebookEdit")
        assert not entry.tool_matches(None)

    def test_no_tool_matches_anything(self):
        entry = self._entry()
        assert entry.tool_matches("Bash")
        assert entry.tool_matches(None)

    def test_file_glob(self):
        entry = self._entry(file="**/*.rs")
        assert entry.file_matches("src/main.rs")
        assert entry.file_matches("main.rs")
        assert entry.file_matches("/home/dev/project/src/lib.rs")
        assert not entry.file_matches("src/main.py")

    def test_declared_glob_needs_a_path(self):
        assert not self._entry(file="**/*").file_matches(None)
        assert self._entry().file_matches(None)

    def test_activation_failure_reasons(self):
        entry = self._entry(tool="Write", file="*.rs")
        assert entry.activation_failure(HookKind.PRE_TOOL_USE, "Write", "a.rs") is None
        assert "hook" in entry.activation_failure(HookKind.USER_PROMPT_SUBMIT, None, None)
        assert "tool 'Bash'" in entry.activation_failure(HookKind.PRE_TOOL_USE, "Bash", "a.rs")
        assert "file 'a.py'" in entry.activation_failure(HookKind.PRE_TOOL_USE, "Write", "a.py")


# ---------------------------------------------------------------------------
# Matcher runs
# ---------------------------------------------------------------------------


class TestMatcherRun:
    def _matcher(self, spec: dict[str, Any]):
        rule = CompiledRule.compile(_rule({"hook": "PreToolUse", "content": [spec]}))
        return rule.entries[0].fields[0].matchers[0]

    def test_no_match_is_none(self):
        assert self._matcher({"kind": "Regex", "pattern": "unwrap"}).run("content", "ok") is None

    def test_hit_collects_every_match(self):
        matcher = self._matcher(
            {
                "kind": "Regex",
                "pattern": r"\.unwrap\(\)",
                "suggestion": "use ? on {{ $file_path }}",
            }
        )
        hit = matcher.run("content", "a.unwrap(); b.unwrap();", {"file_path": "x.rs"})
        assert hit is not None
        assert hit.failures == 2
        assert [v.span.start for v in hit.violations] == [1, 12]
        assert hit.violations[0].label == "use ? on x.rs"
        assert hit.suggestion == "use ? on x.rs"
        assert hit.values == {"0": ".unwrap()"}

    def test_named_groups_become_values(self):
        matcher = self._matcher({"kind": "Regex", "pattern": r"let (?P<var>\w+) ="})
        hit = matcher.run("content", "let x = 1; let y = 2;")
        assert hit is not None
        assert hit.values["var"] == "x"
        assert hit.values["1"] == "x"
        assert hit.values["0"] == "let x ="

    def test_validators_keep_only_failing_matches(self):
        matcher = self._matcher(
            {
                "kind": "Regex",
                "pattern": r"(?P<a>\w+),(?P<b>\w+)",
                "validate": [{"type": "contains", "from": "a", "to": "b", "pattern": " "}],
            }
        )
        assert matcher.run("content", "x, y") is None

        hit = matcher.run("content", "x, y p,q")
        assert hit is not None
        assert hit.failures == 1
        (violation,) = hit.violations
        assert violation.label == "expected contains ' ', found ','"
        assert violation.span.text("x, y p,q") == ","

    def test_not_exists_on_plain_match(self):
        matcher = self._matcher(
            {"kind": "Text", "pattern": "TODO", "validate": [{"type": "not_exists"}]}
        )
        hit = matcher.run("content", "// TODO later")
        assert hit is not None
        assert hit.violations[0].span.text("// TODO later") == "TODO"
        assert hit.violations[0].label.startswith("expected pattern should not exist")
