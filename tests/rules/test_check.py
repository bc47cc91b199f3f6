"""Tests for tripwire.core.rules.check — file-content rules over files on disk."""

from __future__ import annotations

import logging
from pathlib import Path

from tripwire.core.rules.check import (
    Issue,
    check_files,
    collect_files,
    file_tool,
    inspects_files,
)
from tripwire.core.rules.evaluator import Registry
from tripwire.core.rules.parser import parse_rules

RULES = """
version: 1
rules:
  - name: no-unwrap
    message: "Avoid {{ $0 }} in {{ $file_path }}"
    on:
      hook: PreToolUse
      tool: Write|Edit
      file: "**/*.rs"
      content:
        - kind: Regex
          pattern: '\\.unwrap\\(\\)'
          suggestion: use ?
  - name: no-todo-in-edits
    message: Resolve the TODO
    on:
      hook: PreToolUse
      tool: Edit
      file: "**/*.py"
      new_string: [{kind: Text, pattern: TODO}]
  - name: bash-only
    message: never about files
    on:
      hook: PreToolUse
      tool: Bash
      command: [{kind: Text, pattern: rm}]
  - name: prompt-only
    message: never about files
    on:
      hook: UserPromptSubmit
      prompt: [{kind: Text, pattern: x}]
"""


def _registry() -> Registry:
    return Registry.from_rules(parse_rules(RULES), source="rules.yaml")


def _write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Rule selection
# ---------------------------------------------------------------------------


class TestRuleSelection:
    def test_inspects_files(self):
        by_name = {rule.name: rule for rule in _registry().rules}
        assert inspects_files(by_name["no-unwrap"])
        assert inspects_files(by_name["no-todo-in-edits"])
        assert not inspects_files(by_name["bash-only"])
        assert not inspects_files(by_name["prompt-only"])

    def test_file_tool_follows_glob_and_tool(self):
        by_name = {rule.name: rule for rule in _registry().rules}
        assert file_tool(by_name["no-unwrap"], "src/main.rs") == "Write"
        assert file_tool(by_name["no-unwrap"], "src/main.py") is None
        assert file_tool(by_name["no-todo-in-edits"], "app/x.py") == "Edit"


# ---------------------------------------------------------------------------
# collect_files
# ---------------------------------------------------------------------------


class TestCollectFiles:
    def test_whole_project_skips_git_and_ignored(self, tmp_path: Path):
        _write(tmp_path, ".gitignore", "target/\n*.log\n")
        _write(tmp_path, "src/main.rs", "")
        _write(tmp_path, "target/gen.rs", "")
        _write(tmp_path, "build.log", "")
        _write(tmp_path, ".git/HEAD", "ref: refs/heads/main\n")
        found = collect_files((), tmp_path)
        assert [p.relative_to(tmp_path).as_posix() for p in found] == [
            ".gitignore",
            "src/main.rs",
        ]

    def test_glob_pattern(self, tmp_path: Path):
        _write(tmp_path, "src/a.rs", "")
        _write(tmp_path, "src/nested/b.rs", "")
        _write(tmp_path, "src/c.py", "")
        found = collect_files(["src/**/*.rs"], tmp_path)
        assert [p.relative_to(tmp_path).as_posix() for p in found] == [
            "src/a.rs",
            "src/nested/b.rs",
        ]

    def test_files_and_directories_without_duplicates(self, tmp_path: Path):
        main = _write(tmp_path, "src/main.rs", "")
        _write(tmp_path, "src/lib.rs", "")
        found = collect_files([main, tmp_path / "src"], tmp_path)
        assert found == [main, tmp_path / "src" / "lib.rs"]

    def test_missing_path_is_skipped(self, tmp_path: Path, caplog):
        with caplog.at_level(logging.WARNING, logger="tripwire"):
            assert collect_files([tmp_path / "nope.rs"], tmp_path) == []
        assert "does not exist" in caplog.text


# ---------------------------------------------------------------------------
# check_files
# ---------------------------------------------------------------------------


class TestCheckFiles:
    def test_issues_carry_line_and_label(self, tmp_path: Path):
        _write(tmp_path, "src/main.rs", "fn main() {\n    let x = y.unwrap();\n}\n")
        report = check_files(_registry(), collect_files((), tmp_path), tmp_path)
        assert not report.ok
        assert report.issues == (
            Issue("src/main.rs", 2, "no-unwrap", "Avoid .unwrap() in src/main.rs", "use ?"),
        )
        assert report.files_checked == 1
        assert report.files_with_issues == 1

    def test_every_violation_is_reported(self, tmp_path: Path):
        _write(tmp_path, "a.rs", "a.unwrap();\nb.unwrap();\n")
        report = check_files(_registry(), collect_files((), tmp_path), tmp_path)
        assert [issue.line for issue in report.issues] == [1, 2]

    def test_edit_rules_see_the_file_as_new_string(self, tmp_path: Path):
        _write(tmp_path, "app/x.py", "x = 1\n# TODO: later\n")
        report = check_files(_registry(), collect_files((), tmp_path), tmp_path)
        assert [(i.path, i.line, i.rule) for i in report.issues] == [
            ("app/x.py", 2, "no-todo-in-edits")
        ]

    def test_clean_project(self, tmp_path: Path):
        _write(tmp_path, "src/main.rs", "fn main() -> Result<()> { y?; Ok(()) }\n")
        _write(tmp_path, "README.md", "TODO .unwrap()\n")
        report = check_files(_registry(), collect_files((), tmp_path), tmp_path)
        assert report.ok
        assert report.files_checked == 1
        assert report.rules == 4
        assert report.rules_by_source == {"rules.yaml": 4}

    def test_unreadable_file_is_skipped(self, tmp_path: Path):
        (tmp_path / "bin.rs").write_bytes(b"\xff\xfe.unwrap()")
        report = check_files(_registry(), collect_files((), tmp_path), tmp_path)
        assert report.ok
        assert report.files_checked == 0
