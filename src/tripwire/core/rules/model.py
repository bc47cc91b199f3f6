"""
Rule schema — the declarative shape of a rules YAML document.

These models only check structure. Patterns (regexes, globs, tree-sitter
queries) are compiled and checked by :mod:`tripwire.core.rules.compiler`,
which reports the offending rule and field.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tripwire.core.rules.validator import ValidatorKind


class HookKind(StrEnum):
    PRE_TOOL_USE = "PreToolUse"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"


class RuleAction(StrEnum):
    INTERRUPT = "interrupt"
    CONTINUE = "continue"


# Event text fields a rule entry can match against.
TEXT_FIELDS: tuple[str, ...] = ("content", "new_string", "old_string", "url", "command", "prompt")
TOOL_TEXT_FIELDS: tuple[str, ...] = TEXT_FIELDS[:-1]


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


class ValidatorSpec(_Strict):
    type: ValidatorKind
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    pattern: str | None = None

    @model_validator(mode="after")
    def check_between_fields(self) -> ValidatorSpec:
        relational = self.type in (
            ValidatorKind.CONTAINS,
            ValidatorKind.NOT_CONTAINS,
            ValidatorKind.EQUALS,
        )
        given = [self.from_, self.to, self.pattern]
        if relational and any(v is None for v in given):
            raise ValueError(f"'{self.type.value}' requires 'from', 'to' and 'pattern'")
        if not relational and any(v is not None for v in given):
            raise ValueError(f"'{self.type.value}' does not take 'from', 'to' or 'pattern'")
        return self


# ---------------------------------------------------------------------------
# Content matchers
# ---------------------------------------------------------------------------


class RegexMatcher(_Strict):
    """Strict regular expression; an invalid pattern rejects the rule."""

    kind: Literal["Regex"]
    pattern: str
    suggestion: str | None = None
    validators: list[ValidatorSpec] = Field(default_factory=list, alias="validate")


class TextMatcher(_Strict):
    """Regular expression, or the literal text when it is not a valid regex."""

    kind: Literal["Text"]
    pattern: str
    suggestion: str | None = None
    validators: list[ValidatorSpec] = Field(default_factory=list, alias="validate")


class SyntaxTreeMatcher(_Strict):
    """Tree-sitter query against the parsed source."""

    kind: Literal["SyntaxTree"]
    language: str
    query: str
    suggestion: str | None = None
    validators: list[ValidatorSpec] = Field(default_factory=list, alias="validate")


class ExternalMatcher(_Strict):
    """Command that reads the text on stdin; a nonzero exit means matched."""

    kind: Literal["External"]
    command: list[str] = Field(min_length=1)
    suggestion: str | None = None


ContentMatcher = Annotated[
    RegexMatcher | TextMatcher | SyntaxTreeMatcher | ExternalMatcher,
    Field(discriminator="kind"),
]

BranchMatcher = Annotated[RegexMatcher | TextMatcher, Field(discriminator="kind")]


class GitState(_Strict):
    kind: Literal["Git"]
    branch: list[BranchMatcher] = Field(min_length=1)


ProjectStateCondition = Annotated[GitState, Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Activation entries and rules
# ---------------------------------------------------------------------------


class Activation(_Strict):
    """One ``on`` entry: when the rule applies and what content must match."""

    hook: HookKind
    tool: str | None = None
    file: str | None = None

    content: list[ContentMatcher] | None = None
    new_string: list[ContentMatcher] | None = None
    old_string: list[ContentMatcher] | None = None
    url: list[ContentMatcher] | None = None
    command: list[ContentMatcher] | None = None
    prompt: list[ContentMatcher] | None = None

    project_state: list[ProjectStateCondition] | None = None

    @model_validator(mode="after")
    def check_fields_for_hook(self) -> Activation:
        if self.hook is HookKind.USER_PROMPT_SUBMIT:
            misplaced = [f for f in ("tool", "file", *TOOL_TEXT_FIELDS) if getattr(self, f)]
            if misplaced:
                raise ValueError(f"UserPromptSubmit entries cannot use: {', '.join(misplaced)}")
        elif self.prompt:
            raise ValueError("'prompt' is only available on UserPromptSubmit entries")
        return self

    def text_matchers(self) -> dict[str, list[Any]]:
        """Declared text fields and their matcher lists, in schema order."""
        return {f: getattr(self, f) for f in TEXT_FIELDS if getattr(self, f) is not None}


class Rule(_Strict):
    name: str = Field(min_length=1)
    description: str | None = None
    message: str
    action: RuleAction | None = None
    on: list[Activation] = Field(min_length=1)

    @field_validator("on", mode="before")
    @classmethod
    def accept_single_entry(cls, v: Any) -> Any:
        """Accept a single mapping as shorthand for a one-entry list."""
        if isinstance(v, dict):
            return [v]
        return v

    @property
    def resolved_action(self) -> RuleAction:
        """Explicit action, else ``continue`` for prompt-only rules, else ``interrupt``."""
        if self.action is not None:
            return self.action
        if all(entry.hook is HookKind.USER_PROMPT_SUBMIT for entry in self.on):
            return RuleAction.CONTINUE
        return RuleAction.INTERRUPT


class RuleFile(_Strict):
    """A whole rules document: ``{version: 1, rules: [...]}``."""

    version: Literal[1]
    rules: list[Rule] = Field(default_factory=list)
