"""Tripwire exception hierarchy."""

from __future__ import annotations


class TripwireError(Exception):
    """Base exception for all Tripwire errors."""


class ConfigError(TripwireError):
    """Raised when the engine configuration is invalid or cannot be read."""


class RuleParseError(ConfigError):
    """Raised when a rule document cannot be parsed or fails schema validation."""


class RuleCompileError(ConfigError):
    """Raised when a rule contains a pattern that cannot be compiled."""

    def __init__(self, rule: str, field: str, reason: str) -> None:
        self.rule = rule
        self.field = field
        self.reason = reason
        super().__init__(f"rule {rule!r}: invalid {field}: {reason}")


class MatcherError(TripwireError):
    """Raised when a matcher hits an internal-consistency problem at evaluation time."""


class ValidatorError(TripwireError):
    """Raised when a validator is misconfigured for the captures it received."""


class ExternalMatcherError(MatcherError):
    """Raised when an external command cannot be run to completion."""


class DeadlineExceededError(TripwireError):
    """Raised when evaluating an event runs past its overall deadline."""


class HookPayloadError(TripwireError):
    """Raised when a hook payload cannot be decoded."""
