"""
Tripwire — rule-driven guardrails for AI coding agents.

Tripwire sits in front of your agent's tool calls. Before a file is written,
a command is run, or a prompt is submitted, Tripwire evaluates the action
against your declarative rules and either lets it through, lets it through
with guidance, or blocks it with a message pointing at the offending text.

Package layout (src/tripwire/):
  core/         — config, constants, exceptions, logging, hook protocol
  core/rules/   — spans, patterns, matchers, validators, compiler, evaluator
  cli/          — Click CLI entry point
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
