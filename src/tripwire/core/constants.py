"""Tripwire constants: filesystem layout, defaults, and limits."""

from __future__ import annotations

from enum import IntEnum

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

TRIPWIRE_DIR_NAME = ".tripwire"
CONFIG_FILENAME = "config.toml"
USER_RULES_FILENAME = "rules.yaml"
PROJECT_RULES_FILENAME = ".tripwire.yaml"
PROJECT_RULES_DIR = ".tripwire"
RULE_FILE_SUFFIX = ".yaml"

# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

RULES_SCHEMA_VERSION = 1
MESSAGE_SEPARATOR = "\n\n---\n\n"
DEFAULT_EXTERNAL_TIMEOUT_SECONDS = 10.0  # per external command
DEFAULT_WORKERS = 1  # >1 evaluates rules on a thread pool
DEFAULT_FILE_GLOB = "**/*"
GIT_TIMEOUT_SECONDS = 5.0

# ---------------------------------------------------------------------------
# Agent settings (tripwire setup)
# ---------------------------------------------------------------------------

AGENT_SETTINGS_DIR = ".claude"
AGENT_SETTINGS_FILENAME = "settings.local.json"
AGENT_NOTES_FILENAME = "CLAUDE.md"
HOOK_TIMEOUT_SECONDS = 30  # seconds the agent waits for `tripwire hook`
