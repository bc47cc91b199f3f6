"""
Hook protocol adapter.

Translates the agent's hook JSON (read from stdin) into an :class:`Event`,
and a :class:`Response` into what the agent expects on stdout:

    PreToolUse + interrupt      → JSON envelope with permissionDecision "deny"
    PreToolUse + continue       → JSON envelope with additionalContext
    UserPromptSubmit + any hit  → plain text, added to the prompt context
    passthrough                 → nothing at all

The process exit status is 0 in every case.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from tripwire.core.exceptions import HookPayloadError
from tripwire.core.rules.evaluator import Action, Event, Response
from tripwire.core.rules.model import HookKind
from tripwire.core.rules.snippet import annotate

logger = logging.getLogger(__name__)

BLOCKED_HEADER = (
    "Tripwire blocked operation due to rule violation.\nFix all issues immediately and try again:"
)
USER_MESSAGE = "Tripwire blocked operation due to rule violation"

# tool name -> tool_input keys copied into event text fields
_TOOL_FIELDS: dict[str, tuple[str, ...]] = {
    "Write": ("content",),
    "Edit": ("new_string", "old_string"),
    "WebFetch": ("url",),
    "Bash": ("command",),
}


class HookPayload(BaseModel):
    """The subset of a hook payload Tripwire reads. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    hook_event_name: str
    session_id: str | None = None
    cwd: str | None = None
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    prompt: str | None = None


def parse_payload(raw: str | bytes) -> Event | None:
    """
    Decode a hook payload into an :class:`Event`.

    Returns None for hook kinds Tripwire does not handle.

    Raises:
        HookPayloadError: on malformed JSON or a payload missing required keys.
    """
    try:
        payload = HookPayload.model_validate_json(raw)
    except ValidationError as exc:
        raise HookPayloadError(f"Invalid hook payload: {exc}") from exc

    try:
        hook = HookKind(payload.hook_event_name)
    except ValueError:
        logger.debug("Ignoring unhandled hook %r", payload.hook_event_name)
        return None

    if hook is HookKind.USER_PROMPT_SUBMIT:
        if payload.prompt is None:
            raise HookPayloadError("UserPromptSubmit payload has no 'prompt'")
        return Event.user_prompt(payload.prompt, cwd=payload.cwd)

    if payload.tool_name is None:
        raise HookPayloadError("PreToolUse payload has no 'tool_name'")
    tool_input = payload.tool_input or {}
    fields = {
        key: value
        for key in _TOOL_FIELDS.get(payload.tool_name, ())
        if isinstance(value := tool_input.get(key), str)
    }
    file_path = tool_input.get("file_path")
    return Event(
        hook=hook,
        tool_name=payload.tool_name,
        file_path=file_path if isinstance(file_path, str) else None,
        fields=fields,
        cwd=payload.cwd,
    )


def feedback(response: Response) -> str:
    """The rendered messages, followed by an annotated snippet when spans are known."""
    parts = [response.message]
    if response.source is not None and response.violations:
        parts.append(
            annotate(response.source, [(v.span, v.label or v.rule) for v in response.violations])
        )
    return "\n\n".join(p for p in parts if p)


def render_response(event: Event, response: Response) -> str | None:
    """What to print on stdout for ``response``; None means print nothing."""
    if response.action is Action.PASSTHROUGH:
        return None

    text = feedback(response)
    if event.hook is HookKind.USER_PROMPT_SUBMIT:
        return text

    if response.action is Action.INTERRUPT:
        reason = f"{BLOCKED_HEADER}\n\n{text}"
        envelope: dict[str, Any] = {
            "continue": True,
            "stopReason": USER_MESSAGE,
            "suppressOutput": False,
            "systemMessage": reason,
            "hookSpecificOutput": {
                "hookEventName": HookKind.PRE_TOOL_USE.value,
                "permissionDecision": "deny",
                "permissionDecisionReason": reason,
            },
        }
    else:
        envelope = {
            "continue": True,
            "suppressOutput": False,
            "hookSpecificOutput": {
                "hookEventName": HookKind.PRE_TOOL_USE.value,
                "additionalContext": text,
            },
        }
    return json.dumps(envelope, ensure_ascii=False)
