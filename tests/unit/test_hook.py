"""Tests for tripwire.core.hook — hook payload parsing and response envelopes."""

from __future__ import annotations

import json

import pytest

from tripwire.core.exceptions import HookPayloadError
from tripwire.core.hook import (
    BLOCKED_HEADER,
    USER_MESSAGE,
    feedback,
    parse_payload,
    render_response,
)
from tripwire.core.rules.compiler import Violation
from tripwire.core.rules.evaluator import Action, Event, Response
from tripwire.core.rules.model import HookKind
from tripwire.core.rules.span import Span


def _payload(**fields) -> str:
    return json.dumps({"session_id": "s-1", "cwd": "/work/proj", **fields})


# ---------------------------------------------------------------------------
# parse_payload
# ---------------------------------------------------------------------------


class TestParsePayload:
    def test_write(self):
        event = parse_payload(
            _payload(
                hook_event_name="PreToolUse",
                tool_name="Write",
                tool_input={"file_path": "src/main.rs", "content": "fn main() {}"},
            )
        )
        assert event == Event(
            hook=HookKind.PRE_TOOL_USE,
            tool_name="Write",
            file_path="src/main.rs",
            fields={"content": "fn main() {}"},
            cwd="/work/proj",
        )

    def test_edit_fields(self):
        event = parse_payload(
            _payload(
                hook_event_name="PreToolUse",
                tool_name="Edit",
                tool_input={"file_path": "a.py", "old_string": "x", "new_string": "y"},
            )
        )
        assert event.fields == {"old_string": "x", "new_string": "y"}
        assert event.text("content") == "y"

    def test_bash_and_webfetch(self):
        bash = parse_payload(
            _payload(
                hook_event_name="PreToolUse",
                tool_name="Bash",
                tool_input={"command": "ls", "description": "list"},
            )
        )
        assert bash.fields == {"command": "ls"}
        assert bash.file_path is None

        fetch = parse_payload(
            _payload(
                hook_event_name="PreToolUse",
                tool_name="WebFetch",
                tool_input={"url": "https://example.com", "prompt": "summarise"},
            )
        )
        assert fetch.fields == {"url": "https://example.com"}

    def test_unknown_tool_has_no_text_fields(self):
        event = parse_payload(
            _payload(hook_event_name="PreToolUse", tool_name="Read", tool_input={"file_path": "x"})
        )
        assert event.tool_name == "Read"
        assert event.fields == {}
        assert event.file_path == "x"

    def test_non_string_values_are_ignored(self):
        event = parse_payload(
            _payload(
                hook_event_name="PreToolUse",
                tool_name="Write",
                tool_input={"file_path": 3, "content": ["not", "text"]},
            )
        )
        assert event.fields == {}
        assert event.file_path is None

    def test_user_prompt(self):
        event = parse_payload(_payload(hook_event_name="UserPromptSubmit", prompt="hello"))
        assert event.hook is HookKind.USER_PROMPT_SUBMIT
        assert event.fields == {"prompt": "hello"}
        assert event.cwd == "/work/proj"

    def test_unhandled_hook_is_none(self):
        assert parse_payload(_payload(hook_event_name="PostToolUse", tool_name="Write")) is None

    def test_bytes_accepted(self):
        raw = _payload(hook_event_name="UserPromptSubmit", prompt="hi").encode()
        assert parse_payload(raw).fields == {"prompt": "hi"}

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[]",
            json.dumps({"tool_name": "Write"}),
            _payload(hook_event_name="UserPromptSubmit"),
            _payload(hook_event_name="PreToolUse", tool_input={}),
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(HookPayloadError):
            parse_payload(raw)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


SOURCE = "let x = a.unwrap();"
BLOCK = Response(
    action=Action.INTERRUPT,
    message="Do not unwrap.",
    source=SOURCE,
    violations=(Violation(Span(9, 18), "use ?", rule="no-unwrap"),),
)


class TestRenderResponse:
    def test_passthrough_prints_nothing(self):
        event = Event.pre_tool_use("Write", content="x")
        assert render_response(event, Response.passthrough()) is None

    def test_interrupt_envelope(self):
        out = json.loads(render_response(Event.pre_tool_use("Write", content=SOURCE), BLOCK))
        reason = out["hookSpecificOutput"]["permissionDecisionReason"]
        assert out["continue"] is True
        assert out["stopReason"] == USER_MESSAGE
        assert out["suppressOutput"] is False
        assert out["systemMessage"] == reason
        assert out["hookSpecificOutput"]["hookEventName"] == "PreToolUse"
        assert out["hookSpecificOutput"]["permissionDecision"] == "deny"
        assert reason.startswith(BLOCKED_HEADER + "\n\nDo not unwrap.\n\nerror: ")
        assert "1 | let x = a.unwrap();" in reason
        assert reason.endswith("^^^^^^^^^ use ?\n  |")

    def test_continue_envelope(self):
        response = Response(action=Action.CONTINUE, message="Heads up.")
        out = json.loads(render_response(Event.pre_tool_use("Bash", command="ls"), response))
        assert out == {
            "continue": True,
            "suppressOutput": False,
            "hookSpecificOutput": {"hookEventName": "PreToolUse", "additionalContext": "Heads up."},
        }

    def test_prompt_response_is_plain_text(self):
        response = Response(action=Action.CONTINUE, message="Say please.")
        assert render_response(Event.user_prompt("do it"), response) == "Say please."


class TestFeedback:
    def test_message_only(self):
        assert feedback(Response(action=Action.CONTINUE, message="m")) == "m"

    def test_label_falls_back_to_rule_name(self):
        response = Response(
            action=Action.INTERRUPT,
            message="m",
            source="abc",
            violations=(Violation(Span(0, 1), rule="my-rule"),),
        )
        assert feedback(response).splitlines()[-2] == "  | ^ my-rule"
