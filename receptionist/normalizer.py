"""Turn any inbound voice-platform webhook body into one ``ToolInvocation``.

The platform delivers the same tool call in several envelopes depending on
version and transport:

  • ``{"body": {"message": {"toolCalls": [...]}}}``
  • ``{"message": {"toolCalls": [...]}}``
  • ``{"toolCall": {...}}``
  • anything else: a bounded depth-first scan for a ``{name, arguments}`` node

Each tool call may itself be OpenAI-shaped (``{id, function: {name,
arguments}}``) or flat (``{id, name, arguments}``), and arguments may be a
JSON string.  Argument keys come in display, snake and camel case; they are
folded into the canonical keys below so that every envelope of the
same call yields an identical ``ToolInvocation``.

``normalize`` never raises.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from receptionist.models import NotRecognized, ToolInvocation, ToolName

logger = logging.getLogger(__name__)

NAME = "Name"
PHONE_NUMBER = "Phone Number"
DATE_AND_TIME = "Date and Time"
EMAIL_ADDRESS = "Email Address"
END_TIME = "End Time"

# canonical key → accepted spellings, in priority order
_ARGUMENT_ALIASES: dict[str, tuple[str, ...]] = {
    NAME: ("Name", "name", "full_name", "fullName"),
    PHONE_NUMBER: ("Phone Number", "phone_number", "phoneNumber", "phone"),
    DATE_AND_TIME: ("Date and Time", "date_time", "dateTime", "datetime", "start_time", "startTime"),
    EMAIL_ADDRESS: ("Email Address", "email_address", "emailAddress", "email"),
    END_TIME: ("End Time", "end_time", "endTime"),
}

DEFAULT_CORRELATION_ID = "tool_call_auto"
MAX_SCAN_DEPTH = 12
MAX_SCAN_NODES = 2_000


class _ScanBudget:
    def __init__(self, max_nodes: int):
        self.remaining = max_nodes

    def spend(self) -> bool:
        self.remaining -= 1
        return self.remaining >= 0


# ── Public API ───────────────────────────────────────────────────────


def normalize(raw: Any) -> ToolInvocation | NotRecognized:
    """Map *raw* onto the canonical invocation, or explain why it can't."""
    if not isinstance(raw, Mapping):
        return NotRecognized("Payload is not a JSON object")

    call = _from_wrappers(raw)
    if call is None and isinstance(raw.get("toolCall"), Mapping):
        call = raw["toolCall"]
    if call is None:
        call = _deep_scan(raw, depth=0, budget=_ScanBudget(MAX_SCAN_NODES))
    if call is None:
        return NotRecognized("No tool call found in payload")

    try:
        return _to_invocation(call)
    except ValueError as exc:
        logger.info("Tool call rejected: %s", exc)
        return NotRecognized(str(exc))


def extract_called_number(raw: Any) -> str | None:
    """The business line that was dialled, when the payload carries it."""
    if not isinstance(raw, Mapping):
        return None
    root = raw.get("body") if isinstance(raw.get("body"), Mapping) else raw
    candidates = [
        root.get("to"),
        _dig(root, "phoneNumber", "number"),
        _dig(root, "server", "to"),
        _dig(root, "call", "phoneNumber", "number"),
        _dig(root, "message", "call", "phoneNumber", "number"),
    ]
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


# ── Locating the tool call ───────────────────────────────────────────


def _dig(node: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _first_call(calls: Any) -> Mapping | None:
    if isinstance(calls, list) and calls and isinstance(calls[0], Mapping):
        return calls[0]
    return None


def _from_wrappers(raw: Mapping) -> Mapping | None:
    for path in (("body", "message", "toolCalls"), ("message", "toolCalls")):
        call = _first_call(_dig(raw, *path))
        if call is not None:
            return call
    return None


def _looks_like_call(node: Mapping) -> bool:
    function = node.get("function")
    if isinstance(function, Mapping) and isinstance(function.get("name"), str):
        return "arguments" in function
    return isinstance(node.get("name"), str) and "arguments" in node


def _deep_scan(node: Any, depth: int, budget: _ScanBudget) -> Mapping | None:
    if depth > MAX_SCAN_DEPTH or not budget.spend():
        return None

    if isinstance(node, Mapping):
        if _looks_like_call(node):
            return node
        nested = node.get("toolCall")
        if isinstance(nested, Mapping) and _looks_like_call(nested):
            return nested
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None

    for child in children:
        if isinstance(child, (Mapping, list)):
            found = _deep_scan(child, depth + 1, budget)
            if found is not None:
                return found
    return None


# ── Building the invocation ──────────────────────────────────────────


def _to_invocation(call: Mapping) -> ToolInvocation:
    function = call.get("function")
    if isinstance(function, Mapping):
        name, arguments = function.get("name"), function.get("arguments")
    else:
        name, arguments = call.get("name"), call.get("arguments")

    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as exc:
            raise ValueError(f"Tool call arguments are not valid JSON: {exc.msg}") from exc
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, Mapping):
        raise ValueError("Tool call arguments must be an object")

    call_id = call.get("id")
    return ToolInvocation(
        tool_name=_tool_name(name),
        arguments=canonical_arguments(arguments),
        correlation_id=str(call_id) if call_id else DEFAULT_CORRELATION_ID,
    )


def _tool_name(name: Any) -> ToolName:
    try:
        return ToolName(name)
    except ValueError:
        # Every inbound call is a booking request, whatever the assistant named its tool.
        logger.debug("Treating tool %r as %s", name, ToolName.BOOK_APPOINTMENT)
        return ToolName.BOOK_APPOINTMENT


def canonical_arguments(arguments: Mapping[str, Any]) -> dict[str, str]:
    """Fold known key spellings into the canonical keys; drop everything else."""
    result: dict[str, str] = {}
    for canonical, aliases in _ARGUMENT_ALIASES.items():
        for alias in aliases:
            value = arguments.get(alias)
            if value is None:
                continue
            text = str(value).strip()
            if text:
                result[canonical] = text
                break
    return result
