"""Event catalogue and the context passed to hooks when an event fires."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any

from hookwork.types.hooks import HookEvent
from hookwork.types.payloads import EventPayload, parse_payload


@dataclass(frozen=True, slots=True)
class EventSpec:
    """Human-readable description and expected payload shape of one event."""

    description: str
    data_format: dict[str, str]


EVENT_CATALOGUE: dict[HookEvent, EventSpec] = {
    HookEvent.PRE_TOOL_USE: EventSpec(
        "Before any tool is executed",
        {"tool": "string", "parameters": "object", "sessionId": "string"},
    ),
    HookEvent.POST_TOOL_USE: EventSpec(
        "After tool execution completes",
        {"tool": "string", "parameters": "object", "result": "object", "duration": "number"},
    ),
    HookEvent.PRE_CHAT_MESSAGE: EventSpec(
        "Before sending message to the assistant",
        {"message": "string", "sessionId": "string", "timestamp": "string"},
    ),
    HookEvent.POST_CHAT_MESSAGE: EventSpec(
        "After receiving the assistant response",
        {"message": "string", "response": "string", "duration": "number"},
    ),
    HookEvent.FILE_CHANGE: EventSpec(
        "When project files are modified",
        {"filePath": "string", "changeType": "string", "content": "string"},
    ),
    HookEvent.GIT_COMMIT: EventSpec(
        "Before/after git commits",
        {"commitMessage": "string", "files": "array", "hash": "string"},
    ),
    HookEvent.PROJECT_LOAD: EventSpec(
        "When project is loaded",
        {"projectPath": "string", "fileCount": "number", "gitBranch": "string"},
    ),
    HookEvent.SESSION_START: EventSpec(
        "When new chat session starts",
        {"sessionId": "string", "projectPath": "string", "timestamp": "string"},
    ),
    HookEvent.SESSION_END: EventSpec(
        "When chat session ends",
        {"sessionId": "string", "duration": "number", "messageCount": "number"},
    ),
    HookEvent.ERROR: EventSpec(
        "When errors occur in the system",
        {"error": "string", "source": "string", "severity": "string", "context": "object"},
    ),
}


def available_events() -> dict[str, dict[str, Any]]:
    """The event catalogue as plain JSON-ready data, keyed by event name."""
    return {
        event.value: {"description": spec.description, "dataFormat": dict(spec.data_format)}
        for event, spec in EVENT_CATALOGUE.items()
    }


def is_known_event(name: str) -> bool:
    try:
        HookEvent(name)
    except ValueError:
        return False
    return True


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class EventContext:
    """Read-only context built once per dispatched event."""

    event: str
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    project_path: str | None = None
    timestamp: str = ""

    @property
    def payload(self) -> EventPayload:
        return parse_payload(self.event, self.data)

    def data_dict(self) -> dict[str, Any]:
        """A mutable copy of the event data."""
        return dict(self.data)


def build_event_context(
    event: HookEvent | str,
    data: Mapping[str, Any] | None = None,
    project_path: str | Path | None = None,
    *,
    timestamp: str | None = None,
) -> EventContext:
    """Build an EventContext, copying *data* so later caller mutation is not seen."""
    name = event.value if isinstance(event, HookEvent) else str(event)
    frozen = MappingProxyType(dict(data) if isinstance(data, Mapping) else {})
    return EventContext(
        event=name,
        data=frozen,
        project_path=str(project_path) if project_path else None,
        timestamp=timestamp or _utc_timestamp(),
    )
