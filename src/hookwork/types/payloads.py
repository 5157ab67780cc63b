"""Typed event payloads, one arm per event kind.

``parse_payload`` never raises: data that does not fit its event's shape
(or belongs to an unknown event) lands in the ``RawPayload`` arm.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from hookwork.types.hooks import HookEvent


def _str(value: Any) -> str | None:
    return None if value is None else str(value)


def _num(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True, slots=True)
class ToolUsePayload:
    """PreToolUse / PostToolUse."""

    tool: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None
    result: Any = None
    duration: float | None = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> ToolUsePayload:
        params = data.get("parameters")
        return cls(
            tool=_str(data.get("tool")),
            parameters=dict(params) if isinstance(params, Mapping) else {},
            session_id=_str(data.get("sessionId")),
            result=data.get("result"),
            duration=_num(data.get("duration")),
        )


@dataclass(frozen=True, slots=True)
class ChatMessagePayload:
    """PreChatMessage / PostChatMessage."""

    message: str | None = None
    response: str | None = None
    session_id: str | None = None
    timestamp: str | None = None
    duration: float | None = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> ChatMessagePayload:
        return cls(
            message=_str(data.get("message")),
            response=_str(data.get("response")),
            session_id=_str(data.get("sessionId")),
            timestamp=_str(data.get("timestamp")),
            duration=_num(data.get("duration")),
        )


@dataclass(frozen=True, slots=True)
class FileChangePayload:
    file_path: str | None = None
    change_type: str | None = None
    content: str | None = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> FileChangePayload:
        return cls(
            file_path=_str(data.get("filePath")),
            change_type=_str(data.get("changeType")),
            content=_str(data.get("content")),
        )


@dataclass(frozen=True, slots=True)
class GitCommitPayload:
    commit_message: str | None = None
    files: tuple[str, ...] = ()
    hash: str | None = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> GitCommitPayload:
        files = data.get("files")
        return cls(
            commit_message=_str(data.get("commitMessage")),
            files=tuple(str(f) for f in files) if isinstance(files, (list, tuple)) else (),
            hash=_str(data.get("hash")),
        )


@dataclass(frozen=True, slots=True)
class ProjectLoadPayload:
    project_path: str | None = None
    file_count: float | None = None
    git_branch: str | None = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> ProjectLoadPayload:
        return cls(
            project_path=_str(data.get("projectPath")),
            file_count=_num(data.get("fileCount")),
            git_branch=_str(data.get("gitBranch")),
        )


@dataclass(frozen=True, slots=True)
class SessionPayload:
    """SessionStart / SessionEnd."""

    session_id: str | None = None
    project_path: str | None = None
    timestamp: str | None = None
    duration: float | None = None
    message_count: float | None = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> SessionPayload:
        return cls(
            session_id=_str(data.get("sessionId")),
            project_path=_str(data.get("projectPath")),
            timestamp=_str(data.get("timestamp")),
            duration=_num(data.get("duration")),
            message_count=_num(data.get("messageCount")),
        )


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    error: str | None = None
    source: str | None = None
    severity: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> ErrorPayload:
        ctx = data.get("context")
        return cls(
            error=_str(data.get("error")),
            source=_str(data.get("source")),
            severity=_str(data.get("severity")),
            context=dict(ctx) if isinstance(ctx, Mapping) else {},
        )


@dataclass(frozen=True, slots=True)
class RawPayload:
    """Default arm for unknown events or malformed data."""

    data: dict[str, Any] = field(default_factory=dict)


EventPayload = Union[
    ToolUsePayload,
    ChatMessagePayload,
    FileChangePayload,
    GitCommitPayload,
    ProjectLoadPayload,
    SessionPayload,
    ErrorPayload,
    RawPayload,
]

PAYLOAD_TYPES: dict[HookEvent, type] = {
    HookEvent.PRE_TOOL_USE: ToolUsePayload,
    HookEvent.POST_TOOL_USE: ToolUsePayload,
    HookEvent.PRE_CHAT_MESSAGE: ChatMessagePayload,
    HookEvent.POST_CHAT_MESSAGE: ChatMessagePayload,
    HookEvent.FILE_CHANGE: FileChangePayload,
    HookEvent.GIT_COMMIT: GitCommitPayload,
    HookEvent.PROJECT_LOAD: ProjectLoadPayload,
    HookEvent.SESSION_START: SessionPayload,
    HookEvent.SESSION_END: SessionPayload,
    HookEvent.ERROR: ErrorPayload,
}


def parse_payload(event: HookEvent | str, data: Any) -> EventPayload:
    """Build the typed payload for *event* from a raw data mapping."""
    if not isinstance(data, Mapping):
        return RawPayload()
    try:
        kind = event if isinstance(event, HookEvent) else HookEvent(event)
    except ValueError:
        return RawPayload(data=dict(data))
    payload_type = PAYLOAD_TYPES[kind]
    return payload_type.from_data(data)
