"""Execution history types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class LogSource(Enum):
    """What a log row's ``target_id`` refers to."""

    HOOK = "hook"
    WORKFLOW = "workflow"


class LogEventType(Enum):
    EXECUTION = "execution"
    TEST = "test"
    CREATION = "creation"
    UPDATE = "update"
    DELETION = "deletion"


class LogStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One append-only audit row."""

    id: int
    source: LogSource
    target_id: str
    event_type: LogEventType
    status: LogStatus
    created_at: datetime
    execution_time: int | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    project_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.value,
            "target_id": self.target_id,
            "event_type": self.event_type.value,
            "status": self.status.value,
            "execution_time": self.execution_time,
            "error_message": self.error_message,
            "metadata": dict(self.metadata),
            "project_path": self.project_path,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class ExecutionStatistics:
    """Aggregated execution counts for one hook or workflow over a window."""

    target_id: str
    name: str
    event: str
    execution_count: int = 0
    avg_duration: float | None = None
    success_count: int = 0
    last_execution: datetime | None = None

    @property
    def success_rate(self) -> float:
        if not self.execution_count:
            return 0.0
        return self.success_count / self.execution_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.target_id,
            "name": self.name,
            "event": self.event,
            "execution_count": self.execution_count,
            "avg_duration": self.avg_duration,
            "success_count": self.success_count,
            "success_rate": self.success_rate,
            "last_execution": self.last_execution.isoformat() if self.last_execution else None,
        }
