"""Abstract record-store interface.

No SQLAlchemy imports here. The engine, dispatcher and auditor only talk
to this contract; ``hookwork.storage.sql`` is the shipped implementation.
All methods are synchronous and must be safe to call from worker threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime

    from hookwork.types.audit import (
        ExecutionStatistics,
        LogEntry,
        LogEventType,
        LogSource,
        LogStatus,
    )
    from hookwork.types.hooks import AutomationRule
    from hookwork.types.workflows import Workflow


class AutomationStore(ABC):
    """Persistence for rules, workflows and the execution log."""

    # -- rules ------------------------------------------------------------

    @abstractmethod
    def select_enabled_rules(self) -> list[AutomationRule]:
        """All enabled rules, oldest first."""
        ...

    @abstractmethod
    def select_rule_by_id(self, rule_id: str) -> AutomationRule | None: ...

    @abstractmethod
    def list_rules(
        self,
        *,
        event: str | None = None,
        enabled: bool | None = None,
        project_path: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AutomationRule]:
        """Enabled rules first, then newest first.

        *project_path* matches rules scoped to that path and unscoped rules.
        *search* is a substring of the name or description.
        """
        ...

    @abstractmethod
    def count_rules(
        self,
        *,
        event: str | None = None,
        enabled: bool | None = None,
        project_path: str | None = None,
        search: str | None = None,
    ) -> int:
        """How many rules ``list_rules`` would return with no paging."""
        ...

    @abstractmethod
    def insert_rule(self, rule: AutomationRule) -> AutomationRule:
        """Persist a new rule and return it with timestamps filled in."""
        ...

    @abstractmethod
    def update_rule(self, rule: AutomationRule) -> AutomationRule | None:
        """Replace a stored rule. Returns None when the id is unknown."""
        ...

    @abstractmethod
    def delete_rule(self, rule_id: str) -> bool: ...

    # -- workflows --------------------------------------------------------

    @abstractmethod
    def select_enabled_workflows(self) -> list[Workflow]: ...

    @abstractmethod
    def select_workflow_by_id(self, workflow_id: str) -> Workflow | None: ...

    @abstractmethod
    def list_workflows(
        self,
        *,
        enabled: bool | None = None,
        project_path: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Workflow]: ...

    @abstractmethod
    def insert_workflow(self, workflow: Workflow) -> Workflow: ...

    @abstractmethod
    def update_workflow(self, workflow: Workflow) -> Workflow | None: ...

    @abstractmethod
    def delete_workflow(self, workflow_id: str) -> bool: ...

    # -- execution log ----------------------------------------------------

    @abstractmethod
    def insert_log_row(
        self,
        *,
        source: LogSource,
        target_id: str,
        event_type: LogEventType,
        status: LogStatus,
        execution_time: int | None = None,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
        project_path: str | None = None,
        created_at: datetime | None = None,
    ) -> int:
        """Append one row and return its id."""
        ...

    @abstractmethod
    def select_log_rows(
        self,
        target_id: str | None = None,
        *,
        source: LogSource | None = None,
        event_type: LogEventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LogEntry]:
        """Rows newest first."""
        ...

    @abstractmethod
    def delete_log_rows_older_than(self, cutoff: datetime) -> int:
        """Delete rows created before *cutoff*; return how many went."""
        ...

    @abstractmethod
    def aggregate_statistics(self, since: datetime) -> list[ExecutionStatistics]:
        """Per enabled rule: ``execution`` rows created at or after *since*."""
        ...

    @abstractmethod
    def aggregate_workflow_statistics(self, since: datetime) -> list[ExecutionStatistics]: ...

    @abstractmethod
    def rule_statistics(self, rule_ids: Collection[str]) -> dict[str, ExecutionStatistics]:
        """All-time ``execution`` aggregates for the given rules, enabled or not."""
        ...
