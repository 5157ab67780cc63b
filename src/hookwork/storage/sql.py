"""SQLAlchemy implementation of the automation store.

All queries are SQLAlchemy 2.0 style (``select()`` + ``session.execute()``).
Each call opens its own short session; a lock serialises callers so the
store can be driven from ``asyncio.to_thread`` workers.
"""

from __future__ import annotations

import threading
from collections.abc import Collection
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Engine, and_, case, delete, func, or_, select
from sqlalchemy.orm import Session

from hookwork.storage.engine import create_session_factory, create_store_engine, init_db
from hookwork.storage.repositories import AutomationStore
from hookwork.storage.schema import ExecutionLogRow, RuleRow, WorkflowRow
from hookwork.types.audit import (
    ExecutionStatistics,
    LogEntry,
    LogEventType,
    LogSource,
    LogStatus,
)
from hookwork.types.hooks import AutomationRule
from hookwork.types.workflows import Trigger, Workflow, WorkflowSettings, WorkflowStep


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _rule_from_row(row: RuleRow) -> AutomationRule:
    return AutomationRule(
        id=row.id,
        name=row.name,
        description=row.description or "",
        event=row.event,
        condition=row.condition,
        condition_params=dict(row.condition_params or {}),
        command=row.command,
        timeout=row.timeout,
        enabled=bool(row.enabled),
        project_path=row.project_path,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _copy_rule(row: RuleRow, rule: AutomationRule) -> None:
    row.name = rule.name
    row.description = rule.description
    row.event = rule.event
    row.condition = rule.condition
    row.condition_params = dict(rule.condition_params)
    row.command = rule.command
    row.timeout = rule.timeout
    row.enabled = rule.enabled
    row.project_path = rule.project_path


def _workflow_from_row(row: WorkflowRow) -> Workflow:
    return Workflow(
        id=row.id,
        name=row.name,
        description=row.description or "",
        trigger=Trigger.from_dict(row.trigger_json or {}),
        steps=tuple(WorkflowStep.from_dict(s, i) for i, s in enumerate(row.steps_json or [])),
        settings=WorkflowSettings.from_dict(row.settings_json),
        enabled=bool(row.enabled),
        project_path=row.project_path,
    )


def _copy_workflow(row: WorkflowRow, workflow: Workflow) -> None:
    row.name = workflow.name
    row.description = workflow.description
    row.event = workflow.trigger.event
    row.trigger_json = workflow.trigger.to_dict()
    row.steps_json = [s.to_dict() for s in workflow.steps]
    row.settings_json = workflow.settings.to_dict()
    row.enabled = workflow.enabled
    row.project_path = workflow.project_path


def _entry_from_row(row: ExecutionLogRow) -> LogEntry:
    return LogEntry(
        id=row.id,
        source=LogSource(row.source),
        target_id=row.target_id,
        event_type=LogEventType(row.event_type),
        status=LogStatus(row.status),
        created_at=row.created_at,
        execution_time=row.execution_time,
        error_message=row.error_message,
        metadata=dict(row.metadata_json or {}),
        project_path=row.project_path,
    )


def _filter_rules(
    stmt: Any,
    *,
    event: str | None,
    enabled: bool | None,
    project_path: str | None,
    search: str | None,
) -> Any:
    if event:
        stmt = stmt.where(RuleRow.event == event)
    if enabled is not None:
        stmt = stmt.where(RuleRow.enabled.is_(enabled))
    if project_path:
        stmt = stmt.where(
            or_(RuleRow.project_path == project_path, RuleRow.project_path.is_(None))
        )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(RuleRow.name.like(pattern), RuleRow.description.like(pattern)))
    return stmt


class SqlAutomationStore(AutomationStore):
    """AutomationStore backed by any SQLAlchemy engine (SQLite by default)."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessions = create_session_factory(engine)
        self._lock = threading.RLock()
        init_db(engine)

    @classmethod
    def open(cls, db_path: str = ":memory:", *, url: str | None = None) -> SqlAutomationStore:
        return cls(create_store_engine(db_path, url=url))

    @property
    def engine(self) -> Engine:
        return self._engine

    def close(self) -> None:
        self._engine.dispose()

    def _session(self) -> Session:
        return self._sessions()

    # -- rules ------------------------------------------------------------

    def select_enabled_rules(self) -> list[AutomationRule]:
        stmt = (
            select(RuleRow)
            .where(RuleRow.enabled.is_(True))
            .order_by(RuleRow.created_at, RuleRow.id)
        )
        with self._lock, self._session() as session:
            return [_rule_from_row(r) for r in session.execute(stmt).scalars()]

    def select_rule_by_id(self, rule_id: str) -> AutomationRule | None:
        with self._lock, self._session() as session:
            row = session.get(RuleRow, rule_id)
            return _rule_from_row(row) if row is not None else None

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
        stmt = _filter_rules(
            select(RuleRow), event=event, enabled=enabled, project_path=project_path, search=search,
        )
        stmt = (
            stmt.order_by(RuleRow.enabled.desc(), RuleRow.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._lock, self._session() as session:
            return [_rule_from_row(r) for r in session.execute(stmt).scalars()]

    def count_rules(
        self,
        *,
        event: str | None = None,
        enabled: bool | None = None,
        project_path: str | None = None,
        search: str | None = None,
    ) -> int:
        stmt = _filter_rules(
            select(func.count()).select_from(RuleRow),
            event=event,
            enabled=enabled,
            project_path=project_path,
            search=search,
        )
        with self._lock, self._session() as session:
            return int(session.execute(stmt).scalar_one())

    def insert_rule(self, rule: AutomationRule) -> AutomationRule:
        now = utcnow()
        row = RuleRow(id=rule.id, created_at=now, updated_at=now)
        _copy_rule(row, rule)
        with self._lock, self._session() as session:
            session.add(row)
            session.commit()
            return _rule_from_row(row)

    def update_rule(self, rule: AutomationRule) -> AutomationRule | None:
        with self._lock, self._session() as session:
            row = session.get(RuleRow, rule.id)
            if row is None:
                return None
            _copy_rule(row, rule)
            row.updated_at = utcnow()
            session.commit()
            return _rule_from_row(row)

    def delete_rule(self, rule_id: str) -> bool:
        with self._lock, self._session() as session:
            result = session.execute(delete(RuleRow).where(RuleRow.id == rule_id))
            session.commit()
            return bool(result.rowcount)

    # -- workflows --------------------------------------------------------

    def select_enabled_workflows(self) -> list[Workflow]:
        stmt = (
            select(WorkflowRow)
            .where(WorkflowRow.enabled.is_(True))
            .order_by(WorkflowRow.created_at, WorkflowRow.id)
        )
        with self._lock, self._session() as session:
            return [_workflow_from_row(r) for r in session.execute(stmt).scalars()]

    def select_workflow_by_id(self, workflow_id: str) -> Workflow | None:
        with self._lock, self._session() as session:
            row = session.get(WorkflowRow, workflow_id)
            return _workflow_from_row(row) if row is not None else None

    def list_workflows(
        self,
        *,
        enabled: bool | None = None,
        project_path: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Workflow]:
        stmt = select(WorkflowRow)
        if enabled is not None:
            stmt = stmt.where(WorkflowRow.enabled.is_(enabled))
        if project_path:
            stmt = stmt.where(
                or_(WorkflowRow.project_path == project_path, WorkflowRow.project_path.is_(None))
            )
        stmt = (
            stmt.order_by(WorkflowRow.enabled.desc(), WorkflowRow.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._lock, self._session() as session:
            return [_workflow_from_row(r) for r in session.execute(stmt).scalars()]

    def insert_workflow(self, workflow: Workflow) -> Workflow:
        now = utcnow()
        row = WorkflowRow(id=workflow.id, created_at=now, updated_at=now)
        _copy_workflow(row, workflow)
        with self._lock, self._session() as session:
            session.add(row)
            session.commit()
            return _workflow_from_row(row)

    def update_workflow(self, workflow: Workflow) -> Workflow | None:
        with self._lock, self._session() as session:
            row = session.get(WorkflowRow, workflow.id)
            if row is None:
                return None
            _copy_workflow(row, workflow)
            row.updated_at = utcnow()
            session.commit()
            return _workflow_from_row(row)

    def delete_workflow(self, workflow_id: str) -> bool:
        with self._lock, self._session() as session:
            result = session.execute(delete(WorkflowRow).where(WorkflowRow.id == workflow_id))
            session.commit()
            return bool(result.rowcount)

    # -- execution log ----------------------------------------------------

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
        row = ExecutionLogRow(
            source=source.value,
            target_id=target_id,
            event_type=event_type.value,
            status=status.value,
            execution_time=execution_time,
            error_message=error_message,
            metadata_json=dict(metadata) if metadata else None,
            project_path=project_path,
            created_at=created_at or utcnow(),
        )
        with self._lock, self._session() as session:
            session.add(row)
            session.commit()
            return row.id

    def select_log_rows(
        self,
        target_id: str | None = None,
        *,
        source: LogSource | None = None,
        event_type: LogEventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LogEntry]:
        stmt = select(ExecutionLogRow)
        if target_id is not None:
            stmt = stmt.where(ExecutionLogRow.target_id == target_id)
        if source is not None:
            stmt = stmt.where(ExecutionLogRow.source == source.value)
        if event_type is not None:
            stmt = stmt.where(ExecutionLogRow.event_type == event_type.value)
        stmt = (
            stmt.order_by(ExecutionLogRow.created_at.desc(), ExecutionLogRow.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._lock, self._session() as session:
            return [_entry_from_row(r) for r in session.execute(stmt).scalars()]

    def delete_log_rows_older_than(self, cutoff: datetime) -> int:
        with self._lock, self._session() as session:
            result = session.execute(
                delete(ExecutionLogRow).where(ExecutionLogRow.created_at < cutoff)
            )
            session.commit()
            return int(result.rowcount or 0)

    def aggregate_statistics(self, since: datetime) -> list[ExecutionStatistics]:
        return self._aggregate(RuleRow, RuleRow.event, LogSource.HOOK, since)

    def aggregate_workflow_statistics(self, since: datetime) -> list[ExecutionStatistics]:
        return self._aggregate(WorkflowRow, WorkflowRow.event, LogSource.WORKFLOW, since)

    def rule_statistics(self, rule_ids: Collection[str]) -> dict[str, ExecutionStatistics]:
        if not rule_ids:
            return {}
        stats = self._aggregate(
            RuleRow, RuleRow.event, LogSource.HOOK, None, ids=rule_ids, enabled_only=False,
        )
        return {s.target_id: s for s in stats}

    def _aggregate(
        self,
        table: Any,
        event_col: Any,
        source: LogSource,
        since: datetime | None,
        *,
        ids: Collection[str] | None = None,
        enabled_only: bool = True,
    ) -> list[ExecutionStatistics]:
        log = ExecutionLogRow
        join_on = [
            log.target_id == table.id,
            log.source == source.value,
            log.event_type == LogEventType.EXECUTION.value,
        ]
        if since is not None:
            join_on.append(log.created_at >= since)
        count = func.count(log.id)
        stmt = (
            select(
                table.id,
                table.name,
                event_col,
                count,
                func.avg(log.execution_time),
                func.sum(case((log.status == LogStatus.SUCCESS.value, 1), else_=0)),
                func.max(log.created_at),
            )
            .select_from(table)
            .outerjoin(log, and_(*join_on))
            .group_by(table.id, table.name, event_col)
            .order_by(count.desc(), table.name)
        )
        if enabled_only:
            stmt = stmt.where(table.enabled.is_(True))
        if ids is not None:
            stmt = stmt.where(table.id.in_(list(ids)))
        with self._lock, self._session() as session:
            return [
                ExecutionStatistics(
                    target_id=target_id,
                    name=name,
                    event=event,
                    execution_count=int(n or 0),
                    avg_duration=float(avg) if avg is not None else None,
                    success_count=int(ok or 0),
                    last_execution=last,
                )
                for target_id, name, event, n, avg, ok, last in session.execute(stmt).all()
            ]

