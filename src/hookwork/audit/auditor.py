"""ExecutionAuditor: append-only execution history, statistics, retention.

Writes are fire-and-forget: a failing store is logged and never breaks
the hook or workflow being recorded. Reads and cleanup propagate errors.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any

from hookwork.storage.repositories import AutomationStore
from hookwork.storage.sql import utcnow
from hookwork.types.audit import (
    ExecutionStatistics,
    LogEntry,
    LogEventType,
    LogSource,
    LogStatus,
)
from hookwork.types.config import AuditConfig

logger = logging.getLogger(__name__)


def truncate(text: str | None, limit: int) -> str | None:
    if text is None:
        return None
    return text[:limit]


class ExecutionAuditor:
    """Records log rows and answers statistics/log queries."""

    def __init__(self, store: AutomationStore, config: AuditConfig | None = None) -> None:
        self._store = store
        self._config = config or AuditConfig()

    @property
    def config(self) -> AuditConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def preview(self, output: str | None) -> str | None:
        """Output as stored in log metadata."""
        return truncate(output, self._config.output_preview_chars)

    # -- Core write -------------------------------------------------------

    async def record(
        self,
        target_id: str,
        kind: LogEventType,
        status: LogStatus | bool,
        duration_ms: int | None = None,
        metadata: dict[str, Any] | None = None,
        project_path: str | None = None,
        *,
        source: LogSource = LogSource.HOOK,
        error_message: str | None = None,
    ) -> int | None:
        """Append one row. Returns its id, or None if disabled or the write failed."""
        if not self._config.enabled:
            return None
        if isinstance(status, bool):
            status = LogStatus.SUCCESS if status else LogStatus.ERROR
        try:
            return await asyncio.to_thread(
                self._store.insert_log_row,
                source=source,
                target_id=target_id,
                event_type=kind,
                status=status,
                execution_time=duration_ms,
                error_message=error_message,
                metadata=metadata,
                project_path=project_path,
            )
        except Exception:
            logger.exception("Failed to record %s %s row for %s", source.value, kind.value, target_id)
            return None

    # -- Lifecycle convenience --------------------------------------------

    async def record_creation(
        self, target_id: str, *, event: str, enabled: bool, source: LogSource = LogSource.HOOK,
    ) -> int | None:
        return await self.record(
            target_id, LogEventType.CREATION, LogStatus.SUCCESS,
            metadata={"event": event, "enabled": enabled}, source=source,
        )

    async def record_update(
        self, target_id: str, *, fields: list[str], source: LogSource = LogSource.HOOK,
    ) -> int | None:
        return await self.record(
            target_id, LogEventType.UPDATE, LogStatus.SUCCESS,
            metadata={"updates": sorted(fields)}, source=source,
        )

    async def record_deletion(
        self, target_id: str, *, name: str, source: LogSource = LogSource.HOOK,
    ) -> int | None:
        return await self.record(
            target_id, LogEventType.DELETION, LogStatus.SUCCESS,
            metadata={"name": name}, source=source,
        )

    # -- Reads ------------------------------------------------------------

    async def statistics(self, window_days: int | None = None) -> list[ExecutionStatistics]:
        """Per enabled rule, execution rows from the last *window_days* days."""
        days = self._config.stats_window_days if window_days is None else window_days
        since = utcnow() - timedelta(days=days)
        return await asyncio.to_thread(self._store.aggregate_statistics, since)

    async def workflow_statistics(self, window_days: int | None = None) -> list[ExecutionStatistics]:
        days = self._config.stats_window_days if window_days is None else window_days
        since = utcnow() - timedelta(days=days)
        return await asyncio.to_thread(self._store.aggregate_workflow_statistics, since)

    async def logs(
        self,
        target_id: str | None = None,
        *,
        source: LogSource | None = None,
        event_type: LogEventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LogEntry]:
        return await asyncio.to_thread(
            self._store.select_log_rows,
            target_id,
            source=source,
            event_type=event_type,
            limit=limit,
            offset=offset,
        )

    async def cleanup(self, retention_days: int | None = None) -> int:
        """Delete rows older than the retention window. Returns the number removed."""
        days = self._config.retention_days if retention_days is None else retention_days
        cutoff = utcnow() - timedelta(days=days)
        removed = await asyncio.to_thread(self._store.delete_log_rows_older_than, cutoff)
        logger.info("Cleaned up %d execution log row(s) older than %d day(s)", removed, days)
        return removed
