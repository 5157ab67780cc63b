"""Execution history: recording, statistics and retention."""

from hookwork.audit.auditor import ExecutionAuditor

__all__ = ["ExecutionAuditor"]
