"""Configuration types for hookwork."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True, slots=True)
class AuditConfig:
    """Configuration for execution history and retention."""

    enabled: bool = True
    retention_days: int = 30
    stats_window_days: int = 7
    output_preview_chars: int = 1000


@dataclass(frozen=True, slots=True)
class SupervisorConfig:
    """Configuration for subprocess supervision."""

    kill_grace_seconds: float = 5.0
    shell: str | None = None  # None: platform default shell


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Configuration for one AutomationEngine instance."""

    db_path: str = str(Path.home() / ".hookwork" / "hookwork.db")
    database_url: str | None = None  # full SQLAlchemy URL, overrides db_path
    retry_base_delay: float = 1.0  # seconds, workflow step retry backoff base
    audit: AuditConfig = field(default_factory=AuditConfig)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)
