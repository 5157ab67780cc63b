"""Configuration loading (TOML, env vars)."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from hookwork.types.config import AuditConfig, EngineConfig, SupervisorConfig

logger = logging.getLogger(__name__)

# Load .env from current directory (and parents), won't override existing env vars
load_dotenv()

CONFIG_DIR = ".hookwork"


def load_env_config() -> dict[str, Any]:
    """Load configuration overrides from environment variables."""
    config: dict[str, Any] = {}

    if url := os.environ.get("HOOKWORK_DATABASE_URL"):
        config["database_url"] = url
    if path := os.environ.get("HOOKWORK_DB_PATH"):
        config["db_path"] = path
    if days := os.environ.get("HOOKWORK_RETENTION_DAYS"):
        config["retention_days"] = _as_int("HOOKWORK_RETENTION_DAYS", days)
    if grace := os.environ.get("HOOKWORK_KILL_GRACE_SECONDS"):
        config["kill_grace_seconds"] = _as_float("HOOKWORK_KILL_GRACE_SECONDS", grace)

    return {k: v for k, v in config.items() if v is not None}


def _as_int(name: str, value: str) -> int | None:
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, value)
        return None


def _as_float(name: str, value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, value)
        return None


def find_config_file(cwd: str | None = None) -> Path | None:
    """First existing config.toml: project dir, cwd, then ~/.hookwork/config.toml."""
    candidates = []
    if cwd:
        candidates.append(Path(cwd) / CONFIG_DIR / "config.toml")
    candidates.append(Path.cwd() / CONFIG_DIR / "config.toml")
    candidates.append(Path.home() / CONFIG_DIR / "config.toml")
    for path in candidates:
        if path.is_file():
            return path
    return None


def load_toml_config(cwd: str | None = None) -> dict[str, Any]:
    """Load configuration from .hookwork/config.toml if it exists."""
    path = find_config_file(cwd)
    if path is None:
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}


def load_config(cwd: str | None = None, **overrides: Any) -> EngineConfig:
    """Build an EngineConfig from defaults, TOML, env vars and *overrides* (in that order).

    TOML layout::

        [storage]
        db_path = "~/.hookwork/hookwork.db"   # or database_url = "postgresql://..."

        [audit]
        retention_days = 30
        stats_window_days = 7
        output_preview_chars = 1000

        [supervisor]
        kill_grace_seconds = 5.0

        [workflows]
        retry_base_delay = 1.0
    """
    toml = load_toml_config(cwd)
    storage = toml.get("storage", {})
    audit = toml.get("audit", {})
    supervisor = toml.get("supervisor", {})
    workflows = toml.get("workflows", {})

    flat: dict[str, Any] = {
        "db_path": storage.get("db_path"),
        "database_url": storage.get("database_url"),
        "retry_base_delay": workflows.get("retry_base_delay"),
        "audit_enabled": audit.get("enabled"),
        "retention_days": audit.get("retention_days"),
        "stats_window_days": audit.get("stats_window_days"),
        "output_preview_chars": audit.get("output_preview_chars"),
        "kill_grace_seconds": supervisor.get("kill_grace_seconds"),
        "shell": supervisor.get("shell"),
    }
    flat.update(load_env_config())
    flat.update({k: v for k, v in overrides.items() if v is not None})

    defaults = EngineConfig()
    audit_defaults = defaults.audit
    sup_defaults = defaults.supervisor

    def pick(key: str, default: Any) -> Any:
        value = flat.get(key)
        return default if value is None else value

    db_path = pick("db_path", defaults.db_path)
    return EngineConfig(
        db_path=str(Path(db_path).expanduser()) if db_path != ":memory:" else db_path,
        database_url=pick("database_url", defaults.database_url),
        retry_base_delay=float(pick("retry_base_delay", defaults.retry_base_delay)),
        audit=AuditConfig(
            enabled=bool(pick("audit_enabled", audit_defaults.enabled)),
            retention_days=int(pick("retention_days", audit_defaults.retention_days)),
            stats_window_days=int(pick("stats_window_days", audit_defaults.stats_window_days)),
            output_preview_chars=int(
                pick("output_preview_chars", audit_defaults.output_preview_chars)
            ),
        ),
        supervisor=SupervisorConfig(
            kill_grace_seconds=float(pick("kill_grace_seconds", sup_defaults.kill_grace_seconds)),
            shell=pick("shell", sup_defaults.shell),
        ),
    )
