"""Persistence for rules, workflows and the execution log."""

from hookwork.storage.repositories import AutomationStore
from hookwork.storage.sql import SqlAutomationStore

__all__ = ["AutomationStore", "SqlAutomationStore"]
