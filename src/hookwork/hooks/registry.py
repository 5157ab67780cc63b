"""In-memory index of enabled rules (and workflows), keyed by event."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

from hookwork.types.hooks import AutomationRule

if TYPE_CHECKING:
    from hookwork.storage.repositories import AutomationStore

logger = logging.getLogger(__name__)


class Registrable(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def event(self) -> str: ...


R = TypeVar("R", bound=Registrable)


class Registry(Generic[R]):
    """Event -> rules, preserving registration order within each event.

    The persisted store is the source of truth; this is a cache rebuilt on
    start and kept in step by the engine's create/update/delete paths.
    """

    def __init__(self, rules: Iterable[R] | None = None) -> None:
        self._by_event: dict[str, dict[str, R]] = {}
        self._event_of: dict[str, str] = {}
        for rule in rules or ():
            self.register(rule)

    def register(self, rule: R) -> None:
        """Add or replace *rule*. Replacing under the same event keeps its position."""
        previous = self._event_of.get(rule.id)
        if previous is not None and previous != rule.event:
            self._drop(rule.id, previous)
        self._by_event.setdefault(rule.event, {})[rule.id] = rule
        self._event_of[rule.id] = rule.event
        logger.debug("Registered rule %s (%s) for %s", rule.id, rule.name, rule.event)

    def unregister(self, rule_id: str) -> bool:
        """Remove *rule_id*. Returns False when it was not registered."""
        event = self._event_of.pop(rule_id, None)
        if event is None:
            return False
        self._drop(rule_id, event)
        logger.debug("Unregistered rule %s from %s", rule_id, event)
        return True

    def _drop(self, rule_id: str, event: str) -> None:
        bucket = self._by_event.get(event)
        if bucket is None:
            return
        bucket.pop(rule_id, None)
        if not bucket:
            del self._by_event[event]

    def rules_for(self, event: str) -> list[R]:
        """Snapshot of the rules registered for *event*, in registration order."""
        return list(self._by_event.get(event, {}).values())

    def get(self, rule_id: str) -> R | None:
        event = self._event_of.get(rule_id)
        if event is None:
            return None
        return self._by_event[event].get(rule_id)

    def counts_by_event(self) -> dict[str, int]:
        return {event: len(bucket) for event, bucket in self._by_event.items()}

    def clear(self) -> None:
        self._by_event.clear()
        self._event_of.clear()

    def replace_all(self, items: Iterable[R]) -> int:
        self.clear()
        count = 0
        for item in items:
            self.register(item)
            count += 1
        return count

    def __len__(self) -> int:
        return len(self._event_of)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._event_of


class RuleRegistry(Registry[AutomationRule]):
    """Registry of enabled automation rules."""

    def rebuild(self, store: AutomationStore) -> int:
        """Replace the contents with the store's enabled rules.

        Store errors propagate; the registry is left untouched in that case.
        """
        count = self.replace_all(store.select_enabled_rules())
        logger.info("Loaded %d enabled rule(s)", count)
        return count
