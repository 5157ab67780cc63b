"""Hook template library: pre-built rule configurations.

Templates live in ``templates.yaml`` next to this module and are loaded
once, lazily.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any

import yaml

from hookwork.hooks.validation import VALID_CONDITIONS, VALID_EVENTS
from hookwork.types.hooks import DEFAULT_TIMEOUT_MS, MAX_TIMEOUT_MS, MIN_TIMEOUT_MS

logger = logging.getLogger(__name__)

TEMPLATES_FILE = Path(__file__).with_name("templates.yaml")

POPULAR_TEMPLATE_IDS = (
    "development-pre-commit-linting",
    "development-pre-commit-testing",
    "quality-security-audit",
    "notifications-slack-build-notification",
    "monitoring-performance-logging",
    "deployment-pre-deployment-health-check",
    "backup-project-backup",
)


class TemplateNotFoundError(KeyError):
    def __str__(self) -> str:
        return f"Template not found: {self.args[0]}"


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "-", name.lower())


@dataclass(frozen=True, slots=True)
class HookTemplate:
    id: str
    name: str
    description: str
    event: str
    command: str
    category: str
    category_key: str
    condition: str = "always"
    condition_params: dict[str, Any] = field(default_factory=dict)
    timeout: int = DEFAULT_TIMEOUT_MS
    tags: tuple[str, ...] = ()
    variables: tuple[dict[str, Any], ...] = ()
    example: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "event": self.event,
            "condition": self.condition,
            "conditionParams": dict(self.condition_params),
            "command": self.command,
            "timeout": self.timeout,
            "tags": list(self.tags),
            "variables": [dict(v) for v in self.variables],
            "example": dict(self.example),
            "category": self.category,
            "categoryKey": self.category_key,
        }


@dataclass(frozen=True, slots=True)
class TemplateCategory:
    key: str
    name: str
    description: str
    count: int


def validate_template(template: Mapping[str, Any]) -> list[str]:
    """Problems with a template (or a config generated from one); empty when valid."""
    errors: list[str] = []
    for key in ("name", "description", "event", "command"):
        if not template.get(key):
            errors.append(f"Template {key} is required")

    event = template.get("event")
    if event and event not in VALID_EVENTS:
        errors.append(f"Invalid event type: {event}")

    timeout = template.get("timeout")
    if timeout is not None and (
        isinstance(timeout, bool)
        or not isinstance(timeout, (int, float))
        or not MIN_TIMEOUT_MS <= timeout <= MAX_TIMEOUT_MS
    ):
        errors.append(f"Timeout must be between {MIN_TIMEOUT_MS}ms and {MAX_TIMEOUT_MS}ms")

    condition = template.get("condition")
    if condition and condition not in VALID_CONDITIONS:
        errors.append(f"Invalid condition type: {condition}")
    return errors


class TemplateLibrary:
    """Read-only catalogue of hook templates."""

    def __init__(self, source: Path | Mapping[str, Any] | None = None) -> None:
        self._source = TEMPLATES_FILE if source is None else source

    @cached_property
    def _raw(self) -> dict[str, Any]:
        if isinstance(self._source, Mapping):
            return dict(self._source)
        with open(self._source, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.debug("Loaded hook templates from %s", self._source)
        return data

    @cached_property
    def _templates(self) -> list[HookTemplate]:
        out: list[HookTemplate] = []
        for key, category in self._raw.items():
            for raw in category.get("templates") or []:
                out.append(
                    HookTemplate(
                        id=f"{key}-{slugify(raw['name'])}",
                        name=raw["name"],
                        description=raw.get("description", ""),
                        event=raw["event"],
                        command=raw["command"],
                        category=category.get("name", key),
                        category_key=key,
                        condition=raw.get("condition") or "always",
                        condition_params=dict(raw.get("conditionParams") or {}),
                        timeout=int(raw.get("timeout") or DEFAULT_TIMEOUT_MS),
                        tags=tuple(raw.get("tags") or ()),
                        variables=tuple(raw.get("variables") or ()),
                        example=dict(raw.get("example") or {}),
                    )
                )
        return out

    def all_templates(self) -> list[HookTemplate]:
        return list(self._templates)

    def templates_by_category(self, category_key: str) -> list[HookTemplate]:
        return [t for t in self._templates if t.category_key == category_key]

    def categories(self) -> list[TemplateCategory]:
        return [
            TemplateCategory(
                key=key,
                name=category.get("name", key),
                description=category.get("description", ""),
                count=len(category.get("templates") or []),
            )
            for key, category in self._raw.items()
        ]

    def search(self, query: str) -> list[HookTemplate]:
        """Case-insensitive match on name, description, tags or event."""
        q = query.lower()
        return [
            t
            for t in self._templates
            if q in t.name.lower()
            or q in t.description.lower()
            or any(q in tag.lower() for tag in t.tags)
            or q in t.event.lower()
        ]

    def get_template(self, template_id: str) -> HookTemplate | None:
        return next((t for t in self._templates if t.id == template_id), None)

    def templates_by_event(self, event: str) -> list[HookTemplate]:
        return [t for t in self._templates if t.event == event]

    def templates_by_tags(self, tags: Iterable[str]) -> list[HookTemplate]:
        wanted = {tag.lower() for tag in tags}
        return [t for t in self._templates if any(tag.lower() in wanted for tag in t.tags)]

    def popular(self, limit: int = 10) -> list[HookTemplate]:
        found = (self.get_template(tid) for tid in POPULAR_TEMPLATE_IDS)
        return [t for t in found if t is not None][:limit]

    def generate_rule_config(self, template_id: str, **customization: Any) -> dict[str, Any]:
        """A rule configuration from a template, with *customization* overriding fields.

        Raises ``TemplateNotFoundError`` for unknown ids and ``ValueError``
        when the result is not a valid configuration.
        """
        template = self.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)

        params = customization.get("conditionParams", customization.get("condition_params"))
        enabled = customization.get("enabled")
        config = {
            "name": customization.get("name") or template.name,
            "description": customization.get("description") or template.description,
            "event": template.event,
            "condition": customization.get("condition") or template.condition,
            "conditionParams": copy.deepcopy(params or template.condition_params),
            "command": customization.get("command") or template.command,
            "timeout": customization.get("timeout") or template.timeout,
            "enabled": True if enabled is None else bool(enabled),
            "project_path": customization.get("project_path") or customization.get("projectPath"),
        }
        errors = validate_template(config)
        if errors:
            raise ValueError(f"Generated hook configuration is invalid: {', '.join(errors)}")
        return config
