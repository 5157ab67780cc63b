"""Template expansion for hook and workflow commands.

Three passes, in order:

1. ``${event}``, ``${projectPath}``, ``${timestamp}``
2. ``${data.<key>}`` for every top-level key of the event data
3. ``$UPPER_SNAKE_CASE`` environment variables (left untouched when unset)

Values are substituted verbatim. No shell quoting is applied, so commands
should only be authored by people trusted to run shell on this machine.
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from typing import Any

from hookwork.hooks.events import EventContext

_ENV_VAR_RE = re.compile(r"\$([A-Z_][A-Z0-9_]*)")


def render_value(value: Any) -> str:
    """String form of a data value as it appears in a command."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def interpolate(
    template: str,
    context: EventContext,
    *,
    environ: Mapping[str, str] | None = None,
) -> str:
    env = os.environ if environ is None else environ

    result = (
        template.replace("${event}", context.event)
        .replace("${projectPath}", context.project_path or "")
        .replace("${timestamp}", context.timestamp)
    )

    for key, value in context.data.items():
        result = result.replace(f"${{data.{key}}}", render_value(value))

    def _env(match: re.Match[str]) -> str:
        value = env.get(match.group(1))
        return match.group(0) if value is None else value

    return _ENV_VAR_RE.sub(_env, result)
