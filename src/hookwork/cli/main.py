"""CLI entry point for hookwork."""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from hookwork import __version__


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    if sys.stderr.isatty():
        handler: logging.Handler = RichHandler(console=Console(stderr=True), show_path=False)
        fmt = "%(message)s"
    else:
        handler = logging.StreamHandler()
        fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    logging.basicConfig(level=level, format=fmt, handlers=[handler])


@click.group()
@click.option("--db", "db_path", default=None, help="SQLite database path")
@click.option("--cwd", default=None, help="Project directory (for .hookwork/config.toml)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.version_option(__version__, prog_name="hookwork")
@click.pass_context
def cli(ctx: click.Context, db_path: str | None, cwd: str | None, verbose: bool) -> None:
    """hookwork -- run shell commands and workflows when events fire.

    \b
    Usage:
      hookwork events
      hookwork hooks add --name Lint --event FileChange \\
          --condition file_type --param extension=py --command 'ruff check "${data.filePath}"'
      hookwork trigger FileChange --data '{"filePath": "src/app.py"}'
      hookwork workflows add release.yaml
      hookwork templates list
      hookwork stats --days 7
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj.setdefault("db_path", db_path)
    ctx.obj.setdefault("cwd", cwd)


def _register_subcommands() -> None:
    """Register CLI subcommands."""
    from hookwork.cli.commands import (
        cleanup_cmd,
        events_cmd,
        hooks_cmd,
        stats_cmd,
        templates_cmd,
        trigger_cmd,
        workflows_cmd,
    )

    cli.add_command(events_cmd, "events")
    cli.add_command(hooks_cmd, "hooks")
    cli.add_command(trigger_cmd, "trigger")
    cli.add_command(stats_cmd, "stats")
    cli.add_command(cleanup_cmd, "cleanup")
    cli.add_command(workflows_cmd, "workflows")
    cli.add_command(templates_cmd, "templates")


_register_subcommands()


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
