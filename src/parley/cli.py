"""Parley command line interface."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from parley.backend import UploadedFile, WorkspaceInfo
from parley.config import Settings, get_settings
from parley.core.commands import CommandKind
from parley.core.parser import parse
from parley.core.registry import CommandRegistry, NotFound, ResolvedDirective
from parley.core.template import expand, expand_report
from parley.core.types import PlainText
from parley.engine import unknown_command_message
from parley.errors import EmptyExpansionError, ParleyError
from parley.logging_utils import configure_logging
from parley.shell import LocalShellExecutor
from parley.store import JSONCommandStore
from parley.workspace import build_context

EXIT_UNKNOWN_COMMAND = 1
EXIT_EXPANSION_ERROR = 2
EXIT_EXECUTION_ERROR = 3

app = typer.Typer(name="parley", help="Slash-command orchestration for multi-agent dialogue.", add_completion=False)


def _settings(commands_file: Path | None) -> Settings:
    if commands_file is not None:
        return get_settings(commands_file=commands_file)
    return get_settings()


def _load_registry(settings: Settings) -> CommandRegistry:
    store = JSONCommandStore(settings.resolve_commands_file())
    try:
        return CommandRegistry(asyncio.run(store.list_commands()))
    except ParleyError as exc:
        typer.echo(f"Invalid command table: {exc}", err=True)
        raise typer.Exit(EXIT_EXECUTION_ERROR) from exc


def _local_workspace(root: Path) -> WorkspaceInfo:
    root = root.resolve()
    files = tuple(
        UploadedFile(name=path.name, path=path, size=path.stat().st_size)
        for path in sorted(root.iterdir())
        if path.is_file() and not path.name.startswith(".")
    )
    return WorkspaceInfo(id=str(root), name=root.name, root_path=root, files=files)


@app.command()
def run(
    line: str = typer.Argument(..., help="One line of input, e.g. '/review main.py'"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Expand only; never execute shell commands"),
    workspace: Path = typer.Option(Path("."), "--workspace", "-w", help="Workspace root"),  # noqa: B008
    commands_file: Path | None = typer.Option(None, "--commands-file", help="JSON command table"),  # noqa: B008
) -> None:
    """Parse one input line, resolve it and show what would be dispatched."""
    settings = _settings(commands_file)
    configure_logging(profile="cli", level=settings.log_level)
    registry = _load_registry(settings)

    intent = parse(
        line,
        directives=registry.directive_names(),
        prefix=settings.command_prefix,
        delimiter=settings.mention_delimiter,
    )
    typer.echo(f"intent: {intent.kind}")
    if isinstance(intent, PlainText):
        for mention in intent.mentions:
            typer.echo(f"mention: {mention.display_name}")
        return

    resolution = registry.resolve(intent.name)
    if isinstance(resolution, NotFound):
        typer.echo(unknown_command_message(intent.name, settings.command_prefix), err=True)
        if (hint := registry.closest(intent.name)) is not None:
            typer.echo(f"Did you mean {settings.command_prefix}{hint}?", err=True)
        raise typer.Exit(EXIT_UNKNOWN_COMMAND)
    if isinstance(resolution, ResolvedDirective):
        typer.echo(registry.help_text(resolution.name))
        return

    command = resolution.definition
    typer.echo(f"kind: {command.kind}")
    if command.kind is CommandKind.PIPELINE and command.pipeline_config is not None:
        for index, step in enumerate(command.pipeline_config.steps, start=1):
            typer.echo(f"step {index}: /{step.command_name} {step.args or ''}".rstrip())
        return

    ctx = asyncio.run(build_context(_local_workspace(workspace), args=intent.args_text, recent_count=settings.recent_turn_count))
    expansion = expand_report(command.content, ctx, include_session=command.kind is CommandKind.ACTION)
    task_description = intent.args_text.strip() if command.kind is CommandKind.TASK else ""
    if not expansion.text.strip() and not task_description:
        typer.echo(str(EmptyExpansionError(command.name)), err=True)
        raise typer.Exit(EXIT_EXPANSION_ERROR)
    working_dir = expand(command.working_dir, ctx) if command.working_dir else None

    typer.echo(f"content: {expansion.text}")
    if working_dir:
        typer.echo(f"working_dir: {working_dir}")
    if expansion.unresolved:
        typer.echo(f"unresolved: {', '.join(expansion.unresolved)}")

    if command.kind is not CommandKind.SHELL or dry_run:
        return
    result = asyncio.run(LocalShellExecutor(default_cwd=ctx.workspace_path).run(expansion.text, working_dir))
    if result.stdout:
        typer.echo(result.stdout)
    if result.stderr:
        typer.echo(result.stderr, err=True)
    if not result.ok:
        typer.echo(f"Shell command failed: exit={result.exit_code}", err=True)
        raise typer.Exit(EXIT_EXECUTION_ERROR)


@app.command("commands")
def list_commands(
    commands_file: Path | None = typer.Option(None, "--commands-file", help="JSON command table"),  # noqa: B008
) -> None:
    """List built-in directives and custom commands."""
    settings = _settings(commands_file)
    configure_logging(profile="cli", level=settings.log_level)
    registry = _load_registry(settings)
    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Command", style="bold green")
    table.add_column("Kind", style="cyan")
    table.add_column("Description", style="dim")
    favorites = {command.name for command in registry.favorites()}
    for row in registry.suggestions():
        custom = registry.custom(row.name)
        kind = str(custom.kind) if row.is_custom and custom is not None else "builtin"
        marker = "⭐ " if row.name in favorites else ""
        table.add_row(f"{marker}{row.icon} {row.usage}", kind, row.description)
    Console().print(table)


if __name__ == "__main__":
    app()
