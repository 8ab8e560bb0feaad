"""SpecFirst CLI - protocol checks, stage completion, task lists and workspace archives."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from specfirst import __version__
from specfirst.app import Application, load_application
from specfirst.errors import SpecFirstError
from specfirst.protocol import Protocol, list_protocols, load_protocol, protocol_path
from specfirst.snapshot import SnapshotStore
from specfirst.tasks import Task, load_decomposition
from specfirst.workspace import Workspace, detect_workspace

cli = typer.Typer(
    name="specfirst",
    help="SpecFirst - spec-driven workflow integrity tools",
    no_args_is_help=True,
)
console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)

protocol_app = typer.Typer(help="Inspect and validate protocol definitions.", no_args_is_help=True)
cli.add_typer(protocol_app, name="protocol")

archive_app = typer.Typer(help="Archive, restore and compare workspace snapshots.", no_args_is_help=True)
cli.add_typer(archive_app, name="archive")


@dataclass
class CliOptions:
    """Global options shared by every command."""

    root: Path | None = None
    protocol: str | None = None

    def workspace(self) -> Workspace:
        return detect_workspace(root_override=self.root)


def _version_option_callback(value: bool) -> None:
    """Handle eager --version option."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, show_time=False)],
        force=True,
    )


@cli.callback()
def _cli_callback(
    ctx: typer.Context,
    root: Path | None = typer.Option(
        None,
        "--root",
        help="Project root (default: nearest directory with .specfirst/ or .git/)",
    ),
    protocol: str | None = typer.Option(
        None,
        "--protocol",
        help="Active protocol name or path (overrides SPECFIRST_PROTOCOL and config.yaml)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show SpecFirst version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
) -> None:
    """Runs before every command: logging and global options."""
    _ = version
    _configure_logging(verbose)
    ctx.obj = CliOptions(root=root, protocol=protocol)


def _options(ctx: typer.Context) -> CliOptions:
    if isinstance(ctx.obj, CliOptions):
        return ctx.obj
    return CliOptions()


def _abort(exc: Exception) -> NoReturn:
    err_console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
    raise typer.Exit(1) from exc


def _load(ctx: typer.Context) -> Application:
    options = _options(ctx)
    try:
        app = load_application(options.workspace(), options.protocol)
        app.check_drift()
    except SpecFirstError as exc:
        _abort(exc)
    return app


def _store(ctx: typer.Context) -> SnapshotStore:
    return SnapshotStore.for_workspace(_options(ctx).workspace())


def _print_stages(protocol: Protocol, completed: list[str] | None = None) -> None:
    for stage in protocol.stages:
        marker = ""
        if completed is not None:
            marker = "[green]✓[/green] " if stage.id in completed else "[dim]·[/dim] "
        deps = f" [dim](after {', '.join(stage.depends_on)})[/dim]" if stage.depends_on else ""
        console.print(f"  {marker}[bold]{escape(stage.id)}[/bold] [cyan]{stage.effective_type}[/cyan]{deps}")


@cli.command()
def check(ctx: typer.Context) -> None:
    """Load config, the active protocol and state; report stage progress."""
    app = _load(ctx)
    console.print(f"[cyan]Project root:[/cyan] {app.workspace.root}")
    version = f" v{app.protocol.version}" if app.protocol.version else ""
    console.print(f"[cyan]Protocol:[/cyan] {app.protocol.name}{version}")
    if app.state.current_stage:
        console.print(f"[cyan]Current stage:[/cyan] {app.state.current_stage}")
    done = sum(1 for stage_id in app.protocol.stage_ids() if app.state.is_stage_completed(stage_id))
    console.print(f"[cyan]Stages:[/cyan] {done}/{len(app.protocol.stages)} completed")
    _print_stages(app.protocol, app.state.completed_stages)


@protocol_app.command(name="list")
def protocol_list_cmd(ctx: typer.Context) -> None:
    """List protocols available in .specfirst/protocols/."""
    names = list_protocols(_options(ctx).workspace().protocols_dir)
    if not names:
        console.print("[yellow]No protocols found[/yellow]")
        return
    for name in names:
        console.print(f"  {name}")


@protocol_app.command(name="show")
def protocol_show_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Protocol name or path"),
) -> None:
    """Show the resolved stages of a protocol."""
    try:
        protocol = load_protocol(protocol_path(_options(ctx).workspace().protocols_dir, name))
    except SpecFirstError as exc:
        _abort(exc)

    version = f" v{protocol.version}" if protocol.version else ""
    console.print(f"[bold]{escape(protocol.name)}[/bold]{version}")
    if protocol.uses:
        console.print(f"[cyan]Uses:[/cyan] {', '.join(protocol.uses)}")
    _print_stages(protocol)
    for approval in protocol.approvals:
        console.print(f"  [magenta]approval[/magenta] {escape(approval.stage)}: {escape(approval.role)}")


@protocol_app.command(name="validate")
def protocol_validate_cmd(
    path: Path = typer.Argument(..., help="Protocol YAML file"),
) -> None:
    """Resolve imports and validate a protocol file."""
    try:
        protocol = load_protocol(path)
    except SpecFirstError as exc:
        _abort(exc)
    console.print(f"[green]✓ Protocol {escape(protocol.name)} is valid ({len(protocol.stages)} stages)[/green]")


@cli.command()
def task(
    ctx: typer.Context,
    task_id: str | None = typer.Argument(None, help="Show a single task"),
    strict: bool = typer.Option(False, "--strict", help="Exit non-zero when the task list has warnings"),
) -> None:
    """List tasks from the completed decompose stage, or show one task."""
    app = _load(ctx)
    try:
        task_list, warnings = load_decomposition(app.protocol, app.state, app.workspace)
    except SpecFirstError as exc:
        _abort(exc)

    for warning in warnings:
        err_console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    if task_id is None:
        for item in task_list.tasks:
            console.print(f"  [bold]{escape(item.id)}[/bold] {escape(item.title)}")
    else:
        found = task_list.task_by_id(task_id)
        if found is None:
            err_console.print(f"[bold red]Error:[/bold red] task not found: {escape(task_id)}")
            raise typer.Exit(1)
        _print_task(found)

    if strict and warnings:
        err_console.print(f"[bold red]Error:[/bold red] {len(warnings)} task list warning(s) in strict mode")
        raise typer.Exit(1)


@cli.command()
def complete(
    ctx: typer.Context,
    stage_id: str = typer.Argument(..., help="Stage to mark complete"),
    files: list[Path] | None = typer.Argument(None, help="Output files produced by the stage"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing completion"),
    prompt_file: Path | None = typer.Option(None, "--prompt-file", help="Prompt used for this stage (hashed into state)"),
) -> None:
    """Mark a stage complete and store its outputs as artifacts."""
    app = _load(ctx)
    try:
        output = app.complete_stage(stage_id, files or [], force=force, prompt_file=prompt_file)
    except SpecFirstError as exc:
        _abort(exc)

    console.print(f"[green]✓ Completed stage {escape(stage_id)}[/green]")
    for value in output.files:
        console.print(f"  {escape(value)}")
    if app.state.current_stage and app.state.current_stage != stage_id:
        console.print(f"[cyan]Next stage:[/cyan] {escape(app.state.current_stage)}")


def _print_task(item: Task) -> None:
    console.print(f"[bold]{escape(item.id)}[/bold] {escape(item.title)}")
    if item.goal:
        console.print(f"[cyan]Goal:[/cyan] {escape(item.goal)}")
    if item.risk_level:
        console.print(f"[cyan]Risk:[/cyan] {escape(item.risk_level)}")
    if item.estimated_scope:
        console.print(f"[cyan]Scope:[/cyan] {escape(item.estimated_scope)}")
    sections = (
        ("Depends on", item.dependencies),
        ("Files", item.files_touched),
        ("Acceptance criteria", item.acceptance_criteria),
        ("Non-goals", item.non_goals),
        ("Test plan", item.test_plan),
    )
    for label, values in sections:
        if values:
            console.print(f"[cyan]{label}:[/cyan]")
            for value in values:
                console.print(f"  - {escape(value)}")


@archive_app.command(name="create")
def archive_create_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Snapshot name"),
    tag: list[str] = typer.Option([], "--tag", help="Tag to record (repeat option)"),
    notes: str = typer.Option("", "--notes", help="Free-form notes"),
) -> None:
    """Archive the current workspace."""
    app = _load(ctx)
    store = SnapshotStore.for_workspace(app.workspace)
    try:
        path = store.create(
            name,
            config=app.config,
            protocol=app.protocol,
            state=app.state,
            tags=tag,
            notes=notes,
        )
    except SpecFirstError as exc:
        _abort(exc)
    console.print(f"[green]✓ Snapshot {escape(name)} created[/green]")
    console.print(f"[cyan]Path:[/cyan] {path}")


@archive_app.command(name="list")
def archive_list_cmd(ctx: typer.Context) -> None:
    """List snapshots."""
    names = _store(ctx).list_snapshots()
    if not names:
        console.print("[yellow]No snapshots found[/yellow]")
        return
    for name in names:
        console.print(f"  {name}")


@archive_app.command(name="show")
def archive_show_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Snapshot name"),
) -> None:
    """Show snapshot metadata."""
    try:
        metadata = _store(ctx).show(name)
    except SpecFirstError as exc:
        _abort(exc)
    console.print(f"[cyan]Version:[/cyan] {escape(metadata.version)}")
    console.print(f"[cyan]Protocol:[/cyan] {escape(metadata.protocol)}")
    console.print(f"[cyan]Archived at:[/cyan] {metadata.archived_at}")
    console.print(f"[cyan]Stages completed:[/cyan] {', '.join(metadata.stages_completed) or '-'}")
    if metadata.tags:
        console.print(f"[cyan]Tags:[/cyan] {escape(', '.join(metadata.tags))}")
    if metadata.notes:
        console.print(f"[cyan]Notes:[/cyan] {escape(metadata.notes)}")


@archive_app.command(name="restore")
def archive_restore_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Snapshot name"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing workspace data"),
) -> None:
    """Restore the workspace from a snapshot."""
    try:
        metadata = _store(ctx).restore(name, force=force)
    except SpecFirstError as exc:
        _abort(exc)
    console.print(f"[green]✓ Restored snapshot {escape(name)} (protocol {escape(metadata.protocol)})[/green]")


@archive_app.command(name="compare")
def archive_compare_cmd(
    ctx: typer.Context,
    left: str = typer.Argument(..., help="Base snapshot"),
    right: str = typer.Argument(..., help="Snapshot to compare against the base"),
) -> None:
    """Compare the artifacts of two snapshots."""
    try:
        diff = _store(ctx).compare(left, right)
    except SpecFirstError as exc:
        _abort(exc)

    if diff.is_empty:
        console.print("[green]No artifact differences[/green]")
        return
    for path in diff.added:
        console.print(f"[green]+ {escape(path)}[/green]")
    for path in diff.removed:
        console.print(f"[red]- {escape(path)}[/red]")
    for path in diff.changed:
        console.print(f"[yellow]~ {escape(path)}[/yellow]")
