"""Command-line front end for the task graph.

Every command except ``init`` replays the op log first so the store is
current before it is read or written.
"""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import ENV_HOME, DataPaths, get_data_dir, setup_logging
from .engine import GraphEngine
from .errors import TodoGraphError
from .models import PRIORITIES, Kind, UpdateObject, as_utc, op_target_id, op_timestamp
from .timeutil import format_relative_time, parse_time_reference

console = Console()

STATUS_MARKERS = {"completed": "[green]✓[/green]", "archived": "[dim]▣[/dim]", "open": "[yellow]○[/yellow]"}
PRIORITY_STYLES = {"high": "red", "medium": "yellow", "low": "green"}


def _get_engine(ctx: click.Context, replay: bool = True) -> GraphEngine:
    """Create an engine for the selected data directory, caught up with the log."""
    engine = GraphEngine(ctx.obj["data_dir"])
    ctx.call_on_close(engine.close)
    if replay:
        engine.replay()
    return engine


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise SystemExit(1)


def _task_status(payload: dict) -> str:
    if payload.get("completed"):
        return "completed"
    if payload.get("archived"):
        return "archived"
    return "open"


@click.group()
@click.option(
    "--data-dir",
    envvar=ENV_HOME,
    type=click.Path(path_type=Path),
    help="Path to the data directory (default: ~/.todo-graph)",
)
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr")
@click.pass_context
def cli(ctx, data_dir, verbose):
    """todo - local-first task graph."""
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = data_dir or get_data_dir()
    setup_logging(DataPaths(ctx.obj["data_dir"]), verbose=verbose)


@cli.command()
@click.pass_context
def init(ctx):
    """Initialize the data directory and store."""
    try:
        engine = _get_engine(ctx, replay=False)
    except TodoGraphError as e:
        _fail(str(e))
    console.print("Initializing todo graph...")
    console.print(f"   Data directory: {escape(str(engine.paths.data_dir))}")
    console.print(f"   Database: {escape(str(engine.paths.db_path))}")
    console.print(f"   Op log: {escape(str(engine.paths.ops_dir))}")
    console.print("[green]✓[/green] Store ready")
    console.print('   Try: todo add "My first task"')


@cli.command()
@click.argument("title")
@click.option("-d", "--description", help="Task description")
@click.option(
    "-p", "--priority",
    default="medium",
    show_default=True,
    help=f"Priority: {' | '.join(PRIORITIES)}",
)
@click.pass_context
def add(ctx, title, description, priority):
    """Add a new task."""
    try:
        engine = _get_engine(ctx)
        task = engine.add_task(title, description, priority)
    except TodoGraphError as e:
        _fail(str(e))

    console.print(f"[green]✓[/green] Added task: {escape(title)}")
    console.print(f"   ID: {task.id}")
    if description:
        console.print(f"   Description: {escape(description)}")


@cli.command(name="ls")
@click.option("-a", "--all", "show_all", is_flag=True, help="Include completed and archived tasks")
@click.pass_context
def list_tasks(ctx, show_all):
    """List tasks."""
    try:
        engine = _get_engine(ctx)
        tasks = engine.query_by_kind(Kind.TASK)
    except TodoGraphError as e:
        _fail(str(e))

    if not show_all:
        tasks = [t for t in tasks if _task_status(t.payload) == "open"]

    if not tasks:
        console.print('No tasks found. Add one with: todo add "Your task"')
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("ID", style="cyan")
    table.add_column("Priority")
    table.add_column("Title")
    table.add_column("Created", style="dim")

    for task in tasks:
        payload = task.payload
        priority = payload.get("priority", "medium")
        style = PRIORITY_STYLES.get(priority, "white")
        title = escape(payload.get("title") or "Untitled")
        if payload.get("description"):
            title = f"{title}\n[dim]{escape(str(payload['description']))}[/dim]"
        table.add_row(
            STATUS_MARKERS[_task_status(payload)],
            task.id[:8],
            f"[{style}]{priority}[/{style}]",
            title,
            format_relative_time(task.created),
        )

    console.print(table)


def _patch_task(ctx: click.Context, ref: str, field: str, verb: str) -> None:
    try:
        engine = _get_engine(ctx)
        task = engine.find_task(ref)
        if task is None:
            console.print(f"[red]✗[/red] Task not found: {escape(ref)}")
            console.print("   Use 'todo ls' to see available tasks")
            return
        engine.update(task.id, {field: True})
    except TodoGraphError as e:
        _fail(str(e))

    console.print(f"[green]✓[/green] {verb} task: {escape(task.title or 'Untitled')}")


@cli.command()
@click.argument("ref")
@click.pass_context
def complete(ctx, ref):
    """Mark a task as complete (by ID prefix or title)."""
    _patch_task(ctx, ref, "completed", "Completed")


@cli.command()
@click.argument("ref")
@click.pass_context
def archive(ctx, ref):
    """Archive a task (by ID prefix or title)."""
    _patch_task(ctx, ref, "archived", "Archived")


@cli.command()
@click.argument("content")
@click.option("--role", default="user", show_default=True, help="Message author role")
@click.pass_context
def chat(ctx, content, role):
    """Record a chat message."""
    try:
        engine = _get_engine(ctx)
        message = engine.add_chat(content, role)
    except TodoGraphError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Recorded chat {message.id}")


@cli.command()
@click.argument("from_id")
@click.argument("to_id")
@click.argument("typ")
@click.pass_context
def link(ctx, from_id, to_id, typ):
    """Link two objects with a typed edge (e.g. SPAWNS, FULFILLS)."""
    try:
        engine = _get_engine(ctx)
        edge = engine.link(from_id, to_id, typ.upper())
    except TodoGraphError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] {from_id[:8]} -{escape('[' + edge.typ + ']')}-> {to_id[:8]}")


@cli.command()
@click.argument("ref")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx, ref, as_json):
    """Show an object and the edges touching it (by ID or ID prefix)."""
    try:
        engine = _get_engine(ctx)
        obj = engine.find_object(ref)
        if obj is None:
            _fail(f"Object not found: {ref}")
        edges = engine.query_edges_touching(obj.id)
    except TodoGraphError as e:
        _fail(str(e))

    if as_json:
        click.echo(json.dumps({
            "object": obj.model_dump(mode="json"),
            "edges": [e.model_dump(mode="json") for e in edges],
        }, indent=2))
        return

    console.print(f"[bold]{obj.kind.value}[/bold] [cyan]{obj.id}[/cyan]")
    console.print(f"Created: {obj.created.strftime('%Y-%m-%d %H:%M')}")
    if obj.updated:
        console.print(f"Updated: {obj.updated.strftime('%Y-%m-%d %H:%M')}")
    for key, value in obj.payload.items():
        console.print(f"  {key}: {escape(str(value))}")

    if edges:
        console.print()
        console.print("[bold]Edges:[/bold]")
        for edge in edges:
            arrow = "->" if edge.from_id == obj.id else "<-"
            console.print(f"  {arrow} {escape('[' + edge.typ + ']')} {edge.other_end(obj.id)}")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show store and op log statistics."""
    try:
        engine = _get_engine(ctx)
        counts = engine.store.stats()
        partitions = engine.log.partitions()
        op_count = engine.log.count()
    except TodoGraphError as e:
        _fail(str(e))

    table = Table(title="Todo graph", show_header=False)
    table.add_column("Item", style="bold")
    table.add_column("Count", justify="right")
    for kind in Kind:
        table.add_row(f"{kind.value} objects", str(counts[kind.value]))
    table.add_row("Edges", str(counts["edges"]))
    table.add_row("Ops logged", str(op_count))
    table.add_row("Log partitions", ", ".join(partitions) or "-")
    console.print(table)


@cli.command(name="log")
@click.option("--since", help="Only ops after this time (ISO, relative, or named)")
@click.option("-n", "--limit", type=int, help="Show only the N most recent ops")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show_log(ctx, since, limit, as_json):
    """Show the op history, most recent first."""
    try:
        since_dt = parse_time_reference(since) if since else None
    except ValueError as e:
        _fail(str(e))

    try:
        engine = _get_engine(ctx, replay=False)
        ops = engine.log.read_all()
    except TodoGraphError as e:
        _fail(str(e))

    if since_dt is not None:
        ops = [op for op in ops if (ts := op_timestamp(op)) is not None and as_utc(ts) >= since_dt]
    if limit:
        ops = ops[-limit:]
    ops = list(reversed(ops))

    if not ops:
        console.print("No ops found.")
        return

    if as_json:
        click.echo(json.dumps([op.model_dump(mode="json") for op in ops], indent=2))
        return

    for op in ops:
        ts = op_timestamp(op)
        ts_str = ts.strftime("%Y-%m-%d %H:%M:%S") if ts else "-" * 19
        if isinstance(op, UpdateObject):
            summary = escape(", ".join(f"{k}={v}" for k, v in op.patch.items()))
        elif op.op == "AppendEdge":
            summary = f"{op.edge.from_id[:8]} -{escape('[' + op.edge.typ + ']')}-> {op.edge.to_id[:8]}"
        else:
            summary = f"{op.obj.kind.value}: {escape(op.obj.title[:40])}"
        console.print(f"{ts_str}  {op_target_id(op)[:8]}  {op.op:<13}  {summary}")


@cli.command()
@click.pass_context
def rebuild(ctx):
    """Discard the store and replay the whole op log into it."""
    try:
        engine = _get_engine(ctx, replay=False)
        count = engine.rebuild()
    except TodoGraphError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Replayed {count} ops")


def main():
    cli()


if __name__ == "__main__":
    main()
