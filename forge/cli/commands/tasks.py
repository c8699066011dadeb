"""Forge task commands."""

import json
from pathlib import Path
from typing import List, Optional, Tuple

import click
from pydantic import TypeAdapter, ValidationError
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from forge.cli.context import EXIT_GENERAL, console, emit_json, get_state, handle_errors
from forge.core.exceptions import TaskNotFoundError, TaskValidationError
from forge.core.task import Task, TaskStatus
from forge.services.task_service import BatchOperation, BatchResult

STATUS_CHOICES = ["all"] + [status.value for status in TaskStatus]

STATUS_STYLES = {
    TaskStatus.PENDING: "yellow",
    TaskStatus.IN_PROGRESS: "blue",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
}


@click.group(invoke_without_command=True)
@click.pass_context
def tasks_group(ctx: click.Context) -> None:
    """Create, list and advance tasks."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@tasks_group.command("init")
@click.option("--project-goal", help="One-line goal of the project")
@click.option("--language", help="Primary implementation language")
@click.option("--framework", help="Framework the project builds on")
@click.pass_context
@handle_errors
def init_command(
    ctx: click.Context,
    project_goal: Optional[str],
    language: Optional[str],
    framework: Optional[str],
) -> None:
    """Record project metadata in the task index.

    Examples:
        forge tasks init --project-goal "Ship auth" --language python --framework flask
    """
    cli_state = get_state(ctx)
    metadata = cli_state.services.task_service.initialize_project(
        project_goal=project_goal, language=language, framework=framework
    )

    if cli_state.as_json:
        emit_json(metadata)
        return

    console.print("[green]✓[/green] Task index initialized")
    for key, value in metadata.items():
        console.print(f"  [dim]{key}:[/dim] {escape(json.dumps(value))}")


@tasks_group.command("create")
@click.argument("task_id")
@click.option("--module", "-m", required=True, help="Module the task belongs to")
@click.option("--description", "-d", required=True, help="What the task delivers")
@click.option("--priority", "-p", type=int, help="Priority, lower is more urgent")
@click.option("--criteria", "-c", multiple=True, help="Acceptance criterion (repeatable)")
@click.option("--depends", multiple=True, help="Id of a task this one depends on (repeatable)")
@click.option("--estimate", type=int, help="Estimated minutes")
@click.pass_context
@handle_errors
def create_command(
    ctx: click.Context,
    task_id: str,
    module: str,
    description: str,
    priority: Optional[int],
    criteria: Tuple[str, ...],
    depends: Tuple[str, ...],
    estimate: Optional[int],
) -> None:
    """Create a pending task.

    Examples:
        forge tasks create auth.login -m auth -d "Login form"
        forge tasks create auth.logout -m auth -d "Logout" --depends auth.login -p 2
    """
    cli_state = get_state(ctx)
    task = cli_state.services.task_service.create_task(
        id=task_id,
        module=module,
        description=description,
        priority=priority,
        acceptance_criteria=list(criteria),
        dependencies=list(depends),
        estimated_minutes=estimate,
    )
    _report_task(cli_state.as_json, task, f"Created task [cyan]{task.id}[/cyan]")


@tasks_group.command("list")
@click.option(
    "--status",
    "-s",
    type=click.Choice(STATUS_CHOICES),
    default="all",
    help="Filter tasks by status",
)
@click.option("--module", "-m", help="Filter tasks by module")
@click.option("--ready", is_flag=True, help="Only pending tasks with all dependencies met")
@click.option(
    "--sort",
    type=click.Choice(["priority", "created", "id"]),
    help="Sort order (default: creation order)",
)
@click.option("--limit", "-n", type=int, help="Maximum number of tasks")
@click.option("--offset", type=int, default=0, help="Number of tasks to skip")
@click.pass_context
@handle_errors
def list_command(
    ctx: click.Context,
    status: str,
    module: Optional[str],
    ready: bool,
    sort: Optional[str],
    limit: Optional[int],
    offset: int,
) -> None:
    """List tasks.

    Examples:
        forge tasks list                  # All tasks
        forge tasks list -s pending       # Only pending tasks
        forge tasks list --ready --sort priority
    """
    cli_state = get_state(ctx)
    tasks = cli_state.services.task_service.list_tasks(
        status=None if status == "all" else TaskStatus(status),
        module=module,
        ready=ready,
        sort=sort,
        limit=limit,
        offset=offset,
    )

    if cli_state.as_json:
        emit_json([task.to_dict() for task in tasks])
        return

    if not tasks:
        console.print("[yellow]No tasks found[/yellow]")
        return

    table = Table(title="Tasks")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Module", style="magenta")
    table.add_column("Priority", justify="right")
    table.add_column("Status")
    table.add_column("Depends on", style="dim")
    table.add_column("Description", style="white")

    for task in tasks:
        style = STATUS_STYLES.get(task.status, "white")
        table.add_row(
            task.id,
            task.module,
            str(task.priority),
            f"[{style}]{task.status.value}[/{style}]",
            ", ".join(task.dependencies) or "-",
            escape(task.description),
        )

    console.print(table)


@tasks_group.command("get")
@click.argument("task_id")
@click.pass_context
@handle_errors
def get_command(ctx: click.Context, task_id: str) -> None:
    """Show one task."""
    cli_state = get_state(ctx)
    task = cli_state.services.task_service.get_task(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)

    if cli_state.as_json:
        emit_json(task.to_dict())
    else:
        _display_task(task)


@tasks_group.command("next")
@click.pass_context
@handle_errors
def next_command(ctx: click.Context) -> None:
    """Show the next task to work on."""
    cli_state = get_state(ctx)
    task = cli_state.services.task_service.get_next_task()

    if cli_state.as_json:
        emit_json(task.to_dict() if task else None)
    elif task is None:
        console.print("[yellow]No runnable task[/yellow]")
    else:
        _display_task(task)


@tasks_group.command("start")
@click.argument("task_id")
@click.pass_context
@handle_errors
def start_command(ctx: click.Context, task_id: str) -> None:
    """Mark a pending task as in progress."""
    cli_state = get_state(ctx)
    task = cli_state.services.task_service.start_task(task_id)
    _report_task(cli_state.as_json, task, f"Started [cyan]{task.id}[/cyan]")


@tasks_group.command("done")
@click.argument("task_id")
@click.option("--note", help="Completion note appended to the task")
@click.pass_context
@handle_errors
def done_command(ctx: click.Context, task_id: str, note: Optional[str]) -> None:
    """Mark an in-progress task as completed."""
    cli_state = get_state(ctx)
    task = cli_state.services.task_service.complete_task(task_id, note)
    _report_task(cli_state.as_json, task, f"Completed [cyan]{task.id}[/cyan]")


@tasks_group.command("fail")
@click.argument("task_id")
@click.option("--reason", "-r", required=True, help="Why the task failed")
@click.pass_context
@handle_errors
def fail_command(ctx: click.Context, task_id: str, reason: str) -> None:
    """Mark an in-progress task as failed."""
    cli_state = get_state(ctx)
    task = cli_state.services.task_service.fail_task(task_id, reason)
    _report_task(cli_state.as_json, task, f"Failed [cyan]{task.id}[/cyan]")


@tasks_group.command("batch")
@click.argument("batch_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--atomic", is_flag=True, help="Apply nothing unless every operation is valid")
@click.pass_context
@handle_errors
def batch_command(ctx: click.Context, batch_file: Path, atomic: bool) -> None:
    """Apply lifecycle operations from a JSON file.

    The file holds a list of objects with "action" (start, done, complete
    or fail), "taskId" and optionally "note" or "reason".

    Examples:
        forge tasks batch ops.json
        forge tasks batch ops.json --atomic
    """
    cli_state = get_state(ctx)
    operations = _load_batch_file(batch_file)
    results = cli_state.services.task_service.batch_operations(operations, atomic=atomic)

    if cli_state.as_json:
        emit_json([result.model_dump(mode="json", exclude={"task"}) for result in results])
    else:
        _display_batch(results)

    if any(not result.success for result in results):
        ctx.exit(EXIT_GENERAL)


def _load_batch_file(batch_file: Path) -> List[BatchOperation]:
    try:
        data = json.loads(batch_file.read_text(encoding="utf-8"))
        return TypeAdapter(List[BatchOperation]).validate_python(data)
    except json.JSONDecodeError as e:
        raise TaskValidationError(f"Invalid JSON in {batch_file}: {e}") from e
    except ValidationError as e:
        raise TaskValidationError(f"Invalid batch file {batch_file}: {e}") from e


def _report_task(as_json: bool, task: Task, message: str) -> None:
    if as_json:
        emit_json(task.to_dict())
    else:
        console.print(f"[green]✓[/green] {message}")


def _display_task(task: Task) -> None:
    style = STATUS_STYLES.get(task.status, "white")

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("ID", f"[cyan]{task.id}[/cyan]")
    table.add_row("Module", task.module)
    table.add_row("Status", f"[{style}]{task.status.value}[/{style}]")
    table.add_row("Priority", str(task.priority))
    table.add_row("Estimate", f"{task.estimated_minutes}m")
    table.add_row("Depends on", ", ".join(task.dependencies) or "-")
    if task.started_at:
        table.add_row("Started", task.started_at.strftime("%Y-%m-%d %H:%M:%S"))
    duration = task.actual_duration_minutes()
    if duration is not None:
        table.add_row("Duration", f"{duration}m")

    console.print(Panel(table, title=escape(task.description)))

    if task.acceptance_criteria:
        console.print("[bold]Acceptance criteria:[/bold]")
        for index, criterion in enumerate(task.acceptance_criteria, start=1):
            console.print(f"  {index}. {escape(criterion)}")
    if task.notes:
        console.print("[bold]Notes:[/bold]")
        console.print(escape(task.notes))


def _display_batch(results: List[BatchResult]) -> None:
    table = Table(title="Batch Results")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Action")
    table.add_column("Task", style="cyan")
    table.add_column("Result")

    for index, result in enumerate(results, start=1):
        outcome = (
            "[green]ok[/green]"
            if result.success
            else f"[red]{result.error_kind}[/red]: {escape(result.error or '')}"
        )
        table.add_row(str(index), result.action, result.task_id, outcome)

    console.print(table)
    failed = sum(1 for r in results if not r.success)
    console.print(f"{len(results) - failed} succeeded, {failed} failed")
