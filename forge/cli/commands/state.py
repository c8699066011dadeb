"""Forge state commands."""

import json
from typing import Any, Dict, Optional, Union

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from forge.cli.context import EXIT_INVALID_STATE, console, emit_json, get_state, handle_errors
from forge.core.exceptions import InvalidInputError, StateNotFoundError
from forge.core.workflow_state import Phase, WorkflowState

PHASE_CHOICES = [phase.value for phase in Phase]


@click.group(invoke_without_command=True)
@click.pass_context
def state_group(ctx: click.Context) -> None:
    """Inspect and change the workflow state."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@state_group.command("get")
@click.pass_context
@handle_errors
def get_command(ctx: click.Context) -> None:
    """Show the current phase, task, PRD and recorded errors."""
    cli_state = get_state(ctx)
    workflow_state = cli_state.services.state_service.get_state()
    if workflow_state is None:
        raise StateNotFoundError()

    if cli_state.as_json:
        data = workflow_state.to_dict()
        data["allowedTransitions"] = [p.value for p in workflow_state.next_allowed_phases()]
        emit_json(data)
        return

    _display_state(workflow_state)


@state_group.command("set-phase")
@click.argument("phase", type=click.Choice(PHASE_CHOICES))
@click.pass_context
@handle_errors
def set_phase_command(ctx: click.Context, phase: str) -> None:
    """Transition the workflow to PHASE.

    Examples:
        forge state set-phase breakdown
    """
    cli_state = get_state(ctx)
    workflow_state = cli_state.services.state_service.transition_to(Phase(phase))
    _report(cli_state.as_json, workflow_state, f"Phase is now [bold]{phase}[/bold]")


@state_group.command("set-task")
@click.argument("task_id", required=False)
@click.pass_context
@handle_errors
def set_task_command(ctx: click.Context, task_id: Optional[str]) -> None:
    """Set the current task, or clear it when TASK_ID is omitted."""
    cli_state = get_state(ctx)
    workflow_state = cli_state.services.state_service.set_current_task(task_id)
    message = f"Current task: {task_id}" if task_id else "Current task cleared"
    _report(cli_state.as_json, workflow_state, message)


@state_group.command("update")
@click.option("--phase", type=click.Choice(PHASE_CHOICES), help="Transition to this phase")
@click.option("--task", "task_id", help="Set the current task")
@click.option("--prd", "prd_json", help="Replace the PRD with this JSON object")
@click.option("--add-error", "error_json", help="Record an error (JSON object or plain text)")
@click.pass_context
@handle_errors
def update_command(
    ctx: click.Context,
    phase: Optional[str],
    task_id: Optional[str],
    prd_json: Optional[str],
    error_json: Optional[str],
) -> None:
    """Apply several state changes with a single write.

    Examples:
        forge state update --phase breakdown --task auth.login
        forge state update --prd '{"title": "Auth", "requirements": ["login"]}'
    """
    cli_state = get_state(ctx)
    prd = _parse_json_object(prd_json, "--prd") if prd_json is not None else None

    error: Union[Dict[str, Any], str, None] = None
    if error_json is not None:
        stripped = error_json.strip()
        if stripped.startswith("{"):
            error = _parse_json_object(stripped, "--add-error")
        else:
            error = stripped

    if phase is None and task_id is None and prd is None and error is None:
        raise InvalidInputError("Nothing to update; pass --phase, --task, --prd or --add-error")

    workflow_state = cli_state.services.state_service.update_state(
        phase=phase, current_task=task_id, prd=prd, add_error=error
    )
    message = f"State updated (phase: {workflow_state.phase.value})"
    _report(cli_state.as_json, workflow_state, message)


@state_group.command("add-error")
@click.argument("message")
@click.option("--task", "task_id", help="Task the error belongs to")
@click.pass_context
@handle_errors
def add_error_command(ctx: click.Context, message: str, task_id: Optional[str]) -> None:
    """Record an error against the workflow."""
    cli_state = get_state(ctx)
    service = cli_state.services.state_service
    current = service.get_state()
    if current is None:
        raise StateNotFoundError()
    workflow_state = service.add_error(
        {"message": message, "task_id": task_id, "phase": current.phase}
    )
    _report(cli_state.as_json, workflow_state, f"Error recorded ({len(workflow_state.errors)} total)")


@state_group.command("clear-errors")
@click.pass_context
@handle_errors
def clear_errors_command(ctx: click.Context) -> None:
    """Remove all recorded errors."""
    cli_state = get_state(ctx)
    workflow_state = cli_state.services.state_service.clear_errors()
    _report(cli_state.as_json, workflow_state, "Errors cleared")


@state_group.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def clear_command(ctx: click.Context, yes: bool) -> None:
    """Delete the workflow state."""
    cli_state = get_state(ctx)
    if not yes and not cli_state.as_json:
        click.confirm("Delete the workflow state?", abort=True)
    cli_state.services.state_service.clear()
    if cli_state.as_json:
        emit_json({"cleared": True})
    else:
        console.print("[green]✓[/green] Workflow state cleared")


@state_group.command("archive")
@click.option("--force", "-f", is_flag=True, help="Archive even if the workflow is not complete")
@click.pass_context
@handle_errors
def archive_command(ctx: click.Context, force: bool) -> None:
    """Move state, tasks and progress log into archive/<timestamp>/.

    Examples:
        forge state archive           # Only once the phase is complete
        forge state archive --force   # Archive an unfinished session
    """
    cli_state = get_state(ctx)
    result = cli_state.services.state_service.archive_session(force=force)

    if cli_state.as_json:
        emit_json(result.model_dump(mode="json"))
    elif result.archived:
        console.print(
            f"[green]✓[/green] Archived {len(result.files)} file(s) to {result.archive_path}"
        )
    else:
        console.print(f"[yellow]{result.reason}[/yellow]")

    if result.blocked:
        ctx.exit(EXIT_INVALID_STATE)


def _report(as_json: bool, workflow_state: WorkflowState, message: str) -> None:
    if as_json:
        emit_json(workflow_state.to_dict())
    else:
        console.print(f"[green]✓[/green] {message}")


def _display_state(workflow_state: WorkflowState) -> None:
    allowed = ", ".join(p.value for p in workflow_state.next_allowed_phases()) or "none"

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Phase", f"[bold cyan]{workflow_state.phase.value}[/bold cyan]")
    table.add_row("Next phases", allowed)
    table.add_row("Current task", workflow_state.current_task or "-")
    table.add_row("Started", workflow_state.started_at.strftime("%Y-%m-%d %H:%M:%S"))
    table.add_row("Updated", workflow_state.updated_at.strftime("%Y-%m-%d %H:%M:%S"))
    if workflow_state.prd is not None and workflow_state.prd.title:
        table.add_row("PRD", workflow_state.prd.title)
    table.add_row("Errors", str(len(workflow_state.errors)))

    console.print(Panel(table, title="Workflow State"))

    for error in workflow_state.errors[-5:]:
        prefix = f"[{error.task_id}] " if error.task_id else ""
        console.print(f"  [red]•[/red] {escape(prefix + error.message)}")


def _parse_json_object(value: str, option: str) -> Dict[str, Any]:
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"{option} is not valid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise InvalidInputError(f"{option} must be a JSON object")
    return data
