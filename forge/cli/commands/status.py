"""Forge status command."""

import click
from rich.panel import Panel
from rich.table import Table

from forge.cli.context import console, emit_json, get_state, handle_errors
from forge.services.status_service import ProjectStatus


@click.command()
@click.pass_context
@handle_errors
def status_command(ctx: click.Context) -> None:
    """Show workflow phase and task progress.

    Examples:
        forge status          # Overview table
        forge --json status   # Same data as JSON
    """
    cli_state = get_state(ctx)

    if not cli_state.workspace_dir.exists():
        if cli_state.as_json:
            emit_json(ProjectStatus().model_dump(mode="json"))
            return
        console.print("[yellow]Forge not initialized[/yellow]")
        console.print("Run 'forge init' to initialize Forge in this project")
        return

    status = cli_state.services.status_service.get_project_status()
    breaker = cli_state.services.healing_service.get_circuit_state()

    if cli_state.as_json:
        data = status.model_dump(mode="json")
        data["circuit_state"] = breaker.value
        emit_json(data)
        return

    _display_overview(status, breaker.value)
    if status.modules:
        _display_modules(status)


def _display_overview(status: ProjectStatus, breaker: str) -> None:
    overall = status.overall
    lines = [
        f"[bold]Phase:[/bold] {status.phase}",
        f"[bold]Current task:[/bold] {status.current_task or '-'}",
        f"[bold]Circuit breaker:[/bold] {breaker}",
        f"[bold]Errors:[/bold] {status.error_count}",
        "",
        f"[bold]Tasks:[/bold] {overall.total} total, "
        f"{overall.completion_percentage}% complete",
        f"  [yellow]{overall.pending} pending[/yellow] "
        f"([dim]{overall.blocked} blocked[/dim]), "
        f"[blue]{overall.in_progress} in progress[/blue], "
        f"[green]{overall.completed} completed[/green], "
        f"[red]{overall.failed} failed[/red]",
    ]
    console.print(Panel("\n".join(lines), title="Forge Status"))


def _display_modules(status: ProjectStatus) -> None:
    table = Table(title="Modules")
    table.add_column("Module", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Pending", justify="right", style="yellow")
    table.add_column("Blocked", justify="right", style="dim")
    table.add_column("In progress", justify="right", style="blue")
    table.add_column("Completed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Done %", justify="right")

    for module, counts in status.modules.items():
        table.add_row(
            module,
            str(counts.total),
            str(counts.pending),
            str(counts.blocked),
            str(counts.in_progress),
            str(counts.completed),
            str(counts.failed),
            f"{counts.completion_percentage}%",
        )

    console.print(table)
