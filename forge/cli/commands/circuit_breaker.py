"""Forge circuit-breaker commands."""

import click
from rich.table import Table

from forge.cli.context import console, emit_json, get_state, handle_errors
from forge.core.circuit_breaker import CircuitState

STATE_STYLES = {
    CircuitState.CLOSED: "green",
    CircuitState.OPEN: "red",
    CircuitState.HALF_OPEN: "yellow",
}


@click.group(invoke_without_command=True)
@click.pass_context
def circuit_breaker_group(ctx: click.Context) -> None:
    """Inspect, drive and reset the healing circuit breaker."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@circuit_breaker_group.command("status")
@click.pass_context
@handle_errors
def status_command(ctx: click.Context) -> None:
    """Show the breaker state and counters."""
    cli_state = get_state(ctx)
    healing = cli_state.services.healing_service
    metrics = healing.breaker.metrics()
    remaining = healing.breaker.seconds_until_probe()
    config = healing.breaker.config

    if cli_state.as_json:
        data = metrics.model_dump(mode="json")
        data["seconds_until_probe"] = remaining
        data["failure_threshold"] = config.failure_threshold
        data["success_threshold"] = config.success_threshold
        data["timeout"] = config.timeout
        emit_json(data)
        return

    style = STATE_STYLES.get(metrics.state, "white")
    console.print(f"[bold]State:[/bold] [{style}]{metrics.state.value}[/{style}]")
    console.print(
        f"[bold]Consecutive failures:[/bold] {metrics.consecutive_failures}"
        f"/{config.failure_threshold}"
    )
    if metrics.state == CircuitState.HALF_OPEN:
        console.print(
            f"[bold]Probe successes:[/bold] {metrics.consecutive_successes}"
            f"/{config.success_threshold}"
        )
    if remaining is not None:
        console.print(f"[bold]Next probe in:[/bold] {remaining:.0f}s")


@circuit_breaker_group.command("reset")
@click.pass_context
@handle_errors
def reset_command(ctx: click.Context) -> None:
    """Force the breaker CLOSED and zero its counters."""
    cli_state = get_state(ctx)
    healing = cli_state.services.healing_service
    healing.reset_circuit()

    if cli_state.as_json:
        emit_json(healing.breaker.metrics().model_dump(mode="json"))
    else:
        console.print("[green]✓[/green] Circuit breaker reset to CLOSED")


def _emit_outcome(ctx: click.Context, message: str) -> None:
    cli_state = get_state(ctx)
    breaker = cli_state.services.healing_service.breaker
    metrics = breaker.metrics()

    if cli_state.as_json:
        data = metrics.model_dump(mode="json")
        data["failure_threshold"] = breaker.config.failure_threshold
        emit_json(data)
        return

    style = STATE_STYLES.get(metrics.state, "white")
    console.print(f"{message} [{style}]({metrics.state.value})[/{style}]")


@circuit_breaker_group.command("fail")
@click.pass_context
@handle_errors
def fail_command(ctx: click.Context) -> None:
    """Record a failure observed outside forge."""
    healing = get_state(ctx).services.healing_service
    state = healing.record_failure()
    metrics = healing.breaker.metrics()
    threshold = healing.breaker.config.failure_threshold
    if state == CircuitState.OPEN:
        message = f"Circuit breaker OPEN ({metrics.consecutive_failures}/{threshold} failures)"
    else:
        message = f"Failure recorded ({metrics.consecutive_failures}/{threshold})"
    _emit_outcome(ctx, message)


@circuit_breaker_group.command("success")
@click.pass_context
@handle_errors
def success_command(ctx: click.Context) -> None:
    """Record a success observed outside forge."""
    get_state(ctx).services.healing_service.record_success()
    _emit_outcome(ctx, "Success recorded")


@circuit_breaker_group.command("history")
@click.option("--limit", "-n", type=int, default=20, help="Number of transitions to show")
@click.pass_context
@handle_errors
def history_command(ctx: click.Context, limit: int) -> None:
    """Show recorded breaker transitions, most recent last."""
    cli_state = get_state(ctx)
    entries = cli_state.services.healing_service.read_transition_log()
    entries = entries[-limit:] if limit > 0 else entries

    if cli_state.as_json:
        emit_json([entry.model_dump(mode="json") for entry in entries])
        return

    if not entries:
        console.print("[yellow]No circuit breaker transitions recorded[/yellow]")
        return

    table = Table(title="Circuit Breaker History")
    table.add_column("Time", style="dim")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Reason")

    for entry in entries:
        to_style = STATE_STYLES.get(entry.to_state, "white")
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.from_state.value,
            f"[{to_style}]{entry.to_state.value}[/{to_style}]",
            entry.reason,
        )

    console.print(table)
