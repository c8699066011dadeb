"""Main CLI entry point for Forge."""

import sys
from pathlib import Path
from typing import Optional

import click

from forge.cli.commands.circuit_breaker import circuit_breaker_group
from forge.cli.commands.init import init_command
from forge.cli.commands.state import state_group
from forge.cli.commands.status import status_command
from forge.cli.commands.tasks import tasks_group
from forge.cli.context import EXIT_GENERAL, CliState, console


@click.group()
@click.option(
    "--workspace",
    "-w",
    type=click.Path(file_okay=False, path_type=Path),
    help="Workspace directory (default: ./.forge)",
)
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.version_option(package_name="forge-workflow")
@click.pass_context
def cli(ctx: click.Context, workspace: Optional[Path], as_json: bool, verbose: bool) -> None:
    """Forge: workflow orchestration core.

    Tracks the workflow phase, a dependency-aware task queue and the
    healing circuit breaker of a project workspace.

    \b
    Examples:
        forge init                          # Create .forge/ and the initial state
        forge tasks create auth.login -m auth -d "Login form"
        forge tasks next                    # Show the next runnable task
        forge state set-phase breakdown     # Advance the workflow
        forge status                        # Progress overview
    """
    state = CliState(workspace, as_json, verbose)
    ctx.obj = state
    ctx.call_on_close(state.close)

    if verbose:
        console.print("[dim]Forge CLI starting with verbose output enabled[/dim]")


cli.add_command(init_command, name="init")
cli.add_command(state_group, name="state")
cli.add_command(tasks_group, name="tasks")
cli.add_command(status_command, name="status")
cli.add_command(circuit_breaker_group, name="circuit-breaker")


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Abort:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)
    except click.exceptions.Exit as e:
        sys.exit(e.exit_code)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        if "--verbose" in sys.argv or "-v" in sys.argv:
            console.print_exception()
        sys.exit(EXIT_GENERAL)


if __name__ == "__main__":
    main()
