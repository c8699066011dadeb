"""Forge init command."""

import click

from forge.config.loader import CONFIG_FILE, save_config
from forge.cli.context import console, emit_json, get_state, handle_errors

GITIGNORE = """# Forge generated files
logs/
archive/
circuit-breaker.json
*.tmp
"""


@click.command()
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Rewrite config.yaml and start a fresh workflow state",
)
@click.pass_context
@handle_errors
def init_command(ctx: click.Context, force: bool) -> None:
    """Initialize Forge in the current project.

    Creates the workspace directory with a default configuration and a
    workflow state in the clarify phase. An existing state is kept unless
    --force is given.

    Examples:
        forge init                # Initialize with default settings
        forge init --force        # Reset config and workflow state
    """
    state = get_state(ctx)
    workspace_dir = state.workspace_dir
    workspace_dir.mkdir(parents=True, exist_ok=True)

    config_path = workspace_dir / CONFIG_FILE
    if force or not config_path.exists():
        save_config(state.config, config_path)

    gitignore_path = workspace_dir / ".gitignore"
    if force or not gitignore_path.exists():
        gitignore_path.write_text(GITIGNORE, encoding="utf-8")

    services = state.services
    if force:
        workflow_state = services.state_service.create_new()
    else:
        workflow_state = services.state_service.initialize_state()

    if state.as_json:
        emit_json(
            {
                "workspace": str(workspace_dir),
                "config": str(config_path),
                "state": workflow_state.to_dict(),
            }
        )
        return

    console.print(f"[green]✓[/green] Forge initialized in {workspace_dir}")
    console.print(f"[dim]Configuration:[/dim] {config_path}")
    console.print(f"[dim]Phase:[/dim] {workflow_state.phase.value}")
    console.print("\n[bold]Next steps:[/bold]")
    console.print("1. Review and customize config.yaml")
    console.print("2. Create tasks: forge tasks create <id> -m <module> -d <description>")
    console.print("3. Advance the workflow: forge state set-phase breakdown")
