"""Shared CLI plumbing: workspace resolution, service wiring, error mapping."""

import functools
import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import click
from rich.console import Console
from rich.markup import escape

from forge.config.loader import CONFIG_FILE, load_config
from forge.config.models import ForgeConfig
from forge.core.exceptions import ForgeError
from forge.services.factory import ServiceContainer, create_services
from forge.tracking.activity_logger import ActivityLogger, NullLogger, generate_session_id

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_GENERAL = 1
EXIT_INVALID_INPUT = 2
EXIT_NOT_FOUND = 3
EXIT_INVALID_STATE = 4
EXIT_IO = 5
EXIT_CIRCUIT_OPEN = 6

EXIT_CODES: Dict[str, int] = {
    "InvalidInput": EXIT_INVALID_INPUT,
    "DuplicateTask": EXIT_INVALID_INPUT,
    "Configuration": EXIT_INVALID_INPUT,
    "NotFound": EXIT_NOT_FOUND,
    "InvalidState": EXIT_INVALID_STATE,
    "InvalidTransition": EXIT_INVALID_STATE,
    "IOError": EXIT_IO,
    "CorruptRecord": EXIT_IO,
    "CircuitOpen": EXIT_CIRCUIT_OPEN,
}


class ForgeCommandError(click.ClickException):
    """ClickException carrying a Forge error kind, hint and exit code."""

    def __init__(self, error: ForgeError):
        super().__init__(str(error))
        self.kind = error.kind
        self.hint = error.hint
        self.exit_code = EXIT_CODES.get(error.kind, EXIT_GENERAL)

    def show(self, file: Any = None) -> None:
        err_console.print(f"[red]Error ({self.kind}):[/red] {escape(self.format_message())}")
        if self.hint:
            err_console.print(f"[dim]Hint: {self.hint}[/dim]")


class CliState:
    """Global options plus lazily created services."""

    def __init__(self, workspace: Optional[Path], as_json: bool, verbose: bool):
        self.workspace_option = workspace
        self.as_json = as_json
        self.verbose = verbose
        self._config: Optional[ForgeConfig] = None
        self._services: Optional[ServiceContainer] = None
        self._started = time.monotonic()

    @property
    def config(self) -> ForgeConfig:
        if self._config is None:
            if self.workspace_option is not None:
                self._config = load_config(
                    project_config_path=self.workspace_option / CONFIG_FILE
                )
            else:
                self._config = load_config(project_root=Path.cwd())
        return self._config

    @property
    def workspace_dir(self) -> Path:
        if self.workspace_option is not None:
            return self.workspace_option
        return self.config.get_workspace_dir(Path.cwd())

    @property
    def services(self) -> ServiceContainer:
        if self._services is None:
            self._services = create_services(
                self.workspace_dir, config=self.config, logger=self._create_logger()
            )
        return self._services

    def _create_logger(self):
        # Read-only commands on a missing workspace must not create it
        if not self.workspace_dir.exists():
            return NullLogger()
        level = "DEBUG" if self.verbose else self.config.logging.level
        logger = ActivityLogger(
            generate_session_id(),
            self.config.get_log_dir(self.workspace_dir),
            level=level,
        )
        logger.log_session_start(str(Path.cwd()))
        return logger

    def close(self) -> None:
        if self._services is None:
            return
        logger = self._services.logger
        if isinstance(logger, ActivityLogger):
            logger.log_session_end(int((time.monotonic() - self._started) * 1000))


def get_state(ctx: click.Context) -> CliState:
    return ctx.find_object(CliState)


def handle_errors(func: Callable) -> Callable:
    """Turn :class:`ForgeError` into a ClickException with the mapped exit code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ForgeError as e:
            raise ForgeCommandError(e) from e

    return wrapper


def emit_json(data: Any) -> None:
    """Print ``data`` as JSON on stdout, bypassing rich formatting."""
    click.echo(json.dumps(data, indent=2, default=str))
