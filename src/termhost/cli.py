"""CLI entry point for termhost."""

from __future__ import annotations

import logging
import os
import sys
import threading
import uuid

import typer

from termhost.config import TerminalConfig
from termhost.pty.manager import TerminalManager
from termhost.session.wire import EventType, WireEvent

app = typer.Typer(
    name="termhost",
    help="Run and supervise commands in managed pseudo-terminal sessions.",
    no_args_is_help=True,
)

EXIT_TIMEOUT = 124
EOT = "\x04"  # ^D


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _forward_stdin(manager: TerminalManager, execution_id: str) -> None:
    """Relay local stdin lines into the session; send ^D at EOF."""
    for line in sys.stdin:
        if not manager.write(execution_id, line):
            return
    manager.write(execution_id, EOT)


def _run_session(
    manager: TerminalManager,
    execution_id: str,
    command: list[str] | None,
    cwd: str,
    cols: int | None,
    rows: int | None,
    timeout: float | None,
) -> int:
    """Spawn one session, stream it to stdout, and return its exit code."""
    done = threading.Event()
    result: dict[str, int] = {}

    def _on_event(event: WireEvent) -> None:
        if event.execution_id != execution_id:
            return
        if event.type == EventType.OUTPUT:
            sys.stdout.write(event.data["data"])
            sys.stdout.flush()
        elif event.type == EventType.EXITED:
            result["exit_code"] = event.data["exit_code"]
            done.set()

    manager.wire.subscribe(_on_event)
    shell, args = (command[0], command[1:]) if command else (None, [])
    manager.spawn(execution_id, cwd, shell=shell, args=args, cols=cols, rows=rows)

    threading.Thread(
        target=_forward_stdin, args=(manager, execution_id), daemon=True, name="stdin-relay"
    ).start()

    if not done.wait(timeout):
        typer.echo(f"\nTimed out after {timeout}s, killing session", err=True)
        manager.kill(execution_id)
        return EXIT_TIMEOUT
    return result["exit_code"]


@app.command()
def run(
    command: list[str] | None = typer.Argument(
        None,
        help="Command and arguments (default: your shell). Put '--' before commands with options.",
    ),
    cwd: str | None = typer.Option(None, "--cwd", "-C", help="Working directory."),
    cols: int | None = typer.Option(None, "--cols", help="Terminal width."),
    rows: int | None = typer.Option(None, "--rows", help="Terminal height."),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Kill the session after this many seconds."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Run a command in a managed PTY session and exit with its status."""
    setup_logging(verbose)
    config = TerminalConfig.load(config_file)

    work_dir = os.path.abspath(cwd or os.getcwd())
    if not os.path.isdir(work_dir):
        typer.echo(f"Error: Directory not found: {work_dir}", err=True)
        raise typer.Exit(1)

    execution_id = f"cli-{uuid.uuid4().hex[:8]}"
    with TerminalManager(config) as manager:
        try:
            exit_code = _run_session(manager, execution_id, command, work_dir, cols, rows, timeout)
        except OSError as e:
            typer.echo(f"Error: Failed to start command: {e}", err=True)
            raise typer.Exit(1)
    raise typer.Exit(exit_code)


@app.command()
def config(
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Print the effective configuration as JSON."""
    cfg = TerminalConfig.load(config_file)
    typer.echo(cfg.model_dump_json(indent=2))
    typer.echo(f"Resolved shell: {cfg.resolve_shell()}", err=True)


if __name__ == "__main__":
    app()
