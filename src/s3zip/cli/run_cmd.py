"""Run command: reconcile all configured targets."""

from __future__ import annotations

import signal
import threading

import click
from rich.table import Table

from ._common import DEFAULT_CONFIG, console, load_or_exit, logger, select_targets, setup_logging
from .. import __version__
from ..engine import human_size, run_config
from ..errors import RunCancelled, S3ZipError


def _install_interrupt_handler(cancel: threading.Event):
    """Turn SIGINT into a cancellation request. Returns the old handler."""

    def _handle_signal(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupt received, cancelling run (again to force)")
        cancel.set()

    return signal.signal(signal.SIGINT, _handle_signal)


def register_run_commands(main: click.Group) -> None:
    """Register the run command."""

    @main.command("run")
    @click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG,
                  type=click.Path(), help="Config file path.")
    @click.option("--dry-run", "--dry", is_flag=True, help="Report changes without uploading or deleting.")
    @click.option("--debug", is_flag=True, help="Verbose logging.")
    @click.option("--target", default=None, type=click.Path(), help="Only run the target with this path.")
    def run_cmd(config_path: str, dry_run: bool, debug: bool, target: str):
        """Upload changed sync units and delete stale archives.

        Examples:

            s3zip run -c ~/.config/s3zip/config.yaml

            s3zip run --dry-run --target ~/Pictures
        """
        setup_logging(debug)
        logger.info("s3zip %s", __version__)

        config = select_targets(load_or_exit(config_path), target)
        cancel = threading.Event()
        previous = _install_interrupt_handler(cancel)
        try:
            results = run_config(config, cancel=cancel, dry_run=dry_run or None)
        except RunCancelled as exc:
            console.print(f"[yellow]Cancelled:[/] {exc}")
            raise SystemExit(130)
        except S3ZipError as exc:
            console.print(f"[red]Run failed:[/] {exc}")
            raise SystemExit(1)
        finally:
            signal.signal(signal.SIGINT, previous)

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Target", style="cyan")
        table.add_column("Uploaded", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("Unchanged", justify="right", style="dim")
        table.add_column("Deleted", justify="right")

        for r in results:
            table.add_row(
                r.target,
                str(r.uploaded),
                human_size(r.uploaded_bytes),
                str(r.unchanged),
                str(r.deleted),
            )

        title = "[yellow]Dry run[/]: nothing was changed" if any(r.dry_run for r in results) else "Done"
        console.print(f"\n[bold]{title}[/]\n")
        console.print(table)
        console.print()
