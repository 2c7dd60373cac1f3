"""Read-only inspection commands: units, metadata."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import DEFAULT_CONFIG, console, load_or_exit, select_targets, setup_logging
from ..backends import create_backend
from ..engine import human_size
from ..errors import S3ZipError
from ..fingerprint import fingerprint, unit_size
from ..keys import make_remote_key
from ..metadata import MetadataStore
from ..partition import local_objects


def register_inspect_commands(main: click.Group) -> None:
    """Register the units and metadata commands."""

    @main.command("units")
    @click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG,
                  type=click.Path(), help="Config file path.")
    @click.option("--target", default=None, type=click.Path(), help="Only show this target.")
    @click.option("--debug", is_flag=True, help="Verbose logging.")
    def units_cmd(config_path: str, target: str, debug: bool):
        """List the sync units of each target with key and fingerprint.

        Touches the local tree only; storage is not contacted.

        Examples:

            s3zip units --target ~/Pictures
        """
        setup_logging(debug)
        config = select_targets(load_or_exit(config_path), target)

        for t in config.targets:
            root = t.path.resolve()
            try:
                units = local_objects(root, t.zip_depth)
                rows = [
                    (u, make_remote_key(root, t.out_prefix, u), unit_size(root / u), fingerprint(root / u))
                    for u in units
                ]
            except S3ZipError as exc:
                console.print(f"[red]{exc}[/]")
                raise SystemExit(1)

            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Unit", style="cyan", no_wrap=True)
            table.add_column("Key", no_wrap=True)
            table.add_column("Size", justify="right", no_wrap=True)
            table.add_column("Fingerprint", style="dim", overflow="fold")
            for unit, key, size, fp in rows:
                table.add_row(unit, key, human_size(size), fp)

            console.print(f"\n[bold]{len(rows)} unit(s)[/] at depth {t.zip_depth} in [cyan]{root}[/]\n")
            console.print(table)
        console.print()

    @main.command("metadata")
    @click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG,
                  type=click.Path(), help="Config file path.")
    @click.option("--prefix", default="", help="Only show keys starting with this prefix.")
    @click.option("--debug", is_flag=True, help="Verbose logging.")
    def metadata_cmd(config_path: str, prefix: str, debug: bool):
        """Show the persisted metadata store.

        Examples:

            s3zip metadata --prefix backups/pictures/
        """
        setup_logging(debug)
        config = load_or_exit(config_path)

        try:
            store = MetadataStore.load(create_backend(config.storage), config.metadata_key)
        except S3ZipError as exc:
            console.print(f"[red]{exc}[/]")
            raise SystemExit(1)

        entries = {k: v for k, v in sorted(store.snapshot().items()) if k.startswith(prefix)}
        if not entries:
            console.print("\n[dim]No metadata entries.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Fingerprint", style="dim", overflow="fold")
        for key, fp in entries.items():
            table.add_row(key, fp)

        console.print(f"\n[bold]{len(entries)}[/] of {len(store)} entr(ies) in {config.metadata_key}:\n")
        console.print(table)
        console.print()
