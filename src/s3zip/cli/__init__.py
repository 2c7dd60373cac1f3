"""
s3zip CLI -- mirror directory trees into object storage as zip archives.

The main Click group is defined here and the subcommands are
registered from their own modules.

Entry point: s3zip.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="s3zip")
def main():
    """s3zip -- incremental zip backups to object storage.

    Only changed parts of the tree are re-uploaded; archives whose
    local source disappeared are deleted.
    """


from .run_cmd import register_run_commands
from .inspect_cmd import register_inspect_commands

register_run_commands(main)
register_inspect_commands(main)
