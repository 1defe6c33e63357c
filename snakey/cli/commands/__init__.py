"""CLI command modules for snakey.

Each module holds the handlers for one top-level command group.
"""

from snakey.cli.commands.mirror import cmd_mirror
from snakey.cli.commands.record import cmd_record
from snakey.cli.commands.sync import cmd_sync

__all__ = ["cmd_mirror", "cmd_record", "cmd_sync"]
