"""Command groups of the SQLFixture CLI, in the order they are listed in help."""

from sqlfixture.cli.commands.configuration import config_group
from sqlfixture.cli.commands.database import db_group

COMMAND_GROUPS = [
    db_group,
    config_group,
]

__all__ = ["COMMAND_GROUPS", "config_group", "db_group"]
