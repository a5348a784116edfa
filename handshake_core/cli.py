"""CLI entry point for handshake-core operations."""

import click

from handshake_core import __version__
from handshake_core.commands.connection_commands import (
    list_connections_command,
    purge_expired_command,
)
from handshake_core.commands.repair_commands import rebuild_mirrors_command, reindex_command
from handshake_core.commands.table_commands import create_table_command, drop_table_command


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Operations tooling for the Handshake marketplace backend"""
    pass


@main.group("store")
def store() -> None:
    """Single-table DynamoDB store: table lifecycle and repairs"""
    pass


@main.group("connections")
def connections() -> None:
    """WebSocket connection registry"""
    pass


# Register table commands
store.add_command(create_table_command)
store.add_command(drop_table_command)

# Register repair commands
store.add_command(reindex_command)
store.add_command(rebuild_mirrors_command)

# Register connection commands
connections.add_command(list_connections_command)
connections.add_command(purge_expired_command)

if __name__ == "__main__":
    main()
