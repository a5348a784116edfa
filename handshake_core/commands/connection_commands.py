"""
Connection registry commands.
"""

import click

from ..logging_config import get_logger, setup_logging
from ..realtime.registry import ConnectionRegistry
from ..store.constants import DEFAULT_TABLE_NAME
from ..store.core.client import DynamoDBClient
from ..store.exceptions import StoreError
from ..store.repositories.base import strip_keys
from ..store.utils import error_json, error_text, output_json, output_text

logger = get_logger(__name__)


@click.command("list")
@click.option("--user", "user_id", required=True, help="User id")
@click.option(
    "--table",
    envvar="HANDSHAKE_TABLE",
    default=DEFAULT_TABLE_NAME,
    help="DynamoDB table name",
)
@click.option("--region", envvar="AWS_REGION", help="AWS region")
@click.option("--profile", envvar="AWS_PROFILE", help="AWS profile")
@click.option("--endpoint-url", envvar="DYNAMODB_ENDPOINT", help="DynamoDB endpoint override")
@click.option("--text", is_flag=True, help="Output as human-readable text")
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v INFO, -vv DEBUG, -vvv TRACE)",
)
@click.pass_context
def list_connections_command(
    ctx: click.Context,
    user_id: str,
    table: str,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    text: bool,
    verbose: int,
) -> None:
    """List a user's live WebSocket connections.

    Expired rows DynamoDB has not removed yet are not listed.

    Examples:

    \b
        handshake-core connections list --user 42
    """
    setup_logging(verbose)

    try:
        client = DynamoDBClient(table, region, profile, endpoint_url=endpoint_url)
        connections = ConnectionRegistry(client).user_connections(user_id)
    except StoreError as e:
        if text:
            click.echo(error_text(str(e), "Check table name, AWS credentials and permissions"), err=True)
        else:
            click.echo(error_json(str(e), "Check table name, AWS credentials and permissions", 3), err=True)
        ctx.exit(3)

    if text:
        if not connections:
            output_text(f"No live connections for user {user_id}")
        for connection in connections:
            output_text(
                f"{connection['connectionId']}  connected {connection.get('connectedAt')}  "
                f"last ping {connection.get('lastPingAt')}"
            )
    else:
        output_json(
            {"userId": user_id, "connections": [strip_keys(item) for item in connections]}
        )


@click.command("purge-expired")
@click.option(
    "--approve",
    is_flag=True,
    help="Required flag to confirm deletion",
)
@click.option(
    "--table",
    envvar="HANDSHAKE_TABLE",
    default=DEFAULT_TABLE_NAME,
    help="DynamoDB table name",
)
@click.option("--region", envvar="AWS_REGION", help="AWS region")
@click.option("--profile", envvar="AWS_PROFILE", help="AWS profile")
@click.option("--endpoint-url", envvar="DYNAMODB_ENDPOINT", help="DynamoDB endpoint override")
@click.option("--text", is_flag=True, help="Output as human-readable text")
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v INFO, -vv DEBUG, -vvv TRACE)",
)
@click.pass_context
def purge_expired_command(
    ctx: click.Context,
    approve: bool,
    table: str,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    text: bool,
    verbose: int,
) -> None:
    """Delete expired connection rows.

    DynamoDB removes expired rows on its own schedule, possibly days late.
    This scans the table and deletes them now.

    Examples:

    \b
        handshake-core connections purge-expired --approve
    """
    setup_logging(verbose)

    if not approve:
        cmd = f"handshake-core connections purge-expired --table {table} --approve"
        if text:
            click.echo(error_text("Purge requires approval", f"To proceed, use: {cmd}"), err=True)
        else:
            click.echo(
                error_json("Purge requires approval", f"Add --approve flag to confirm: {cmd}", 2),
                err=True,
            )
        ctx.exit(2)

    try:
        client = DynamoDBClient(table, region, profile, endpoint_url=endpoint_url)
        purged = ConnectionRegistry(client).purge_expired()
    except StoreError as e:
        if text:
            click.echo(error_text(str(e), "Check table name, AWS credentials and permissions"), err=True)
        else:
            click.echo(error_json(str(e), "Check table name, AWS credentials and permissions", 3), err=True)
        ctx.exit(3)

    if text:
        output_text(f"Purged {purged} expired connections")
    else:
        output_json({"table": table, "purged": purged})
