"""
Table management commands.
"""

from typing import Literal

import click

from ..logging_config import get_logger, setup_logging
from ..store.constants import DEFAULT_TABLE_NAME
from ..store.core.table_operations import create_table, drop_table
from ..store.exceptions import StoreError, TableAlreadyExistsError, TableNotFoundError
from ..store.utils import error_json, error_text, output_json, output_text, validate_table_name

logger = get_logger(__name__)


@click.command("create-table")
@click.option(
    "--table",
    envvar="HANDSHAKE_TABLE",
    default=DEFAULT_TABLE_NAME,
    help="DynamoDB table name",
)
@click.option("--region", envvar="AWS_REGION", help="AWS region")
@click.option("--profile", envvar="AWS_PROFILE", help="AWS profile")
@click.option("--endpoint-url", envvar="DYNAMODB_ENDPOINT", help="DynamoDB endpoint override")
@click.option(
    "--billing",
    type=click.Choice(["on-demand", "provisioned"]),
    default="on-demand",
    help="Billing mode (default: on-demand)",
)
@click.option("--text", is_flag=True, help="Output as human-readable text")
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v INFO, -vv DEBUG, -vvv TRACE)",
)
@click.pass_context
def create_table_command(
    ctx: click.Context,
    table: str,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    billing: str,
    text: bool,
    verbose: int,
) -> None:
    """Create the single DynamoDB table.

    Creates PK/SK keys, the GSI1-GSI3 secondary indexes (projection ALL)
    and TTL on the 'ttl' attribute.

    Examples:

    \b
        # Create table with default name
        handshake-core store create-table

    \b
        # Create against DynamoDB Local
        handshake-core store create-table --endpoint-url http://localhost:8000

    \b
    Output Format:
        Returns JSON with table details:
        {"table": "...", "status": "CREATING", "arn": "..."}
    """
    setup_logging(verbose)

    try:
        validate_table_name(table)
    except ValueError as e:
        if text:
            click.echo(error_text(str(e), "Choose a valid DynamoDB table name"), err=True)
        else:
            click.echo(error_json(str(e), "Choose a valid DynamoDB table name", 2), err=True)
        ctx.exit(2)

    try:
        logger.info(f"Creating table '{table}'")
        logger.debug(f"Region: {region}, Billing: {billing}, Endpoint: {endpoint_url}")

        billing_mode: Literal["PAY_PER_REQUEST", "PROVISIONED"] = (
            "PAY_PER_REQUEST" if billing == "on-demand" else "PROVISIONED"
        )
        table_desc = create_table(table, region, profile, billing_mode, endpoint_url)

        if text:
            output_text(f"Table '{table}' created")
            output_text(f"Status: {table_desc['TableStatus']}")
            output_text(f"ARN: {table_desc['TableArn']}")
        else:
            output_json(
                {
                    "table": table,
                    "status": table_desc["TableStatus"],
                    "arn": table_desc["TableArn"],
                }
            )

    except TableAlreadyExistsError as e:
        if text:
            solution = (
                f"Use a different table name or drop the existing table with "
                f"'handshake-core store drop-table --table {table} --approve'"
            )
            click.echo(error_text(str(e), solution), err=True)
        else:
            click.echo(
                error_json(str(e), "Use a different table name or drop existing table", 1),
                err=True,
            )
        ctx.exit(1)

    except StoreError as e:
        if text:
            click.echo(error_text(str(e), "Check AWS credentials and permissions"), err=True)
        else:
            click.echo(error_json(str(e), "Check AWS credentials and permissions", 3), err=True)
        ctx.exit(3)


@click.command("drop-table")
@click.option(
    "--table",
    envvar="HANDSHAKE_TABLE",
    default=DEFAULT_TABLE_NAME,
    help="DynamoDB table name",
)
@click.option("--region", envvar="AWS_REGION", help="AWS region")
@click.option("--profile", envvar="AWS_PROFILE", help="AWS profile")
@click.option("--endpoint-url", envvar="DYNAMODB_ENDPOINT", help="DynamoDB endpoint override")
@click.option(
    "--approve",
    is_flag=True,
    help="Required flag to confirm table deletion",
)
@click.option("--text", is_flag=True, help="Output as human-readable text")
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v INFO, -vv DEBUG, -vvv TRACE)",
)
@click.pass_context
def drop_table_command(
    ctx: click.Context,
    table: str,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    approve: bool,
    text: bool,
    verbose: int,
) -> None:
    """Drop the DynamoDB table.

    WARNING: This permanently deletes the table and ALL marketplace data.

    Examples:

    \b
        # Drop with approval
        handshake-core store drop-table --approve

    \b
    Output Format:
        Returns JSON with confirmation:
        {"table": "...", "status": "DELETING"}
    """
    setup_logging(verbose)

    if not approve:
        cmd = f"handshake-core store drop-table --table {table} --approve"
        if text:
            click.echo("WARNING: Table deletion requires approval", err=True)
            click.echo(f"\nThis will permanently delete table '{table}' and ALL data.", err=True)
            click.echo(f"\nTo proceed, use: {cmd}", err=True)
        else:
            click.echo(
                error_json(
                    "Table deletion requires approval", f"Add --approve flag to confirm: {cmd}", 2
                ),
                err=True,
            )
        ctx.exit(2)

    try:
        logger.info(f"Dropping table '{table}'")

        table_desc = drop_table(table, region, profile, endpoint_url)

        if text:
            output_text(f"Table '{table}' deletion initiated")
            output_text(f"Status: {table_desc['TableStatus']}")
        else:
            output_json({"table": table, "status": table_desc["TableStatus"]})

    except TableNotFoundError as e:
        if text:
            click.echo(error_text(str(e), "Check table name or list tables with AWS CLI"), err=True)
        else:
            click.echo(error_json(str(e), "Check table name", 1), err=True)
        ctx.exit(1)

    except StoreError as e:
        if text:
            click.echo(error_text(str(e), "Check AWS credentials and permissions"), err=True)
        else:
            click.echo(error_json(str(e), "Check AWS credentials and permissions", 3), err=True)
        ctx.exit(3)
