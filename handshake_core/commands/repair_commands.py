"""
Repair commands: re-derive index fields and mirror rows from canonical items.
"""

import click

from ..logging_config import get_logger, setup_logging
from ..store.constants import DEFAULT_TABLE_NAME
from ..store.core.client import DynamoDBClient
from ..store.core.repair_operations import (
    RepairReport,
    rebuild_order_mirrors,
    rebuild_project_mirrors,
    reindex,
)
from ..store.exceptions import StoreError
from ..store.repositories import SCHEMAS
from ..store.utils import error_json, error_text, output_json, output_text

logger = get_logger(__name__)

MIRROR_TARGETS = {
    "projects": rebuild_project_mirrors,
    "orders": rebuild_order_mirrors,
}


def _print_reports(reports: list[RepairReport], text: bool) -> None:
    if text:
        for report in reports:
            prefix = "[dry-run] " if report.dry_run else ""
            output_text(
                f"{prefix}{report.target}: scanned={report.scanned} drifted={report.drifted} "
                f"repaired={report.repaired} failed={report.failed}"
            )
    else:
        output_json({"reports": [report.to_dict() for report in reports]})


def _exit_code(reports: list[RepairReport]) -> int:
    return 3 if any(report.failed for report in reports) else 0


@click.command("reindex")
@click.option(
    "--entity",
    type=click.Choice(sorted(SCHEMAS) + ["all"]),
    default="all",
    help="Entity family to reindex (default: all)",
)
@click.option("--dry-run", is_flag=True, help="Report drift without writing")
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
def reindex_command(
    ctx: click.Context,
    entity: str,
    dry_run: bool,
    table: str,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    text: bool,
    verbose: int,
) -> None:
    """Recompute GSI attributes from canonical fields.

    Scans every item of the chosen entity family and rewrites index
    attributes that drifted from what the entity's fields derive. Items
    whose fields no longer qualify for an index lose that index's
    attributes.

    Examples:

    \b
        # Preview drift on milestones
        handshake-core store reindex --entity milestone --dry-run

    \b
        # Repair everything
        handshake-core store reindex

    \b
    Output Format:
        {"reports": [{"target": "milestone", "scanned": 10, "drifted": 1,
                      "repaired": 1, "failed": 0, "dry_run": false}]}
    """
    setup_logging(verbose)

    names = sorted(SCHEMAS) if entity == "all" else [entity]
    try:
        client = DynamoDBClient(table, region, profile, endpoint_url=endpoint_url)
        reports = [reindex(client, SCHEMAS[name], dry_run=dry_run) for name in names]
    except StoreError as e:
        if text:
            click.echo(error_text(str(e), "Check table name, AWS credentials and permissions"), err=True)
        else:
            click.echo(error_json(str(e), "Check table name, AWS credentials and permissions", 3), err=True)
        ctx.exit(3)

    _print_reports(reports, text)
    ctx.exit(_exit_code(reports))


@click.command("rebuild-mirrors")
@click.option(
    "--target",
    type=click.Choice(sorted(MIRROR_TARGETS) + ["all"]),
    default="all",
    help="Mirror family to rebuild (default: all)",
)
@click.option("--dry-run", is_flag=True, help="Report drift without writing")
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
def rebuild_mirrors_command(
    ctx: click.Context,
    target: str,
    dry_run: bool,
    table: str,
    region: str | None,
    profile: str | None,
    endpoint_url: str | None,
    text: bool,
    verbose: int,
) -> None:
    """Rewrite per-user project and order mirror rows.

    Mirrors are written after their canonical item and may be missing or
    stale when that second write failed. This command rewrites every mirror
    that differs from its canonical item.

    Examples:

    \b
        handshake-core store rebuild-mirrors --target projects --dry-run
        handshake-core store rebuild-mirrors
    """
    setup_logging(verbose)

    names = sorted(MIRROR_TARGETS) if target == "all" else [target]
    try:
        client = DynamoDBClient(table, region, profile, endpoint_url=endpoint_url)
        reports = [MIRROR_TARGETS[name](client, dry_run) for name in names]
    except StoreError as e:
        if text:
            click.echo(error_text(str(e), "Check table name, AWS credentials and permissions"), err=True)
        else:
            click.echo(error_json(str(e), "Check table name, AWS credentials and permissions", 3), err=True)
        ctx.exit(3)

    _print_reports(reports, text)
    ctx.exit(_exit_code(reports))
