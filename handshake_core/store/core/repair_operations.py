"""
Repair and backfill operations.

Run from the operations CLI, never inline in a request: they scan the whole
table. Each operation re-derives secondary data (index fields, mirror rows)
from the canonical items and rewrites what drifted. Rewrites are plain
SET/REMOVE or full puts of derived rows, so running a repair twice is safe.
"""

from collections.abc import Callable, Iterator
from dataclasses import asdict, dataclass
from typing import Any

from ...logging_config import get_logger
from ..constants import ATTR_PK, ATTR_SK, PREFIX_ORDER, PREFIX_PROJECT, SK_METADATA
from ..exceptions import StoreError
from ..models import ScanParams
from ..repositories.order import order_mirror_item
from ..repositories.project import project_mirror_items
from .client import DynamoDBClient
from .indexing import EntitySchema, index_drift

logger = get_logger(__name__)


@dataclass
class RepairReport:
    """Counts from one repair run."""

    target: str
    scanned: int = 0
    drifted: int = 0
    repaired: int = 0
    failed: int = 0
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def scan_all(client: DynamoDBClient, params: ScanParams) -> Iterator[dict[str, Any]]:
    """Yield every item matching a scan, following continuation tokens."""
    token = params.start_token
    while True:
        page = client.scan(
            ScanParams(
                pk_prefix=params.pk_prefix,
                sk_prefix=params.sk_prefix,
                filters=params.filters,
                require_attributes=params.require_attributes,
                limit=params.limit,
                start_token=token,
            )
        )
        yield from page.items
        if not page.next_token:
            return
        token = page.next_token


def reindex(client: DynamoDBClient, schema: EntitySchema, dry_run: bool = False) -> RepairReport:
    """
    Re-derive index fields for every item of one entity family.

    Args:
        client: Store client
        schema: Entity schema to reindex
        dry_run: Only count drifted items

    Returns:
        RepairReport
    """
    report = RepairReport(target=schema.name, dry_run=dry_run)
    pk_prefix, sk_prefix = schema.key_prefixes
    logger.info(f"Reindexing {schema.name} (PK {pk_prefix}*, SK {sk_prefix}*)")

    for item in scan_all(client, ScanParams(pk_prefix=pk_prefix, sk_prefix=sk_prefix)):
        report.scanned += 1
        rewrite, stale = index_drift(schema, item)
        if not rewrite and not stale:
            continue

        report.drifted += 1
        logger.info(f"Index drift on {item[ATTR_PK]}/{item[ATTR_SK]}: {sorted(rewrite) + stale}")
        if dry_run:
            continue
        key = {ATTR_PK: item[ATTR_PK], ATTR_SK: item[ATTR_SK]}
        _repair(report, key, lambda: client.update_item(key, rewrite, remove=stale or None))

    logger.info(f"Reindex of {schema.name} done: {report.to_dict()}")
    return report


def rebuild_mirrors(
    client: DynamoDBClient,
    target: str,
    canonical: ScanParams,
    derive: Callable[[dict[str, Any]], list[dict[str, Any]]],
    dry_run: bool = False,
) -> RepairReport:
    """
    Rewrite mirror rows that differ from what the canonical item derives.

    Args:
        client: Store client
        target: Name for logging and the report
        canonical: Scan selecting the canonical items
        derive: Canonical item -> expected mirror rows
        dry_run: Only count drifted mirrors

    Returns:
        RepairReport (scanned counts canonical items, drifted counts mirrors)
    """
    report = RepairReport(target=target, dry_run=dry_run)

    for item in scan_all(client, canonical):
        report.scanned += 1
        for mirror in derive(item):
            key = {ATTR_PK: mirror[ATTR_PK], ATTR_SK: mirror[ATTR_SK]}
            if client.get_item(key) == mirror:
                continue
            report.drifted += 1
            logger.info(f"Mirror drift on {key[ATTR_PK]}/{key[ATTR_SK]}")
            if not dry_run:
                _repair(report, key, lambda mirror=mirror: client.put_item(mirror))

    logger.info(f"Mirror rebuild of {target} done: {report.to_dict()}")
    return report


def rebuild_project_mirrors(client: DynamoDBClient, dry_run: bool = False) -> RepairReport:
    return rebuild_mirrors(
        client,
        "project-mirrors",
        ScanParams(pk_prefix=f"{PREFIX_PROJECT}#", sk_prefix=SK_METADATA),
        project_mirror_items,
        dry_run,
    )


def rebuild_order_mirrors(client: DynamoDBClient, dry_run: bool = False) -> RepairReport:
    return rebuild_mirrors(
        client,
        "order-mirrors",
        ScanParams(pk_prefix=f"{PREFIX_ORDER}#", sk_prefix=SK_METADATA),
        lambda order: [order_mirror_item(order)],
        dry_run,
    )


def _repair(report: RepairReport, key: dict[str, Any], write: Callable[[], Any]) -> None:
    try:
        write()
    except StoreError as e:
        report.failed += 1
        logger.warning(f"Repair of {key[ATTR_PK]}/{key[ATTR_SK]} failed: {e}")
        return
    report.repaired += 1
