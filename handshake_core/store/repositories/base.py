"""
Shared repository plumbing.

Repositories are constructed explicitly with a store client and a clock;
nothing here is a module-level singleton.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from ...logging_config import get_logger
from ..constants import ATTR_CREATED_AT, ATTR_UPDATED_AT, KEY_ATTRIBUTES
from ..core.client import DynamoDBClient
from ..core.indexing import EntitySchema, apply_patch, build_item
from ..exceptions import ItemNotFoundError, StoreError
from ..models import Page, Patch, QueryParams, SortCondition
from ..utils import isoformat, new_id, utc_now

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def strip_keys(item: dict[str, Any]) -> dict[str, Any]:
    """Item attributes without primary-key and index fields."""
    return {name: value for name, value in item.items() if name not in KEY_ATTRIBUTES}


class BaseRepository:
    """Common create/get/update/query steps every repository is built from."""

    def __init__(
        self,
        client: DynamoDBClient,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = new_id,
    ):
        self.client = client
        self.clock = clock
        self.id_factory = id_factory

    def _timestamp(self) -> str:
        return isoformat(self.clock())

    def _create(
        self, schema: EntitySchema, attributes: dict[str, Any], if_not_exists: bool = True
    ) -> dict[str, Any]:
        """
        Stamp timestamps, derive keys and indexes, and write a new item.

        Raises:
            ItemExistsError: If an item with the derived key already exists
        """
        now = self._timestamp()
        attributes = {ATTR_CREATED_AT: now, ATTR_UPDATED_AT: now, **attributes}
        item = build_item(schema, attributes)
        self.client.put_item(item, if_not_exists=if_not_exists)
        logger.debug(f"Created {schema.name} {item['PK']}/{item['SK']}")
        return item

    def _get(self, key: dict[str, str]) -> dict[str, Any] | None:
        return self.client.get_item(key)

    def _require(self, schema: EntitySchema, key: dict[str, str]) -> dict[str, Any]:
        item = self.client.get_item(key)
        if item is None:
            raise ItemNotFoundError(f"{schema.name} {key['PK']}/{key['SK']} not found")
        return item

    def _update(
        self,
        schema: EntitySchema,
        key: dict[str, str],
        changes: Patch | dict[str, Any],
        expected: dict[str, Any] | None = None,
        current: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Merge a patch into a stored item, recomputing every index field.

        Args:
            schema: Entity schema
            key: Primary key of the item
            changes: Patch object or camelCase attribute changes
            expected: Attribute equality preconditions
            current: Item already read by the caller (read again if omitted)

        Returns:
            The item after the update

        Raises:
            ItemNotFoundError: If the item does not exist
            InvalidEntityError: If the patch touches a key-bearing attribute
            VersionMismatchError: If an expected value does not match
        """
        if isinstance(changes, Patch):
            changes = changes.changes()
        if current is None:
            current = self._require(schema, key)
        result = apply_patch(schema, current, changes, self.clock())
        logger.debug(f"Updating {schema.name} {key['PK']}/{key['SK']}: {sorted(result.updates)}")
        return self.client.update_item(
            key,
            result.updates,
            remove=result.remove or None,
            must_exist=True,
            expected=expected,
        )

    def _delete(self, key: dict[str, str]) -> dict[str, Any] | None:
        return self.client.delete_item(key)

    def _query(
        self,
        partition_value: str,
        sort: SortCondition | None = None,
        index_name: str | None = None,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        scan_forward: bool = True,
        start_token: str | None = None,
    ) -> Page:
        return self.client.query(
            QueryParams(
                partition_value=partition_value,
                sort=sort,
                index_name=index_name,
                filters=filters or {},
                limit=limit,
                scan_forward=scan_forward,
                start_token=start_token,
            )
        )

    def _query_all(
        self,
        partition_value: str,
        sort: SortCondition | None = None,
        index_name: str | None = None,
        filters: dict[str, Any] | None = None,
        scan_forward: bool = True,
    ) -> list[dict[str, Any]]:
        return self.client.query_all(
            QueryParams(
                partition_value=partition_value,
                sort=sort,
                index_name=index_name,
                filters=filters or {},
                scan_forward=scan_forward,
            )
        )

    def _first(
        self, partition_value: str, index_name: str, sort: SortCondition | None = None
    ) -> dict[str, Any] | None:
        page = self._query(partition_value, sort=sort, index_name=index_name, limit=1)
        return page.items[0] if page.items else None

    def _saga_step(self, description: str, step: Callable[[], Any]) -> bool:
        """
        Run a secondary write after the primary write succeeded.

        A failure is logged as a consistency warning and left for the
        repair tool; the primary write is never rolled back.
        """
        try:
            step()
        except StoreError as e:
            logger.warning(f"Consistency warning: {description} failed: {e}")
            return False
        return True
