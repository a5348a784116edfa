"""
DynamoDB client wrapper with error handling.

Provides the store primitives every repository is built on: put, get,
query, scan, update and delete over a single table.
"""

from functools import reduce
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from ..constants import ATTR_PK, ATTR_SK, INDEX_KEYS
from ..exceptions import (
    AWSPermissionError,
    AWSThrottlingError,
    ConflictError,
    ItemExistsError,
    ItemNotFoundError,
    StoreError,
    StoreUnavailableError,
    TableNotFoundError,
    VersionMismatchError,
)
from ..models import Page, QueryParams, ScanParams, SortCondition
from ..utils import decode_token, encode_token, from_dynamo, to_dynamo

THROTTLING_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
    }
)
UNAVAILABLE_CODES = frozenset(
    {"InternalServerError", "ServiceUnavailable", "TransactionConflictException"}
)


def key_attributes(index_name: str | None) -> tuple[str, str]:
    """Partition and sort attribute names for the table or a secondary index."""
    if index_name is None:
        return ATTR_PK, ATTR_SK
    try:
        return INDEX_KEYS[index_name]
    except KeyError:
        raise ValueError(f"Unknown index '{index_name}'") from None


def start_key_for(item: dict[str, Any], index_name: str | None) -> dict[str, Any]:
    """Exclusive start key that resumes a query right after ``item``."""
    start_key = {ATTR_PK: item[ATTR_PK], ATTR_SK: item[ATTR_SK]}
    if index_name is not None:
        pk_attr, sk_attr = key_attributes(index_name)
        start_key[pk_attr] = item[pk_attr]
        start_key[sk_attr] = item[sk_attr]
    return start_key


class DynamoDBClient:
    """DynamoDB client wrapper with error handling."""

    def __init__(
        self,
        table_name: str,
        region: str | None = None,
        profile: str | None = None,
        endpoint_url: str | None = None,
    ):
        """
        Initialize DynamoDB client.

        Args:
            table_name: DynamoDB table name
            region: AWS region (optional, uses SDK default)
            profile: AWS profile (optional, uses SDK default)
            endpoint_url: Endpoint override, e.g. DynamoDB Local (optional)
        """
        session = boto3.Session(profile_name=profile, region_name=region)
        self.dynamodb = session.resource("dynamodb", endpoint_url=endpoint_url)
        self.client = session.client("dynamodb", endpoint_url=endpoint_url)
        self.table = self.dynamodb.Table(table_name)
        self.table_name = table_name

    def put_item(self, item: dict[str, Any], if_not_exists: bool = False) -> dict[str, Any]:
        """
        Put item, optionally refusing to overwrite an existing one.

        Args:
            item: Item to put (must carry PK and SK)
            if_not_exists: Only write if no item with the same key exists

        Returns:
            The item as written

        Raises:
            ItemExistsError: If if_not_exists=True and the key is taken
            StoreError: For other DynamoDB errors
        """
        kwargs: dict[str, Any] = {"Item": to_dynamo(item)}
        if if_not_exists:
            kwargs["ConditionExpression"] = "attribute_not_exists(PK)"
        try:
            self.table.put_item(**kwargs)
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise ItemExistsError(
                    f"Item {item[ATTR_PK]}/{item[ATTR_SK]} already exists"
                ) from e
            self._handle_error(e)
        except BotoCoreError as e:
            raise StoreUnavailableError(f"DynamoDB unreachable: {e}") from e
        return item

    def get_item(self, key: dict[str, Any]) -> dict[str, Any] | None:
        """
        Get item by key.

        Args:
            key: Key to retrieve ({"PK": ..., "SK": ...})

        Returns:
            Item if found, None otherwise

        Raises:
            StoreError: For DynamoDB errors
        """
        try:
            response = self.table.get_item(Key=key)
        except ClientError as e:
            self._handle_error(e)
        except BotoCoreError as e:
            raise StoreUnavailableError(f"DynamoDB unreachable: {e}") from e
        item = response.get("Item")
        return from_dynamo(item) if item is not None else None

    def query(self, params: QueryParams) -> Page:
        """
        Query items by key condition.

        The limit counts items after filters are applied; the client keeps
        reading pages until it has enough or the partition is exhausted.

        Args:
            params: Query parameters

        Returns:
            Page of items in sort key order plus a continuation token

        Raises:
            StoreError: For DynamoDB errors
        """
        pk_attr, sk_attr = key_attributes(params.index_name)
        condition = Key(pk_attr).eq(params.partition_value)
        if params.sort is not None:
            condition = condition & _sort_condition(sk_attr, params.sort)

        kwargs: dict[str, Any] = {
            "KeyConditionExpression": condition,
            "ScanIndexForward": params.scan_forward,
        }
        if params.index_name:
            kwargs["IndexName"] = params.index_name
        if params.filters:
            kwargs["FilterExpression"] = _filter_expression(params.filters)
        if params.start_token:
            kwargs["ExclusiveStartKey"] = decode_token(params.start_token)

        return self._collect(self.table.query, kwargs, params.limit, params.index_name)

    def query_all(self, params: QueryParams) -> list[dict[str, Any]]:
        """
        Query every matching item, following continuation tokens.

        Args:
            params: Query parameters (limit is ignored)

        Returns:
            All matching items
        """
        items: list[dict[str, Any]] = []
        token = params.start_token
        while True:
            page = self.query(
                QueryParams(
                    partition_value=params.partition_value,
                    sort=params.sort,
                    index_name=params.index_name,
                    filters=params.filters,
                    scan_forward=params.scan_forward,
                    start_token=token,
                )
            )
            items.extend(page.items)
            if not page.next_token:
                return items
            token = page.next_token

    def scan(self, params: ScanParams) -> Page:
        """
        Scan the whole table.

        Only for ops/admin paths; hot paths must use query.

        Args:
            params: Scan parameters

        Returns:
            Page of items plus a continuation token
        """
        conditions = []
        if params.pk_prefix:
            conditions.append(Attr(ATTR_PK).begins_with(params.pk_prefix))
        if params.sk_prefix:
            conditions.append(Attr(ATTR_SK).begins_with(params.sk_prefix))
        for name in params.require_attributes:
            conditions.append(Attr(name).exists())
        for name, value in params.filters.items():
            conditions.append(Attr(name).eq(to_dynamo(value)))

        kwargs: dict[str, Any] = {}
        if conditions:
            kwargs["FilterExpression"] = reduce(lambda a, b: a & b, conditions)
        if params.start_token:
            kwargs["ExclusiveStartKey"] = decode_token(params.start_token)

        return self._collect(self.table.scan, kwargs, params.limit, None)

    def update_item(
        self,
        key: dict[str, Any],
        updates: dict[str, Any],
        remove: list[str] | None = None,
        must_exist: bool = True,
        expected: dict[str, Any] | None = None,
        greater_than: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Merge attributes into an item.

        Only SET and REMOVE actions are issued, so repeating the same call
        leaves the item in the same state.

        Args:
            key: Key of the item
            updates: Attributes to set
            remove: Attributes to remove
            must_exist: Fail instead of creating a new item
            expected: Attribute values the stored item must currently have
            greater_than: Lower bounds (exclusive) the stored values must exceed

        Returns:
            The item after the update

        Raises:
            ItemNotFoundError: If must_exist=True and the item is absent
            VersionMismatchError: If an expected value or lower bound does not hold
            StoreError: For other DynamoDB errors
        """
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        set_parts = []
        for idx, (attr, value) in enumerate(updates.items()):
            names[f"#u{idx}"] = attr
            values[f":u{idx}"] = to_dynamo(value)
            set_parts.append(f"#u{idx} = :u{idx}")
        remove_parts = []
        for idx, attr in enumerate(remove or []):
            names[f"#r{idx}"] = attr
            remove_parts.append(f"#r{idx}")

        expression = []
        if set_parts:
            expression.append("SET " + ", ".join(set_parts))
        if remove_parts:
            expression.append("REMOVE " + ", ".join(remove_parts))
        if not expression:
            raise ValueError("update_item requires at least one attribute to set or remove")

        conditions = []
        if must_exist:
            conditions.append("attribute_exists(PK)")
        for idx, (attr, value) in enumerate((expected or {}).items()):
            names[f"#e{idx}"] = attr
            values[f":e{idx}"] = to_dynamo(value)
            conditions.append(f"#e{idx} = :e{idx}")
        for idx, (attr, value) in enumerate((greater_than or {}).items()):
            names[f"#g{idx}"] = attr
            values[f":g{idx}"] = to_dynamo(value)
            conditions.append(f"#g{idx} > :g{idx}")

        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": " ".join(expression),
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_NEW",
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values
        if conditions:
            kwargs["ConditionExpression"] = " AND ".join(conditions)

        try:
            response = self.table.update_item(**kwargs)
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                self._raise_update_condition(key, must_exist, e)
            self._handle_error(e)
        except BotoCoreError as e:
            raise StoreUnavailableError(f"DynamoDB unreachable: {e}") from e
        return from_dynamo(response.get("Attributes", {}))

    def delete_item(
        self,
        key: dict[str, Any],
        must_exist: bool = False,
        at_most: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Delete item.

        Args:
            key: Key to delete
            must_exist: Fail if the item is absent (otherwise deletion is idempotent)
            at_most: Upper bounds (inclusive) the stored values must not exceed

        Returns:
            The deleted item, or None if nothing was there

        Raises:
            ItemNotFoundError: If must_exist=True and the item is absent
            ConflictError: If an upper bound does not hold or the bounded item is absent
            StoreError: For other DynamoDB errors
        """
        kwargs: dict[str, Any] = {"Key": key, "ReturnValues": "ALL_OLD"}
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        conditions = []
        if must_exist:
            conditions.append("attribute_exists(PK)")
        for idx, (attr, value) in enumerate((at_most or {}).items()):
            names[f"#m{idx}"] = attr
            values[f":m{idx}"] = to_dynamo(value)
            conditions.append(f"#m{idx} <= :m{idx}")
        if conditions:
            kwargs["ConditionExpression"] = " AND ".join(conditions)
        if names:
            kwargs["ExpressionAttributeNames"] = names
            kwargs["ExpressionAttributeValues"] = values
        try:
            response = self.table.delete_item(**kwargs)
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                if at_most:
                    raise ConflictError(
                        f"Item {key[ATTR_PK]}/{key[ATTR_SK]} no longer matches its delete condition"
                    ) from e
                raise ItemNotFoundError(f"Item {key[ATTR_PK]}/{key[ATTR_SK]} not found") from e
            self._handle_error(e)
        except BotoCoreError as e:
            raise StoreUnavailableError(f"DynamoDB unreachable: {e}") from e
        old = response.get("Attributes")
        return from_dynamo(old) if old else None

    def _collect(
        self, operation: Any, kwargs: dict[str, Any], limit: int | None, index_name: str | None
    ) -> Page:
        """Read pages until the limit is filled, then build the continuation token."""
        items: list[dict[str, Any]] = []
        while True:
            if limit:
                kwargs["Limit"] = limit - len(items) if "FilterExpression" not in kwargs else limit
            try:
                response = operation(**kwargs)
            except ClientError as e:
                self._handle_error(e)
            except BotoCoreError as e:
                raise StoreUnavailableError(f"DynamoDB unreachable: {e}") from e

            batch = [from_dynamo(item) for item in response.get("Items", [])]
            last_key = response.get("LastEvaluatedKey")

            if limit and len(items) + len(batch) >= limit:
                remaining = limit - len(items)
                items.extend(batch[:remaining])
                if remaining < len(batch) or last_key:
                    return Page(items, encode_token(start_key_for(items[-1], index_name)))
                return Page(items)

            items.extend(batch)
            if not last_key:
                return Page(items)
            kwargs["ExclusiveStartKey"] = last_key

    def _raise_update_condition(self, key: dict[str, Any], must_exist: bool, error: ClientError) -> None:
        """Tell a missing item apart from a failed precondition."""
        if must_exist and self.get_item(key) is None:
            raise ItemNotFoundError(f"Item {key[ATTR_PK]}/{key[ATTR_SK]} not found") from error
        raise VersionMismatchError(
            f"Item {key[ATTR_PK]}/{key[ATTR_SK]} changed since it was read"
        ) from error

    def _handle_error(self, error: ClientError) -> None:
        """
        Convert boto3 errors to store exceptions.

        Args:
            error: ClientError from boto3

        Raises:
            ConflictError: If a condition check failed
            TableNotFoundError: If table not found
            AWSThrottlingError: If throttled
            StoreUnavailableError: If DynamoDB reported a server-side failure
            AWSPermissionError: If permission denied
            StoreError: For other errors
        """
        code = _error_code(error)

        if code == "ConditionalCheckFailedException":
            raise ConflictError(f"Condition failed: {error}")
        elif code == "ResourceNotFoundException":
            raise TableNotFoundError(f"Table '{self.table_name}' not found")
        elif code in THROTTLING_CODES:
            raise AWSThrottlingError("DynamoDB throttling - retry with backoff")
        elif code in UNAVAILABLE_CODES:
            raise StoreUnavailableError(f"DynamoDB unavailable: {error}")
        elif code == "AccessDeniedException":
            raise AWSPermissionError("AWS permission denied")
        else:
            raise StoreError(f"DynamoDB error: {error}")


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _sort_condition(attribute: str, sort: SortCondition) -> Any:
    key = Key(attribute)
    if sort.operator == "between":
        return key.between(sort.value, sort.upper)
    return getattr(key, sort.operator)(sort.value)


def _filter_expression(filters: dict[str, Any]) -> Any:
    conditions = [Attr(name).eq(to_dynamo(value)) for name, value in filters.items()]
    return reduce(lambda a, b: a & b, conditions)
