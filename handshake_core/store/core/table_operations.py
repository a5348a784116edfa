"""
Table management operations for the single-table store.
"""

from typing import Any, Literal

import boto3
from botocore.exceptions import ClientError

from ..constants import ATTR_PK, ATTR_SK, ATTR_TTL, INDEX_KEYS
from ..exceptions import TableAlreadyExistsError, TableNotFoundError


def _dynamodb_client(region: str | None, profile: str | None, endpoint_url: str | None) -> Any:
    session = boto3.Session(profile_name=profile, region_name=region)
    return session.client("dynamodb", endpoint_url=endpoint_url)


def create_table(
    table_name: str,
    region: str | None = None,
    profile: str | None = None,
    billing_mode: Literal["PAY_PER_REQUEST", "PROVISIONED"] = "PAY_PER_REQUEST",
    endpoint_url: str | None = None,
) -> dict[str, Any]:
    """
    Create the DynamoDB table with its three secondary indexes and TTL.

    Args:
        table_name: Table name
        region: AWS region (optional)
        profile: AWS profile (optional)
        billing_mode: Billing mode (PAY_PER_REQUEST or PROVISIONED)
        endpoint_url: Endpoint override (optional)

    Returns:
        Table description

    Raises:
        TableAlreadyExistsError: If table already exists
    """
    dynamodb = _dynamodb_client(region, profile, endpoint_url)
    throughput = {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5}

    attribute_names = [ATTR_PK, ATTR_SK] + [attr for pair in INDEX_KEYS.values() for attr in pair]
    indexes = []
    for index_name, (pk_attr, sk_attr) in INDEX_KEYS.items():
        index: dict[str, Any] = {
            "IndexName": index_name,
            "KeySchema": [
                {"AttributeName": pk_attr, "KeyType": "HASH"},
                {"AttributeName": sk_attr, "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        }
        if billing_mode == "PROVISIONED":
            index["ProvisionedThroughput"] = throughput
        indexes.append(index)

    kwargs: dict[str, Any] = {
        "TableName": table_name,
        "KeySchema": [
            {"AttributeName": ATTR_PK, "KeyType": "HASH"},  # Partition key
            {"AttributeName": ATTR_SK, "KeyType": "RANGE"},  # Sort key
        ],
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": "S"} for name in attribute_names
        ],
        "BillingMode": billing_mode,
        "GlobalSecondaryIndexes": indexes,
        "Tags": [
            {"Key": "ManagedBy", "Value": "handshake-core"},
            {"Key": "Purpose", "Value": "single-table"},
        ],
    }
    if billing_mode == "PROVISIONED":
        kwargs["ProvisionedThroughput"] = throughput

    try:
        response = dynamodb.create_table(**kwargs)

        # Enable TTL (connection rows expire on their own)
        dynamodb.update_time_to_live(
            TableName=table_name,
            TimeToLiveSpecification={"Enabled": True, "AttributeName": ATTR_TTL},
        )

        return response["TableDescription"]  # type: ignore[no-any-return]

    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceInUseException":
            raise TableAlreadyExistsError(f"Table '{table_name}' already exists")
        raise


def drop_table(
    table_name: str,
    region: str | None = None,
    profile: str | None = None,
    endpoint_url: str | None = None,
) -> dict[str, Any]:
    """
    Drop DynamoDB table.

    Args:
        table_name: Table name
        region: AWS region (optional)
        profile: AWS profile (optional)
        endpoint_url: Endpoint override (optional)

    Returns:
        Table description

    Raises:
        TableNotFoundError: If table does not exist
    """
    dynamodb = _dynamodb_client(region, profile, endpoint_url)

    try:
        response = dynamodb.delete_table(TableName=table_name)
        return response["TableDescription"]  # type: ignore[no-any-return]
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceNotFoundException":
            raise TableNotFoundError(f"Table '{table_name}' not found")
        raise
