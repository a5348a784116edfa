"""
Utility functions for store operations.
"""

import base64
import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any


def format_key(prefix: str, *parts: Any) -> str:
    """
    Format a key segment with its type prefix.

    Args:
        prefix: Entity prefix (e.g., 'USER', 'ORDER')
        parts: Identifier parts joined with '#'

    Returns:
        Formatted key (e.g., 'USER#42', 'MSG#2025-01-01T00:00:00+00:00#abc')
    """
    return "#".join([prefix, *(str(part) for part in parts)])


def new_id() -> str:
    """Generate a new entity identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time in UTC. Repositories take this as their default clock."""
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """ISO-8601 string for a timestamp, normalized to UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def epoch_seconds(moment: datetime) -> int:
    """Unix timestamp, as used by the table's TTL attribute."""
    return int(moment.timestamp())


def to_dynamo(value: Any) -> Any:
    """Convert Python values into types boto3 accepts (floats become Decimal)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo(v) for v in value]
    return value


def from_dynamo(value: Any) -> Any:
    """Convert boto3 values back to natural Python types (Decimal to int/float)."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    if isinstance(value, set):
        return {from_dynamo(v) for v in value}
    return value


def encode_token(start_key: dict[str, Any]) -> str:
    """Encode an exclusive start key as an opaque continuation token."""
    raw = json.dumps(from_dynamo(start_key), sort_keys=True).encode()
    return base64.urlsafe_b64encode(raw).decode()


def decode_token(token: str) -> dict[str, Any]:
    """
    Decode a continuation token produced by encode_token.

    Raises:
        ValueError: If the token is malformed
    """
    try:
        decoded = json.loads(base64.urlsafe_b64decode(token.encode()))
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid continuation token: {e}") from e
    if not isinstance(decoded, dict):
        raise ValueError("Invalid continuation token: expected an object")
    return decoded


def output_json(data: dict[str, Any], quiet: bool = False) -> None:
    """
    Output JSON to stdout.

    Args:
        data: Data to output as JSON
        quiet: If True, suppress output
    """
    if not quiet:
        print(json.dumps(data, default=str))


def output_text(message: str, quiet: bool = False) -> None:
    """
    Output text to stdout.

    Args:
        message: Message to output
        quiet: If True, suppress output
    """
    if not quiet:
        print(message)


def error_json(error: str, solution: str, exit_code: int) -> str:
    """
    Format error as a JSON line.

    Args:
        error: Error message
        solution: Solution suggestion
        exit_code: Exit code

    Returns:
        JSON-encoded error object
    """
    return json.dumps({"error": error, "solution": solution, "exit_code": exit_code})


def error_text(error: str, solution: str) -> str:
    """
    Format error as human-readable text.

    Args:
        error: Error message
        solution: Solution suggestion

    Returns:
        Formatted error message
    """
    return f"Error: {error}\n\nSolution: {solution}"


def validate_table_name(table_name: str) -> bool:
    """
    Validate DynamoDB table name.

    Args:
        table_name: Table name to validate

    Returns:
        True if valid

    Raises:
        ValueError: If table name is invalid
    """
    if not table_name:
        raise ValueError("Table name cannot be empty")
    if len(table_name) < 3 or len(table_name) > 255:
        raise ValueError("Table name must be between 3 and 255 characters")
    if not all(c.isalnum() or c in "-_." for c in table_name):
        raise ValueError(
            "Table name can only contain alphanumeric characters, hyphens, underscores, and periods"
        )
    return True
