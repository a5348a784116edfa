"""
Custom exceptions for store and delivery operations.

Callers branch on the class: not-found, conflict and transient failures
need different handling (only transient ones are worth retrying).
"""


class StoreError(Exception):
    """Base exception for store operations."""

    pass


class ItemNotFoundError(StoreError):
    """Item does not exist."""

    pass


class ConflictError(StoreError):
    """A write precondition failed. Retrying without new input will not help."""

    pass


class ItemExistsError(ConflictError):
    """Item (or a unique field) already exists."""

    pass


class VersionMismatchError(ConflictError):
    """Item changed since it was read."""

    pass


class InvalidEntityError(StoreError):
    """Input cannot be mapped onto the entity (e.g. patching a key attribute)."""

    pass


class TransientStoreError(StoreError):
    """Store temporarily unavailable. Safe to retry with backoff."""

    pass


class AWSThrottlingError(TransientStoreError):
    """DynamoDB throttling occurred."""

    pass


class StoreUnavailableError(TransientStoreError):
    """DynamoDB endpoint unreachable or returned a server error."""

    pass


class AWSPermissionError(StoreError):
    """AWS permission denied."""

    pass


class TableNotFoundError(StoreError):
    """DynamoDB table does not exist."""

    pass


class TableAlreadyExistsError(StoreError):
    """DynamoDB table already exists."""

    pass


class DeliveryError(Exception):
    """Base exception for pushing data to a live connection."""

    def __init__(self, connection_id: str, message: str):
        super().__init__(message)
        self.connection_id = connection_id


class ConnectionGoneError(DeliveryError):
    """The remote endpoint no longer exists; its row must be reaped."""

    pass


class TransientDeliveryError(DeliveryError):
    """Delivery failed for another reason. Logged, the row is kept."""

    pass
