"""
Wallets and money transactions.

Balance changes are optimistic: every write carries the wallet version it
was computed from and fails with VersionMismatchError if another write got
there first. Only SET is used, so a retried write cannot double-apply.

Transactions are indexed by status (GSI1), type (GSI2) and, when the caller
supplies one, idempotency key (GSI3, sparse).
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import (
    INDEX_GSI1,
    INDEX_GSI2,
    INDEX_GSI3,
    PREFIX_IDEMPOTENCY,
    PREFIX_TRANSACTION,
    PREFIX_TRANSACTION_STATUS,
    PREFIX_TRANSACTION_TYPE,
    PREFIX_USER,
    SK_WALLET,
)
from ..core.indexing import EntitySchema, IndexProjection, compose, constant
from ..exceptions import InvalidEntityError
from ..keys import transaction_key, user_pk, wallet_key
from ..models import Page, SortCondition, TransactionPatch, TransactionStatus, TransactionType
from ..utils import format_key
from .base import BaseRepository

logger = get_logger(__name__)

WALLET_SCHEMA = EntitySchema(
    name="wallet",
    key=IndexProjection(None, compose(PREFIX_USER, "userId"), constant(SK_WALLET)),
    immutable=frozenset({"userId", "currency"}),
    key_prefixes=(f"{PREFIX_USER}#", SK_WALLET),
)

TRANSACTION_SCHEMA = EntitySchema(
    name="transaction",
    key=IndexProjection(None, compose(PREFIX_USER, "userId"), compose(PREFIX_TRANSACTION, "id")),
    indexes=(
        IndexProjection(
            INDEX_GSI1,
            compose(PREFIX_TRANSACTION_STATUS, "status"),
            compose(None, "createdAt", "id"),
        ),
        IndexProjection(
            INDEX_GSI2, compose(PREFIX_TRANSACTION_TYPE, "type"), compose(None, "createdAt", "id")
        ),
        IndexProjection(
            INDEX_GSI3,
            compose(PREFIX_IDEMPOTENCY, "idempotencyKey"),
            compose(PREFIX_TRANSACTION, "id"),
        ),
    ),
    immutable=frozenset({"userId", "type", "amount", "currency", "idempotencyKey"}),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_TRANSACTION}#"),
)

# Timestamp attribute stamped when a transaction reaches a final status
FINAL_STATUS_TIMESTAMPS = {
    TransactionStatus.COMPLETED: "completedAt",
    TransactionStatus.FAILED: "failedAt",
    TransactionStatus.CANCELLED: "cancelledAt",
}


class TransactionRepository(BaseRepository):
    # Wallets

    def create_wallet(self, user_id: str, currency: str = "KGS") -> dict[str, Any]:
        """
        Create an empty wallet.

        Raises:
            ItemExistsError: If the user already has a wallet
        """
        return self._create(
            WALLET_SCHEMA,
            {
                "id": self.id_factory(),
                "userId": user_id,
                "balance": 0,
                "reservedBalance": 0,
                "currency": currency,
                "version": 1,
            },
        )

    def find_wallet(self, user_id: str) -> dict[str, Any] | None:
        return self._get(wallet_key(user_id))

    def adjust_balance(
        self,
        user_id: str,
        amount: float,
        expected_version: int | None = None,
        reserved_amount: float = 0,
    ) -> dict[str, Any]:
        """
        Apply a balance delta under an optimistic version check.

        Args:
            user_id: Wallet owner
            amount: Delta to the available balance
            expected_version: Version the caller read; defaults to the current one
            reserved_amount: Delta to the reserved balance

        Returns:
            The wallet after the change

        Raises:
            ItemNotFoundError: If the user has no wallet
            VersionMismatchError: If the wallet changed since expected_version
            InvalidEntityError: If the change would make a balance negative
        """
        wallet = self._require(WALLET_SCHEMA, wallet_key(user_id))
        version = wallet["version"] if expected_version is None else expected_version

        balance = round(wallet["balance"] + amount, 2)
        reserved = round(wallet.get("reservedBalance", 0) + reserved_amount, 2)
        if balance < 0 or reserved < 0:
            raise InvalidEntityError(f"Wallet of user {user_id} cannot go negative")

        wallet = self._update(
            WALLET_SCHEMA,
            wallet_key(user_id),
            {"balance": balance, "reservedBalance": reserved, "version": version + 1},
            expected={"version": version},
            current=wallet,
        )
        logger.info(f"Adjusted wallet of user {user_id} by {amount} (version {version + 1})")
        return wallet

    # Transactions

    def create(
        self,
        user_id: str,
        transaction_type: TransactionType | str,
        amount: float,
        currency: str = "KGS",
        description: str | None = None,
        idempotency_key: str | None = None,
        order_id: str | None = None,
        project_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Record a transaction.

        With an idempotency key, a repeated call returns the transaction
        created by the first call instead of writing a second one.
        """
        if idempotency_key:
            existing = self.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(f"Idempotency key {idempotency_key} already used by {existing['id']}")
                return existing

        transaction = self._create(
            TRANSACTION_SCHEMA,
            {
                "id": self.id_factory(),
                "userId": user_id,
                "type": TransactionType(transaction_type).value,
                "amount": amount,
                "currency": currency,
                "status": TransactionStatus.PENDING.value,
                "description": description,
                "idempotencyKey": idempotency_key,
                "orderId": order_id,
                "projectId": project_id,
                "metadata": metadata,
            },
        )
        logger.info(f"Created {transaction['type']} transaction {transaction['id']}")
        return transaction

    def find_by_id(self, user_id: str, transaction_id: str) -> dict[str, Any] | None:
        return self._get(transaction_key(user_id, transaction_id))

    def find_by_idempotency_key(self, idempotency_key: str) -> dict[str, Any] | None:
        return self._first(format_key(PREFIX_IDEMPOTENCY, idempotency_key), INDEX_GSI3)

    def find_for_user(
        self,
        user_id: str,
        status: TransactionStatus | str | None = None,
        limit: int | None = None,
        start_token: str | None = None,
    ) -> Page:
        return self._query(
            user_pk(user_id),
            sort=SortCondition.begins_with(f"{PREFIX_TRANSACTION}#"),
            filters={"status": TransactionStatus(status).value} if status else None,
            limit=limit,
            start_token=start_token,
        )

    def find_by_status(
        self,
        status: TransactionStatus | str,
        limit: int | None = None,
        start_token: str | None = None,
    ) -> Page:
        """Transactions in a status across users, newest first."""
        return self._query(
            format_key(PREFIX_TRANSACTION_STATUS, TransactionStatus(status).value),
            index_name=INDEX_GSI1,
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def find_by_type(
        self,
        transaction_type: TransactionType | str,
        limit: int | None = None,
        start_token: str | None = None,
    ) -> Page:
        """Transactions of a type across users, newest first."""
        return self._query(
            format_key(PREFIX_TRANSACTION_TYPE, TransactionType(transaction_type).value),
            index_name=INDEX_GSI2,
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def update(self, user_id: str, transaction_id: str, patch: TransactionPatch) -> dict[str, Any]:
        return self._update(TRANSACTION_SCHEMA, transaction_key(user_id, transaction_id), patch)

    def update_status(
        self,
        user_id: str,
        transaction_id: str,
        status: TransactionStatus | str,
        failure_reason: str | None = None,
    ) -> dict[str, Any]:
        """Move a transaction to a new status; its status index entry moves with it."""
        status = TransactionStatus(status)
        changes = TransactionPatch(status=status, failure_reason=failure_reason).changes()
        stamp = FINAL_STATUS_TIMESTAMPS.get(status)
        if stamp:
            changes[stamp] = self._timestamp()
        return self._update(TRANSACTION_SCHEMA, transaction_key(user_id, transaction_id), changes)

    def count_pending(self, user_id: str) -> int:
        return len(
            self._query_all(
                user_pk(user_id),
                sort=SortCondition.begins_with(f"{PREFIX_TRANSACTION}#"),
                filters={"status": TransactionStatus.PENDING.value},
            )
        )
