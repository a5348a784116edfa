"""Tests for wallets and transactions."""

import pytest

from handshake_core.store.exceptions import (
    InvalidEntityError,
    ItemExistsError,
    ItemNotFoundError,
    VersionMismatchError,
)
from handshake_core.store.models import TransactionPatch, TransactionStatus, TransactionType


class TestWallets:
    def test_create_wallet(self, transactions):
        wallet = transactions.create_wallet("u1")
        assert (wallet["balance"], wallet["reservedBalance"], wallet["version"]) == (0, 0, 1)
        with pytest.raises(ItemExistsError):
            transactions.create_wallet("u1")

    def test_adjust_balance_bumps_version(self, transactions):
        transactions.create_wallet("u1")
        wallet = transactions.adjust_balance("u1", 500)
        assert wallet["balance"] == 500
        assert wallet["version"] == 2
        wallet = transactions.adjust_balance("u1", -200, reserved_amount=200)
        assert (wallet["balance"], wallet["reservedBalance"], wallet["version"]) == (300, 200, 3)

    def test_stale_version_rejected(self, transactions):
        transactions.create_wallet("u1")
        transactions.adjust_balance("u1", 100)
        with pytest.raises(VersionMismatchError):
            transactions.adjust_balance("u1", 100, expected_version=1)
        assert transactions.find_wallet("u1")["balance"] == 100

    def test_negative_balance_rejected(self, transactions):
        transactions.create_wallet("u1")
        with pytest.raises(InvalidEntityError):
            transactions.adjust_balance("u1", -1)

    def test_missing_wallet(self, transactions):
        with pytest.raises(ItemNotFoundError):
            transactions.adjust_balance("nobody", 10)


class TestTransactions:
    def test_create_pending(self, transactions):
        txn = transactions.create("u1", TransactionType.DEPOSIT, 1000.0)
        assert txn["status"] == "PENDING"
        assert txn["GSI1PK"] == "TRANSACTION_STATUS#PENDING"
        assert txn["GSI2PK"] == "TRANSACTION_TYPE#DEPOSIT"
        assert "GSI3PK" not in txn
        assert transactions.find_by_id("u1", txn["id"])["amount"] == 1000.0

    def test_idempotency_key_returns_first_transaction(self, transactions, store):
        first = transactions.create("u1", "PAYMENT", 250.0, idempotency_key="pay-1")
        again = transactions.create("u1", "PAYMENT", 250.0, idempotency_key="pay-1")
        assert again["id"] == first["id"]
        assert len(transactions.find_for_user("u1").items) == 1
        assert transactions.find_by_idempotency_key("pay-1")["id"] == first["id"]

    def test_status_change_moves_index_entry(self, transactions):
        txn = transactions.create("u1", "DEPOSIT", 10.0)
        completed = transactions.update_status("u1", txn["id"], TransactionStatus.COMPLETED)
        assert completed["GSI1PK"] == "TRANSACTION_STATUS#COMPLETED"
        assert "completedAt" in completed
        assert transactions.find_by_status("PENDING").items == []
        assert [t["id"] for t in transactions.find_by_status("COMPLETED").items] == [txn["id"]]

    def test_failure_reason_recorded(self, transactions):
        txn = transactions.create("u1", "WITHDRAWAL", 10.0)
        failed = transactions.update_status("u1", txn["id"], "FAILED", failure_reason="declined")
        assert failed["failureReason"] == "declined"
        assert "failedAt" in failed

    def test_amount_is_immutable(self, transactions):
        txn = transactions.create("u1", "DEPOSIT", 10.0)
        with pytest.raises(InvalidEntityError):
            transactions.update("u1", txn["id"], {"amount": 20.0})

    def test_update_description(self, transactions):
        txn = transactions.create("u1", "DEPOSIT", 10.0)
        updated = transactions.update("u1", txn["id"], TransactionPatch(description="Top-up"))
        assert updated["description"] == "Top-up"
        assert updated["GSI1PK"] == "TRANSACTION_STATUS#PENDING"

    def test_user_listing_and_pending_count(self, transactions):
        first = transactions.create("u1", "DEPOSIT", 10.0)
        transactions.create("u1", "DEPOSIT", 20.0)
        transactions.create("u2", "DEPOSIT", 30.0)
        transactions.update_status("u1", first["id"], "COMPLETED")
        assert transactions.count_pending("u1") == 1
        completed = transactions.find_for_user("u1", status="COMPLETED").items
        assert [t["id"] for t in completed] == [first["id"]]

    def test_find_by_type_newest_first(self, transactions):
        first = transactions.create("u1", "FEE", 1.0)
        second = transactions.create("u2", "FEE", 2.0)
        assert [t["id"] for t in transactions.find_by_type(TransactionType.FEE).items] == [
            second["id"],
            first["id"],
        ]
