"""Tests for master identity verification."""

import pytest

from handshake_core.store.exceptions import InvalidEntityError, ItemExistsError, ItemNotFoundError
from handshake_core.store.models import DocumentStatus, VerificationStatus


class TestVerificationRepository:
    def test_get_or_create_is_stable(self, verifications):
        created = verifications.get_or_create("u1")
        assert created["status"] == "PENDING"
        assert created["documents"] == []
        assert verifications.get_or_create("u1")["id"] == created["id"]
        with pytest.raises(ItemExistsError):
            verifications.create("u1")

    def test_documents(self, verifications):
        verification = verifications.add_document("u1", "PASSPORT", "s3://docs/p.jpg", "p.jpg")
        document = verification["documents"][0]
        assert document["status"] == "PENDING"
        updated = verifications.update_document_status(
            "u1", document["id"], DocumentStatus.APPROVED, notes="clear"
        )
        assert updated["documents"][0]["status"] == "APPROVED"
        assert updated["documents"][0]["notes"] == "clear"

    def test_update_unknown_document(self, verifications):
        verifications.get_or_create("u1")
        with pytest.raises(ItemNotFoundError):
            verifications.update_document_status("u1", "missing", "APPROVED")

    def test_submit_needs_identity_document(self, verifications):
        verifications.add_document("u1", "SELFIE", "s3://docs/s.jpg", "s.jpg")
        with pytest.raises(InvalidEntityError):
            verifications.submit_for_review("u1")
        verifications.add_document("u1", "ID_CARD", "s3://docs/id.jpg", "id.jpg")
        submitted = verifications.submit_for_review("u1")
        assert submitted["status"] == "IN_REVIEW"
        assert submitted["GSI1PK"] == "VERIFICATION_STATUS#IN_REVIEW"

    def test_review_queue_oldest_first(self, verifications):
        for user_id in ("u1", "u2"):
            verifications.add_document(user_id, "PASSPORT", "s3://x", "x.jpg")
            verifications.submit_for_review(user_id)
        queue = verifications.find_by_status(VerificationStatus.IN_REVIEW).items
        assert [v["userId"] for v in queue] == ["u1", "u2"]

    def test_approve_and_reject(self, verifications):
        verifications.get_or_create("u1")
        verifications.get_or_create("u2")
        approved = verifications.approve("u1", reviewed_by="admin-1")
        assert approved["status"] == "APPROVED"
        assert approved["verifiedAt"] == approved["reviewedAt"]
        rejected = verifications.reject("u2", reviewed_by="admin-1", rejection_reason="blurry")
        assert rejected["rejectionReason"] == "blurry"
        assert verifications.find_by_status("PENDING").items == []
