"""
Master identity verification: one record per user holding the uploaded
documents and the review outcome, indexed by status for the review queue.
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import INDEX_GSI1, PREFIX_USER, PREFIX_VERIFICATION_STATUS, SK_VERIFICATION
from ..core.indexing import EntitySchema, IndexProjection, compose, constant
from ..exceptions import InvalidEntityError, ItemExistsError, ItemNotFoundError
from ..keys import verification_key
from ..models import (
    IDENTITY_DOCUMENT_TYPES,
    DocumentStatus,
    Page,
    VerificationPatch,
    VerificationStatus,
)
from ..utils import format_key
from .base import BaseRepository

logger = get_logger(__name__)

VERIFICATION_SCHEMA = EntitySchema(
    name="verification",
    key=IndexProjection(None, compose(PREFIX_USER, "userId"), constant(SK_VERIFICATION)),
    indexes=(
        IndexProjection(
            INDEX_GSI1,
            compose(PREFIX_VERIFICATION_STATUS, "status"),
            compose(None, "createdAt", "userId"),
        ),
    ),
    immutable=frozenset({"userId"}),
    key_prefixes=(f"{PREFIX_USER}#", SK_VERIFICATION),
)


class VerificationRepository(BaseRepository):
    def create(self, user_id: str) -> dict[str, Any]:
        """
        Start a verification for a user.

        Raises:
            ItemExistsError: If the user already has one
        """
        return self._create(
            VERIFICATION_SCHEMA,
            {
                "id": self.id_factory(),
                "userId": user_id,
                "status": VerificationStatus.PENDING.value,
                "documents": [],
            },
        )

    def find_by_user(self, user_id: str) -> dict[str, Any] | None:
        return self._get(verification_key(user_id))

    def get_or_create(self, user_id: str) -> dict[str, Any]:
        verification = self.find_by_user(user_id)
        if verification is not None:
            return verification
        try:
            return self.create(user_id)
        except ItemExistsError:
            return self._require(VERIFICATION_SCHEMA, verification_key(user_id))

    def update(self, user_id: str, patch: VerificationPatch) -> dict[str, Any]:
        return self._update(VERIFICATION_SCHEMA, verification_key(user_id), patch)

    def add_document(
        self, user_id: str, document_type: str, url: str, file_name: str
    ) -> dict[str, Any]:
        """Attach an uploaded document (created PENDING) to the user's verification."""
        verification = self.get_or_create(user_id)
        document = {
            "id": self.id_factory(),
            "type": document_type,
            "url": url,
            "fileName": file_name,
            "uploadedAt": self._timestamp(),
            "status": DocumentStatus.PENDING.value,
        }
        return self._update(
            VERIFICATION_SCHEMA,
            verification_key(user_id),
            VerificationPatch(documents=[*verification.get("documents", []), document]),
            current=verification,
        )

    def update_document_status(
        self,
        user_id: str,
        document_id: str,
        status: DocumentStatus | str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """
        Raises:
            ItemNotFoundError: If the verification or the document does not exist
        """
        verification = self._require(VERIFICATION_SCHEMA, verification_key(user_id))
        documents = verification.get("documents", [])
        if not any(doc["id"] == document_id for doc in documents):
            raise ItemNotFoundError(f"Document {document_id} not found")

        status = DocumentStatus(status).value
        updated = [
            {**doc, "status": status, "notes": notes} if doc["id"] == document_id else doc
            for doc in documents
        ]
        return self._update(
            VERIFICATION_SCHEMA,
            verification_key(user_id),
            VerificationPatch(documents=updated),
            current=verification,
        )

    def submit_for_review(self, user_id: str) -> dict[str, Any]:
        """
        Queue the verification for review.

        Raises:
            ItemNotFoundError: If the user has no verification
            InvalidEntityError: If no identity document was uploaded
        """
        verification = self._require(VERIFICATION_SCHEMA, verification_key(user_id))
        if not any(
            doc.get("type") in IDENTITY_DOCUMENT_TYPES for doc in verification.get("documents", [])
        ):
            raise InvalidEntityError("At least one identity document is required")
        return self._update(
            VERIFICATION_SCHEMA,
            verification_key(user_id),
            VerificationPatch(status=VerificationStatus.IN_REVIEW),
            current=verification,
        )

    def approve(self, user_id: str, reviewed_by: str, notes: str | None = None) -> dict[str, Any]:
        now = self._timestamp()
        verification = self.update(
            user_id,
            VerificationPatch(
                status=VerificationStatus.APPROVED,
                reviewed_by=reviewed_by,
                reviewed_at=now,
                verified_at=now,
                notes=notes,
            ),
        )
        logger.info(f"Verification of user {user_id} approved by {reviewed_by}")
        return verification

    def reject(
        self, user_id: str, reviewed_by: str, rejection_reason: str, notes: str | None = None
    ) -> dict[str, Any]:
        verification = self.update(
            user_id,
            VerificationPatch(
                status=VerificationStatus.REJECTED,
                reviewed_by=reviewed_by,
                reviewed_at=self._timestamp(),
                rejection_reason=rejection_reason,
                notes=notes,
            ),
        )
        logger.info(f"Verification of user {user_id} rejected by {reviewed_by}")
        return verification

    def find_by_status(
        self,
        status: VerificationStatus | str,
        limit: int | None = None,
        start_token: str | None = None,
    ) -> Page:
        """Verifications in a status, oldest first (review queue order)."""
        return self._query(
            format_key(PREFIX_VERIFICATION_STATUS, VerificationStatus(status).value),
            index_name=INDEX_GSI1,
            limit=limit,
            start_token=start_token,
        )
