"""
Background checks, disputes against their results, the dispute timeline and
the verification badges a passed check earns.

Checks and disputes are indexed by status (GSI1, sort key
``STATUS#<status>#<createdAt>#<id>``); both derive the sort key from
createdAt, never from the time of the update, so recomputing it is
deterministic. GSI3 gives a direct id lookup for both.
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import (
    INDEX_GSI1,
    INDEX_GSI2,
    INDEX_GSI3,
    PREFIX_BACKGROUND_CHECK,
    PREFIX_BACKGROUND_CHECK_TYPE,
    PREFIX_BADGE,
    PREFIX_DISPUTE,
    PREFIX_STATUS,
    PREFIX_TIMELINE,
    PREFIX_USER,
    SK_DETAILS,
)
from ..core.indexing import EntitySchema, IndexProjection, compose, constant
from ..exceptions import ItemNotFoundError
from ..keys import badge_key, user_pk
from ..models import (
    BackgroundCheckPatch,
    BackgroundCheckStatus,
    BadgePatch,
    DisputePatch,
    DisputeStatus,
    Page,
    SortCondition,
)
from ..utils import format_key
from .base import BaseRepository

logger = get_logger(__name__)

BACKGROUND_CHECK_SCHEMA = EntitySchema(
    name="background-check",
    key=IndexProjection(
        None, compose(PREFIX_USER, "userId"), compose(PREFIX_BACKGROUND_CHECK, "id")
    ),
    indexes=(
        IndexProjection(
            INDEX_GSI1,
            constant(PREFIX_BACKGROUND_CHECK),
            compose(PREFIX_STATUS, "status", "createdAt", "id"),
        ),
        IndexProjection(
            INDEX_GSI2,
            compose(PREFIX_BACKGROUND_CHECK_TYPE, "checkType"),
            compose(PREFIX_USER, "userId", "createdAt"),
        ),
        IndexProjection(INDEX_GSI3, compose(PREFIX_BACKGROUND_CHECK, "id"), constant(SK_DETAILS)),
    ),
    immutable=frozenset({"userId", "checkType"}),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_BACKGROUND_CHECK}#"),
)

DISPUTE_SCHEMA = EntitySchema(
    name="dispute",
    key=IndexProjection(
        None, compose(PREFIX_BACKGROUND_CHECK, "backgroundCheckId"), compose(PREFIX_DISPUTE, "id")
    ),
    indexes=(
        IndexProjection(
            INDEX_GSI1,
            constant(PREFIX_DISPUTE),
            compose(PREFIX_STATUS, "status", "createdAt", "id"),
        ),
        IndexProjection(
            INDEX_GSI2, compose(PREFIX_USER, "userId"), compose(PREFIX_DISPUTE, "createdAt", "id")
        ),
        IndexProjection(INDEX_GSI3, compose(PREFIX_DISPUTE, "id"), constant(SK_DETAILS)),
    ),
    immutable=frozenset({"backgroundCheckId", "userId"}),
    key_prefixes=(f"{PREFIX_BACKGROUND_CHECK}#", f"{PREFIX_DISPUTE}#"),
)

TIMELINE_SCHEMA = EntitySchema(
    name="dispute-timeline",
    key=IndexProjection(
        None, compose(PREFIX_DISPUTE, "disputeId"), compose(PREFIX_TIMELINE, "performedAt", "id")
    ),
    key_prefixes=(f"{PREFIX_DISPUTE}#", f"{PREFIX_TIMELINE}#"),
)

BADGE_SCHEMA = EntitySchema(
    name="badge",
    key=IndexProjection(None, compose(PREFIX_USER, "userId"), compose(PREFIX_BADGE, "badgeType")),
    immutable=frozenset({"userId", "badgeType"}),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_BADGE}#"),
)


def _key_of(item: dict[str, Any]) -> dict[str, str]:
    return {"PK": item["PK"], "SK": item["SK"]}


class BackgroundCheckRepository(BaseRepository):
    # Checks

    def create_check(
        self,
        user_id: str,
        check_type: str,
        provider: str | None = None,
        consent_given_at: str | None = None,
    ) -> dict[str, Any]:
        check = self._create(
            BACKGROUND_CHECK_SCHEMA,
            {
                "id": self.id_factory(),
                "userId": user_id,
                "checkType": check_type,
                "provider": provider,
                "consentGivenAt": consent_given_at,
                "status": BackgroundCheckStatus.PENDING.value,
            },
        )
        logger.info(f"Initiated {check_type} background check {check['id']} for user {user_id}")
        return check

    def find_check(self, check_id: str) -> dict[str, Any] | None:
        return self._first(format_key(PREFIX_BACKGROUND_CHECK, check_id), INDEX_GSI3)

    def find_user_checks(
        self, user_id: str, status: BackgroundCheckStatus | str | None = None
    ) -> list[dict[str, Any]]:
        """A user's checks, newest first."""
        checks = self._query_all(
            user_pk(user_id),
            sort=SortCondition.begins_with(f"{PREFIX_BACKGROUND_CHECK}#"),
            filters={"status": BackgroundCheckStatus(status).value} if status else None,
        )
        return sorted(checks, key=lambda check: check["createdAt"], reverse=True)

    def find_latest_check(self, user_id: str) -> dict[str, Any] | None:
        checks = self.find_user_checks(user_id)
        return checks[0] if checks else None

    def find_checks_by_status(
        self,
        status: BackgroundCheckStatus | str,
        limit: int | None = None,
        start_token: str | None = None,
    ) -> Page:
        """Checks in a status, oldest first."""
        return self._query(
            PREFIX_BACKGROUND_CHECK,
            sort=SortCondition.begins_with(
                format_key(PREFIX_STATUS, BackgroundCheckStatus(status).value) + "#"
            ),
            index_name=INDEX_GSI1,
            limit=limit,
            start_token=start_token,
        )

    def find_checks_by_type(
        self, check_type: str, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        return self._query(
            format_key(PREFIX_BACKGROUND_CHECK_TYPE, check_type),
            index_name=INDEX_GSI2,
            limit=limit,
            start_token=start_token,
        )

    def update_check(self, check_id: str, patch: BackgroundCheckPatch) -> dict[str, Any]:
        """
        Update a check; its status index entry moves with the status.

        Raises:
            ItemNotFoundError: If the check does not exist
        """
        check = self._require_by_id(self.find_check(check_id), "Background check", check_id)
        return self._update(BACKGROUND_CHECK_SCHEMA, _key_of(check), patch, current=check)

    # Disputes

    def create_dispute(
        self,
        check_id: str,
        user_id: str,
        reason: str,
        description: str | None = None,
        evidence: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Open a dispute, then mark the check DISPUTED and log a timeline entry.

        The last two steps are best-effort; their failure is logged.

        Raises:
            ItemNotFoundError: If the check does not exist
        """
        check = self._require_by_id(self.find_check(check_id), "Background check", check_id)
        dispute = self._create(
            DISPUTE_SCHEMA,
            {
                "id": self.id_factory(),
                "backgroundCheckId": check_id,
                "userId": user_id,
                "reason": reason,
                "description": description,
                "evidence": evidence,
                "status": DisputeStatus.OPEN.value,
            },
        )
        self._saga_step(
            f"mark check {check_id} disputed",
            lambda: self._update(
                BACKGROUND_CHECK_SCHEMA,
                _key_of(check),
                BackgroundCheckPatch(status=BackgroundCheckStatus.DISPUTED),
                current=check,
            ),
        )
        self._saga_step(
            f"timeline entry for dispute {dispute['id']}",
            lambda: self.add_timeline_entry(dispute["id"], "CREATED", user_id, {"reason": reason}),
        )
        logger.info(f"Opened dispute {dispute['id']} on check {check_id}")
        return dispute

    def find_dispute(self, dispute_id: str) -> dict[str, Any] | None:
        return self._first(format_key(PREFIX_DISPUTE, dispute_id), INDEX_GSI3)

    def find_check_disputes(self, check_id: str) -> list[dict[str, Any]]:
        return self._query_all(
            format_key(PREFIX_BACKGROUND_CHECK, check_id),
            sort=SortCondition.begins_with(f"{PREFIX_DISPUTE}#"),
        )

    def find_user_disputes(
        self, user_id: str, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        """A user's disputes, newest first."""
        return self._query(
            user_pk(user_id),
            sort=SortCondition.begins_with(f"{PREFIX_DISPUTE}#"),
            index_name=INDEX_GSI2,
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def find_disputes_by_status(
        self,
        status: DisputeStatus | str,
        limit: int | None = None,
        start_token: str | None = None,
    ) -> Page:
        """Disputes in a status, oldest first."""
        return self._query(
            PREFIX_DISPUTE,
            sort=SortCondition.begins_with(
                format_key(PREFIX_STATUS, DisputeStatus(status).value) + "#"
            ),
            index_name=INDEX_GSI1,
            limit=limit,
            start_token=start_token,
        )

    def update_dispute(
        self, dispute_id: str, patch: DisputePatch, performed_by: str | None = None
    ) -> dict[str, Any]:
        """
        Update a dispute; a status change is also written to its timeline.

        Raises:
            ItemNotFoundError: If the dispute does not exist
        """
        dispute = self._require_by_id(self.find_dispute(dispute_id), "Dispute", dispute_id)
        updated = self._update(DISPUTE_SCHEMA, _key_of(dispute), patch, current=dispute)
        if updated["status"] != dispute["status"]:
            self._saga_step(
                f"timeline entry for dispute {dispute_id}",
                lambda: self.add_timeline_entry(
                    dispute_id,
                    "STATUS_CHANGED",
                    performed_by or "system",
                    {"from": dispute["status"], "to": updated["status"]},
                ),
            )
        return updated

    # Timeline

    def add_timeline_entry(
        self,
        dispute_id: str,
        action: str,
        performed_by: str,
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return self._create(
            TIMELINE_SCHEMA,
            {
                "id": self.id_factory(),
                "disputeId": dispute_id,
                "action": action,
                "performedBy": performed_by,
                "performedAt": self._timestamp(),
                "details": details,
            },
        )

    def find_timeline(self, dispute_id: str) -> list[dict[str, Any]]:
        """Timeline entries of a dispute, oldest first."""
        return self._query_all(
            format_key(PREFIX_DISPUTE, dispute_id),
            sort=SortCondition.begins_with(f"{PREFIX_TIMELINE}#"),
        )

    # Badges

    def award_badge(
        self,
        user_id: str,
        badge_type: str,
        check_id: str | None = None,
        expires_at: str | None = None,
    ) -> dict[str, Any]:
        """Award a badge; awarding it again replaces the earlier award."""
        return self._create(
            BADGE_SCHEMA,
            {
                "userId": user_id,
                "badgeType": badge_type,
                "backgroundCheckId": check_id,
                "earnedAt": self._timestamp(),
                "expiresAt": expires_at,
                "isActive": True,
            },
            if_not_exists=False,
        )

    def find_user_badges(self, user_id: str, active_only: bool = True) -> list[dict[str, Any]]:
        return self._query_all(
            user_pk(user_id),
            sort=SortCondition.begins_with(f"{PREFIX_BADGE}#"),
            filters={"isActive": True} if active_only else None,
        )

    def update_badge(self, user_id: str, badge_type: str, patch: BadgePatch) -> dict[str, Any]:
        return self._update(BADGE_SCHEMA, badge_key(user_id, badge_type), patch)

    @staticmethod
    def _require_by_id(item: dict[str, Any] | None, kind: str, item_id: str) -> dict[str, Any]:
        if item is None:
            raise ItemNotFoundError(f"{kind} {item_id} not found")
        return item
