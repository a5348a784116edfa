"""
Projects and their milestones.

A project is written as a saga: the canonical item ``PROJECT#<id>`` /
``METADATA`` first, then one mirror row under each party's partition
(``USER#<userId>`` / ``PROJECT#<createdAt>#<id>``). If a mirror write fails
the canonical item stays; ``rebuild_mirrors`` (or the repair CLI) re-derives
the mirrors from it.

Milestones live in the project partition and are indexed by status and due
date (GSI1), so the index is recomputed whenever either changes.
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import INDEX_GSI1, PREFIX_MILESTONE, PREFIX_PROJECT, SK_METADATA
from ..core.indexing import EntitySchema, IndexProjection, compose, constant
from ..keys import (
    milestone_index_sort,
    milestone_key,
    project_key,
    project_mirror_key,
    project_pk,
    user_pk,
)
from ..models import MilestonePatch, MilestoneStatus, Page, ProjectPatch, ProjectStatus, SortCondition
from ..utils import format_key
from .base import BaseRepository, strip_keys

logger = get_logger(__name__)

PROJECT_SCHEMA = EntitySchema(
    name="project",
    key=IndexProjection(None, compose(PREFIX_PROJECT, "id"), constant(SK_METADATA)),
    immutable=frozenset({"orderId", "clientId", "masterId"}),
    key_prefixes=(f"{PREFIX_PROJECT}#", SK_METADATA),
)

MILESTONE_SCHEMA = EntitySchema(
    name="milestone",
    key=IndexProjection(
        None, compose(PREFIX_PROJECT, "projectId"), compose(PREFIX_MILESTONE, "id")
    ),
    indexes=(
        IndexProjection(INDEX_GSI1, compose(PREFIX_MILESTONE, "status"), milestone_index_sort),
    ),
    immutable=frozenset({"projectId"}),
    key_prefixes=(f"{PREFIX_PROJECT}#", f"{PREFIX_MILESTONE}#"),
)

# Timestamp attribute stamped when a project enters the status
STATUS_TIMESTAMPS = {
    ProjectStatus.IN_PROGRESS: "startedAt",
    ProjectStatus.COMPLETED: "completedAt",
    ProjectStatus.CANCELLED: "cancelledAt",
}


def project_mirror_items(project: dict[str, Any]) -> list[dict[str, Any]]:
    """Mirror rows for both parties, derived from the canonical project."""
    attributes = strip_keys(project)
    mirrors = []
    for user_id in dict.fromkeys([project["clientId"], project["masterId"]]):
        key = project_mirror_key(user_id, project["createdAt"], project["id"])
        mirrors.append({**attributes, **key})
    return mirrors


class ProjectRepository(BaseRepository):
    def create(
        self,
        order_id: str,
        client_id: str,
        master_id: str,
        title: str,
        agreed_price: float,
        description: str | None = None,
        deadline: str | None = None,
        application_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a project and mirror it under both parties.

        Mirror failures are logged as consistency warnings; the canonical
        project is returned regardless.
        """
        project = self._create(
            PROJECT_SCHEMA,
            {
                "id": self.id_factory(),
                "orderId": order_id,
                "applicationId": application_id,
                "clientId": client_id,
                "masterId": master_id,
                "title": title,
                "description": description,
                "agreedPrice": agreed_price,
                "deadline": deadline,
                "status": ProjectStatus.NEW.value,
                "progress": 0,
            },
        )
        self._sync_mirrors(project)
        logger.info(f"Created project {project['id']} for order {order_id}")
        return project

    def find_by_id(self, project_id: str) -> dict[str, Any] | None:
        return self._get(project_key(project_id))

    def find_by_user(
        self, user_id: str, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        """Projects where the user is client or master (mirror rows), newest first."""
        return self._query(
            user_pk(user_id),
            sort=SortCondition.begins_with(f"{PREFIX_PROJECT}#"),
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def update(self, project_id: str, patch: ProjectPatch) -> dict[str, Any]:
        project = self._update(PROJECT_SCHEMA, project_key(project_id), patch)
        self._sync_mirrors(project)
        return project

    def update_status(self, project_id: str, status: ProjectStatus | str) -> dict[str, Any]:
        """Move a project to a new status, stamping the matching timestamp."""
        status = ProjectStatus(status)
        patch = ProjectPatch(status=status)
        stamp = STATUS_TIMESTAMPS.get(status)
        if stamp == "startedAt":
            patch.started_at = self._timestamp()
        elif stamp == "completedAt":
            patch.completed_at = self._timestamp()
            patch.progress = 100
        elif stamp == "cancelledAt":
            patch.cancelled_at = self._timestamp()
        return self.update(project_id, patch)

    def rebuild_mirrors(self, project_id: str) -> list[dict[str, Any]]:
        """
        Rewrite both mirror rows from the canonical project.

        Raises:
            ItemNotFoundError: If the project does not exist
        """
        project = self._require(PROJECT_SCHEMA, project_key(project_id))
        mirrors = project_mirror_items(project)
        for mirror in mirrors:
            self.client.put_item(mirror)
        logger.info(f"Rebuilt {len(mirrors)} mirrors for project {project_id}")
        return mirrors

    def _sync_mirrors(self, project: dict[str, Any]) -> None:
        for mirror in project_mirror_items(project):
            self._saga_step(
                f"project {project['id']} mirror {mirror['PK']}",
                lambda mirror=mirror: self.client.put_item(mirror),
            )

    # Milestones

    def create_milestone(
        self,
        project_id: str,
        title: str,
        amount: float,
        due_date: str | None = None,
        description: str | None = None,
        order_num: int | None = None,
        status: MilestoneStatus = MilestoneStatus.PENDING,
    ) -> dict[str, Any]:
        """Create a milestone; without order_num it is appended after the last one."""
        if order_num is None:
            order_num = len(self.find_milestones(project_id)) + 1
        return self._create(
            MILESTONE_SCHEMA,
            {
                "id": self.id_factory(),
                "projectId": project_id,
                "title": title,
                "description": description,
                "amount": amount,
                "dueDate": due_date,
                "orderNum": order_num,
                "status": MilestoneStatus(status).value,
            },
        )

    def find_milestone(self, project_id: str, milestone_id: str) -> dict[str, Any] | None:
        return self._get(milestone_key(project_id, milestone_id))

    def find_milestones(self, project_id: str) -> list[dict[str, Any]]:
        """Milestones of a project ordered by orderNum."""
        items = self._query_all(
            project_pk(project_id), sort=SortCondition.begins_with(f"{PREFIX_MILESTONE}#")
        )
        return sorted(items, key=lambda item: item.get("orderNum", 0))

    def find_milestones_by_status(
        self,
        status: MilestoneStatus | str,
        limit: int | None = None,
        start_token: str | None = None,
    ) -> Page:
        """Milestones in a status across projects, earliest due date first."""
        return self._query(
            format_key(PREFIX_MILESTONE, MilestoneStatus(status).value),
            index_name=INDEX_GSI1,
            limit=limit,
            start_token=start_token,
        )

    def update_milestone(
        self, project_id: str, milestone_id: str, patch: MilestonePatch
    ) -> dict[str, Any]:
        """
        Update a milestone; its status/due-date index entry moves with it.

        Raises:
            ItemNotFoundError: If the milestone does not exist
        """
        return self._update(MILESTONE_SCHEMA, milestone_key(project_id, milestone_id), patch)

    def complete_milestone(self, project_id: str, milestone_id: str) -> dict[str, Any]:
        return self.update_milestone(
            project_id,
            milestone_id,
            MilestonePatch(status=MilestoneStatus.COMPLETED, completed_at=self._timestamp()),
        )

    def delete_milestone(self, project_id: str, milestone_id: str) -> bool:
        """Hard-delete a milestone. Returns whether it existed."""
        return self._delete(milestone_key(project_id, milestone_id)) is not None
