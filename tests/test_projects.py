"""Tests for projects, their mirrors and milestones."""

import pytest

from handshake_core.store.exceptions import InvalidEntityError, ItemNotFoundError, StoreUnavailableError
from handshake_core.store.models import MilestonePatch, MilestoneStatus, ProjectPatch, ProjectStatus


@pytest.fixture
def project(projects):
    return projects.create("order-1", "client-1", "master-1", "Bathroom", agreed_price=50000.0)


class TestProjects:
    def test_create_defaults(self, project):
        assert project["status"] == "NEW"
        assert project["progress"] == 0
        assert project["PK"] == f"PROJECT#{project['id']}"
        assert project["SK"] == "METADATA"

    def test_visible_to_both_parties(self, projects, project):
        for user_id in ("client-1", "master-1"):
            page = projects.find_by_user(user_id)
            assert [item["id"] for item in page.items] == [project["id"]]
            assert page.items[0]["SK"] == f"PROJECT#{project['createdAt']}#{project['id']}"

    def test_mirror_failure_is_repairable(self, projects, store):
        store.fail_on(
            "put_item",
            lambda item: item["PK"] == "USER#master-1",
            StoreUnavailableError("down"),
        )
        project = projects.create("order-1", "client-1", "master-1", "Roof", agreed_price=1.0)
        assert projects.find_by_id(project["id"]) is not None
        assert len(projects.find_by_user("client-1").items) == 1
        assert projects.find_by_user("master-1").items == []

        store.failures.clear()
        mirrors = projects.rebuild_mirrors(project["id"])
        assert len(mirrors) == 2
        assert len(projects.find_by_user("master-1").items) == 1

    def test_rebuild_mirrors_of_missing_project(self, projects):
        with pytest.raises(ItemNotFoundError):
            projects.rebuild_mirrors("missing")

    def test_update_refreshes_mirrors(self, projects, project):
        projects.update(project["id"], ProjectPatch(title="Bathroom and kitchen"))
        mirror = projects.find_by_user("master-1").items[0]
        assert mirror["title"] == "Bathroom and kitchen"

    def test_parties_are_immutable(self, projects, project):
        with pytest.raises(InvalidEntityError):
            projects.update(project["id"], {"masterId": "someone-else"})

    def test_update_status_stamps_timestamps(self, projects, project):
        started = projects.update_status(project["id"], ProjectStatus.IN_PROGRESS)
        assert "startedAt" in started
        completed = projects.update_status(project["id"], "COMPLETED")
        assert completed["progress"] == 100
        assert "completedAt" in completed
        cancelled = projects.update_status(project["id"], ProjectStatus.CANCELLED)
        assert "cancelledAt" in cancelled

    def test_unknown_status_rejected(self, projects, project):
        with pytest.raises(ValueError):
            projects.update_status(project["id"], "PAUSED")


class TestMilestones:
    def test_order_num_appended(self, projects, project):
        first = projects.create_milestone(project["id"], "Demolition", 1000.0)
        second = projects.create_milestone(project["id"], "Tiles", 2000.0)
        assert (first["orderNum"], second["orderNum"]) == (1, 2)
        assert [m["id"] for m in projects.find_milestones(project["id"])] == [
            first["id"],
            second["id"],
        ]

    def test_status_listing_by_due_date(self, projects, project):
        late = projects.create_milestone(project["id"], "Late", 1.0, due_date="2025-09-01")
        undated = projects.create_milestone(project["id"], "Undated", 1.0)
        early = projects.create_milestone(project["id"], "Early", 1.0, due_date="2025-02-01")
        page = projects.find_milestones_by_status(MilestoneStatus.PENDING)
        assert [m["id"] for m in page.items] == [early["id"], late["id"], undated["id"]]

    def test_complete_moves_index_entry(self, projects, project):
        milestone = projects.create_milestone(project["id"], "Tiles", 2000.0)
        completed = projects.complete_milestone(project["id"], milestone["id"])
        assert completed["status"] == "COMPLETED"
        assert "completedAt" in completed
        assert completed["GSI1PK"] == "MILESTONE#COMPLETED"
        assert projects.find_milestones_by_status("PENDING").items == []
        assert [m["id"] for m in projects.find_milestones_by_status("COMPLETED").items] == [
            milestone["id"]
        ]

    def test_due_date_change_reorders(self, projects, project):
        a = projects.create_milestone(project["id"], "A", 1.0, due_date="2025-03-01")
        b = projects.create_milestone(project["id"], "B", 1.0, due_date="2025-04-01")
        projects.update_milestone(project["id"], a["id"], MilestonePatch(due_date="2025-05-01"))
        page = projects.find_milestones_by_status("PENDING")
        assert [m["id"] for m in page.items] == [b["id"], a["id"]]

    def test_update_missing_milestone(self, projects, project):
        with pytest.raises(ItemNotFoundError):
            projects.update_milestone(project["id"], "missing", MilestonePatch(title="X"))

    def test_delete(self, projects, project):
        milestone = projects.create_milestone(project["id"], "Tiles", 2000.0)
        assert projects.delete_milestone(project["id"], milestone["id"]) is True
        assert projects.delete_milestone(project["id"], milestone["id"]) is False
        assert projects.find_milestone(project["id"], milestone["id"]) is None
