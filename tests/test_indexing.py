"""Tests for key and secondary-index derivation."""

from datetime import datetime, timezone

import pytest

from handshake_core.store.core.indexing import (
    apply_patch,
    build_item,
    compose,
    index_drift,
    primary_key,
)
from handshake_core.store.exceptions import InvalidEntityError
from handshake_core.store.keys import (
    availability_index_sort,
    milestone_index_sort,
    participant_key,
    project_mirror_key,
)
from handshake_core.store.repositories.background_check import BACKGROUND_CHECK_SCHEMA
from handshake_core.store.repositories.project import MILESTONE_SCHEMA
from handshake_core.store.repositories.transaction import TRANSACTION_SCHEMA
from handshake_core.store.repositories.user import USER_SCHEMA

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


def milestone(**overrides):
    attributes = {
        "id": "m1",
        "projectId": "p1",
        "title": "Foundation",
        "status": "PENDING",
        "dueDate": "2025-04-01",
        "createdAt": "2025-01-01T00:00:00+00:00",
        "updatedAt": "2025-01-01T00:00:00+00:00",
    }
    attributes.update(overrides)
    return build_item(MILESTONE_SCHEMA, attributes)


class TestCompose:
    def test_joins_prefix_and_values(self):
        assert compose("ORDER", "createdAt", "id")({"createdAt": "t", "id": "1"}) == "ORDER#t#1"

    def test_without_prefix(self):
        assert compose(None, "createdAt", "id")({"createdAt": "t", "id": "1"}) == "t#1"

    def test_missing_attribute_yields_none(self):
        assert compose("PHONE", "phone")({}) is None
        assert compose("PHONE", "phone")({"phone": ""}) is None


class TestKeys:
    def test_same_attributes_same_keys(self):
        """Test that key derivation is deterministic."""
        first = milestone()
        second = milestone()
        assert primary_key(MILESTONE_SCHEMA, first) == primary_key(MILESTONE_SCHEMA, second)
        assert first["GSI1PK"] == second["GSI1PK"]
        assert first["GSI1SK"] == second["GSI1SK"]

    def test_milestone_layout(self):
        item = milestone()
        assert item["PK"] == "PROJECT#p1"
        assert item["SK"] == "MILESTONE#m1"
        assert item["GSI1PK"] == "MILESTONE#PENDING"
        assert item["GSI1SK"] == "2025-04-01#m1"

    def test_undated_milestone_sorts_last(self):
        assert milestone_index_sort({"id": "m2"}) == "9999-12-31#m2"
        assert milestone_index_sort({"id": "m1", "dueDate": "2030-01-01"}) < "9999-12-31#m2"

    def test_participant_and_mirror_keys(self):
        assert participant_key("u1", "r1") == {"PK": "USER#u1", "SK": "ROOM#r1"}
        assert project_mirror_key("u1", "2025-01-01", "p1") == {
            "PK": "USER#u1",
            "SK": "PROJECT#2025-01-01#p1",
        }

    def test_availability_sort_uses_date_or_day(self):
        weekly = {"scheduleType": "WEEKLY", "dayOfWeek": 2, "startTime": "09:00", "id": "s1"}
        dated = {
            "scheduleType": "SPECIFIC_DATE",
            "specificDate": "2025-05-01",
            "dayOfWeek": 4,
            "startTime": "09:00",
            "id": "s2",
        }
        assert availability_index_sort(weekly) == "WEEKLY#2#09:00#s1"
        assert availability_index_sort(dated) == "SPECIFIC_DATE#2025-05-01#09:00#s2"

    def test_missing_key_attribute_rejected(self):
        with pytest.raises(InvalidEntityError):
            build_item(MILESTONE_SCHEMA, {"id": "m1", "status": "PENDING"})


class TestSparseIndexes:
    def test_user_without_telegram_not_in_gsi2(self):
        item = build_item(USER_SCHEMA, {"id": "u1", "phone": "+996555"})
        assert item["GSI1PK"] == "PHONE#+996555"
        assert "GSI2PK" not in item
        assert "GSI2SK" not in item

    def test_transaction_idempotency_index_only_with_key(self):
        base = {"id": "t1", "userId": "u1", "type": "DEPOSIT", "status": "PENDING", "createdAt": "c"}
        assert "GSI3PK" not in build_item(TRANSACTION_SCHEMA, base)
        keyed = build_item(TRANSACTION_SCHEMA, {**base, "idempotencyKey": "k1"})
        assert keyed["GSI3PK"] == "IDEMPOTENCY#k1"
        assert keyed["GSI3SK"] == "TRANSACTION#t1"


class TestApplyPatch:
    def test_status_change_moves_index_entry(self):
        result = apply_patch(MILESTONE_SCHEMA, milestone(), {"status": "COMPLETED"}, NOW)
        assert result.updates["GSI1PK"] == "MILESTONE#COMPLETED"
        assert result.item["GSI1PK"] == "MILESTONE#COMPLETED"
        assert result.item["updatedAt"] == NOW.isoformat()

    def test_due_date_change_moves_index_sort(self):
        result = apply_patch(MILESTONE_SCHEMA, milestone(), {"dueDate": "2025-06-01"}, NOW)
        assert result.updates["GSI1SK"] == "2025-06-01#m1"

    def test_unrelated_change_still_writes_index_fields(self):
        result = apply_patch(MILESTONE_SCHEMA, milestone(), {"title": "Walls"}, NOW)
        assert result.updates["GSI1PK"] == "MILESTONE#PENDING"
        assert result.remove == []

    def test_index_fields_removed_when_item_leaves_index(self):
        user = build_item(USER_SCHEMA, {"id": "u1", "phone": "+1", "telegramId": "tg"})
        result = apply_patch(USER_SCHEMA, user, {"telegramId": ""}, NOW)
        assert sorted(result.remove) == ["GSI2PK", "GSI2SK"]
        assert "GSI2PK" not in result.item

    @pytest.mark.parametrize("attribute", ["id", "createdAt", "PK", "GSI1PK", "projectId"])
    def test_protected_attributes_rejected(self, attribute):
        with pytest.raises(InvalidEntityError):
            apply_patch(MILESTONE_SCHEMA, milestone(), {attribute: "x"}, NOW)

    def test_applying_twice_gives_same_item(self):
        """Test that repeating an update is idempotent apart from updatedAt."""
        once = apply_patch(MILESTONE_SCHEMA, milestone(), {"status": "IN_PROGRESS"}, NOW).item
        twice = apply_patch(MILESTONE_SCHEMA, once, {"status": "IN_PROGRESS"}, NOW).item
        assert once == twice

    def test_background_check_sort_uses_created_at(self):
        check = build_item(
            BACKGROUND_CHECK_SCHEMA,
            {
                "id": "c1",
                "userId": "u1",
                "checkType": "CRIMINAL",
                "status": "PENDING",
                "createdAt": "2025-01-01T00:00:00+00:00",
            },
        )
        result = apply_patch(BACKGROUND_CHECK_SCHEMA, check, {"status": "COMPLETED"}, NOW)
        assert result.item["GSI1PK"] == "BACKGROUND_CHECK"
        assert result.item["GSI1SK"] == "STATUS#COMPLETED#2025-01-01T00:00:00+00:00#c1"


class TestIndexDrift:
    def test_consistent_item_has_no_drift(self):
        assert index_drift(MILESTONE_SCHEMA, milestone()) == ({}, [])

    def test_stale_index_value_detected(self):
        item = {**milestone(), "status": "COMPLETED"}
        rewrite, stale = index_drift(MILESTONE_SCHEMA, item)
        assert rewrite == {"GSI1PK": "MILESTONE#COMPLETED"}
        assert stale == []

    def test_leftover_index_fields_detected(self):
        user = build_item(USER_SCHEMA, {"id": "u1", "phone": "+1", "telegramId": "tg"})
        del user["telegramId"]
        rewrite, stale = index_drift(USER_SCHEMA, user)
        assert rewrite == {}
        assert sorted(stale) == ["GSI2PK", "GSI2SK"]
