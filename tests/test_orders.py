"""Tests for orders, their client mirrors and applications."""

import pytest

from handshake_core.store.exceptions import ItemExistsError, ItemNotFoundError, StoreUnavailableError
from handshake_core.store.models import ApplicationPatch, OrderPatch, OrderStatus


def create_order(orders, client_id="client-1", category_id="plumbing"):
    return orders.create(client_id, "Fix sink", "Kitchen sink leaks", category_id, budget=1500.0)


class TestOrders:
    def test_create_defaults(self, orders):
        order = create_order(orders)
        assert order["status"] == "ACTIVE"
        assert order["currency"] == "KGS"
        assert order["applicationsCount"] == 0
        assert order["GSI1PK"] == "ORDER_STATUS#ACTIVE"
        assert order["GSI2PK"] == "CATEGORY#plumbing"

    def test_client_mirror_written(self, orders, store):
        order = create_order(orders)
        mirror = store.get_item(
            {"PK": "USER#client-1", "SK": f"ORDER#{order['createdAt']}#{order['id']}"}
        )
        assert mirror["title"] == "Fix sink"
        assert [item["id"] for item in orders.find_by_client("client-1").items] == [order["id"]]

    def test_mirror_failure_keeps_canonical_order(self, orders, store):
        store.fail_on(
            "put_item",
            lambda item: item["PK"].startswith("USER#"),
            StoreUnavailableError("down"),
        )
        order = create_order(orders)
        assert orders.find_by_id(order["id"]) is not None
        assert orders.find_by_client("client-1").items == []

        store.failures.clear()
        orders.rebuild_mirror(orders.find_by_id(order["id"]))
        assert len(orders.find_by_client("client-1").items) == 1

    def test_status_listing_newest_first(self, orders):
        first = create_order(orders)
        second = create_order(orders)
        assert [o["id"] for o in orders.find_by_status(OrderStatus.ACTIVE).items] == [
            second["id"],
            first["id"],
        ]

    def test_status_change_moves_order_between_listings(self, orders, store):
        order = create_order(orders)
        orders.update(order["id"], OrderPatch(status=OrderStatus.IN_PROGRESS, master_id="m1"))
        assert orders.find_by_status("ACTIVE").items == []
        assert [o["id"] for o in orders.find_by_status("IN_PROGRESS").items] == [order["id"]]
        mirror = orders.find_by_client("client-1").items[0]
        assert mirror["status"] == "IN_PROGRESS"

    def test_find_by_category_paginates(self, orders):
        created = [create_order(orders)["id"] for _ in range(3)]
        first = orders.find_by_category("plumbing", limit=2)
        second = orders.find_by_category("plumbing", limit=2, start_token=first.next_token)
        assert [o["id"] for o in first.items + second.items] == list(reversed(created))
        assert second.next_token is None


class TestApplications:
    def test_apply_and_list(self, orders):
        order = create_order(orders)
        application = orders.create_application(order["id"], "master-1", proposed_price=1400.0)
        assert application["status"] == "PENDING"
        assert orders.find_application(order["id"], application["id"])["masterId"] == "master-1"
        assert [a["id"] for a in orders.find_applications(order["id"])] == [application["id"]]
        assert [a["id"] for a in orders.find_master_applications("master-1").items] == [
            application["id"]
        ]

    def test_applications_count_follows_applications(self, orders):
        order = create_order(orders)
        orders.create_application(order["id"], "master-1")
        orders.create_application(order["id"], "master-2")
        assert orders.find_by_id(order["id"])["applicationsCount"] == 2
        assert orders.find_by_client("client-1").items[0]["applicationsCount"] == 2

    def test_count_failure_keeps_application(self, orders, store):
        order = create_order(orders)
        store.fail_on(
            "update_item", lambda key: key["SK"] == "METADATA", StoreUnavailableError("down")
        )
        application = orders.create_application(order["id"], "master-1")
        assert orders.find_application(order["id"], application["id"]) is not None
        assert orders.find_by_id(order["id"])["applicationsCount"] == 0

    def test_apply_to_missing_order(self, orders):
        with pytest.raises(ItemNotFoundError):
            orders.create_application("missing", "master-1")

    def test_master_applies_once(self, orders):
        order = create_order(orders)
        orders.create_application(order["id"], "master-1")
        with pytest.raises(ItemExistsError):
            orders.create_application(order["id"], "master-1")

    def test_same_master_other_order(self, orders):
        first = create_order(orders)
        second = create_order(orders)
        orders.create_application(first["id"], "master-1")
        orders.create_application(second["id"], "master-1")
        assert len(orders.find_master_applications("master-1").items) == 2

    def test_update_application(self, orders):
        order = create_order(orders)
        application = orders.create_application(order["id"], "master-1")
        updated = orders.update_application(
            order["id"], application["id"], ApplicationPatch(status="ACCEPTED")
        )
        assert updated["status"] == "ACCEPTED"
